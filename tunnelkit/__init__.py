"""Proxy dialers, SOCKS5 and TCP forwarders, and supporting utilities."""

__version__ = "0.1.0"