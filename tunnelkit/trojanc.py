"""Trojan cleartext dialer: sends the trojan request header over an upstream dialer."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Tuple
from urllib.parse import unquote, urlsplit

from tunnelkit.dialer import Dialer, Proxy, ProxyError, new_direct
from tunnelkit.socksaddr import CMD_CONNECT, CMD_UDP_ASSOCIATE, parse_addr

_CRLF = b"\r\n"


class Trojan(Dialer):
    """Dialer for ``trojanc://password@host:port``."""

    def __init__(self, url: str, dialer: Dialer) -> None:
        try:
            parts = urlsplit(url)
            netloc = parts.netloc
            username = parts.username or ""
        except ValueError as exc:
            raise ProxyError(f"[trojan] {exc}") from None
        self.dialer = dialer
        self._addr = netloc.rpartition("@")[2]
        digest = hashlib.sha224(unquote(username).encode("utf-8")).hexdigest()
        self.pass_hash = digest.encode("ascii")

    def addr(self) -> str:
        if not self._addr:
            return self.dialer.addr()
        return self._addr

    def dial(self, network: str, addr: str) -> Any:
        """Connect to the trojan server and send the request for ``addr``."""
        try:
            conn = self.dialer.dial("tcp", self._addr)
        except OSError as exc:
            raise ProxyError(f"[trojan]: dial to {self._addr}: {exc}") from exc
        cmd = CMD_UDP_ASSOCIATE if network == "udp" else CMD_CONNECT
        header = (
            self.pass_hash + _CRLF + bytes([cmd]) + (parse_addr(addr) or b"") + _CRLF
        )
        try:
            conn.sendall(header)
        except OSError:
            conn.close()
            raise
        return conn

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        raise ProxyError("[trojan] udp is not supported")


def new_trojanc(url: str, dialer: Dialer) -> Trojan:
    return Trojan(url, dialer)


@dataclass
class TrojanProxy(Proxy):
    """Proxy that sends every connection through one trojan dialer."""

    trojan: Trojan

    def dial(self, network: str, addr: str) -> Tuple[Any, str]:
        return self.trojan.dial(network, addr), self.trojan.addr()

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        return self.trojan.dial_udp(network, addr)

    def next_dialer(self, dst_addr: str) -> Dialer:
        return new_direct("")


def new_trojan_proxy(url: str) -> TrojanProxy:
    """Trojan proxy that reaches the server directly."""
    return TrojanProxy(Trojan(url, new_direct("")))