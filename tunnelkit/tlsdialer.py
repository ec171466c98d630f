"""TLS dialer wrapping connections made by an upstream dialer."""

from __future__ import annotations

import ssl
from typing import Any, Tuple
from urllib.parse import parse_qs, urlsplit

from tunnelkit.dialer import Dialer, ProxyError


class TlsDialer(Dialer):
    """Dialer for ``tls://host:port?host=sni&skipVerify=true``."""

    def __init__(self, url: str, dialer: Dialer) -> None:
        try:
            parts = urlsplit(url)
            netloc = parts.netloc
        except ValueError as exc:
            raise ProxyError(f"[Tls] {exc}") from None
        query = parse_qs(parts.query, keep_blank_values=True)
        self.dialer = dialer
        self._addr = netloc.rpartition("@")[2]
        self.server_name = query.get("host", [""])[0]
        if not self.server_name:
            colon = self._addr.rfind(":")
            self.server_name = self._addr if colon < 0 else self._addr[:colon]
        self.skip_verify = query.get("skipVerify", [""])[0] in ("true", "1")
        self.context = ssl.create_default_context()
        if self.skip_verify:
            self.context.check_hostname = False
            self.context.verify_mode = ssl.CERT_NONE

    def addr(self) -> str:
        if not self._addr:
            return self.dialer.addr()
        return self._addr

    def dial(self, network: str, addr: str) -> ssl.SSLSocket:
        """Connect to ``addr`` through the upstream dialer and do the TLS handshake."""
        try:
            raw = self.dialer.dial("tcp", addr)
        except OSError as exc:
            raise ProxyError(f"[Tls]: dial to {self._addr}: {exc}") from exc
        try:
            conn = self.context.wrap_socket(
                raw, server_hostname=self.server_name, do_handshake_on_connect=False
            )
        except (OSError, ValueError):
            raw.close()
            raise
        try:
            conn.do_handshake()
        except OSError:
            conn.close()
            raise
        return conn

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        raise ProxyError("[Tls] udp is not supported")


def new_tls(url: str, dialer: Dialer) -> TlsDialer:
    return TlsDialer(url, dialer)