"""Dialers for direct, TLS and HTTP CONNECT proxy connections."""

from __future__ import annotations

import base64
import logging
import os
import socket
import ssl
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import unquote, urlsplit

from tunnelkit.dialer import ProxyError, _network
from tunnelkit.socks5 import new_socks5_dialer
from tunnelkit.socksaddr import _split_host_port

log = logging.getLogger(__name__)

_MAX_HEADER = 64 * 1024
USER_AGENT = "Powerby Gota"


def _split(addr: str):
    try:
        host, port = _split_host_port(addr)
    except ValueError as exc:
        raise ProxyError(str(exc)) from None
    return host or None, port


class DirectDialer:
    """Makes network connections directly."""

    def dial(self, network: str, addr: str) -> socket.socket:
        kind, family = _network(network)
        host, port = _split(addr)
        last_error: Optional[OSError] = None
        for fam, typ, proto, _, sockaddr in socket.getaddrinfo(host, port, family, kind):
            sock = socket.socket(fam, typ, proto)
            try:
                sock.connect(sockaddr)
            except OSError as exc:
                sock.close()
                last_error = exc
                continue
            return sock
        if last_error is not None:
            raise last_error
        raise ProxyError(f"no address found for {addr}")


@dataclass
class HttpsDialer:
    """Makes TLS connections; the network argument is ignored."""

    context: ssl.SSLContext = field(default_factory=ssl.create_default_context)

    def dial(self, network: str, addr: str) -> ssl.SSLSocket:
        host, port = _split(addr)
        try:
            raw = socket.create_connection((host, int(port)))
        except (OSError, ValueError) as exc:
            log.error("%s", exc)
            raise
        try:
            return self.context.wrap_socket(raw, server_hostname=host)
        except OSError as exc:
            raw.close()
            log.error("%s", exc)
            raise


@dataclass
class HttpProxyDialer:
    """Reaches targets through an HTTP proxy with the CONNECT method."""

    host: str
    forward: Any
    username: Optional[str] = None
    password: str = ""

    def dial(self, network: str, addr: str) -> Any:
        """Open a tunnel to ``addr``; raise ProxyError unless the proxy answers 200."""
        conn = self.forward.dial("tcp", self.host)
        try:
            conn.sendall(self._request(addr))
            status = self._read_status(conn)
        except BaseException:
            conn.close()
            raise
        if status != 200:
            conn.close()
            raise ProxyError(f"Connect server using proxy error, StatusCode [{status}]")
        return conn

    def _request(self, addr: str) -> bytes:
        lines = [f"CONNECT {addr} HTTP/1.1", f"Host: {addr}", f"User-Agent: {USER_AGENT}"]
        if self.username is not None:
            credentials = f"{self.username}:{self.password}".encode("utf-8")
            lines.append("Authorization: Basic " + base64.b64encode(credentials).decode("ascii"))
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")

    @staticmethod
    def _read_status(conn: Any) -> int:
        head = bytearray()
        while not head.endswith(b"\r\n\r\n"):
            if len(head) >= _MAX_HEADER:
                raise ProxyError("proxy: CONNECT response header too long")
            byte = conn.recv(1)
            if not byte:
                raise ProxyError("proxy: unexpected EOF reading CONNECT response")
            head += byte
        status_line = head.split(b"\r\n", 1)[0].decode("latin-1")
        pieces = status_line.split(" ", 2)
        if len(pieces) < 2 or not pieces[0].startswith("HTTP/") or not pieces[1].isdigit():
            raise ProxyError(f"proxy: malformed HTTP response {status_line!r}")
        return int(pieces[1])


def _new_http_proxy(url: str, forward: Any) -> HttpProxyDialer:
    parts = urlsplit(url)
    netloc = parts.netloc
    dialer = HttpProxyDialer(host=netloc.rpartition("@")[2], forward=forward)
    if "@" in netloc:
        dialer.username = unquote(parts.username or "")
        dialer.password = unquote(parts.password or "")
    return dialer


def from_url(url: str, forward: Any) -> Any:
    """Dialer for a proxy URL: http, https, socks5 or socks5h."""
    try:
        scheme = urlsplit(url).scheme
    except ValueError as exc:
        raise ProxyError(f"cannot parse {url!r}: {exc}") from None
    lowered = scheme.lower()
    if lowered in ("http", "https"):
        return _new_http_proxy(url, forward)
    if lowered in ("socks5", "socks5h"):
        return new_socks5_dialer(url, forward)
    raise ProxyError("proxy: unknown scheme: " + scheme)


def from_environment() -> Any:
    """Dialer for ALL_PROXY, or a direct dialer when it is unset or unusable."""
    value = os.environ.get("ALL_PROXY") or os.environ.get("all_proxy") or ""
    if not value:
        return DirectDialer()
    try:
        return from_url(value, DirectDialer())
    except ProxyError:
        return DirectDialer()