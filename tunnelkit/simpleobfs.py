"""Simple-obfs dialer and the proxy built on it."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Tuple
from urllib.parse import parse_qs, urlsplit

from tunnelkit.dialer import Dialer, Proxy, ProxyError, new_direct, register_dialer
from tunnelkit.obfs import HTTPObfs, TLSObfs

log = logging.getLogger(__name__)


class ObfsType(enum.IntEnum):
    HTTP = 0
    TLS = 1


def _query_value(query: dict, key: str) -> str:
    return query.get(key, [""])[0]


class SimpleObfs(Dialer):
    """Dialer for ``simpleobfs://host:port?type=http|tls&host=..&path=..``."""

    def __init__(self, url: str, dialer: Dialer) -> None:
        try:
            parts = urlsplit(url)
            netloc = parts.netloc
        except ValueError as exc:
            raise ProxyError(f"[simpleobfs] {exc}") from None
        query = parse_qs(parts.query, keep_blank_values=True)
        kind = _query_value(query, "type")
        try:
            self.obfs_type = {"http": ObfsType.HTTP, "tls": ObfsType.TLS}[kind.lower()]
        except KeyError:
            raise ProxyError("unsupported obfs type " + kind) from None
        self.dialer = dialer
        self._addr = netloc.rpartition("@")[2]
        self.host = _query_value(query, "host")
        self.path = _query_value(query, "path")

    def addr(self) -> str:
        if not self._addr:
            return self.dialer.addr()
        return self._addr

    def dial(self, network: str, addr: str) -> Any:
        """Connect to the obfs server and wrap the connection."""
        log.info("dial %s %s %s %s", self._addr, self.obfs_type.name, self.host, self.path)
        try:
            conn = self.dialer.dial("tcp", self._addr)
        except OSError as exc:
            raise ProxyError(f"[simpleobfs]: dial to {self._addr}: {exc}") from exc
        if self.obfs_type is ObfsType.HTTP:
            pieces = self._addr.split(":")
            port = "80" if len(pieces) == 1 else pieces[1]
            return HTTPObfs(conn, pieces[0], port, self.path)
        return TLSObfs(conn, self.host)

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        raise ProxyError("[simpleobfs] udp is not supported")


def new_simple_obfs_dialer(url: str, dialer: Dialer) -> SimpleObfs:
    return SimpleObfs(url, dialer)


@dataclass
class SimpleObfsProxy(Proxy):
    """Proxy that sends every connection through one simple-obfs dialer."""

    simple_obfs: SimpleObfs

    def dial(self, network: str, addr: str) -> Tuple[Any, str]:
        return self.simple_obfs.dial(network, addr), self.simple_obfs.addr()

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        return self.simple_obfs.dial_udp(network, addr)

    def next_dialer(self, dst_addr: str) -> Dialer:
        return new_direct("")


def new_simple_obfs_proxy(url: str) -> SimpleObfsProxy:
    """Simple-obfs proxy that reaches the server directly."""
    return SimpleObfsProxy(SimpleObfs(url, new_direct("")))


register_dialer("simpleobfs", new_simple_obfs_dialer)