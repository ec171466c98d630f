"""Dialer, proxy and server interfaces, their registries and the direct dialer."""

from __future__ import annotations

import abc
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import psutil

from tunnelkit.socksaddr import _split_host_port

log = logging.getLogger(__name__)

_MARK = 0xFF


class ProxyError(Exception):
    """A dialer, proxy or server could not be built or used."""


class Dialer(abc.ABC):
    """Makes outgoing connections."""

    @abc.abstractmethod
    def addr(self) -> str:
        """The address this dialer forwards through."""

    @abc.abstractmethod
    def dial(self, network: str, addr: str) -> socket.socket:
        """Connect to ``addr`` over ``network``."""

    @abc.abstractmethod
    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        """Return a packet connection and the address to write to."""


class Proxy(abc.ABC):
    """Chooses and uses dialers on behalf of a server."""

    @abc.abstractmethod
    def dial(self, network: str, addr: str) -> Tuple[Any, str]:
        """Connect to ``addr``; return the connection and the dialer's address."""

    @abc.abstractmethod
    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        """Return a packet connection and the address to write to."""

    @abc.abstractmethod
    def next_dialer(self, dst_addr: str) -> Dialer:
        """The dialer that would be used for ``dst_addr``."""


class Server(abc.ABC):
    """Accepts client connections and serves them."""

    @abc.abstractmethod
    def listen_and_serve(self) -> None:
        """Listen and serve until closed."""

    @abc.abstractmethod
    def serve(self, conn: socket.socket) -> None:
        """Serve one accepted connection."""


DialerCreator = Callable[[str, Dialer], Dialer]
ServerCreator = Callable[[str, Proxy], Server]

_dialers: Dict[str, DialerCreator] = {}
_servers: Dict[str, ServerCreator] = {}


def _scheme(url: str) -> str:
    try:
        return urlsplit(url).scheme.lower()
    except ValueError as exc:
        log.warning("parse err: %s", exc)
        raise ProxyError(f"cannot parse {url!r}: {exc}") from None


def register_dialer(name: str, creator: DialerCreator) -> None:
    _dialers[name] = creator


def dialer_from_url(url: str, dialer: Optional[Dialer]) -> Dialer:
    """Build a dialer for ``url`` on top of the upstream ``dialer``."""
    if dialer is None:
        raise ProxyError("DialerFromURL: dialer cannot be nil")
    scheme = _scheme(url)
    creator = _dialers.get(scheme)
    if creator is None:
        raise ProxyError(f"unknown scheme '{scheme}'")
    return creator(url, dialer)


def register_server(name: str, creator: ServerCreator) -> None:
    _servers[name] = creator


def server_from_url(url: str, proxy: Optional[Proxy]) -> Server:
    """Build a server for ``url``; a bare address means ``mixed://``."""
    if proxy is None:
        raise ProxyError("ServerFromURL: dialer cannot be nil")
    if "://" not in url:
        url = "mixed://" + url
    scheme = _scheme(url)
    creator = _servers.get(scheme)
    if creator is None:
        raise ProxyError(f"unknown scheme '{scheme}'")
    return creator(url, proxy)


_NETWORKS = {
    "tcp": (socket.SOCK_STREAM, socket.AF_UNSPEC),
    "tcp4": (socket.SOCK_STREAM, socket.AF_INET),
    "tcp6": (socket.SOCK_STREAM, socket.AF_INET6),
    "udp": (socket.SOCK_DGRAM, socket.AF_UNSPEC),
    "udp4": (socket.SOCK_DGRAM, socket.AF_INET),
    "udp6": (socket.SOCK_DGRAM, socket.AF_INET6),
}


def _ip_family(ip: str) -> int:
    return socket.AF_INET6 if ":" in ip else socket.AF_INET


def _network(network: str) -> Tuple[int, int]:
    try:
        return _NETWORKS[network]
    except KeyError:
        raise ProxyError(f"unknown network {network}") from None


def _split(addr: str) -> Tuple[Optional[str], str]:
    try:
        host, port = _split_host_port(addr)
    except ValueError as exc:
        raise ProxyError(str(exc)) from None
    return host or None, port


def _set_mark(sock: socket.socket) -> None:
    option = getattr(socket, "SO_MARK", None)
    if option is None:
        return
    try:
        sock.setsockopt(socket.SOL_SOCKET, option, _MARK)
    except OSError:
        pass


def _dial(network: str, addr: str, local_ip: Optional[str]) -> socket.socket:
    if network == "uot":
        network = "udp"
    sock_type, family = _network(network)
    host, port = _split(addr)
    if local_ip:
        family = _ip_family(local_ip)
    last_error: Optional[OSError] = None
    for fam, kind, proto, _, sockaddr in socket.getaddrinfo(host, port, family, sock_type):
        sock = socket.socket(fam, kind, proto)
        try:
            _set_mark(sock)
            if local_ip:
                sock.bind((local_ip, 0))
            sock.connect(sockaddr)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        if kind == socket.SOCK_STREAM:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        return sock
    if last_error is not None:
        raise last_error
    raise ProxyError(f"no address found for {addr}")


@dataclass
class Direct(Dialer):
    """Connects straight to the target, optionally from a given interface or IP."""

    iface: Optional[str] = None
    ip: Optional[str] = None

    def addr(self) -> str:
        return "DIRECT"

    def dial(self, network: str, addr: str) -> socket.socket:
        error: Optional[BaseException] = None
        if self.iface is None or self.ip is not None:
            try:
                return _dial(network, addr, self.ip)
            except OSError as exc:
                error = exc
        for ip in self.iface_ips():
            try:
                conn = _dial(network, addr, ip)
            except OSError as exc:
                error = exc
                continue
            self.ip = ip
            return conn
        if error is not None:
            raise error
        raise ProxyError("dial failed, maybe the interface link is down, please check it")

    def dial_udp(self, network: str, addr: str) -> Tuple[socket.socket, Any]:
        _, family = _network(network)
        if self.ip:
            family = _ip_family(self.ip)
        host, port = _split(addr)
        fam, _, _, _, target = socket.getaddrinfo(host, port, family, socket.SOCK_DGRAM)[0]
        local = self.ip or ("::" if fam == socket.AF_INET6 else "0.0.0.0")
        sock = socket.socket(fam, socket.SOCK_DGRAM)
        try:
            sock.bind((local, 0))
        except OSError as exc:
            sock.close()
            log.error("ListenPacket error: %s", exc)
            raise
        return sock, target

    def iface_ips(self) -> List[str]:
        """IP addresses of the chosen interface; empty when there is none."""
        if self.iface is None:
            return []
        addresses = psutil.net_if_addrs().get(self.iface, [])
        return [a.address for a in addresses if a.family in (socket.AF_INET, socket.AF_INET6)]


DEFAULT = Direct()


def new_direct(interface: str) -> Direct:
    """Direct dialer bound to ``interface``, given as an IP or interface name."""
    if not interface:
        return Direct()
    if "%" not in interface:
        try:
            return Direct(ip=str(ipaddress.ip_address(interface)))
        except ValueError:
            pass
    known = set(psutil.net_if_addrs()) | set(psutil.net_if_stats())
    if interface not in known:
        raise ProxyError(f"{interface}: no such network interface")
    return Direct(iface=interface)