"""TCP port forwarder: every accepted connection goes to one fixed target."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from tunnelkit.dialer import Dialer, Proxy, ProxyError, Server
from tunnelkit.environment import is_debug
from tunnelkit.socks5 import relay
from tunnelkit.socksaddr import _split_host_port

log = logging.getLogger(__name__)

_ACCEPT_POLL = 0.2


def _peer(conn: Any) -> str:
    try:
        return str(conn.getpeername())
    except (OSError, AttributeError):
        return "?"


class TcpForwarder(Dialer, Server):
    """Endpoint described by ``tcp://host:port/?target=host:port``.

    As a server it listens on ``host:port`` and forwards each connection to
    the target through ``proxy``; as a dialer it connects to ``host:port``
    through ``dialer``.
    """

    def __init__(
        self, url: str, dialer: Optional[Dialer] = None, proxy: Optional[Proxy] = None
    ) -> None:
        try:
            parts = urlsplit(url)
            netloc = parts.netloc
        except ValueError as exc:
            log.warning("parse err: %s", exc)
            raise ProxyError(f"cannot parse {url!r}: {exc}") from None
        query = parse_qs(parts.query, keep_blank_values=True)
        self.dialer = dialer
        self.proxy = proxy
        self.listen_addr = netloc.rpartition("@")[2]
        self.target = query.get("target", [""])[0]
        self.tcp_listener: Optional[socket.socket] = None
        self.ready = threading.Event()
        self._closed = threading.Event()

    def listen_and_serve(self) -> None:
        self.listen_and_serve_tcp()

    def listen_and_serve_tcp(self) -> None:
        """Listen on the configured address and serve until closed."""
        try:
            host, port = _split_host_port(self.listen_addr)
            number = int(port)
        except ValueError as exc:
            raise ProxyError(f"invalid listen address {self.listen_addr!r}: {exc}") from None
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            listener = socket.create_server((host, number), family=family)
        except OSError as exc:
            if is_debug():
                log.error("[tcp] failed to listen on %s: %s", self.listen_addr, exc)
            raise
        listener.settimeout(_ACCEPT_POLL)
        self.tcp_listener = listener
        self.ready.set()
        if is_debug():
            log.info("[tcp] listening TCP on %s", self.listen_addr)

        while not self._closed.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._closed.is_set():
                    return
                if is_debug():
                    log.error("[tcp] failed to accept: %s", exc)
                continue
            threading.Thread(target=self.serve, args=(conn,), daemon=True).start()

    def close(self) -> None:
        if self.tcp_listener is None:
            raise ProxyError("tcp server is not listening")
        self._closed.set()
        self.tcp_listener.close()

    def serve(self, conn: Any) -> None:
        """Forward one client connection to the target, then close it."""
        try:
            self._serve(conn)
        finally:
            conn.close()

    def _serve(self, conn: Any) -> None:
        try:
            conn.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except (OSError, AttributeError):
            pass
        try:
            remote, via = self.proxy.dial("tcp", self.target)
        except (ProxyError, OSError) as exc:
            if is_debug():
                log.info("[tcp] %s <-> %s, error in dial: %s", _peer(conn), self.target, exc)
            return
        try:
            if is_debug():
                log.info("[tcp] %s <-> %s", _peer(conn), via)
            relay(conn, remote)
        except socket.timeout:
            pass
        except OSError as exc:
            if is_debug():
                log.info("[tcp] relay error: %s", exc)
        finally:
            remote.close()

    def addr(self) -> str:
        if not self.listen_addr:
            return self.dialer.addr()
        return self.listen_addr

    def dial(self, network: str, addr: str) -> Any:
        """Connect to the configured address; ``addr`` is not used."""
        if network not in ("tcp", "tcp6", "tcp4"):
            raise ProxyError("[tcp]: no support for connection type " + network)
        try:
            return self.dialer.dial(network, self.listen_addr)
        except OSError as exc:
            if is_debug():
                log.error("[tcp]: dial to %s error: %s", self.listen_addr, exc)
            raise

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        raise ProxyError("[tcp] udp is not supported")


def new_tcp_dialer(url: str, dialer: Dialer) -> TcpForwarder:
    return TcpForwarder(url, dialer=dialer)


def new_tcp_server(url: str, proxy: Proxy) -> TcpForwarder:
    return TcpForwarder(url, proxy=proxy)