"""SOCKS5 client dialer and server (RFC 1928), with UDP associate support."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Optional, Tuple
from urllib.parse import unquote, urlsplit

from tunnelkit.dialer import Dialer, Proxy, ProxyError, Server
from tunnelkit.environment import is_debug
from tunnelkit.socksaddr import (
    ATYP_DOMAIN,
    ATYP_IP4,
    ATYP_IP6,
    AUTH_NONE,
    AUTH_PASSWORD,
    CMD_CONNECT,
    CMD_UDP_ASSOCIATE,
    ERRORS,
    SocksError,
    _join_host_port,
    _parse_ip,
    _read_exact,
    _split_host_port,
    addr_to_string,
    parse_addr,
    read_addr,
    split_addr,
)

log = logging.getLogger(__name__)

VERSION = 5

_BUFFER_SIZE = 32 * 1024
_ACCEPT_POLL = 0.2
_UDP_ASSOCIATE = 9
_COMMAND_NOT_SUPPORTED = 7


def _peer(conn: Any) -> str:
    try:
        return str(conn.getpeername())
    except (OSError, AttributeError):
        return "?"


def _wake(conn: Any) -> None:
    """Unblock any thread reading from or writing to ``conn``."""
    shutdown = getattr(conn, "shutdown", None)
    try:
        if shutdown is not None:
            shutdown(socket.SHUT_RDWR)
        else:
            conn.close()
    except OSError:
        pass


def relay(left: Any, right: Any) -> Tuple[int, int]:
    """Copy bytes both ways until one side ends.

    Returns the number of bytes written to ``left`` and to ``right``. When
    the direction that ended first ended with an error, that error is raised.
    """
    counts: dict = {}
    first_error: list = []
    lock = threading.Lock()

    def pump(key: str, src: Any, dst: Any) -> None:
        total = 0
        error: Optional[OSError] = None
        try:
            while True:
                data = src.recv(_BUFFER_SIZE)
                if not data:
                    break
                dst.sendall(data)
                total += len(data)
        except OSError as exc:
            error = exc
        with lock:
            counts[key] = total
            if not first_error:
                first_error.append(error)
        _wake(right)
        _wake(left)

    worker = threading.Thread(target=pump, args=("right", left, right), daemon=True)
    worker.start()
    pump("left", right, left)
    worker.join()
    if first_error and first_error[0] is not None:
        raise first_error[0]
    return counts["left"], counts["right"]


class PacketConn:
    """UDP socket relaying through a SOCKS5 server's UDP associate."""

    def __init__(
        self,
        conn: socket.socket,
        write_addr: Any,
        tgt_addr: Optional[bytes],
        tgt_header: bool,
        ctrl_conn: Optional[Any] = None,
    ) -> None:
        self.conn = conn
        self.write_addr = write_addr
        self.tgt_addr = tgt_addr
        self.tgt_header = tgt_header
        self.ctrl_conn = ctrl_conn
        if ctrl_conn is not None:
            threading.Thread(target=self._watch_control, daemon=True).start()

    def _watch_control(self) -> None:
        while True:
            try:
                if not self.ctrl_conn.recv(1):
                    break
            except socket.timeout:
                continue
            except OSError:
                break
        log.info("[socks5] dialudp udp associate end")

    def read_from(self, size: int) -> Tuple[bytes, Any]:
        """Receive one datagram and strip the SOCKS5 UDP header from it."""
        if not self.tgt_header:
            return self.conn.recvfrom(size)
        data, raddr = self.conn.recvfrom(size)
        # RSV(2) FRAG(1) ATYP DST.ADDR DST.PORT DATA
        tgt = split_addr(data[3:])
        skip = len(tgt) if tgt is not None else 0
        if self.write_addr is None:
            self.write_addr = raddr
        if self.tgt_addr is None:
            self.tgt_addr = tgt
        return data[3 + skip:], raddr

    def write_to(self, data: bytes, addr: Any) -> int:
        """Send ``data``, prefixed with the SOCKS5 UDP header when relaying."""
        if not self.tgt_header:
            return self.conn.sendto(data, addr)
        packet = b"\x00\x00\x00" + (self.tgt_addr or b"") + bytes(data)
        return self.conn.sendto(packet, self.write_addr)

    def close(self) -> None:
        if self.ctrl_conn is not None:
            self.ctrl_conn.close()
        self.conn.close()

    def __enter__(self) -> "PacketConn":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class Socks5(Dialer, Server):
    """SOCKS5 endpoint described by ``socks5://[user:password@]host:port``.

    Used with an upstream ``dialer`` it connects through a SOCKS5 server;
    used with a ``proxy`` it is a SOCKS5 server itself.
    """

    def __init__(
        self, url: str, dialer: Optional[Dialer] = None, proxy: Optional[Proxy] = None
    ) -> None:
        try:
            parts = urlsplit(url)
            username = parts.username or ""
            password = parts.password or ""
        except ValueError as exc:
            log.warning("parse err: %s", exc)
            raise ProxyError(f"cannot parse {url!r}: {exc}") from None
        self.dialer = dialer
        self.proxy = proxy
        self._addr = parts.netloc.rpartition("@")[2]
        self._user = unquote(username)
        self._password = unquote(password)
        self.tcp_listener: Optional[socket.socket] = None
        self.ready = threading.Event()
        self._closed = threading.Event()

    # server side

    def listen_and_serve(self) -> None:
        self.listen_and_serve_tcp()

    def listen_and_serve_tcp(self) -> None:
        """Listen on the configured address and serve until closed."""
        try:
            host, port = _split_host_port(self._addr)
            number = int(port)
        except ValueError as exc:
            raise ProxyError(f"invalid listen address {self._addr!r}: {exc}") from None
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            listener = socket.create_server((host, number), family=family)
        except OSError as exc:
            if is_debug():
                log.error("[socks5] failed to listen on %s: %s", self._addr, exc)
            raise
        listener.settimeout(_ACCEPT_POLL)
        self.tcp_listener = listener
        self.ready.set()
        if is_debug():
            log.info("[socks5] listening TCP on %s", self._addr)

        while not self._closed.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._closed.is_set():
                    return
                if is_debug():
                    log.error("[socks5] failed to accept: %s", exc)
                continue
            threading.Thread(target=self.serve, args=(conn,), daemon=True).start()

    def close(self) -> None:
        if self.tcp_listener is None:
            raise ProxyError("socks5 server is not listening")
        self._closed.set()
        self.tcp_listener.close()

    def serve(self, conn: Any) -> None:
        """Serve one client connection and close it afterwards."""
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
            target = self._handshake(conn)
        except SocksError as exc:
            if exc.code == _UDP_ASSOCIATE:
                self._hold(conn)
                return
            if is_debug():
                log.info("[socks5] failed in handshake with %s: %s", _peer(conn), exc)
            return
        except (ProxyError, OSError, EOFError) as exc:
            if is_debug():
                log.info("[socks5] failed in handshake with %s: %s", _peer(conn), exc)
            return

        target_str = addr_to_string(target)
        try:
            remote, via = self.proxy.dial("tcp", target_str)
        except (ProxyError, OSError) as exc:
            if is_debug():
                log.info("[socks5] %s <-> %s, error in dial: %s", _peer(conn), target_str, exc)
            return

        try:
            if is_debug():
                log.info("[socks5] %s <-> %s via %s", _peer(conn), target_str, via)
            relay(conn, remote)
        except socket.timeout:
            pass
        except OSError as exc:
            if is_debug():
                log.info("[socks5] relay error: %s", exc)
        finally:
            remote.close()

    @staticmethod
    def _hold(conn: Any) -> None:
        """Keep a UDP associate's control connection open until the client leaves."""
        while True:
            try:
                if not conn.recv(_BUFFER_SIZE):
                    return
            except socket.timeout:
                continue
            except OSError:
                return

    def _handshake(self, conn: Any) -> bytes:
        header = _read_exact(conn, 2)
        _read_exact(conn, header[1])

        if self._user and self._password:
            conn.sendall(bytes([VERSION, AUTH_PASSWORD]))
            head = _read_exact(conn, 2)
            user_len = head[1]
            if user_len == 0:
                conn.sendall(b"\x01\x01")
                raise ProxyError("auth failed: wrong username length")
            try:
                user = _read_exact(conn, user_len)
            except (OSError, EOFError):
                raise ProxyError("auth failed: cannot get username") from None
            try:
                pass_len = _read_exact(conn, 1)[0]
            except (OSError, EOFError):
                raise ProxyError("auth failed: cannot get password len") from None
            if pass_len == 0:
                conn.sendall(b"\x01\x01")
                raise ProxyError("auth failed: wrong password length")
            try:
                secret = _read_exact(conn, pass_len)
            except (OSError, EOFError):
                raise ProxyError("auth failed: cannot get password") from None
            if user != self._user.encode() or secret != self._password.encode():
                conn.sendall(b"\x01\x01")
                raise ProxyError(
                    "auth failed, authinfo: "
                    + user.decode("utf-8", "replace")
                    + ":"
                    + secret.decode("utf-8", "replace")
                )
            conn.sendall(b"\x01\x00")
        else:
            conn.sendall(bytes([VERSION, AUTH_NONE]))

        request = _read_exact(conn, 3)
        cmd = request[1]
        addr = read_addr(conn)
        if cmd == CMD_CONNECT:
            conn.sendall(bytes([5, 0, 0, 1, 0, 0, 0, 0, 0, 0]))
            return addr
        if cmd == CMD_UDP_ASSOCIATE:
            host, port = conn.getsockname()[:2]
            listen_addr = parse_addr(_join_host_port(host, port)) or b""
            try:
                conn.sendall(bytes([5, 0, 0]) + listen_addr)
            except OSError:
                raise SocksError(_COMMAND_NOT_SUPPORTED) from None
            raise SocksError(_UDP_ASSOCIATE)
        raise SocksError(_COMMAND_NOT_SUPPORTED)

    # client side

    def addr(self) -> str:
        if not self._addr:
            return self.dialer.addr()
        return self._addr

    def dial(self, network: str, addr: str) -> Any:
        """Connect to ``addr`` through the SOCKS5 server."""
        if network not in ("tcp", "tcp6", "tcp4"):
            raise ProxyError("[socks5]: no support for connection type " + network)
        try:
            conn = self.dialer.dial(network, self._addr)
        except OSError as exc:
            if is_debug():
                log.error("[socks5]: dial to %s error: %s", self._addr, exc)
            raise
        try:
            self._connect(conn, addr)
        except BaseException:
            conn.close()
            raise
        return conn

    def dial_udp(self, network: str, addr: str) -> Tuple[PacketConn, Any]:
        """Open a UDP associate with the server and relay datagrams to ``addr``."""
        try:
            conn = self.dialer.dial("tcp", self._addr)
        except OSError as exc:
            if is_debug():
                log.error("[socks5] dialudp dial tcp to %s error: %s", self._addr, exc)
            raise
        try:
            dst_addr = parse_addr(addr)
            if dst_addr is None:
                raise ProxyError(f"[socks5] invalid address {addr!r}")
            conn.sendall(bytes([VERSION, 1, AUTH_NONE]))
            _read_exact(conn, 2)
            conn.sendall(bytes([VERSION, CMD_UDP_ASSOCIATE, 0]) + dst_addr)
            reply = _read_exact(conn, 3)
            if reply[1] != 0:
                if is_debug():
                    log.info("[socks5] server reply: %d, not succeeded", reply[1])
                raise ProxyError("server connect failed")
            relay_addr = addr_to_string(read_addr(conn))
            try:
                packet_conn, next_hop = self.dialer.dial_udp(network, relay_addr)
            except OSError as exc:
                if is_debug():
                    log.error("[socks5] dialudp to %s error: %s", relay_addr, exc)
                raise
        except BaseException:
            conn.close()
            raise
        return PacketConn(packet_conn, next_hop, dst_addr, True, conn), next_hop

    def _connect(self, conn: Any, target: str) -> None:
        try:
            host, port_str = _split_host_port(target)
        except ValueError as exc:
            raise ProxyError(str(exc)) from None
        try:
            port = int(port_str)
        except ValueError:
            raise ProxyError("proxy: failed to parse port number: " + port_str) from None
        if port < 1 or port > 0xFFFF:
            raise ProxyError("proxy: port number out of range: " + port_str)

        at = self._addr
        user = self._user.encode()
        secret = self._password.encode()
        if 0 < len(user) < 256 and len(secret) < 256:
            greeting = bytes([VERSION, 2, AUTH_NONE, AUTH_PASSWORD])
        else:
            greeting = bytes([VERSION, 1, AUTH_NONE])

        def exchange(payload: Optional[bytes], size: int, what_write: str, what_read: str) -> bytes:
            if payload is not None:
                try:
                    conn.sendall(payload)
                except OSError as exc:
                    raise ProxyError(f"proxy: failed to write {what_write} to SOCKS5 proxy at {at}") from exc
            try:
                return _read_exact(conn, size)
            except (OSError, EOFError) as exc:
                raise ProxyError(f"proxy: failed to read {what_read} from SOCKS5 proxy at {at}") from exc

        reply = exchange(greeting, 2, "greeting", "greeting")
        if reply[0] != VERSION:
            raise ProxyError(f"proxy: SOCKS5 proxy at {at} has unexpected version {reply[0]}")
        if reply[1] == 0xFF:
            raise ProxyError(f"proxy: SOCKS5 proxy at {at} requires authentication")

        if reply[1] == AUTH_PASSWORD:
            auth = (
                bytes([1, len(user) & 0xFF]) + user + bytes([len(secret) & 0xFF]) + secret
            )
            answer = exchange(auth, 2, "authentication request", "authentication reply")
            if answer[1] != 0:
                raise ProxyError(f"proxy: SOCKS5 proxy at {at} rejected username/password")

        request = bytearray([VERSION, CMD_CONNECT, 0])
        ip = _parse_ip(host)
        if ip is not None:
            if ip.version == 6 and ip.ipv4_mapped is not None:
                ip = ip.ipv4_mapped
            request.append(ATYP_IP4 if ip.version == 4 else ATYP_IP6)
            request += ip.packed
        else:
            name = host.encode("utf-8")
            if len(name) > 255:
                raise ProxyError("proxy: destination hostname too long: " + host)
            request.append(ATYP_DOMAIN)
            request.append(len(name))
            request += name
        request += port.to_bytes(2, "big")

        answer = exchange(bytes(request), 4, "connect request", "connect reply")
        code = answer[1]
        failure = ERRORS[code] if code < len(ERRORS) else "unknown error"
        if failure:
            raise ProxyError(f"proxy: SOCKS5 proxy at {at} failed to connect: {failure}")

        atyp = answer[3]
        if atyp == ATYP_IP4:
            discard = 4
        elif atyp == ATYP_IP6:
            discard = 16
        elif atyp == ATYP_DOMAIN:
            discard = exchange(None, 1, "", "domain length")[0]
        else:
            raise ProxyError(f"proxy: got unknown address type {atyp} from SOCKS5 proxy at {at}")
        exchange(None, discard, "", "address")
        exchange(None, 2, "", "port")


def new_socks5_dialer(url: str, dialer: Dialer) -> Socks5:
    """SOCKS5 client that reaches the server through ``dialer``."""
    return Socks5(url, dialer=dialer)


def new_socks5_server(url: str, proxy: Proxy) -> Socks5:
    """SOCKS5 server that reaches targets through ``proxy``."""
    return Socks5(url, proxy=proxy)