"""Simple-obfs connection wrappers that disguise traffic as HTTP or TLS."""

from __future__ import annotations

import base64
import os
import secrets
import time
from typing import Any

_READ_SIZE = 64 * 1024
CHUNK_SIZE = 1 << 14

_CIPHER_SUITES = bytes([
    0xc0, 0x2c, 0xc0, 0x30, 0x00, 0x9f, 0xcc, 0xa9, 0xcc, 0xa8, 0xcc, 0xaa, 0xc0, 0x2b, 0xc0, 0x2f,
    0x00, 0x9e, 0xc0, 0x24, 0xc0, 0x28, 0x00, 0x6b, 0xc0, 0x23, 0xc0, 0x27, 0x00, 0x67, 0xc0, 0x0a,
    0xc0, 0x14, 0x00, 0x39, 0xc0, 0x09, 0xc0, 0x13, 0x00, 0x33, 0x00, 0x9d, 0x00, 0x9c, 0x00, 0x3d,
    0x00, 0x3c, 0x00, 0x35, 0x00, 0x2f, 0x00, 0xff,
])
_EC_POINT = bytes([0x00, 0x0b, 0x00, 0x04, 0x03, 0x01, 0x00, 0x02])
_GROUPS = bytes([0x00, 0x0a, 0x00, 0x0a, 0x00, 0x08, 0x00, 0x1d, 0x00, 0x17, 0x00, 0x19, 0x00, 0x18])
_SIGNATURES = bytes([
    0x00, 0x0d, 0x00, 0x20, 0x00, 0x1e, 0x06, 0x01, 0x06, 0x02, 0x06, 0x03, 0x05,
    0x01, 0x05, 0x02, 0x05, 0x03, 0x04, 0x01, 0x04, 0x02, 0x04, 0x03, 0x03, 0x01,
    0x03, 0x02, 0x03, 0x03, 0x02, 0x01, 0x02, 0x02, 0x02, 0x03,
])
_ENCRYPT_THEN_MAC = bytes([0x00, 0x16, 0x00, 0x00])
_EXTENDED_MASTER_SECRET = bytes([0x00, 0x17, 0x00, 0x00])


def _u16(value: int) -> bytes:
    return (value & 0xFFFF).to_bytes(2, "big")


def _recv_exact(conn: Any, size: int) -> bytes:
    """Read ``size`` bytes, or fewer when the peer closes first."""
    data = bytearray()
    while len(data) < size:
        part = conn.recv(size - len(data))
        if not part:
            break
        data += part
    return bytes(data)


class _WrappedConn:
    """Base for wrappers; attributes not overridden go to the inner socket."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def __getattr__(self, name: str) -> Any:
        return getattr(self.conn, name)

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "_WrappedConn":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class HTTPObfs(_WrappedConn):
    """Connection whose first write is an HTTP upgrade request carrying the data."""

    def __init__(self, conn: Any, host: str, port: str, path: str) -> None:
        super().__init__(conn)
        if not path.startswith("/"):
            path = "/" + path
        self.host = host
        self.port = port
        self.path = path
        self._pending = b""
        self._first_request = True
        self._first_response = True

    def recv(self, size: int) -> bytes:
        """Read data; the HTTP headers of the first response are dropped."""
        if self._pending:
            data, self._pending = self._pending[:size], self._pending[size:]
            return data
        if self._first_response:
            data = self.conn.recv(_READ_SIZE)
            if not data:
                return b""
            idx = data.find(b"\r\n\r\n")
            if idx < 0:
                return b""
            self._first_response = False
            body = data[idx + 4:]
            if not body:
                return self.conn.recv(size)
            self._pending = body[size:]
            return body[:size]
        return self.conn.recv(size)

    def sendall(self, data: bytes) -> None:
        """Send data; the first call wraps it in an HTTP request."""
        if self._first_request:
            self._first_request = False
            self.conn.sendall(self._request(bytes(data)))
            return
        self.conn.sendall(data)

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def _request(self, body: bytes) -> bytes:
        key = base64.urlsafe_b64encode(os.urandom(16)).decode("ascii")
        agent = f"curl/7.{secrets.randbelow(54)}.{secrets.randbelow(2)}"
        host = self.host if self.port == "80" else f"{self.host}:{self.port}"
        lines = [
            f"GET {self.path} HTTP/1.1",
            f"Host: {host}",
            f"User-Agent: {agent}",
            f"Content-Length: {len(body)}",
            "Connection: Upgrade",
            f"Sec-WebSocket-Key: {key}",
            "Upgrade: websocket",
        ]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


def make_client_hello(data: bytes, server: str) -> bytes:
    """Build a TLS ClientHello carrying ``data`` as a session ticket."""
    data = bytes(data)
    name = server.encode("utf-8")
    extra = len(data) + len(name)
    buf = bytearray()

    buf.append(22)
    buf += b"\x03\x01"
    buf += _u16(212 + extra)

    buf.append(1)
    buf.append(0)
    buf += _u16(208 + extra)
    buf += b"\x03\x03"

    buf += (int(time.time()) & 0xFFFFFFFF).to_bytes(4, "big")
    buf += os.urandom(28)
    buf.append(32)
    buf += os.urandom(32)

    buf += b"\x00\x38"
    buf += _CIPHER_SUITES
    buf += b"\x01\x00"

    buf += _u16(79 + extra)

    buf += b"\x00\x23"
    buf += _u16(len(data))
    buf += data

    buf += b"\x00\x00"
    buf += _u16(len(name) + 5)
    buf += _u16(len(name) + 3)
    buf.append(0)
    buf += _u16(len(name))
    buf += name

    buf += _EC_POINT
    buf += _GROUPS
    buf += _SIGNATURES
    buf += _ENCRYPT_THEN_MAC
    buf += _EXTENDED_MASTER_SECRET
    return bytes(buf)


class TLSObfs(_WrappedConn):
    """Connection that frames data as TLS application-data records."""

    def __init__(self, conn: Any, server: str) -> None:
        super().__init__(conn)
        self.server = server
        self._remain = 0
        self._first_request = True
        self._first_response = True

    def recv(self, size: int) -> bytes:
        """Read the payload of the next record, or the rest of a long one."""
        if self._remain > 0:
            data = _recv_exact(self.conn, min(self._remain, size))
            self._remain -= len(data)
            return data
        while True:
            # the server's first answer carries a hello ahead of the data record
            discard = 105 if self._first_response else 3
            self._first_response = False
            header = _recv_exact(self.conn, discard + 2)
            if len(header) < discard + 2:
                return b""
            length = int.from_bytes(header[-2:], "big")
            if length == 0:
                continue
            if length > size:
                data = self.conn.recv(size)
                self._remain = length - len(data)
                return data
            return _recv_exact(self.conn, length)

    def sendall(self, data: bytes) -> None:
        """Send data in records of at most 16 KiB; the first is a ClientHello."""
        data = bytes(data)
        for start in range(0, len(data), CHUNK_SIZE):
            self._write(data[start:start + CHUNK_SIZE])

    def close(self) -> None:
        """Close the underlying connection."""
        self.conn.close()

    def _write(self, chunk: bytes) -> None:
        if self._first_request:
            self._first_request = False
            self.conn.sendall(make_client_hello(chunk, self.server))
            return
        self.conn.sendall(b"\x17\x03\x03" + _u16(len(chunk)) + chunk)