"""WebSocket dialer: carries a byte stream in binary WebSocket messages."""

from __future__ import annotations

from typing import Any, Tuple
from urllib.parse import parse_qs, urlsplit

import websocket

from tunnelkit.dialer import Dialer, ProxyError


class WsConn:
    """Socket-like stream over a WebSocket connection."""

    def __init__(self, ws: Any) -> None:
        self.ws = ws
        self._buffer = b""

    def recv(self, size: int) -> bytes:
        """Return up to ``size`` bytes; b"" once the WebSocket is closed."""
        if self._buffer:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
            return data
        while True:
            try:
                opcode, message = self.ws.recv_data()
            except websocket.WebSocketConnectionClosedException:
                return b""
            except websocket.WebSocketException as exc:
                raise ConnectionError(str(exc)) from exc
            if opcode == websocket.ABNF.OPCODE_CLOSE:
                return b""
            if isinstance(message, str):
                message = message.encode("utf-8")
            if message:
                break
        self._buffer = message[size:]
        return message[:size]

    def sendall(self, data: bytes) -> None:
        """Send ``data`` as one binary message."""
        try:
            self.ws.send(bytes(data), opcode=websocket.ABNF.OPCODE_BINARY)
        except websocket.WebSocketException as exc:
            raise ConnectionError(str(exc)) from exc

    def close(self) -> None:
        self.ws.close()

    def settimeout(self, timeout: Any) -> None:
        self.ws.settimeout(timeout)

    def getpeername(self) -> Any:
        return self.ws.sock.getpeername()

    def getsockname(self) -> Any:
        return self.ws.sock.getsockname()

    def __enter__(self) -> "WsConn":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class WsDialer(Dialer):
    """Dialer for ``ws://host:port?host=..&path=..``."""

    def __init__(self, url: str, dialer: Dialer) -> None:
        try:
            parts = urlsplit(url)
            netloc = parts.netloc
        except ValueError as exc:
            raise ProxyError(f"[Ws] {exc}") from None
        query = parse_qs(parts.query, keep_blank_values=True)
        self.dialer = dialer
        self._addr = netloc.rpartition("@")[2]
        self.host = query.get("host", [""])[0] or self._addr.split(":")[0]
        self.path = query.get("path", [""])[0] or "/"
        self.ws_addr = f"{parts.scheme}://{self._addr}{self.path}"

    def addr(self) -> str:
        if not self._addr:
            return self.dialer.addr()
        return self._addr

    def dial(self, network: str, addr: str) -> WsConn:
        """Open the WebSocket through the upstream dialer; ``addr`` is not used."""
        try:
            sock = self.dialer.dial("tcp", self._addr)
        except OSError as exc:
            raise ProxyError(f"[Ws]: dial to {self.ws_addr}: {exc}") from exc
        try:
            ws = websocket.create_connection(
                self.ws_addr, socket=sock, host=self.host, subprotocols=["binary"]
            )
        except (websocket.WebSocketException, OSError, ValueError) as exc:
            sock.close()
            raise ProxyError(f"[Ws]: dial to {self.ws_addr}: {exc}") from exc
        return WsConn(ws)

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        raise ProxyError("[Ws] udp is not supported")


def new_ws(url: str, dialer: Dialer) -> WsDialer:
    return WsDialer(url, dialer)