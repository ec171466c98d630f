"""Local server that exposes a proxy as SOCKS5 or as a TCP forward."""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional
from urllib.parse import quote

from tunnelkit.dialer import Proxy, ProxyError, Server
from tunnelkit.socks5 import new_socks5_server
from tunnelkit.tcpforward import new_tcp_server

log = logging.getLogger(__name__)

_STARTUP_WAIT = 0.1
_CLOSE_TIMEOUT = 3.0


class PluginServer:
    """Serves a proxy on ``127.0.0.1:local_port`` in a background thread."""

    def __init__(self, local_port: int) -> None:
        self.local_port = local_port
        self._server: Optional[Server] = None
        self._thread: Optional[threading.Thread] = None

    def serve(self, proxy: Proxy, protocol: str) -> None:
        """Start serving.

        ``protocol`` is ``socks5`` or ``tcp->host:port``. Errors raised while
        starting to listen within the first 100 ms are raised here.
        """
        if self._server is not None:
            raise ProxyError("serve fail: server already running")
        base = f"127.0.0.1:{self.local_port}"
        if protocol == "socks5":
            server = new_socks5_server("socks5://" + base, proxy)
        elif protocol.startswith("tcp"):
            pieces = protocol.split("->")
            if len(pieces) != 2:
                raise ProxyError("func Serve: wrong format of tcp")
            target = quote(pieces[1], safe=":[]")
            server = new_tcp_server(f"tcp://{base}/?target={target}", proxy)
        else:
            raise ProxyError(f"func Serve: unsupported protocol {protocol}")

        errors: List[BaseException] = []

        def run() -> None:
            try:
                server.listen_and_serve()
            except (OSError, ProxyError) as exc:
                errors.append(exc)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        deadline = time.monotonic() + _STARTUP_WAIT
        while not server.ready.is_set() and thread.is_alive() and time.monotonic() < deadline:
            time.sleep(0.005)
        if errors:
            raise errors[0]
        self._server, self._thread = server, thread

    def close(self) -> None:
        """Stop serving and wait for the listener to go away."""
        if self._server is None:
            raise ProxyError("close fail: server not running")
        server, thread = self._server, self._thread
        self._server = self._thread = None
        server.close()
        thread.join(_CLOSE_TIMEOUT)
        if thread.is_alive():
            log.warning("plugin.Server.Close: timeout %d", self.local_port)
            raise ProxyError("Server.Close: timeout")