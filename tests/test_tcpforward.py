import socket
import threading
from urllib.parse import quote

import pytest

from tunnelkit.dialer import Dialer, Proxy, ProxyError
from tunnelkit.tcpforward import TcpForwarder, new_tcp_dialer, new_tcp_server


class ConnectProxy(Proxy):
    def __init__(self, error=None):
        self.targets = []
        self.error = error

    def dial(self, network, addr):
        self.targets.append(addr)
        if self.error is not None:
            raise self.error
        host, port = addr.rsplit(":", 1)
        return socket.create_connection((host, int(port)), timeout=5), "fake"

    def dial_udp(self, network, addr):
        raise ProxyError("unused")

    def next_dialer(self, dst_addr):
        raise ProxyError("unused")


class FakeDialer(Dialer):
    def __init__(self, address="upstream"):
        self.address = address
        self.calls = []

    def addr(self):
        return self.address

    def dial(self, network, addr):
        self.calls.append((network, addr))
        return "connection"

    def dial_udp(self, network, addr):
        raise ProxyError("unused")


@pytest.fixture
def echo_server():
    server = socket.create_server(("127.0.0.1", 0))
    server.settimeout(5)

    def run():
        try:
            conn, _ = server.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5)
            while True:
                try:
                    data = conn.recv(4096)
                except OSError:
                    return
                if not data:
                    return
                conn.sendall(data)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    yield server.getsockname()[1]
    server.close()


def test_target_parsed_from_query():
    fwd = new_tcp_server("tcp://127.0.0.1:1080/?target=" + quote("example.com:80"), ConnectProxy())
    assert fwd.target == "example.com:80"
    assert fwd.addr() == "127.0.0.1:1080"


def test_forwards_to_target(echo_server):
    target = f"127.0.0.1:{echo_server}"
    proxy = ConnectProxy()
    fwd = new_tcp_server("tcp://127.0.0.1:0/?target=" + quote(target), proxy)
    thread = threading.Thread(target=fwd.listen_and_serve, daemon=True)
    thread.start()
    assert fwd.ready.wait(5)
    port = fwd.tcp_listener.getsockname()[1]
    with socket.create_connection(("127.0.0.1", port), timeout=5) as client:
        client.sendall(b"ping")
        received = b""
        while len(received) < 4:
            part = client.recv(4 - len(received))
            if not part:
                break
            received += part
    assert received == b"ping"
    assert proxy.targets == [target]
    fwd.close()
    thread.join(5)
    assert not thread.is_alive()


def test_close_before_listen():
    fwd = new_tcp_server("tcp://127.0.0.1:0/?target=example.com:80", ConnectProxy())
    with pytest.raises(ProxyError):
        fwd.close()


def test_serve_closes_conn_when_dial_fails():
    a, b = socket.socketpair()
    b.settimeout(5)
    proxy = ConnectProxy(error=ConnectionRefusedError("refused"))
    fwd = new_tcp_server("tcp://127.0.0.1:0/?target=example.com:80", proxy)
    fwd.serve(a)
    assert b.recv(1) == b""
    assert proxy.targets == ["example.com:80"]
    b.close()


def test_dial_uses_listen_addr():
    dialer = FakeDialer()
    fwd = new_tcp_dialer("tcp://example.com:9000", dialer)
    assert fwd.dial("tcp", "ignored.example.com:1") == "connection"
    assert dialer.calls == [("tcp", "example.com:9000")]


def test_dial_rejects_udp():
    fwd = new_tcp_dialer("tcp://example.com:9000", FakeDialer())
    with pytest.raises(ProxyError, match="no support for connection type udp"):
        fwd.dial("udp", "example.com:53")


def test_dial_udp_unsupported():
    fwd = new_tcp_dialer("tcp://example.com:9000", FakeDialer())
    with pytest.raises(ProxyError):
        fwd.dial_udp("udp", "example.com:53")


def test_addr_falls_back_to_dialer():
    fwd = TcpForwarder("tcp:///?target=example.com:80", dialer=FakeDialer(address="upstream"))
    assert fwd.addr() == "upstream"


def test_invalid_listen_address():
    fwd = new_tcp_server("tcp://example.com/?target=example.com:80", ConnectProxy())
    with pytest.raises(ProxyError):
        fwd.listen_and_serve()