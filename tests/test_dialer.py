import socket

import psutil
import pytest

from tunnelkit.dialer import (
    Direct,
    ProxyError,
    dialer_from_url,
    new_direct,
    register_dialer,
    register_server,
    server_from_url,
)


@pytest.fixture
def listener():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(4)
    server.settimeout(5)
    yield server
    server.close()


def _target(sock):
    host, port = sock.getsockname()[:2]
    return f"{host}:{port}"


def test_dialer_from_url_uses_registered_creator():
    calls = []

    def creator(url, upstream):
        calls.append((url, upstream))
        return "built"

    register_dialer("fakedial", creator)
    upstream = Direct()
    assert dialer_from_url("FakeDial://host:1", upstream) == "built"
    assert calls == [("FakeDial://host:1", upstream)]


def test_dialer_from_url_requires_dialer():
    with pytest.raises(ProxyError):
        dialer_from_url("fakedial://host:1", None)


def test_dialer_from_url_unknown_scheme():
    with pytest.raises(ProxyError, match="unknown scheme 'nosuchscheme'"):
        dialer_from_url("nosuchscheme://host:1", Direct())


def test_server_from_url_defaults_to_mixed():
    seen = []
    register_server("mixed", lambda url, proxy: seen.append(url) or "server")
    assert server_from_url("127.0.0.1:1080", object()) == "server"
    assert seen == ["mixed://127.0.0.1:1080"]


def test_server_from_url_requires_proxy():
    with pytest.raises(ProxyError):
        server_from_url("mixed://127.0.0.1:1", None)


def test_new_direct_variants():
    assert new_direct("").addr() == "DIRECT"
    assert new_direct("127.0.0.1").ip == "127.0.0.1"
    with pytest.raises(ProxyError):
        new_direct("no-such-interface-here")


def test_direct_dial_tcp(listener):
    conn = Direct().dial("tcp", _target(listener))
    peer, _ = listener.accept()
    with conn, peer:
        conn.sendall(b"hello")
        assert peer.recv(5) == b"hello"


def test_direct_dial_from_ip(listener):
    conn = new_direct("127.0.0.1").dial("tcp", _target(listener))
    with conn:
        assert conn.getsockname()[0] == "127.0.0.1"
        listener.accept()[0].close()


def test_direct_dial_through_interface(listener):
    name = next(
        n for n, addrs in psutil.net_if_addrs().items() if any(a.address == "127.0.0.1" for a in addrs)
    )
    direct = new_direct(name)
    assert "127.0.0.1" in direct.iface_ips()
    conn = direct.dial("tcp", _target(listener))
    with conn:
        assert direct.ip == "127.0.0.1"
        listener.accept()[0].close()


def test_direct_dial_refused():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    target = _target(probe)
    probe.close()
    with pytest.raises(OSError):
        Direct().dial("tcp", target)


def test_direct_dial_unknown_network():
    with pytest.raises(ProxyError):
        Direct().dial("sctp", "127.0.0.1:80")


def test_direct_iface_ips_without_interface():
    assert Direct().iface_ips() == []


def test_direct_dial_udp_round_trip():
    server = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    server.bind(("127.0.0.1", 0))
    server.settimeout(5)
    port = server.getsockname()[1]
    pc, target = Direct().dial_udp("udp", f"127.0.0.1:{port}")
    with server, pc:
        pc.settimeout(5)
        assert target == ("127.0.0.1", port)
        pc.sendto(b"ping", target)
        data, client = server.recvfrom(16)
        assert data == b"ping"
        server.sendto(b"pong", client)
        assert pc.recvfrom(16)[0] == b"pong"