from tunnelkit.dialer import Direct
from tunnelkit.dialerproxy import DialerProxy, from_dialer


class RecordingDialer:
    def __init__(self):
        self.calls = []

    def addr(self):
        return "fake:1"

    def dial(self, network, addr):
        self.calls.append(("dial", network, addr))
        return "conn"

    def dial_udp(self, network, addr):
        self.calls.append(("dial_udp", network, addr))
        return "packet", "next-hop"


def test_from_dialer_keeps_fields():
    dialer = RecordingDialer()
    proxy = from_dialer(dialer, "target.example.com:443")
    assert proxy == DialerProxy(dialer=dialer, target="target.example.com:443")


def test_dial_returns_connection_and_dialer_addr():
    dialer = RecordingDialer()
    proxy = from_dialer(dialer, "t:1")
    assert proxy.dial("tcp", "example.com:80") == ("conn", "fake:1")
    assert dialer.calls == [("dial", "tcp", "example.com:80")]


def test_dial_udp_passes_through():
    dialer = RecordingDialer()
    proxy = from_dialer(dialer, "t:1")
    assert proxy.dial_udp("udp", "example.com:53") == ("packet", "next-hop")
    assert dialer.calls == [("dial_udp", "udp", "example.com:53")]


def test_next_dialer_is_direct():
    nxt = from_dialer(RecordingDialer(), "t:1").next_dialer("example.com:80")
    assert isinstance(nxt, Direct)
    assert nxt.addr() == "DIRECT"