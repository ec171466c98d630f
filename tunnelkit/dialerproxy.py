"""Adapter that turns a dialer into a proxy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

from tunnelkit.dialer import Dialer, Proxy, new_direct


@dataclass
class DialerProxy(Proxy):
    """Proxy that sends every connection through ``dialer``."""

    dialer: Dialer
    target: str = ""

    def dial(self, network: str, addr: str) -> Tuple[Any, str]:
        return self.dialer.dial(network, addr), self.dialer.addr()

    def dial_udp(self, network: str, addr: str) -> Tuple[Any, Any]:
        return self.dialer.dial_udp(network, addr)

    def next_dialer(self, dst_addr: str) -> Dialer:
        return new_direct("")


def from_dialer(dialer: Dialer, target: str) -> DialerProxy:
    return DialerProxy(dialer=dialer, target=target)