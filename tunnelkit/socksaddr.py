"""SOCKS5 address encoding as defined in RFC 1928, section 5."""

from __future__ import annotations

import ipaddress
from typing import Optional, Tuple, Union

AUTH_NONE = 0
AUTH_PASSWORD = 2

CMD_ERROR = 0
CMD_CONNECT = 1
CMD_BIND = 2
CMD_UDP_ASSOCIATE = 3

ATYP_IP4 = 1
ATYP_DOMAIN = 3
ATYP_IP6 = 4

MAX_ADDR_LEN = 1 + 1 + 255 + 2

ERRORS = (
    "",
    "general failure",
    "connection forbidden",
    "network unreachable",
    "host unreachable",
    "connection refused",
    "TTL expired",
    "command not supported",
    "address type not supported",
    "socks5UDPAssociate",
)


class SocksError(Exception):
    """A SOCKS5 failure identified by its reply code."""

    def __init__(self, code: int) -> None:
        super().__init__(ERRORS[code])
        self.code = code


def _split_host_port(hostport: str) -> Tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError when malformed."""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {hostport!r}")
        host = hostport[1:end]
        rest = hostport[end + 1:]
        if not rest:
            raise ValueError(f"missing port in address {hostport!r}")
        if not rest.startswith(":"):
            raise ValueError(f"unexpected text after ']' in address {hostport!r}")
        port = rest[1:]
        if ":" in port:
            raise ValueError(f"too many colons in address {hostport!r}")
    else:
        host, sep, port = hostport.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {hostport!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {hostport!r}")
        if "[" in host or "]" in host:
            raise ValueError(f"unexpected bracket in address {hostport!r}")
    if "[" in port or "]" in port:
        raise ValueError(f"unexpected bracket in address {hostport!r}")
    return host, port


def _join_host_port(host: str, port: Union[int, str]) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def _parse_ip(host: str):
    if "%" in host:
        return None
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def _read_exact(stream, size: int) -> bytes:
    """Read exactly ``size`` bytes from a file-like object or a socket."""
    read = getattr(stream, "read", None) or stream.recv
    data = bytearray()
    while len(data) < size:
        part = read(size - len(data))
        if not part:
            raise EOFError(f"expected {size} bytes, got {len(data)}")
        data += part
    return bytes(data)


def addr_to_string(addr: bytes) -> str:
    """Render an encoded SOCKS address as ``host:port``."""
    atyp = addr[0]
    if atyp == ATYP_DOMAIN:
        length = addr[1]
        host = addr[2:2 + length].decode("utf-8", "replace")
        port_bytes = addr[2 + length:4 + length]
    elif atyp == ATYP_IP4:
        host = str(ipaddress.IPv4Address(addr[1:5]))
        port_bytes = addr[5:7]
    elif atyp == ATYP_IP6:
        ip = ipaddress.IPv6Address(addr[1:17])
        host = str(ip.ipv4_mapped or ip)
        port_bytes = addr[17:19]
    else:
        raise SocksError(8)
    return _join_host_port(host, int.from_bytes(port_bytes, "big"))


def read_addr(stream) -> bytes:
    """Read just enough bytes from ``stream`` to form one SOCKS address."""
    head = _read_exact(stream, 1)
    atyp = head[0]
    if atyp == ATYP_DOMAIN:
        length = _read_exact(stream, 1)
        return head + length + _read_exact(stream, length[0] + 2)
    if atyp == ATYP_IP4:
        return head + _read_exact(stream, 4 + 2)
    if atyp == ATYP_IP6:
        return head + _read_exact(stream, 16 + 2)
    raise SocksError(8)


def split_addr(data: bytes) -> Optional[bytes]:
    """Return the SOCKS address at the start of ``data``, or None."""
    if len(data) < 1:
        return None
    atyp = data[0]
    if atyp == ATYP_DOMAIN:
        if len(data) < 2:
            return None
        size = 1 + 1 + data[1] + 2
    elif atyp == ATYP_IP4:
        size = 1 + 4 + 2
    elif atyp == ATYP_IP6:
        size = 1 + 16 + 2
    else:
        return None
    if len(data) < size:
        return None
    return bytes(data[:size])


def parse_addr(address: str) -> Optional[bytes]:
    """Encode ``host:port`` as a SOCKS address, or return None."""
    try:
        host, port = _split_host_port(address)
    except ValueError:
        return None
    ip = _parse_ip(host)
    if ip is not None:
        if ip.version == 6 and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        encoded = bytes([ATYP_IP4 if ip.version == 4 else ATYP_IP6]) + ip.packed
    else:
        name = host.encode("utf-8")
        if len(name) > 255:
            return None
        encoded = bytes([ATYP_DOMAIN, len(name)]) + name
    if not (port.isascii() and port.isdigit()):
        return None
    number = int(port)
    if number > 0xFFFF:
        return None
    return encoded + number.to_bytes(2, "big")