"""Parser for DNS rule lines of the form ``value -> outbound``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Dns:
    val: str
    out: str


def parse(dns_line: str) -> Optional[Dns]:
    """Split at the last ``->``; return None when there is none."""
    line = dns_line.strip()
    val, sep, out = line.rpartition("->")
    if not sep:
        return None
    return Dns(val=val.strip(), out=out.strip())