"""Description of a site data file and the tags taken from it."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping


@dataclass
class SiteDat:
    filename: str = ""
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"filename": self.filename, "tags": list(self.tags)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SiteDat":
        return cls(
            filename=data.get("filename", "") or "",
            tags=list(data.get("tags") or []),
        )