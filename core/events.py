"""Event value type shared by the store, the session loop and the HTTP layer."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .ledger import as_utc


@dataclass(frozen=True)
class EventInfo:
    id: str
    name: str
    start_time: datetime
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start_time": self.start_time.isoformat(),
            "description": self.description,
        }


def parse_instant(value: Any) -> datetime:
    """Parse an ISO-8601 instant (``Z`` suffix accepted) into aware UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp: {value!r}") from exc


__all__ = ["EventInfo", "parse_instant"]
