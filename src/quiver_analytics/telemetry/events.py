"""Analytics event records and their wire representation."""
from __future__ import annotations

import json
import platform
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from ..core.http import PendingRequest


@dataclass(frozen=True, slots=True)
class EventRecord:
    """A single analytics event waiting to be delivered.

    ``properties`` is copied into a read-only mapping on creation, so the
    caller's dict can be reused without changing a queued event.
    """

    name: str
    player_id: int
    properties: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=lambda: time.time())

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "player_id": self.player_id,
            "properties": dict(self.properties),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventRecord":
        properties = data.get("properties") or {}
        if not isinstance(properties, dict):
            raise ValueError("Event properties must be a mapping")
        return cls(
            name=str(data["name"]),
            player_id=int(data["player_id"]),
            properties=dict(properties),
            timestamp=float(data["timestamp"]),
        )


def default_properties(*, session_id: int, debug_build: bool, export_template: bool) -> Dict[str, Any]:
    """Properties injected into every event."""

    return {
        "$platform": platform.system() or "Unknown",
        "$session_id": session_id,
        "$debug": debug_build,
        "$export_template": export_template,
    }


def create_event(
    name: str,
    *,
    player_id: int,
    defaults: Mapping[str, Any],
    properties: Optional[Mapping[str, Any]] = None,
    timestamp: Optional[float] = None,
) -> EventRecord:
    merged = dict(properties or {})
    merged.update(defaults)
    return EventRecord(
        name=name,
        player_id=player_id,
        properties=merged,
        timestamp=time.time() if timestamp is None else timestamp,
    )


def build_request(record: EventRecord, *, url: str, auth_token: str) -> PendingRequest:
    """Serialize ``record`` into the request body expected by the server."""

    payload = json.dumps(record.to_dict())
    headers = {
        "Authorization": f"Token {auth_token}",
        "Content-Type": "application/json",
    }
    return PendingRequest(url=url, headers=headers, body=payload)
