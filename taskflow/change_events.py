"""Normalisation of Supabase realtime ``postgres_changes`` payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
EVENT_TYPES = (INSERT, UPDATE, DELETE)


@dataclass
class ChangeEvent:
    """One inbound insert/update/delete notification for a single row."""

    event_type: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    table: Optional[str] = None

    @property
    def record_id(self) -> Optional[str]:
        source = self.old if self.event_type == DELETE else self.new
        value = source.get("id") if source else None
        return str(value) if value is not None else None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["ChangeEvent"]:
        """Build an event from either payload shape Supabase clients emit.

        JS clients deliver ``{"eventType", "new", "old"}``; the Python realtime
        client wraps the change in ``{"data": {"type", "record", "old_record"}}``.
        Unknown event types yield ``None``.
        """
        if isinstance(payload, ChangeEvent):
            return payload
        if not isinstance(payload, Mapping):
            return None
        body: Mapping[str, Any] = payload
        data = payload.get("data")
        if isinstance(data, Mapping) and ("type" in data or "record" in data):
            body = data

        event_type = body.get("eventType") or body.get("type") or ""
        event_type = str(event_type).upper()
        if event_type not in EVENT_TYPES:
            return None

        new = body.get("new", body.get("record")) or {}
        old = body.get("old", body.get("old_record")) or {}
        return cls(
            event_type=event_type,
            new=dict(new) if isinstance(new, Mapping) else {},
            old=dict(old) if isinstance(old, Mapping) else {},
            table=body.get("table"),
        )


__all__ = ["ChangeEvent", "INSERT", "UPDATE", "DELETE", "EVENT_TYPES"]
