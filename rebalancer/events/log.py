"""Event log for domain emissions.

Every successful mutation appends one or more `DomainEvent`s. The log is the
one-way feed consumed by the relay and by analytics; subscribers only ever
read events, they never write back into domain state.

All timestamps use timezone-aware UTC datetimes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class DomainEvent:
    """One emitted event."""

    domain: str
    name: str
    position_id: Optional[bytes] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "domain": self.domain,
            "name": self.name,
            "position_id": _jsonable(self.position_id),
            "data": _jsonable(self.data),
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }


EventSubscriber = Callable[[DomainEvent], None]


class EventLog:
    """In-memory, append-only event log with push subscribers."""

    def __init__(self, domain: str, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.domain = domain
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events: list[DomainEvent] = []
        self._subscribers: list[EventSubscriber] = []

    @property
    def events(self) -> list[DomainEvent]:
        return list(self._events)

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, name: str, *, position_id: Optional[bytes] = None, **data: Any) -> DomainEvent:
        event = DomainEvent(
            domain=self.domain,
            name=name,
            position_id=position_id,
            data=data,
            timestamp=self._clock(),
            sequence=len(self._events),
        )
        self._events.append(event)
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception:
                # Call is already committed at this point.
                logger.exception(f"{self.domain}: subscriber failed on {name}")
        return event

    def get_events(
        self,
        name: Optional[str] = None,
        position_id: Optional[bytes] = None,
    ) -> list[DomainEvent]:
        """Get filtered events."""
        return [
            e
            for e in self._events
            if (name is None or e.name == name) and (position_id is None or e.position_id == position_id)
        ]

    def to_json_list(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self._events]
