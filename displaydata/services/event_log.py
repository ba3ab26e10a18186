"""
In-process event log for the analytics service.

The log is append-only and insertion ordered. Every mutation is synchronous, so
under the single asyncio event loop an append can never interleave with a
query or aggregate.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from displaydata.schemas.events import Event, EventPayload, TransportMeta

DEFAULT_QUERY_LIMIT = 50


@dataclass(frozen=True)
class EventQueryResult:
    total: int
    returned: int
    events: List[Event] = field(default_factory=list)


@dataclass(frozen=True)
class EventStats:
    total_events: int
    by_source: Dict[str, int]
    by_action: Dict[str, int]


class EventLog:
    """Stores ingested events and answers filter and count queries over them."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._events: List[Event] = []
        self._last_sequence = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    def append(self, payload: EventPayload, transport: Optional[TransportMeta] = None) -> Event:
        """Assign the next ``E00001`` style id, stamp receivedAt and store the event."""
        received_at = self._clock().isoformat()
        sequence = self._last_sequence + 1

        event = Event(
            id=f"E{sequence:05d}",
            source=payload.source,
            action=payload.action,
            item_id=payload.item_id,
            ts=payload.ts or received_at,
            received_at=received_at,
            transport=transport,
        )

        self._events.append(event)
        self._last_sequence = sequence
        return event

    def query(
        self,
        source: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> EventQueryResult:
        """
        Return the ``limit`` most recent events matching the exact ``source`` and
        ``action`` filters, oldest first.
        """
        if limit < 1:
            raise ValueError("limit must be a positive integer")

        snapshot = list(self._events)
        matched = [
            e for e in snapshot
            if (not source or e.source == source) and (not action or e.action == action)
        ]
        recent = matched[-limit:]
        return EventQueryResult(total=len(snapshot), returned=len(recent), events=recent)

    def aggregate(self) -> EventStats:
        """Lifetime counts per source and per action, computed in one pass."""
        by_source: Counter = Counter()
        by_action: Counter = Counter()
        total = 0
        for event in list(self._events):
            by_source[event.source] += 1
            by_action[event.action] += 1
            total += 1
        return EventStats(total_events=total, by_source=dict(by_source), by_action=dict(by_action))
