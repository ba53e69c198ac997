"""
Bounded, append-only tab event log shared by the grouping engine, the
reasoning tier and the pattern miner.
"""

from collections import deque
from typing import Iterable, Optional

from tabgraph_router.graph.models import TabEvent

DEFAULT_MAX_EVENTS = 1000

# (events ever appended, timestamp of the newest event)
HistoryFingerprint = tuple[int, Optional[float]]


class EventLog:
    """Ring buffer of the most recent tab events.

    Appends past ``max_events`` evict the oldest entry. Readers get a copied
    list, so a snapshot is never mutated under them.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS, events: Iterable[TabEvent] = ()):
        if max_events < 1:
            raise ValueError("max_events must be positive")
        self.max_events = max_events
        self._events: deque[TabEvent] = deque(maxlen=max_events)
        self._appended = 0
        self.extend(events)

    def append(self, event: TabEvent) -> None:
        self._events.append(event)
        self._appended += 1

    def extend(self, events: Iterable[TabEvent]) -> None:
        for event in events:
            self.append(event)

    def snapshot(self) -> list[TabEvent]:
        """Copy of the current events, oldest first."""
        return list(self._events)

    def fingerprint(self) -> HistoryFingerprint:
        """Cheap change detector: changes whenever an event is appended."""
        last = self._events[-1].timestamp if self._events else None
        return (self._appended, last)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


def history_fingerprint(history: list[TabEvent]) -> HistoryFingerprint:
    """Fingerprint for a plain event list: (length, newest timestamp)."""
    if not history:
        return (0, None)
    return (len(history), history[-1].timestamp)
