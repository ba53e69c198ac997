"""
Temporal pattern mining over the tab event log.

Finds tab-open sequences that recur across browsing sessions and turns them
into workflow continuation / recovery suggestions.
"""

from collections import Counter
from datetime import datetime, tzinfo
from typing import Mapping, Optional, Sequence

from tabgraph_router.config import get_logger
from tabgraph_router.graph.models import (
    EventType,
    TabEvent,
    TemporalPattern,
    WorkflowSuggestion,
    WorkflowSuggestionType,
)

logger = get_logger(__name__)

MINUTE_MS = 60 * 1000

SEQUENCE_EVENT_TYPES = (EventType.OPEN, EventType.SWITCH)


def group_into_sessions(events: Sequence[TabEvent], max_gap_ms: float) -> list[list[TabEvent]]:
    """
    Split events into sessions wherever consecutive events are more than
    ``max_gap_ms`` apart.

    Args:
        events: Events in any order
        max_gap_ms: Largest gap (ms) that still continues a session

    Returns:
        Sessions in chronological order, each sorted by timestamp
    """
    if not events:
        return []

    ordered = sorted(events, key=lambda e: e.timestamp)
    sessions: list[list[TabEvent]] = []
    current = [ordered[0]]
    for prev, event in zip(ordered, ordered[1:]):
        if event.timestamp - prev.timestamp <= max_gap_ms:
            current.append(event)
        else:
            sessions.append(current)
            current = [event]
    sessions.append(current)
    return sessions


def time_of_day(hour: int) -> str:
    """Bucket an hour of the day into morning / afternoon / evening / night."""
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


class _SequenceStats:
    __slots__ = ("count", "time_gaps", "contexts")

    def __init__(self):
        self.count = 0
        self.time_gaps: list[float] = []
        self.contexts: list[str] = []


class TemporalPatternMiner:
    """
    Mines frequent contiguous tab-open sequences from session-grouped history.

    Attributes:
        patterns: Patterns from the most recent mining run, most frequent first
        tz: Timezone used for time-of-day bucketing (None = local time)
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz
        self.patterns: list[TemporalPattern] = []

    def _bucket(self, timestamp_ms: float) -> str:
        return time_of_day(datetime.fromtimestamp(timestamp_ms / 1000, tz=self.tz).hour)

    def mine_frequent_sequences(
        self,
        history: Sequence[TabEvent],
        min_support: int = 3,
        max_gap_ms: float = 5 * MINUTE_MS,
        min_length: int = 2,
        max_length: int = 5,
    ) -> list[TemporalPattern]:
        """
        Mine recurring tab-open sequences.

        Every contiguous run of open/switch events of length ``min_length`` to
        ``max_length`` inside a session counts as one occurrence.

        Args:
            history: Event log to mine
            min_support: Minimum number of occurrences for a pattern
            max_gap_ms: Session split threshold in milliseconds
            min_length: Shortest sequence considered
            max_length: Longest sequence considered

        Returns:
            Patterns sorted by descending frequency (ties keep first-seen order)
        """
        stats: dict[tuple[str, ...], _SequenceStats] = {}

        for session in group_into_sessions(history, max_gap_ms):
            bucket = self._bucket(session[0].timestamp)
            opens = [e for e in session if e.type in SEQUENCE_EVENT_TYPES]
            ids = [e.tab_id for e in opens]

            for length in range(min_length, min(max_length, len(ids)) + 1):
                for start in range(len(ids) - length + 1):
                    key = tuple(ids[start:start + length])
                    entry = stats.setdefault(key, _SequenceStats())
                    entry.count += 1
                    entry.contexts.append(bucket)
                    window = opens[start:start + length]
                    entry.time_gaps.extend(
                        b.timestamp - a.timestamp for a, b in zip(window, window[1:])
                    )

        patterns = []
        for sequence, entry in stats.items():
            if entry.count < min_support:
                continue
            avg_gap = sum(entry.time_gaps) / len(entry.time_gaps) if entry.time_gaps else 0.0
            patterns.append(TemporalPattern(
                sequence=list(sequence),
                frequency=entry.count,
                avg_time_gap=avg_gap,
                confidence=min(1.0, entry.count / 10),
                context=self._dominant_context(entry.contexts),
            ))

        patterns.sort(key=lambda p: -p.frequency)
        self.patterns = patterns
        logger.debug(f"Mined {len(patterns)} temporal patterns from {len(history)} events")
        return patterns

    @staticmethod
    def _dominant_context(contexts: list[str]) -> Optional[str]:
        if not contexts:
            return None
        bucket, _ = Counter(contexts).most_common(1)[0]
        return f"{bucket} routine"

    def _prefix_matches(self, current_tab_ids: Sequence[str], strict: bool) -> list[TemporalPattern]:
        if not current_tab_ids:
            return []
        n = len(current_tab_ids)
        return [
            p for p in self.patterns
            if (len(p.sequence) > n if strict else len(p.sequence) >= n)
            and list(p.sequence[:n]) == list(current_tab_ids)
        ]

    def suggest_workflow_recovery(
        self,
        current_tab_ids: Sequence[str],
        all_tab_ids: Sequence[str],
        tab_names: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> list[WorkflowSuggestion]:
        """
        Suggest how to continue or restore a known workflow.

        Args:
            current_tab_ids: Tabs opened so far, in order
            all_tab_ids: Tabs that are still open
            tab_names: Optional tab id -> display name for messages
            now: Reference time for the time-of-day suggestion

        Returns:
            Suggestions sorted by descending confidence
        """
        open_ids = set(all_tab_ids)
        suggestions: list[WorkflowSuggestion] = []

        for pattern in self._prefix_matches(current_tab_ids, strict=False):
            next_index = len(current_tab_ids)
            if next_index >= len(pattern.sequence):
                continue
            next_id = pattern.sequence[next_index]

            if next_id in open_ids:
                suggestions.append(WorkflowSuggestion(
                    type=WorkflowSuggestionType.NEXT_TABS,
                    message=f"You often open {self._tab_name(next_id, tab_names)} after these tabs. Continue workflow?",
                    suggested_tabs=[next_id],
                    confidence=pattern.confidence,
                    context=pattern.context,
                    pattern=pattern,
                ))
            else:
                suggestions.append(WorkflowSuggestion(
                    type=WorkflowSuggestionType.WORKFLOW_RECOVERY,
                    message="You often open these tabs together. Restore the workflow?",
                    suggested_tabs=[i for i in pattern.sequence if i not in current_tab_ids],
                    confidence=pattern.confidence * 0.8,
                    context=pattern.context,
                    pattern=pattern,
                ))

        suggestions.extend(self._suggest_time_based(now))
        suggestions.sort(key=lambda s: -s.confidence)
        return suggestions

    def _suggest_time_based(self, now: Optional[datetime]) -> list[WorkflowSuggestion]:
        now = now or datetime.now(tz=self.tz)
        bucket = time_of_day(now.hour)

        for pattern in self.patterns:
            if pattern.context and bucket in pattern.context.lower():
                return [WorkflowSuggestion(
                    type=WorkflowSuggestionType.SESSION_RESTORE,
                    message=f"You often start with these tabs at this time. Restore your {bucket} routine?",
                    suggested_tabs=pattern.sequence[:3],
                    confidence=pattern.confidence * 0.7,
                    context=pattern.context,
                    pattern=pattern,
                )]
        return []

    @staticmethod
    def _tab_name(tab_id: str, tab_names: Optional[Mapping[str, str]]) -> str:
        if tab_names and tab_names.get(tab_id):
            return tab_names[tab_id]
        return f"tab {tab_id[-4:]}"

    def predict_next_tabs(self, current_tab_ids: Sequence[str]) -> list[str]:
        """Next tab id of the most frequent pattern that extends ``current_tab_ids``."""
        matches = self._prefix_matches(current_tab_ids, strict=True)
        if not matches:
            return []
        return [matches[0].sequence[len(current_tab_ids)]]

    def get_patterns_by_context(self, context: str) -> list[TemporalPattern]:
        return [p for p in self.patterns if p.context == context]

    def get_stats(self) -> dict:
        """Pattern count plus average frequency and sequence length."""
        if not self.patterns:
            return {"pattern_count": 0, "avg_frequency": 0.0, "avg_sequence_length": 0.0}

        count = len(self.patterns)
        return {
            "pattern_count": count,
            "avg_frequency": sum(p.frequency for p in self.patterns) / count,
            "avg_sequence_length": sum(len(p.sequence) for p in self.patterns) / count,
        }
