"""Temporal pattern recognition over an agent's recent entity-kind sequence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from mnemoverse.config import TemporalOptions
from mnemoverse.schemas import EpisodicRecord


MIN_SEQUENCE_LENGTH = 2
MAX_SEQUENCE_LENGTH = 4
DROP_CONFIDENCE = 0.2


@dataclass
class TemporalPattern:
    """A recurring sequence of entity kinds."""

    sequence: Tuple[int, ...]
    confidence: float = 0.5
    occurrences: List[int] = field(default_factory=list)
    last_matched: Optional[int] = None
    id: str = field(default_factory=lambda: f"pattern-{uuid4().hex[:8]}")

    def add_occurrence(self, tick: int) -> "TemporalPattern":
        self.occurrences.append(tick)
        self.last_matched = tick
        self.confidence = min(0.95, self.confidence + 1 / (len(self.occurrences) + 5))
        return self

    def matches(self, events: Sequence[int]) -> bool:
        """True when the sequence appears contiguously in `events`."""
        size = len(self.sequence)
        if len(events) < size:
            return False
        return any(
            tuple(events[i : i + size]) == self.sequence for i in range(len(events) - size + 1)
        )

    def predict_next(self, partial: Sequence[int]) -> Optional[int]:
        """Kind that follows `partial` inside this sequence, if `partial` occurs in it."""
        if not partial:
            return None
        partial = tuple(partial)
        for start in range(len(self.sequence) - 1):
            end = start + len(partial)
            if end >= len(self.sequence):
                break
            if self.sequence[start:end] == partial:
                return self.sequence[end]
        return None

    def update_confidence(self, tick: int) -> float:
        if self.last_matched is None:
            return self.confidence
        decay = min(0.2, (tick - self.last_matched) / 5000)
        self.confidence = max(0.1, self.confidence - decay)
        return self.confidence


def detect_pattern(events: Sequence[int], min_events: int = 3) -> Optional[TemporalPattern]:
    """First kind sequence (length 2-4) that repeats later in `events`."""
    if len(events) < min_events:
        return None
    for length in range(MIN_SEQUENCE_LENGTH, MAX_SEQUENCE_LENGTH + 1):
        if len(events) < length * 2:
            continue
        for start in range(len(events) - length * 2 + 1):
            candidate = tuple(events[start : start + length])
            for pos in range(start + length, len(events) - length + 1):
                if tuple(events[pos : pos + length]) == candidate:
                    return TemporalPattern(sequence=candidate)
    return None


class TemporalPatternTracker:
    """One agent's set of temporal patterns."""

    def __init__(self, options: Optional[TemporalOptions] = None) -> None:
        self.options = options or TemporalOptions()
        self.patterns: List[TemporalPattern] = []

    def recent_events(self, records: Sequence[EpisodicRecord]) -> List[int]:
        """Kinds of the most recent records, oldest first."""
        ordered = sorted(records, key=lambda r: r.timestamp)
        return [int(r.kind) for r in ordered[-self.options.recent_events :]]

    def update(self, records: Sequence[EpisodicRecord], tick: int) -> Optional[TemporalPattern]:
        """Decay, prune, detect, and credit patterns. Returns a newly added pattern."""
        events = self.recent_events(records)
        if len(events) < self.options.min_events:
            return None

        for pattern in self.patterns:
            pattern.update_confidence(tick)
        self.patterns = [p for p in self.patterns if p.confidence > DROP_CONFIDENCE]

        added: Optional[TemporalPattern] = None
        candidate = detect_pattern(events, self.options.min_events)
        if candidate is not None and not any(p.sequence == candidate.sequence for p in self.patterns):
            if len(self.patterns) < self.options.max_patterns:
                self.patterns.append(candidate)
            else:
                weakest = min(range(len(self.patterns)), key=lambda i: self.patterns[i].confidence)
                self.patterns[weakest] = candidate
            added = candidate

        for pattern in self.patterns:
            if pattern.matches(events):
                pattern.add_occurrence(tick)
        return added

    def confident_pattern_ids(self) -> List[str]:
        threshold = self.options.detection_threshold
        return [p.id for p in self.patterns if p.confidence > threshold]

    def predict_next(self, partial: Sequence[int]) -> Optional[Tuple[int, float]]:
        """Most confident prediction of the next kind, with the pattern's confidence."""
        for pattern in sorted(self.patterns, key=lambda p: p.confidence, reverse=True):
            predicted = pattern.predict_next(partial)
            if predicted is not None:
                return predicted, pattern.confidence
        return None
