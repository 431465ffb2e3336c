"""Tests for temporal kind-sequence detection and prediction."""

import pytest

from mnemoverse.cognition.temporal import (
    TemporalPattern,
    TemporalPatternTracker,
    detect_pattern,
)
from mnemoverse.config import TemporalOptions
from mnemoverse.schemas import EntityKind, EpisodicRecord


def records_of(kinds):
    return [
        EpisodicRecord(id=f"r{i}", agent_id="a1", timestamp=i + 1, kind=EntityKind(kind))
        for i, kind in enumerate(kinds)
    ]


def test_detect_pattern_finds_repeated_pair():
    pattern = detect_pattern([0, 2, 0, 2])

    assert pattern.sequence == (0, 2)
    assert pattern.confidence == 0.5


def test_detect_pattern_needs_a_repeat():
    assert detect_pattern([0, 1, 2]) is None
    assert detect_pattern([0, 1, 2, 3, 1, 0]) is None
    assert detect_pattern([0, 0], min_events=3) is None


def test_matches_requires_contiguous_run():
    pattern = TemporalPattern(sequence=(0, 2))

    assert pattern.matches([1, 0, 2, 3])
    assert not pattern.matches([0, 1, 2])
    assert not pattern.matches([0])


@pytest.mark.parametrize(
    "partial, expected",
    [((0,), 2), ((2,), 1), ((0, 2), 1), ((1,), None), ((), None)],
)
def test_predict_next_within_sequence(partial, expected):
    pattern = TemporalPattern(sequence=(0, 2, 1))

    assert pattern.predict_next(partial) == expected


def test_occurrences_raise_confidence_with_diminishing_steps():
    pattern = TemporalPattern(sequence=(0, 2))

    pattern.add_occurrence(10)
    assert pattern.confidence == pytest.approx(0.5 + 1 / 6)

    pattern.add_occurrence(20)
    assert pattern.confidence == pytest.approx(0.5 + 1 / 6 + 1 / 7)
    assert pattern.last_matched == 20


def test_stale_patterns_lose_confidence():
    pattern = TemporalPattern(sequence=(0, 2), confidence=0.8)
    pattern.last_matched = 0

    assert pattern.update_confidence(2500) == pytest.approx(0.6)
    assert pattern.update_confidence(2500) == pytest.approx(0.4)


def test_tracker_adds_and_credits_patterns():
    tracker = TemporalPatternTracker()
    records = records_of([0, 2, 0, 2])

    added = tracker.update(records, tick=4)

    assert added is not None
    assert added.sequence == (0, 2)
    assert added.occurrences == [4]
    assert tracker.confident_pattern_ids() == [added.id]

    # Known sequences are credited, not added again
    assert tracker.update(records, tick=5) is None
    assert len(tracker.patterns) == 1
    assert added.occurrences == [4, 5]


def test_tracker_ignores_short_histories():
    tracker = TemporalPatternTracker()

    assert tracker.update(records_of([0, 2]), tick=2) is None
    assert tracker.patterns == []


def test_tracker_replaces_weakest_when_full():
    tracker = TemporalPatternTracker(TemporalOptions(max_patterns=1))
    weak = TemporalPattern(sequence=(3, 3), confidence=0.3)
    tracker.patterns.append(weak)

    added = tracker.update(records_of([0, 2, 0, 2]), tick=4)

    assert tracker.patterns == [added]


def test_tracker_prediction_prefers_confident_pattern():
    tracker = TemporalPatternTracker()
    tracker.patterns = [
        TemporalPattern(sequence=(0, 1), confidence=0.4),
        TemporalPattern(sequence=(0, 2), confidence=0.9),
    ]

    assert tracker.predict_next([0]) == (2, 0.9)
    assert tracker.predict_next([3]) is None
