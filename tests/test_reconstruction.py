"""Tests for re-recording memories related to the latest experience."""

import pytest

from mnemoverse.cognition.reconstruction import MemoryReconstructor, is_related
from mnemoverse.config import TemporalOptions
from mnemoverse.memory import EpisodicStore
from mnemoverse.schemas import EntityKind, EpisodicRecord, MemoryEvent, Position


def make_record(rid, entity_id, x, y, ts, **context) -> EpisodicRecord:
    return EpisodicRecord(
        id=rid,
        agent_id="a1",
        timestamp=ts,
        entity_id=entity_id,
        position=Position(x=x, y=y),
        context=context,
    )


def event(entity_id, x, y, importance=0.5, **context) -> MemoryEvent:
    return MemoryEvent(
        entity_id=entity_id,
        kind=EntityKind.RESOURCE,
        position=Position(x=x, y=y),
        importance=importance,
        context=context,
    )


def test_same_entity_is_related():
    assert is_related(make_record("a", "e1", 0, 0, 1), make_record("b", "e1", 90, 90, 500))


def test_close_and_recent_is_related():
    experience = make_record("a", "e1", 10, 10, 50)

    assert is_related(experience, make_record("b", "e2", 15, 15, 20))
    assert not is_related(experience, make_record("c", "e3", 15, 15, 200))
    assert not is_related(experience, make_record("d", "e4", 60, 60, 49))


def test_shared_context_value_is_related():
    experience = make_record("a", "e1", 0, 0, 1, action="gather", reality_shift=False)

    assert is_related(experience, make_record("b", "e2", 90, 90, 500, action="gather"))
    # False and None values never count as shared
    assert not is_related(experience, make_record("c", "e3", 90, 90, 500, reality_shift=False))


def test_run_records_reconstructed_copies():
    store = EpisodicStore()
    original = store.record("a1", event("e1", 10, 10, importance=0.6), tick=1)
    store.record("a1", event("e2", 90, 90), tick=2)
    store.record("a1", event("e1", 50, 50), tick=8)
    reconstructor = MemoryReconstructor(store)

    created = reconstructor.run("a1", tick=10, pattern_ids=["pattern-1"])

    assert len(created) == 1
    copy = created[0]
    assert copy.entity_id == "e1"
    assert copy.timestamp == 10
    assert copy.importance == pytest.approx(0.7)
    assert copy.fidelity == pytest.approx(0.95)
    assert copy.reconstructed
    assert copy.context["semantic_patterns"] == ["pattern-1"]
    assert copy.context["reconstruction_time"] == 10
    # The original is left untouched
    assert original.importance == pytest.approx(0.6)
    assert not original.reconstructed


def test_run_without_records_does_nothing():
    assert MemoryReconstructor(EpisodicStore()).run("a1", tick=10) == []


def test_reconstructions_per_run_are_capped():
    store = EpisodicStore()
    for tick in range(5):
        store.record("a1", event("e1", tick, tick), tick=tick)
    reconstructor = MemoryReconstructor(store, TemporalOptions(max_reconstructions=2))

    assert len(reconstructor.run("a1", tick=10)) == 2
