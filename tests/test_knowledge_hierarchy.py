"""Tests for tier capacity, promotion, decay, adaptation, and matching."""

import pytest

from mnemoverse.config import KnowledgeOptions
from mnemoverse.knowledge import (
    ConditionOperator,
    KnowledgeCondition,
    KnowledgeEntry,
    KnowledgeHierarchy,
    KnowledgeLevel,
    KnowledgePattern,
    KnowledgeType,
)
from mnemoverse.schemas import EntityKind, EpisodicRecord, Position


def make_entry(
    confidence: float,
    level=KnowledgeLevel.LOW,
    environment_ids=(1,),
    ktype=KnowledgeType.RESOURCE_LOCATION,
    instances=None,
    conditions=None,
) -> KnowledgeEntry:
    return KnowledgeEntry(
        pattern=KnowledgePattern(
            type=ktype,
            conditions=conditions or [],
            outcome={"target_x": 10.0, "target_y": 10.0, "approach": True},
        ),
        level=level,
        confidence=confidence,
        environment_ids=list(environment_ids),
        instances=instances or [],
    )


def make_record(rid: str, x=12.0, y=11.0, importance=0.8, ts=10, kind=EntityKind.RESOURCE, **context):
    return EpisodicRecord(
        id=rid,
        agent_id="a1",
        timestamp=ts,
        entity_id=f"ent-{rid}",
        kind=kind,
        position=Position(x=x, y=y),
        importance=importance,
        context=context,
    )


def test_full_tier_evicts_first_inserted_weakest():
    hierarchy = KnowledgeHierarchy(KnowledgeOptions(low_capacity=3))
    strong = make_entry(0.5)
    first_weak = make_entry(0.3)
    second_weak = make_entry(0.3)
    for entry in (strong, first_weak, second_weak):
        hierarchy.insert(entry)

    evicted = hierarchy.insert(make_entry(0.9))

    assert evicted is first_weak
    assert [e.confidence for e in hierarchy.entries(KnowledgeLevel.LOW)] == [0.5, 0.3, 0.9]
    assert hierarchy.entries(KnowledgeLevel.LOW)[1] is second_weak


def test_promotion_needs_three_confident_entries():
    hierarchy = KnowledgeHierarchy(
        KnowledgeOptions(abstraction_instance_threshold=1, min_high_environments=5)
    )
    hierarchy.insert(make_entry(0.7))
    hierarchy.insert(make_entry(0.7))

    assert hierarchy.generalize(tick=50) == []
    assert hierarchy.entries(KnowledgeLevel.MID) == []

    third = make_entry(0.7, environment_ids=(2,))
    hierarchy.insert(third)
    promoted = hierarchy.generalize(tick=100)

    assert len(promoted) == 1
    mid = promoted[0]
    assert mid.level == KnowledgeLevel.MID
    assert mid.confidence == pytest.approx(0.7)
    assert third.id in mid.instances
    assert mid.environment_ids == [1, 2]
    assert hierarchy.last_generalization == 100


def test_promotion_ignores_unconfident_entries():
    hierarchy = KnowledgeHierarchy(KnowledgeOptions(abstraction_instance_threshold=1))
    for confidence in (0.7, 0.7, 0.4, 0.4):
        hierarchy.insert(make_entry(confidence))

    assert hierarchy.promote_low_to_mid(tick=50) == []


def test_repeated_promotion_merges_into_existing_mid_entry():
    hierarchy = KnowledgeHierarchy(KnowledgeOptions(abstraction_instance_threshold=1))
    for _ in range(3):
        hierarchy.insert(make_entry(0.7))
    first = hierarchy.promote_low_to_mid(tick=50)[0]

    second = hierarchy.promote_low_to_mid(tick=100)[0]

    assert second is first
    assert len(hierarchy.entries(KnowledgeLevel.MID)) == 1
    assert second.last_used == 100


def test_mid_entries_across_environments_become_universal():
    hierarchy = KnowledgeHierarchy()
    conditions = [
        KnowledgeCondition(property="resource_visible", operator=ConditionOperator.EQUALS, value=True)
    ]
    hierarchy.insert(
        make_entry(
            0.8,
            level=KnowledgeLevel.MID,
            environment_ids=(1, 2),
            instances=[f"k{i}" for i in range(5)],
            conditions=conditions,
        )
    )

    promoted = hierarchy.promote_mid_to_high(tick=200, known_environments=[3])

    assert len(promoted) == 1
    high = promoted[0]
    assert high.level == KnowledgeLevel.HIGH
    assert high.universal_principle is True
    assert high.environment_ids == [1, 2, 3]
    assert all(c.value is None for c in high.pattern.conditions)

    matches = hierarchy.find_applicable_knowledge(KnowledgeLevel.HIGH, {}, environment_id=1004)
    assert [m.entry for m in matches] == [high]
    assert matches[0].match_confidence == pytest.approx(0.8)


def test_mid_entries_in_one_environment_stay_mid():
    hierarchy = KnowledgeHierarchy()
    hierarchy.insert(
        make_entry(
            0.9,
            level=KnowledgeLevel.MID,
            environment_ids=(1,),
            instances=[f"k{i}" for i in range(6)],
        )
    )

    assert hierarchy.promote_mid_to_high(tick=200) == []


def test_adaptation_discounts_knowledge_from_other_environments():
    hierarchy = KnowledgeHierarchy()
    foreign_low = make_entry(0.8, environment_ids=(1,))
    native_low = make_entry(0.8, environment_ids=(3,))
    foreign_mid = make_entry(0.8, level=KnowledgeLevel.MID, environment_ids=(1,))
    for entry in (foreign_low, native_low, foreign_mid):
        hierarchy.insert(entry)

    affected = hierarchy.adapt_knowledge(3, 0.4)

    assert affected == 2
    assert foreign_low.confidence == pytest.approx(0.8 * (1 - 0.6 * 0.7))
    assert foreign_mid.confidence == pytest.approx(0.8 * (1 - 0.6 * 0.4))
    assert native_low.confidence == pytest.approx(0.8)


def test_decay_uses_elapsed_time_and_tier_multipliers():
    hierarchy = KnowledgeHierarchy()
    low = make_entry(0.5)
    weak = make_entry(0.25)
    mid = make_entry(0.5, level=KnowledgeLevel.MID)
    high = make_entry(0.5, level=KnowledgeLevel.HIGH)
    for entry in (low, weak, mid, high):
        hierarchy.insert(entry)

    assert hierarchy.decay(0) == 0
    assert low.confidence == 0.5

    pruned = hierarchy.decay(100)

    assert pruned == 1
    assert low.confidence == pytest.approx(0.44)
    assert mid.confidence == pytest.approx(0.45)
    assert high.confidence == pytest.approx(0.46)
    assert weak not in hierarchy.entries(KnowledgeLevel.LOW)


def test_ingest_creates_and_reinforces_low_level_entries():
    hierarchy = KnowledgeHierarchy()
    records = [
        make_record("r1", ts=10),
        make_record("r2", x=15.0, y=12.0, ts=11),
        make_record("r3", importance=0.3, ts=12),
        make_record("r4", ts=-200),
    ]

    touched = hierarchy.ingest_experiences(records, environment_id=1, tick=20)

    entries = hierarchy.entries(KnowledgeLevel.LOW)
    assert len(entries) == 1
    assert len(touched) == 2
    entry = entries[0]
    assert entry.type == KnowledgeType.RESOURCE_LOCATION
    assert entry.instances == ["r1", "r2"]
    assert entry.confidence == pytest.approx(0.8)
    assert entry.environment_ids == [1]

    # Already ingested records are not counted twice
    assert hierarchy.ingest_experiences(records, environment_id=1, tick=21) == []


def test_ingested_ids_only_track_records_still_in_the_log():
    hierarchy = KnowledgeHierarchy()
    records = [make_record(f"r{i}", x=10.0 + i, ts=10) for i in range(5)]

    hierarchy.ingest_experiences(records, environment_id=1, tick=20)
    assert hierarchy.ingested_ids == {"r0", "r1", "r2", "r3", "r4"}

    # r0-r3 were pruned or consolidated away; r5 is new
    remaining = [records[4], make_record("r5", ts=21)]
    hierarchy.ingest_experiences(remaining, environment_id=1, tick=22)

    assert hierarchy.ingested_ids == {"r4", "r5"}
    assert hierarchy.ingest_experiences([], environment_id=1, tick=23) == []
    assert hierarchy.ingested_ids == frozenset()


def test_ingest_prefers_environment_recorded_in_context():
    hierarchy = KnowledgeHierarchy()

    hierarchy.ingest_experiences([make_record("r1", environment_id=4)], environment_id=1, tick=10)

    assert hierarchy.entries(KnowledgeLevel.LOW)[0].environment_ids == [4]


def test_shift_records_become_flux_knowledge():
    hierarchy = KnowledgeHierarchy()
    shift = make_record("s1", kind=EntityKind.SYNTHETIC, importance=0.9, reality_shift=True)
    plain = make_record("s2", kind=EntityKind.SYNTHETIC, importance=0.9)

    hierarchy.ingest_experiences([shift, plain], environment_id=1003, tick=10)

    types = [e.type for e in hierarchy.entries(KnowledgeLevel.LOW)]
    assert types == [KnowledgeType.REALITY_FLUX_EFFECT]


def test_find_applicable_knowledge_respects_environment_and_conditions():
    hierarchy = KnowledgeHierarchy()
    hierarchy.ingest_experiences([make_record("r1")], environment_id=1, tick=10)
    context = {"resource_visible": True, "position": (12.0, 11.0), "reality_flux": False}

    matches = hierarchy.find_applicable_knowledge(KnowledgeLevel.LOW, context, environment_id=1)
    assert len(matches) == 1
    assert matches[0].match_confidence == pytest.approx(0.8)

    assert hierarchy.find_applicable_knowledge(KnowledgeLevel.LOW, context, environment_id=2) == []

    hidden = {**context, "resource_visible": False}
    assert hierarchy.find_applicable_knowledge(KnowledgeLevel.LOW, hidden, environment_id=1) == []
