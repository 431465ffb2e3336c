"""Tests for knowledge entry confidence, condition matching, and applicability."""

import pytest

from mnemoverse.knowledge import (
    ConditionOperator,
    KnowledgeCondition,
    KnowledgeEntry,
    KnowledgeLevel,
    KnowledgePattern,
    KnowledgeType,
)


def make_entry(level=KnowledgeLevel.LOW, conditions=None, **kwargs) -> KnowledgeEntry:
    return KnowledgeEntry(
        pattern=KnowledgePattern(
            type=KnowledgeType.RESOURCE_LOCATION, conditions=conditions or []
        ),
        level=level,
        **kwargs,
    )


def test_confidence_from_instances_environments_and_applications():
    entry = make_entry(instances=[f"r{i}" for i in range(5)], environment_ids=[1])

    assert entry.calculate_confidence() == pytest.approx(0.4 + 0.2 / 3 + 0.2)

    for _ in range(8):
        entry.record_application(True, environment_id=1)
    for _ in range(2):
        entry.record_application(False, environment_id=1)

    assert entry.application_factor == pytest.approx(0.8)
    assert entry.confidence == pytest.approx(0.4 + 0.2 / 3 + 0.4 * 0.8)
    assert entry.transfer_success[1] == (10, 8)


def test_record_application_updates_last_used():
    entry = make_entry()

    entry.record_application(True, tick=42)

    assert entry.last_used == 42
    assert entry.application_count == 1
    assert entry.success_count == 1


def test_instances_are_deduplicated_and_bounded():
    entry = make_entry(instances=["a"])

    entry.add_instance("a")
    entry.add_instance("b", max_instances=2)
    entry.add_instance("c", max_instances=2)

    assert entry.instances == ["b", "c"]


@pytest.mark.parametrize(
    "operator, value, actual, expected",
    [
        (ConditionOperator.EQUALS, True, True, True),
        (ConditionOperator.EQUALS, True, False, False),
        (ConditionOperator.NOT_EQUALS, 3, 4, True),
        (ConditionOperator.GREATER_THAN, 10, 12, True),
        (ConditionOperator.LESS_THAN, 25, 30, False),
        (ConditionOperator.CONTAINS, "berry", "blueberry", True),
    ],
)
def test_condition_operators(operator, value, actual, expected):
    condition = KnowledgeCondition(property="prop", operator=operator, value=value)

    assert condition.matches({"prop": actual}) is expected


def test_near_condition_uses_threshold():
    condition = KnowledgeCondition(
        property="position", operator=ConditionOperator.NEAR, value=(10.0, 10.0), threshold=20.0
    )

    assert condition.matches({"position": {"x": 20.0, "y": 20.0}})
    assert not condition.matches({"position": (40.0, 40.0)})


def test_missing_property_never_matches():
    condition = KnowledgeCondition(
        property="hazard_visible", operator=ConditionOperator.EQUALS, value=True
    )

    assert condition.matches({}) is False


def test_incomparable_values_do_not_match():
    condition = KnowledgeCondition(
        property="energy", operator=ConditionOperator.GREATER_THAN, value=10
    )

    assert condition.matches({"energy": "plenty"}) is False


def test_near_condition_on_non_numeric_value_does_not_match():
    condition = KnowledgeCondition(
        property="terrain", operator=ConditionOperator.NEAR, value=5.0, threshold=2.0
    )

    assert condition.matches({"terrain": "swamp"}) is False
    assert condition.matches({"terrain": 6.0}) is True


def test_valueless_condition_matches_everywhere():
    condition = KnowledgeCondition(property="anything", operator=ConditionOperator.EQUALS)

    assert condition.matches({}) is True


def test_range_condition_is_inclusive():
    condition = KnowledgeCondition(
        property="nearest_hazard_distance",
        operator=ConditionOperator.EQUALS,
        value_range=(5.0, 15.0),
    )

    assert condition.matches({"nearest_hazard_distance": 15.0})
    assert not condition.matches({"nearest_hazard_distance": 15.5})


def test_context_objects_resolve_through_lookup():
    class Context:
        def lookup(self, prop):
            if prop == "resource_visible":
                return True, True
            return False, None

    visible = KnowledgeCondition(
        property="resource_visible", operator=ConditionOperator.EQUALS, value=True
    )
    unknown = KnowledgeCondition(property="ghost", operator=ConditionOperator.EQUALS, value=1)

    assert visible.matches(Context())
    assert not unknown.matches(Context())


def test_low_level_entries_only_apply_where_learned():
    entry = make_entry(environment_ids=[2, 3])

    assert entry.is_applicable_in_environment(2)
    assert not entry.is_applicable_in_environment(3)
    assert not make_entry().is_applicable_in_environment(2)


def test_mid_level_entries_transfer_when_validated():
    entry = make_entry(level=KnowledgeLevel.MID, environment_ids=[1])

    assert entry.is_applicable_in_environment(1)
    # No transfer evidence yet
    assert entry.is_applicable_in_environment(4)

    entry.record_application(False, environment_id=2)
    assert not entry.is_applicable_in_environment(4)

    entry.record_application(True, environment_id=3)
    entry.record_application(True, environment_id=3)
    # Environment 2 at 0.0 and environment 3 at 1.0 average to 0.5
    assert not entry.is_applicable_in_environment(4)


def test_home_environment_results_do_not_count_as_transfer():
    entry = make_entry(level=KnowledgeLevel.MID, environment_ids=[1])
    for _ in range(3):
        entry.record_application(True, environment_id=1)
    entry.record_application(False, environment_id=2)

    assert entry.average_transfer_success() == 0.0
    assert not entry.is_applicable_in_environment(4)

    assert make_entry(
        level=KnowledgeLevel.MID, environment_ids=[1], transfer_success={1: (2, 0)}
    ).average_transfer_success() is None


def test_high_level_entries_apply_everywhere():
    entry = make_entry(level=KnowledgeLevel.HIGH, environment_ids=[1])

    assert entry.is_applicable_in_environment(1004)
    assert entry.is_applicable_in_environment(None)


def test_match_confidence_scales_with_satisfied_conditions():
    conditions = [
        KnowledgeCondition(property="resource_visible", operator=ConditionOperator.EQUALS, value=True),
        KnowledgeCondition(property="reality_flux", operator=ConditionOperator.EQUALS, value=True),
    ]
    entry = make_entry(conditions=conditions, confidence=0.8)

    assert entry.calculate_match_confidence(
        {"resource_visible": True, "reality_flux": False}
    ) == pytest.approx(0.4)
    assert make_entry(confidence=0.6).calculate_match_confidence({}) == pytest.approx(0.6)
