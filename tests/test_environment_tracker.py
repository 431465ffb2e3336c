"""Tests for environment detection, similarity scoring, and profile upkeep."""

import pytest

from mnemoverse.config import KnowledgeOptions
from mnemoverse.environment import (
    AgentEnvironmentState,
    EnvironmentProfile,
    EnvironmentTracker,
    detect_environment_id,
    snapshot_features,
    update_profile,
)
from mnemoverse.schemas import AgentState, EntityKind, FluxEffect, Percept, Position


def agent_at(x: float, y: float, flux=FluxEffect.NONE) -> AgentState:
    return AgentState(agent_id="a1", position=Position(x=x, y=y), flux_effect=flux)


def resource_percept(distance=10.0) -> Percept:
    return Percept(
        entity_id="r1", kind=EntityKind.RESOURCE, position=Position(x=0, y=0), distance=distance
    )


@pytest.mark.parametrize(
    "x, y, expected",
    [(10, 10, 1), (60, 10, 2), (10, 60, 3), (60, 60, 4), (50, 50, 4)],
)
def test_quadrant_environment_ids(x, y, expected):
    assert detect_environment_id(agent_at(x, y)) == expected


def test_flux_and_override_take_precedence():
    phased = agent_at(10, 10, FluxEffect.PHASE)

    assert detect_environment_id(phased) == 1002
    assert detect_environment_id(phased, override=7) == 7


@pytest.mark.parametrize(
    "env_a, env_b, expected",
    [
        (1, 1, 1.0),
        (1, 2, 0.6),
        (1, 3, 0.6),
        (1, 4, 0.4),
        (2, 1001, 0.2),
        (1001, 1003, 0.4),
    ],
)
def test_heuristic_similarity(env_a, env_b, expected):
    assert EnvironmentTracker.heuristic_similarity(env_a, env_b) == pytest.approx(expected)


def test_first_update_is_not_a_transition():
    tracker = EnvironmentTracker()
    state = AgentEnvironmentState()

    assert tracker.update(state, agent_at(10, 10), [], tick=1) is None
    assert state.current_id == 1
    assert state.known_environments == [1]


def test_transition_into_unprofiled_environment_uses_heuristic():
    tracker = EnvironmentTracker()
    state = AgentEnvironmentState()
    tracker.update(state, agent_at(10, 10), [], tick=1)

    transition = tracker.update(state, agent_at(60, 10), [], tick=2)

    assert transition.previous_id == 1
    assert transition.new_id == 2
    assert transition.similarity == pytest.approx(0.6)
    assert transition.needs_adaptation is False
    assert state.previous_id == 1
    assert state.transition_tick == 2


def test_flux_transition_needs_adaptation():
    tracker = EnvironmentTracker()
    state = AgentEnvironmentState()
    tracker.update(state, agent_at(10, 10), [], tick=1)

    transition = tracker.update(state, agent_at(10, 10, FluxEffect.TELEPORT), [], tick=2)

    assert transition.new_id == 1001
    assert transition.similarity == pytest.approx(0.2)
    assert transition.needs_adaptation is True


def test_returning_to_a_profiled_environment_compares_profiles():
    tracker = EnvironmentTracker()
    state = AgentEnvironmentState()
    tracker.update(state, agent_at(10, 10), [], tick=1)
    tracker.update(state, agent_at(60, 10), [], tick=2)

    transition = tracker.update(state, agent_at(10, 10), [], tick=3)

    # Both environments were seen empty and calm
    assert transition.similarity == pytest.approx(1.0)
    assert transition.needs_adaptation is False


def test_profile_cache_evicts_least_recently_updated():
    tracker = EnvironmentTracker(KnowledgeOptions(max_environment_cache=2))
    state = AgentEnvironmentState()

    tracker.update(state, agent_at(10, 10), [], tick=1)
    tracker.update(state, agent_at(60, 10), [], tick=2)
    tracker.update(state, agent_at(10, 60), [], tick=3)

    assert sorted(state.profiles) == [2, 3]
    assert state.known_environments == [1, 2, 3]


def test_profile_is_an_exponential_moving_average():
    profile = EnvironmentProfile(id=1)
    agent = agent_at(10, 10)

    update_profile(profile, snapshot_features(agent, [resource_percept()]), tick=1)
    assert profile.entity_type_distribution["resource"] == pytest.approx(1.0)
    assert profile.spatial_features["density"] == pytest.approx(0.1)

    update_profile(profile, snapshot_features(agent, []), tick=2)
    assert profile.entity_type_distribution["resource"] == pytest.approx(0.9)
    assert profile.spatial_features["density"] == pytest.approx(0.09)
    assert profile.visit_count == 2
    assert profile.last_updated == 2


def test_snapshot_tracks_instability():
    teleported = agent_at(10, 10, FluxEffect.TELEPORT)
    percept = resource_percept()
    percept.flux_effect = FluxEffect.PHASE

    features = snapshot_features(teleported, [percept], reality_wave_active=True)

    assert features["stability_metrics"] == {
        "agent_flux": 1.0,
        "entity_flux": 1.0,
        "reality_wave": 1.0,
    }
