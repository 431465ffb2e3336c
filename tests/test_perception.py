"""Tests for the default per-tick perception feed."""

from mnemoverse.perception import MAX_PERCEPTS, build_agent_percepts
from mnemoverse.schemas import (
    AgentState,
    EntityKind,
    FluxEffect,
    Position,
    WorldEntity,
    WorldState,
)


def make_world_state() -> WorldState:
    return WorldState(
        tick=4,
        agents=[
            AgentState(agent_id="alpha", position=Position(x=10, y=10), vision_range=30),
            AgentState(
                agent_id="beta",
                position=Position(x=20, y=10),
                flux_effect=FluxEffect.PHASE,
            ),
            AgentState(agent_id="gamma", position=Position(x=90, y=90)),
        ],
        entities=[
            WorldEntity(entity_id="berries", kind=EntityKind.RESOURCE, position=Position(x=13, y=14)),
            WorldEntity(entity_id="boulder", kind=EntityKind.OBSTACLE, position=Position(x=10, y=30)),
            WorldEntity(
                entity_id="geyser",
                kind=EntityKind.HAZARD,
                position=Position(x=10, y=41),
                flux_effect=FluxEffect.TELEPORT,
            ),
        ],
    )


def test_build_agent_percepts_filters_by_vision_range():
    world_state = make_world_state()
    alpha = world_state.agents[0]

    percepts = build_agent_percepts(alpha, world_state)

    assert [p.entity_id for p in percepts] == ["berries", "beta", "boulder"]
    assert percepts[0].distance == 5.0
    assert percepts[0].kind == EntityKind.RESOURCE


def test_other_agents_are_reported_as_agents():
    world_state = make_world_state()

    percepts = build_agent_percepts(world_state.agents[0], world_state)

    beta = next(p for p in percepts if p.entity_id == "beta")
    assert beta.kind == EntityKind.AGENT
    assert beta.flux_effect == FluxEffect.PHASE
    assert all(p.entity_id != "alpha" for p in percepts)


def test_vision_edge_is_inclusive():
    world_state = make_world_state()
    alpha = world_state.agents[0]
    alpha.vision_range = 31

    percepts = build_agent_percepts(alpha, world_state)

    geyser = next(p for p in percepts if p.entity_id == "geyser")
    assert geyser.distance == 31.0
    assert geyser.flux_effect == FluxEffect.TELEPORT


def test_percepts_are_capped_nearest_first():
    entities = [
        WorldEntity(entity_id=f"r{i}", kind=EntityKind.RESOURCE, position=Position(x=i, y=0))
        for i in range(15, 0, -1)
    ]
    agent = AgentState(agent_id="alpha")
    world_state = WorldState(agents=[agent], entities=entities)

    percepts = build_agent_percepts(agent, world_state)

    assert len(percepts) == MAX_PERCEPTS
    assert [p.entity_id for p in percepts] == [f"r{i}" for i in range(1, 11)]
    assert len(build_agent_percepts(agent, world_state, limit=3)) == 3


def test_percept_positions_are_copies():
    world_state = make_world_state()
    percepts = build_agent_percepts(world_state.agents[0], world_state)

    percepts[0].position.x = 99

    assert world_state.entities[0].position.x == 13
