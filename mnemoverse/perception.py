"""
Perception feed construction.

The host's sensing system normally tells each agent what is around it. This module
provides a default version of that feed so the memory pipeline can run against a
plain WorldState: every entity and every other agent within the agent's vision
range, nearest first, capped at a fixed number of percepts.

Perception filtering rules (what agents CAN perceive):
- Non-agent entities within vision range, with their kind, position and flux effect
- Other agents within vision range (reported with kind AGENT)

Perception filtering rules (what agents CANNOT perceive):
- Anything beyond vision range
- Itself
- More than `limit` things at once (the farthest are dropped)

Hosts with their own sensing system can pass a different percept provider to the
Orchestrator; the memory layers only ever see the resulting list of Percepts.

Usage:
    percepts = build_agent_percepts(agent, world_state)
    # percepts now holds at most 10 entries, nearest first
"""

from typing import List

from mnemoverse.schemas import AgentState, EntityKind, Percept, WorldState


MAX_PERCEPTS = 10


def build_agent_percepts(
    agent: AgentState,
    world_state: WorldState,
    limit: int = MAX_PERCEPTS,
) -> List[Percept]:
    """Build the per-tick perception feed for one agent.

    Args:
        agent: Perceiving agent (its position and vision range are used)
        world_state: Current world state
        limit: Maximum number of percepts returned

    Returns:
        Percepts within vision range, sorted by distance (ties keep world order)
    """
    percepts: List[Percept] = []

    for entity in world_state.entities:
        distance = agent.position.distance_to(entity.position)
        if distance > agent.vision_range:
            continue
        percepts.append(
            Percept(
                entity_id=entity.entity_id,
                kind=entity.kind,
                position=entity.position.model_copy(),
                distance=distance,
                flux_effect=entity.flux_effect,
            )
        )

    for other in world_state.agents:
        if other.agent_id == agent.agent_id:
            continue
        distance = agent.position.distance_to(other.position)
        if distance > agent.vision_range:
            continue
        percepts.append(
            Percept(
                entity_id=other.agent_id,
                kind=EntityKind.AGENT,
                position=other.position.model_copy(),
                distance=distance,
                flux_effect=other.flux_effect,
            )
        )

    # sorted() is stable, so equal distances keep entities before agents
    percepts = sorted(percepts, key=lambda p: p.distance)
    return percepts[:limit]
