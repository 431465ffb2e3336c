"""
Environment detection and transition tracking.

An environment is a coarse partition of an agent's situation: one of four spatial
quadrants, or a reality-flux mode. Flux ids start at 1000 so they never collide
with quadrant ids.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from mnemoverse.config import KnowledgeOptions
from mnemoverse.environment.profiles import (
    EnvironmentProfile,
    profile_similarity,
    snapshot_features,
    update_profile,
)
from mnemoverse.schemas import AgentState, FluxEffect, Percept


FLUX_ENVIRONMENT_BASE = 1000


def detect_environment_id(
    agent: AgentState, override: Optional[int] = None, world_center: float = 50.0
) -> int:
    """Environment id for the agent's current situation.

    An override wins, then an active flux effect (1000 + effect), then the spatial
    quadrant (1-4).
    """
    if override is not None:
        return override
    if agent.flux_effect != FluxEffect.NONE:
        return FLUX_ENVIRONMENT_BASE + int(agent.flux_effect)
    quadrant = int(agent.position.x >= world_center) + 2 * int(agent.position.y >= world_center)
    return quadrant + 1


def is_flux_environment(environment_id: int) -> bool:
    return environment_id >= FLUX_ENVIRONMENT_BASE


@dataclass
class EnvironmentTransition:
    previous_id: int
    new_id: int
    similarity: float
    tick: int
    needs_adaptation: bool


@dataclass
class AgentEnvironmentState:
    """Per-agent environment bookkeeping."""

    current_id: Optional[int] = None
    previous_id: Optional[int] = None
    similarity: float = 1.0
    transition_tick: Optional[int] = None
    profiles: Dict[int, EnvironmentProfile] = field(default_factory=dict)
    # Every environment ever visited, including ones evicted from the profile cache
    known_environments: List[int] = field(default_factory=list)


class EnvironmentTracker:
    """Detects environment changes and scores how different the new environment is."""

    def __init__(self, options: Optional[KnowledgeOptions] = None) -> None:
        self.options = options or KnowledgeOptions()

    def detect(self, agent: AgentState, override: Optional[int] = None) -> int:
        return detect_environment_id(agent, override, self.options.world_center)

    def update(
        self,
        state: AgentEnvironmentState,
        agent: AgentState,
        percepts: Sequence[Percept],
        tick: int,
        *,
        override: Optional[int] = None,
        reality_wave_active: bool = False,
    ) -> Optional[EnvironmentTransition]:
        """Detect the environment, record any transition, and update its profile.

        Similarity is computed before the new environment's profile absorbs this
        tick, so a first visit falls back to the heuristic.
        """
        environment_id = self.detect(agent, override)
        transition: Optional[EnvironmentTransition] = None

        if state.current_id is not None and environment_id != state.current_id:
            similarity = self.calculate_similarity(state, state.current_id, environment_id)
            transition = EnvironmentTransition(
                previous_id=state.current_id,
                new_id=environment_id,
                similarity=similarity,
                tick=tick,
                needs_adaptation=similarity < self.options.transition_threshold,
            )
            state.previous_id = state.current_id
            state.similarity = similarity
            state.transition_tick = tick
        state.current_id = environment_id

        self.observe(state, environment_id, agent, percepts, tick, reality_wave_active)
        return transition

    def observe(
        self,
        state: AgentEnvironmentState,
        environment_id: int,
        agent: AgentState,
        percepts: Sequence[Percept],
        tick: int,
        reality_wave_active: bool = False,
    ) -> EnvironmentProfile:
        if environment_id not in state.known_environments:
            state.known_environments.append(environment_id)
        profile = state.profiles.get(environment_id)
        if profile is None:
            profile = EnvironmentProfile(id=environment_id)
            state.profiles[environment_id] = profile
        features = snapshot_features(agent, percepts, reality_wave_active)
        update_profile(profile, features, tick)
        self._evict(state, keep=environment_id)
        return profile

    def _evict(self, state: AgentEnvironmentState, keep: int) -> None:
        while len(state.profiles) > self.options.max_environment_cache:
            candidates = [p for p in state.profiles.values() if p.id != keep]
            if not candidates:
                return
            oldest = min(candidates, key=lambda p: p.last_updated)
            del state.profiles[oldest.id]

    def calculate_similarity(
        self, state: AgentEnvironmentState, env_a: int, env_b: int
    ) -> float:
        if env_a == env_b:
            return 1.0
        profile_a = state.profiles.get(env_a)
        profile_b = state.profiles.get(env_b)
        if profile_a is None or profile_b is None:
            return self.heuristic_similarity(env_a, env_b)
        score = profile_similarity(profile_a, profile_b)
        return self.heuristic_similarity(env_a, env_b) if score is None else score

    @staticmethod
    def heuristic_similarity(env_a: int, env_b: int) -> float:
        if env_a == env_b:
            return 1.0
        if is_flux_environment(env_a) != is_flux_environment(env_b):
            return 0.2
        if not is_flux_environment(env_a) and abs(env_a - env_b) in (1, 2):
            return 0.6
        return 0.4
