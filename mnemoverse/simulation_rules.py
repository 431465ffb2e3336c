"""
SimulationRules interface for the host world's physics.

Movement, sensing, and entity spawning belong to the host simulation, not to the
memory layers. The Orchestrator calls into a SimulationRules object once per tick,
before any agent's memory pipeline runs, so agents remember the world as it is
after this tick's physics.

Key responsibilities:
- Apply one tick of world evolution (movement toward goals, flux effects, spawning)
- Optional lifecycle hooks around a run
- Optional early stop signal

Design principle: rules mutate or replace the WorldState; memory and knowledge
are never touched from here.
"""

from abc import ABC, abstractmethod

from mnemoverse.schemas import WorldState


class SimulationRules(ABC):
    """Abstract base class for the host world's per-tick physics.

    Subclasses are injected into the Orchestrator. The goal fields written by the
    decision engine on tick N are what apply_tick() should act on at tick N+1.
    """

    @abstractmethod
    def apply_tick(self, state: WorldState, tick: int) -> WorldState:
        """
        Apply one tick of world physics.

        Runs BEFORE perception and memory for the tick. Use the injected or seeded
        randomness for anything probabilistic so runs stay reproducible.

        Args:
            state: Current world state at the start of this tick
            tick: Current tick number (1-indexed)

        Returns:
            Updated world state (may be the same object, mutated)

        Example implementation:
            for agent in state.agents:
                if agent.goal.target_x is not None:
                    step_toward(agent.position, agent.goal.target_x, agent.goal.target_y)
            state.tick = tick
            return state
        """
        pass

    def on_simulation_start(self, state: WorldState) -> WorldState:
        """Hook called once before the first tick."""
        return state

    def on_simulation_end(self, state: WorldState, tick: int) -> WorldState:
        """Hook called once after the final tick."""
        return state

    def should_stop(self, state: WorldState, tick: int) -> bool:
        """Return True to end the run after this tick."""
        return False


class StaticWorldRules(SimulationRules):
    """Rules that only advance the tick counter. Useful for tests and replays."""

    def apply_tick(self, state: WorldState, tick: int) -> WorldState:
        state.tick = tick
        return state
