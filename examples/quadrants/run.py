"""Quadrant world demonstrating the full memory pipeline without any external services.

Foragers wander a 100x100 world split into four quadrants. Resources cluster near
obstacles, hazards drift, and every so often a reality wave relocates the hazards
and puts agents under a random flux effect. The memory pipeline decides where each
agent heads next; these rules only move agents toward their goal targets.

    uv run python examples/quadrants/run.py --ticks 150 --seed 7

Pass `--sync` to push records to the endpoint configured by `API_ENDPOINT`
(failures are logged and dropped; the simulation never waits on them).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import math
import random
from typing import Dict, List

from mnemoverse import (
    AgentState,
    CloudSync,
    Config,
    EntityKind,
    FluxEffect,
    MemoryOptions,
    Orchestrator,
    Position,
    SimulationRules,
    SyncOptions,
    TickReport,
    WorldEntity,
    WorldState,
)


WORLD_SIZE = 100.0
STEP_SIZE = 3.0
FLUX_DURATION = 3


def clamp(value: float) -> float:
    return max(0.0, min(WORLD_SIZE, value))


class QuadrantRules(SimulationRules):
    """Moves agents toward their goals and drives flux effects and reality waves."""

    def __init__(
        self,
        rng: random.Random,
        *,
        flux_chance: float = 0.03,
        wave_every: int = 40,
    ) -> None:
        self.rng = rng
        self.flux_chance = flux_chance
        self.wave_every = wave_every

    def apply_tick(self, state: WorldState, tick: int) -> WorldState:
        state.reality_wave_active = self.wave_every > 0 and tick % self.wave_every == 0

        if state.reality_wave_active:
            for entity in state.entities:
                if entity.kind == EntityKind.HAZARD:
                    entity.position = Position(
                        x=self.rng.uniform(0, WORLD_SIZE), y=self.rng.uniform(0, WORLD_SIZE)
                    )

        for agent in state.agents:
            self._update_flux(agent, state.reality_wave_active)
            self._move(agent)

        state.tick = tick
        return state

    def _update_flux(self, agent: AgentState, wave: bool) -> None:
        remaining = int(agent.metadata.get("flux_ticks", 0))
        if remaining > 0:
            agent.metadata["flux_ticks"] = remaining - 1
            if remaining == 1:
                agent.flux_effect = FluxEffect.NONE
            return
        if wave or self.rng.random() < self.flux_chance:
            agent.flux_effect = FluxEffect(self.rng.randint(1, 3))
            agent.metadata["flux_ticks"] = FLUX_DURATION
            if agent.flux_effect == FluxEffect.TELEPORT:
                agent.position = Position(
                    x=self.rng.uniform(0, WORLD_SIZE), y=self.rng.uniform(0, WORLD_SIZE)
                )

    def _move(self, agent: AgentState) -> None:
        goal = agent.goal
        if goal.target_x is None or goal.target_y is None:
            return
        dx = goal.target_x - agent.position.x
        dy = goal.target_y - agent.position.y
        distance = math.hypot(dx, dy)
        if distance > STEP_SIZE:
            agent.position = Position(
                x=clamp(agent.position.x + dx / distance * STEP_SIZE),
                y=clamp(agent.position.y + dy / distance * STEP_SIZE),
            )
            distance -= STEP_SIZE
        else:
            agent.position = Position(x=clamp(goal.target_x), y=clamp(goal.target_y))
            distance = 0.0
        # Completion feeds the decision engine's success signal
        goal.completion_percentage = max(0.0, 100.0 - distance * 5)


class TickAnalyzer:
    """Prints a one-line summary every few ticks."""

    def __init__(self, every: int = 10) -> None:
        self.every = every

    def report(self, tick: int, state: WorldState, report: TickReport) -> None:
        if tick % self.every and not report.transitions:
            return
        kinds: Dict[str, int] = {}
        for decision in report.decisions.values():
            kinds[decision.type.value] = kinds.get(decision.type.value, 0) + 1
        summary = ", ".join(f"{name}={count}" for name, count in sorted(kinds.items()))
        moves = ", ".join(f"{agent}->{env}" for agent, env in report.transitions.items())
        wave = " [reality wave]" if state.reality_wave_active else ""
        print(
            f"[analysis] tick {tick}: records+{report.records_created} "
            f"promotions+{report.promotions} decisions({summary})"
            + (f" transitions({moves})" if moves else "")
            + wave
        )


def build_world(rng: random.Random, agents: int = 3) -> WorldState:
    entities: List[WorldEntity] = []
    centers = [(25.0, 25.0), (75.0, 25.0), (25.0, 75.0), (75.0, 75.0)]
    for index, (cx, cy) in enumerate(centers):
        entities.append(
            WorldEntity(
                entity_id=f"rock-{index}",
                kind=EntityKind.OBSTACLE,
                position=Position(x=cx, y=cy),
            )
        )
        for n in range(3):
            entities.append(
                WorldEntity(
                    entity_id=f"berry-{index}-{n}",
                    kind=EntityKind.RESOURCE,
                    position=Position(x=clamp(cx + rng.uniform(-8, 8)), y=clamp(cy + rng.uniform(-8, 8))),
                )
            )
        entities.append(
            WorldEntity(
                entity_id=f"geyser-{index}",
                kind=EntityKind.HAZARD,
                position=Position(x=rng.uniform(0, WORLD_SIZE), y=rng.uniform(0, WORLD_SIZE)),
            )
        )

    foragers = [
        AgentState(
            agent_id=f"forager-{n}",
            position=Position(x=rng.uniform(0, WORLD_SIZE), y=rng.uniform(0, WORLD_SIZE)),
            emotional_state=rng.uniform(20, 80),
            adaptability=rng.uniform(30, 90),
        )
        for n in range(agents)
    ]
    return WorldState(agents=foragers, entities=entities)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Quadrant memory simulation")
    parser.add_argument("--ticks", type=int, default=Config.DEFAULT_TICK_COUNT, help="Number of ticks to simulate")
    parser.add_argument("--agents", type=int, default=3, help="Number of foragers")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs")
    parser.add_argument("--sync", action="store_true", help="Sync records to API_ENDPOINT")
    return parser.parse_args()


async def run_simulation(
    ticks: int,
    *,
    agents: int = 3,
    seed: int | None = None,
    sync: bool = False,
) -> Dict[str, object]:
    rng = random.Random(seed)
    world_state = build_world(rng, agents)

    cloud_sync = None
    if sync:
        cloud_sync = CloudSync(SyncOptions(enabled=True))

    orchestrator = Orchestrator(
        world_state,
        QuadrantRules(rng),
        memory_options=MemoryOptions(semantic_update_interval=25),
        sync=cloud_sync,
        rng=rng,
        tick_listeners=[TickAnalyzer().report],
    )
    result = await orchestrator.run(num_ticks=ticks)
    result["cross_reality"] = {
        agent.agent_id: orchestrator.get_cross_reality_report(agent.agent_id)
        for agent in orchestrator.current_state.agents
    }
    if cloud_sync is not None:
        result["sync"] = {"sent": cloud_sync.sent_batches, "dropped": cloud_sync.dropped_batches}
    return result


async def main(args: argparse.Namespace) -> None:
    if args.sync:
        Config.ENABLE_CLOUD_SYNC = True
    try:
        Config.validate()
    except ValueError as exc:
        print(f"[warning] {exc}. Running without sync.")
        args.sync = False

    result = await run_simulation(args.ticks, agents=args.agents, seed=args.seed, sync=args.sync)

    print("\nCross-reality reports:")
    print(json.dumps(result["cross_reality"], indent=2, default=str))
    if "sync" in result:
        print("Sync batches:", result["sync"])


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(main(args))
