"""
Main memory simulation orchestrator.

Fully decoupled from rendering, movement, and transport: the world state, physics
rules, perception feed, and cloud sync are all injected by the host.

Coordinates the simulation loop:
1. Apply host physics (if simulation_rules provided)
2. Build each agent's perception feed
3. Run each agent's memory pipeline, one agent at a time, in a fixed stage order
4. Schedule best-effort cloud sync
5. Invoke tick listeners

Stage order per agent (later stages read what earlier ones wrote this tick):
environment -> reality shift + perception ingestion -> semantic distillation ->
temporal patterns + reconstruction -> knowledge ingest/decay/generalization ->
decision application -> consolidation/decay.
"""

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from .cognition import (
    AgentCognition,
    AgentCognitionMap,
    DecisionEngine,
    MemoryCadence,
    MemoryReconstructor,
    build_agent_cognition,
    build_decision_context,
)
from .cognition.cadence import (
    CONSOLIDATION_LAST_TICK_KEY,
    DISTILLATION_LAST_TICK_KEY,
    GENERALIZATION_LAST_TICK_KEY,
    RECONSTRUCTION_LAST_TICK_KEY,
    SYNC_LAST_TICK_KEY,
)
from .config import KnowledgeOptions, MemoryOptions, SyncOptions, TemporalOptions
from .environment import EnvironmentTracker
from .knowledge import KnowledgeHierarchy
from .logging_utils import (
    is_verbose,
    log_deterministic,
    log_error,
    log_info,
    log_success,
    log_warning,
)
from .memory import EpisodicStore
from .perception import build_agent_percepts
from .schemas import AgentState, Percept, TickReport, WorldState
from .simulation_rules import SimulationRules
from .sync import CloudSync


PerceptProvider = Callable[[AgentState, WorldState], List[Percept]]
TickListener = Callable[[int, WorldState, TickReport], None]


class Orchestrator:
    """
    Main memory simulation orchestrator.

    Owns one EpisodicStore shared by all agents (records are still kept per agent)
    and one AgentCognition bundle per agent. Nothing is shared between agents'
    semantic, knowledge, or environment state.
    """

    def __init__(
        self,
        world_state: WorldState,
        simulation_rules: Optional[SimulationRules] = None,
        *,
        memory_options: Optional[MemoryOptions] = None,
        knowledge_options: Optional[KnowledgeOptions] = None,
        temporal_options: Optional[TemporalOptions] = None,
        sync: Optional[CloudSync] = None,
        percept_provider: Optional[PerceptProvider] = None,
        agent_cognition: Optional[AgentCognitionMap] = None,
        rng: Optional[random.Random] = None,
        tick_listeners: Optional[List[TickListener]] = None,
    ):
        """Initialize orchestrator with all dependencies injected.

        Args:
            world_state: Initial WorldState
            simulation_rules: Optional SimulationRules for host physics
            memory_options: Episodic/semantic settings (defaults from Config)
            knowledge_options: Knowledge hierarchy and environment settings
            temporal_options: Temporal pattern and reconstruction settings
            sync: Optional CloudSync; disabled when None
            percept_provider: Optional callable building an agent's percepts;
                defaults to build_agent_percepts
            agent_cognition: Optional mapping of agent_id to prebuilt AgentCognition
            rng: Random source shared by memory distortion and decisions
            tick_listeners: Optional callables invoked after each tick with
                (tick, state, report)
        """
        self.current_state = world_state
        self.simulation_rules = simulation_rules
        self.memory_options = memory_options or MemoryOptions()
        self.knowledge_options = knowledge_options or KnowledgeOptions()
        self.temporal_options = temporal_options or TemporalOptions()
        self.rng = rng or random.Random()

        self.memory = EpisodicStore(self.memory_options, self.rng)
        self.environments = EnvironmentTracker(self.knowledge_options)
        self.reconstructor = MemoryReconstructor(self.memory, self.temporal_options)
        self.decisions = DecisionEngine(
            memory=self.memory,
            knowledge=self._knowledge_for,
            options=self.knowledge_options,
            rng=self.rng,
        )
        self.sync = sync
        self.cadence = MemoryCadence.from_options(
            self.memory_options,
            self.knowledge_options,
            self.temporal_options,
            sync.options if sync is not None else SyncOptions(),
        )
        self.percept_provider: PerceptProvider = percept_provider or build_agent_percepts
        self.tick_listeners = tick_listeners or []

        self.agent_cognition: AgentCognitionMap = dict(agent_cognition or {})
        for agent in world_state.agents:
            self.register_agent(agent.agent_id)

        if self.simulation_rules:
            self.current_state = self.simulation_rules.on_simulation_start(self.current_state)

        self.run_id: UUID = uuid4()
        self.reports: List[TickReport] = []

    def register_agent(self, agent_id: str) -> AgentCognition:
        """Create memory and cognition state for an agent (no-op when it exists)."""
        self.memory.register_agent(agent_id)
        cognition = self.agent_cognition.get(agent_id)
        if cognition is None:
            cognition = build_agent_cognition(
                agent_id,
                memory_options=self.memory_options,
                knowledge_options=self.knowledge_options,
                temporal_options=self.temporal_options,
            )
            self.agent_cognition[agent_id] = cognition
        return cognition

    def _knowledge_for(self, agent_id: str) -> Optional[KnowledgeHierarchy]:
        cognition = self.agent_cognition.get(agent_id)
        return cognition.knowledge if cognition else None

    def get_cross_reality_report(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Knowledge and environment summary for an agent, or None if unknown."""
        cognition = self.agent_cognition.get(agent_id)
        if cognition is None:
            return None
        return cognition.cross_reality_report()

    async def run(self, num_ticks: int) -> Dict:
        """Run simulation for N ticks, continuing from the current state's tick.

        Args:
            num_ticks: Number of ticks to simulate

        Returns:
            Dict with run_id, final_state, and the per-tick reports
        """
        start = self.current_state.tick
        try:
            print(f"Starting memory simulation run {self.run_id}")
            print(f"Agents: {len(self.current_state.agents)}, Ticks: {num_ticks}\n")

            ticks_completed = start
            stopped_early = False
            for tick in range(start + 1, start + num_ticks + 1):
                if is_verbose():
                    print(f"=== Tick {tick}/{start + num_ticks} ===")

                report = await self.step(tick)
                ticks_completed = tick

                if report.errors:
                    log_warning(f"Tick {tick} finished with {len(report.errors)} agent error(s)")

                if self.simulation_rules and self.simulation_rules.should_stop(
                    self.current_state, tick
                ):
                    stopped_early = True
                    print(f"\nSimulation stopped early at tick {tick} (signaled by simulation rules).")
                    break

            if self.simulation_rules:
                self.current_state = self.simulation_rules.on_simulation_end(
                    self.current_state, ticks_completed
                )

            if not stopped_early:
                log_success("Simulation complete!")

            return {
                "run_id": self.run_id,
                "final_state": self.current_state,
                "reports": list(self.reports),
            }

        finally:
            # Outstanding sync batches finish (or give up) before the run returns
            if self.sync is not None:
                await self.sync.drain()

    async def step(self, tick: int) -> TickReport:
        """Execute a single tick and return its report."""
        if self.simulation_rules:
            self.current_state = self.simulation_rules.apply_tick(self.current_state, tick)
        self.current_state.tick = tick

        report = TickReport(tick=tick)
        for agent in list(self.current_state.agents):
            try:
                self._run_agent(agent, tick, report)
            except Exception as exc:
                # One agent's failure never halts the tick
                report.errors[agent.agent_id] = f"{type(exc).__name__}: {exc}"
                log_error(f"[{agent.agent_id}] Memory pipeline failed at tick {tick}: {exc}")

        self.reports.append(report)

        for listener in self.tick_listeners:
            try:
                listener(tick, self.current_state, report)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_warning(f"[Analysis] Listener failed: {exc}")

        # Give scheduled sync tasks a chance to run between ticks
        await asyncio.sleep(0)
        return report

    def _run_agent(self, agent: AgentState, tick: int, report: TickReport) -> None:
        agent_id = agent.agent_id
        cognition = self.register_agent(agent_id)
        state = self.current_state
        verbose = is_verbose()

        percepts = self.percept_provider(agent, state)

        # 1. Environment: detect, record any transition, discount foreign knowledge
        transition = self.environments.update(
            cognition.environment,
            agent,
            percepts,
            tick,
            override=state.environment_override,
            reality_wave_active=state.reality_wave_active,
        )
        environment_id = cognition.environment.current_id
        if transition is not None:
            report.transitions[agent_id] = transition.new_id
            adapted = 0
            if transition.needs_adaptation:
                adapted = cognition.knowledge.adapt_knowledge(transition.new_id, transition.similarity)
            log_info(
                f"[{agent_id}] Environment {transition.previous_id} -> {transition.new_id} "
                f"(similarity {transition.similarity:.2f}, {adapted} entries adapted)"
            )

        # 2. Reality shift, then this tick's percepts
        shift = self.memory.process_reality_shift(agent_id, agent, tick)
        created = self.memory.ingest(agent_id, agent, percepts, tick, environment_id)
        report.records_created += len(created) + (1 if shift is not None else 0)
        if verbose:
            log_deterministic(f"[{agent_id}] Recorded {len(created)} percepts in environment {environment_id}")

        # 3. Semantic distillation on cadence or when enough new records piled up
        last = cognition.last_runs.get(DISTILLATION_LAST_TICK_KEY)
        if self.cadence.distillation.is_due(tick=tick, last_run_tick=last) or self.memory.take_semantic_pending(agent_id):
            cognition.semantic.update_from_episodic(self.memory.get_records(agent_id), tick)
            self.memory.mark_distilled(agent_id)
            cognition.last_runs[DISTILLATION_LAST_TICK_KEY] = tick
            if verbose:
                log_deterministic(f"[{agent_id}] Semantic patterns: {len(cognition.semantic.patterns)}")

        # 4. Temporal patterns, then reconstruction in light of them
        cognition.temporal.update(self.memory.get_records(agent_id), tick)
        last = cognition.last_runs.get(RECONSTRUCTION_LAST_TICK_KEY)
        if self.cadence.reconstruction.is_due(tick=tick, last_run_tick=last):
            rebuilt = self.reconstructor.run(
                agent_id, tick, cognition.temporal.confident_pattern_ids()
            )
            report.records_created += len(rebuilt)
            cognition.last_runs[RECONSTRUCTION_LAST_TICK_KEY] = tick

        # 5. Knowledge: learn from experience, decay, generalize on cadence
        hierarchy = cognition.knowledge
        hierarchy.ingest_experiences(self.memory.get_records(agent_id), environment_id, tick)
        hierarchy.decay(tick)
        last = cognition.last_runs.get(GENERALIZATION_LAST_TICK_KEY)
        if self.cadence.generalization.is_due(tick=tick, last_run_tick=last):
            promoted = hierarchy.generalize(tick, cognition.environment.known_environments)
            cognition.last_runs[GENERALIZATION_LAST_TICK_KEY] = tick
            cognition.state.last_generalization = tick
            report.promotions += len(promoted)
            if promoted:
                log_success(f"[{agent_id}] Generalized {len(promoted)} knowledge entries")
        cognition.state.refresh(hierarchy)

        # 6. Decision: goal fields are the only output visible to the host
        context = build_decision_context(
            agent,
            percepts,
            environment_id,
            reality_wave_active=state.reality_wave_active,
        )
        decision = self.decisions.apply_knowledge_to_decisions(agent_id, agent, context, tick)
        feedback = decision.parameters.get("feedback")
        if feedback and feedback["transfer"]:
            cognition.state.record_transfer(feedback["success"])
        report.decisions[agent_id] = decision
        if verbose:
            source = decision.knowledge_level or "fallback"
            log_deterministic(
                f"[{agent_id}] Decision {decision.type.value} ({source}) priority {decision.priority:.1f}"
            )

        # 7. Consolidation and decay
        last = cognition.last_runs.get(CONSOLIDATION_LAST_TICK_KEY)
        if self.cadence.consolidation.is_due(tick=tick, last_run_tick=last):
            moved = self.memory.consolidate(agent_id)
            pruned = self.memory.apply_decay(tick, agent_id)
            if moved:
                cognition.semantic.update_from_episodic(moved, tick)
            cognition.last_runs[CONSOLIDATION_LAST_TICK_KEY] = tick
            if verbose:
                log_deterministic(
                    f"[{agent_id}] Consolidated {len(moved)} records, pruned {pruned}"
                )

        if self.sync is not None and self.sync.enabled:
            last = cognition.last_runs.get(SYNC_LAST_TICK_KEY)
            if self.cadence.sync.is_due(tick=tick, last_run_tick=last):
                self.sync.schedule(
                    agent_id,
                    self.memory.all_records(agent_id),
                    tick,
                    cognition.semantic.find_relevant_patterns(),
                )
                cognition.last_runs[SYNC_LAST_TICK_KEY] = tick
