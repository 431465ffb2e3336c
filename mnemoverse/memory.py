"""
Episodic memory for Mnemoverse agents.

Each agent owns two tiers of first-hand memory:
- A fixed-capacity short-term ring buffer. Writes go to the next slot and overwrite
  whatever was there; nothing about importance is considered at this tier.
- A growing episodic log of full EpisodicRecords, periodically decayed and
  consolidated into a separate long-term list.

Records are also indexed in a per-agent uniform grid for proximity queries.

Higher-level components (semantic distillation, knowledge, reconstruction) only see
the store through the EpisodicView protocol.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence
from uuid import uuid4

from mnemoverse.config import MemoryOptions
from mnemoverse.schemas import (
    AgentState,
    EntityKind,
    EpisodicRecord,
    FluxEffect,
    GoalKind,
    MemoryEvent,
    Percept,
    ShortTermSlot,
)


BASE_IMPORTANCE = {
    EntityKind.RESOURCE: 0.7,
    EntityKind.OBSTACLE: 0.4,
    EntityKind.HAZARD: 0.8,
}


class EpisodicView(Protocol):
    """Interface higher-level components use to reach an agent's records."""

    def get_records(self, agent_id: str) -> List[EpisodicRecord]:
        ...

    def get_long_term(self, agent_id: str) -> List[EpisodicRecord]:
        ...

    def latest_record(self, agent_id: str) -> Optional[EpisodicRecord]:
        ...

    def records_near(
        self, agent_id: str, x: float, y: float, radius: float
    ) -> List[EpisodicRecord]:
        ...

    def record(
        self,
        agent_id: str,
        event: MemoryEvent,
        *,
        tick: int,
        agent: Optional[AgentState] = None,
        environment_id: Optional[int] = None,
    ) -> EpisodicRecord:
        ...


class ShortTermBuffer:
    """Fixed-size circular buffer of recent observations."""

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.slots: List[ShortTermSlot] = [ShortTermSlot() for _ in range(capacity)]
        self.index = 0

    def write(self, slot: ShortTermSlot) -> int:
        """Overwrite the slot at the write index and advance it. Returns the slot used."""
        used = self.index
        self.slots[used] = slot
        self.index = (used + 1) % self.capacity
        return used

    def recently_recorded(self, entity_id: Optional[str], tick: int, window: int) -> bool:
        return any(
            slot.occupied and slot.entity_id == entity_id and (tick - slot.timestamp) < window
            for slot in self.slots
        )

    def occupied(self) -> List[ShortTermSlot]:
        return [slot for slot in self.slots if slot.occupied]

    def __len__(self) -> int:
        return len(self.slots)


class SpatialIndex:
    """Uniform-grid index of records keyed by floored cell coordinates."""

    def __init__(self, cell_size: float = 10.0) -> None:
        self.cell_size = cell_size
        self._cells: Dict[tuple[int, int], List[EpisodicRecord]] = {}

    def _cell(self, x: float, y: float) -> tuple[int, int]:
        return (math.floor(x / self.cell_size), math.floor(y / self.cell_size))

    def add(self, record: EpisodicRecord) -> None:
        key = self._cell(record.position.x, record.position.y)
        self._cells.setdefault(key, []).append(record)

    def remove(self, record: EpisodicRecord) -> None:
        key = self._cell(record.position.x, record.position.y)
        bucket = self._cells.get(key)
        if not bucket:
            return
        bucket[:] = [item for item in bucket if item.id != record.id]
        if not bucket:
            del self._cells[key]

    def query(self, x: float, y: float, radius: float) -> List[EpisodicRecord]:
        """Return records within `radius` of (x, y), inclusive."""
        min_x, min_y = self._cell(x - radius, y - radius)
        max_x, max_y = self._cell(x + radius, y + radius)
        found: List[EpisodicRecord] = []
        for i in range(min_x, max_x + 1):
            for j in range(min_y, max_y + 1):
                found.extend(self._cells.get((i, j), ()))
        return [r for r in found if math.hypot(r.position.x - x, r.position.y - y) <= radius]

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._cells.values())


@dataclass
class AgentMemoryState:
    """Everything the store keeps for one agent."""

    agent_id: str
    short_term: ShortTermBuffer
    spatial: SpatialIndex
    episodic: List[EpisodicRecord] = field(default_factory=list)
    long_term: List[EpisodicRecord] = field(default_factory=list)
    global_fidelity: float = 1.0
    # Records written since the last semantic distillation
    records_since_distill: int = 0


def calculate_importance(
    kind: EntityKind, agent: Optional[AgentState], flux_effect: FluxEffect = FluxEffect.NONE
) -> float:
    """Base importance of a perceived entity for this agent, clamped to [0.1, 1.0]."""
    importance = BASE_IMPORTANCE.get(kind, 0.5)
    if agent is not None:
        if agent.goal.kind == GoalKind.RESOURCE and kind == EntityKind.RESOURCE:
            importance += 0.2
        if agent.goal.kind == GoalKind.AVOID_HAZARD and kind == EntityKind.HAZARD:
            importance += 0.2
        if agent.emotional_state > 70 or agent.emotional_state < 30:
            importance += 0.15
    if flux_effect > 0:
        importance += 0.1
    return min(1.0, max(0.1, importance))


def generate_tags(
    kind: EntityKind,
    importance: float,
    x: float,
    y: float,
    context: Dict[str, Any],
    world_center: float = 50.0,
) -> List[str]:
    tags = [f"type_{int(kind)}", f"imp_{math.floor(importance * 10)}"]
    if context.get("action") is not None:
        tags.append(f"act_{context['action']}")
    success = context.get("success")
    if success is not None and success > 80:
        tags.append("success_high")
    if context.get("reality_shift"):
        tags.append("shift")
    vertical = "n" if y < world_center else "s"
    horizontal = "w" if x < world_center else "e"
    tags.append(f"quad_{vertical}_{horizontal}")
    return tags


def _merge_tags(base: Iterable[str], extra: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for tag in list(base) + list(extra):
        if tag not in merged:
            merged.append(tag)
    return merged


class EpisodicStore:
    """Per-agent short-term buffers, episodic logs, and long-term lists.

    Unknown agents are treated as "not yet initialized": queries return empty results
    and writes register the agent on the fly.
    """

    def __init__(
        self,
        options: Optional[MemoryOptions] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.options = options or MemoryOptions()
        self.rng = rng or random.Random()
        self._agents: Dict[str, AgentMemoryState] = {}

    # ------------------------------------------------------------------
    # Agent registry
    # ------------------------------------------------------------------

    def register_agent(self, agent_id: str) -> AgentMemoryState:
        state = self._agents.get(agent_id)
        if state is None:
            state = AgentMemoryState(
                agent_id=agent_id,
                short_term=ShortTermBuffer(self.options.short_term_capacity),
                spatial=SpatialIndex(self.options.spatial_cell_size),
            )
            self._agents[agent_id] = state
        return state

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._agents

    @property
    def agent_ids(self) -> List[str]:
        return list(self._agents)

    def get_state(self, agent_id: str) -> Optional[AgentMemoryState]:
        return self._agents.get(agent_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_records(self, agent_id: str) -> List[EpisodicRecord]:
        state = self._agents.get(agent_id)
        return list(state.episodic) if state else []

    def get_long_term(self, agent_id: str) -> List[EpisodicRecord]:
        state = self._agents.get(agent_id)
        return list(state.long_term) if state else []

    def all_records(self, agent_id: str) -> List[EpisodicRecord]:
        state = self._agents.get(agent_id)
        return list(state.episodic) + list(state.long_term) if state else []

    def get_short_term(self, agent_id: str) -> List[ShortTermSlot]:
        state = self._agents.get(agent_id)
        return list(state.short_term.slots) if state else []

    def latest_record(self, agent_id: str) -> Optional[EpisodicRecord]:
        records = self.get_records(agent_id)
        if not records:
            return None
        # max() keeps the first of equal timestamps; reversed so the newest write wins
        return max(reversed(records), key=lambda r: r.timestamp)

    def global_fidelity(self, agent_id: str) -> float:
        state = self._agents.get(agent_id)
        return state.global_fidelity if state else 1.0

    def records_near(
        self, agent_id: str, x: float, y: float, radius: float
    ) -> List[EpisodicRecord]:
        state = self._agents.get(agent_id)
        return state.spatial.query(x, y, radius) if state else []

    def take_semantic_pending(self, agent_id: str) -> bool:
        """Return True (and reset) when enough new records arrived to warrant distillation."""
        state = self._agents.get(agent_id)
        if state is None or state.records_since_distill < self.options.semantic_pending_threshold:
            return False
        state.records_since_distill = 0
        return True

    def mark_distilled(self, agent_id: str) -> None:
        state = self._agents.get(agent_id)
        if state is not None:
            state.records_since_distill = 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        agent_id: str,
        event: MemoryEvent,
        *,
        tick: int,
        agent: Optional[AgentState] = None,
        environment_id: Optional[int] = None,
    ) -> EpisodicRecord:
        """Record an event into the short-term ring and the episodic log.

        The event's importance gets +0.2 when the agent's emotional state is outside
        [30, 70] and is clamped to [0, 1]. Never fails: a full ring silently
        overwrites its oldest slot.

        Args:
            agent_id: Owning agent
            event: What happened
            tick: Current world tick (becomes the record timestamp)
            agent: Agent scalar state used for context and salience
            environment_id: Environment the agent is in, stored in the context

        Returns:
            The appended EpisodicRecord
        """
        state = self.register_agent(agent_id)

        context: Dict[str, Any] = {
            "action": agent.current_action if agent else None,
            "success": agent.action_success_rate if agent else None,
            "emotional_state": agent.emotional_state if agent else None,
            "reality_shift": bool(agent is not None and agent.flux_effect > 0),
        }
        if environment_id is not None:
            context["environment_id"] = environment_id
        context.update(event.context)

        importance = event.importance
        if agent is not None and (agent.emotional_state > 70 or agent.emotional_state < 30):
            importance += 0.2
        importance = min(1.0, max(0.0, importance))

        fidelity = event.fidelity if event.fidelity is not None else state.global_fidelity

        if event.emotional_impact is not None:
            emotional = event.emotional_impact
        elif agent is not None:
            emotional = agent.emotional_state
        else:
            emotional = 50.0

        state.short_term.write(
            ShortTermSlot(
                entity_id=event.entity_id,
                kind=event.kind,
                position=event.position.model_copy(),
                timestamp=tick,
                importance=importance,
                fidelity=fidelity,
                occupied=True,
            )
        )

        tags = generate_tags(
            event.kind,
            importance,
            event.position.x,
            event.position.y,
            context,
            self.options.world_center,
        )
        record = EpisodicRecord(
            id=f"{agent_id}-{tick}-{uuid4().hex[:7]}",
            agent_id=agent_id,
            timestamp=tick,
            entity_id=event.entity_id,
            kind=event.kind,
            position=event.position.model_copy(),
            importance=importance,
            fidelity=fidelity,
            context=context,
            tags=_merge_tags(tags, event.tags),
            emotional_impact=emotional,
        )
        state.episodic.append(record)
        state.spatial.add(record)
        state.records_since_distill += 1
        return record

    def ingest(
        self,
        agent_id: str,
        agent: AgentState,
        percepts: Sequence[Percept],
        tick: int,
        environment_id: Optional[int] = None,
    ) -> List[EpisodicRecord]:
        """Record this tick's percepts.

        An entity already recorded inside the recent window gets no new record; the
        sighting is counted on its latest record instead and still counts toward
        pending distillation.
        """
        state = self.register_agent(agent_id)
        created: List[EpisodicRecord] = []
        for percept in percepts[: self.options.short_term_capacity]:
            if state.short_term.recently_recorded(
                percept.entity_id, tick, self.options.recent_record_window
            ):
                self._count_sighting(state, percept.entity_id)
                continue
            event = MemoryEvent(
                entity_id=percept.entity_id,
                kind=percept.kind,
                position=percept.position,
                importance=calculate_importance(percept.kind, agent, percept.flux_effect),
            )
            created.append(
                self.record(agent_id, event, tick=tick, agent=agent, environment_id=environment_id)
            )
        return created

    def _count_sighting(self, state: AgentMemoryState, entity_id: Optional[str]) -> None:
        for bucket in (state.episodic, state.long_term):
            for record in reversed(bucket):
                if record.entity_id == entity_id and not record.reconstructed:
                    record.occurrences += 1
                    state.records_since_distill += 1
                    return

    def process_reality_shift(
        self, agent_id: str, agent: AgentState, tick: int
    ) -> Optional[EpisodicRecord]:
        """Apply the agent's active flux effect to its memory.

        Teleport lowers global fidelity, phase scrambles short-term timestamps, and
        transform re-rolls short-term kinds. A synthetic reality-shift record is
        written whenever an effect is active. Without flux, fidelity recovers slowly.
        """
        state = self.register_agent(agent_id)
        effect = agent.flux_effect
        if effect == FluxEffect.NONE:
            state.global_fidelity = min(1.0, state.global_fidelity + 0.01)
            return None

        if effect == FluxEffect.TELEPORT:
            state.global_fidelity *= 0.8
        elif effect == FluxEffect.PHASE:
            self._distort_timestamps(state)
        elif effect == FluxEffect.TRANSFORM:
            self._distort_kinds(state)

        shift_record = self.record(
            agent_id,
            MemoryEvent(
                entity_id=agent_id,
                kind=EntityKind.SYNTHETIC,
                position=agent.position,
                importance=0.9,
                context={"reality_shift": True, "effect_type": int(effect)},
            ),
            tick=tick,
            agent=agent,
        )
        state.global_fidelity = max(0.2, state.global_fidelity)
        return shift_record

    def _distort_timestamps(self, state: AgentMemoryState) -> None:
        for slot in state.short_term.slots:
            if self.rng.random() < 0.3 and slot.occupied:
                slot.timestamp += int(self.rng.random() * 20 - 10)
                slot.fidelity *= 0.9

    def _distort_kinds(self, state: AgentMemoryState) -> None:
        for slot in state.short_term.slots:
            if self.rng.random() < 0.3 and slot.occupied and slot.kind <= EntityKind.HAZARD:
                slot.kind = EntityKind(int(self.rng.random() * 3))
                slot.fidelity *= 0.9

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def apply_decay(self, current_time: int, agent_id: Optional[str] = None) -> int:
        """Decay record importance by exp(-rate * age).

        Repeated calls compound. Records that fall below the importance floor are
        removed when `prune_decayed` is on.

        Returns:
            Number of records pruned
        """
        if agent_id is not None:
            state = self._agents.get(agent_id)
            states = [state] if state else []
        else:
            states = list(self._agents.values())

        rate = self.options.decay_rate
        pruned = 0
        for state in states:
            for bucket in (state.episodic, state.long_term):
                kept: List[EpisodicRecord] = []
                for record in bucket:
                    age = max(0, current_time - record.timestamp)
                    record.importance *= math.exp(-rate * age)
                    if self.options.prune_decayed and record.importance < self.options.importance_floor:
                        state.spatial.remove(record)
                        pruned += 1
                    else:
                        kept.append(record)
                bucket[:] = kept
        return pruned

    def consolidate(self, agent_id: str) -> List[EpisodicRecord]:
        """Move high-importance records from the episodic log to long-term memory."""
        state = self._agents.get(agent_id)
        if state is None:
            return []
        threshold = self.options.consolidation_importance
        moved = [r for r in state.episodic if r.importance > threshold]
        if moved:
            state.long_term.extend(moved)
            state.episodic[:] = [r for r in state.episodic if r.importance <= threshold]
        return moved
