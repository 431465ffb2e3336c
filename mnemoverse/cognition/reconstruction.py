"""
Memory reconstruction.

Every few dozen ticks the agent re-reads older memories in light of its latest
experience. Related memories are recorded again as new, slightly more important and
slightly less accurate records tagged ``reconstructed``. Originals are left alone.
"""

import math
from typing import Any, Dict, List, Optional, Sequence

from mnemoverse.config import TemporalOptions
from mnemoverse.memory import EpisodicView
from mnemoverse.schemas import EpisodicRecord, MemoryEvent


RELATED_DISTANCE = 20.0
RELATED_TIME_WINDOW = 100
RECONSTRUCTION_KEYS = ("reconstructed", "reconstruction_time", "semantic_patterns", "interpretation_updated")


def _shares_context(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    for key, value in a.items():
        if key in RECONSTRUCTION_KEYS or value is None or value is False:
            continue
        if key in b and b[key] == value:
            return True
    return False


def is_related(experience: EpisodicRecord, memory: EpisodicRecord) -> bool:
    """Same entity, close in space and time, or sharing a context value."""
    if experience.entity_id is not None and experience.entity_id == memory.entity_id:
        return True
    close = (
        math.hypot(
            experience.position.x - memory.position.x,
            experience.position.y - memory.position.y,
        )
        < RELATED_DISTANCE
    )
    recent = abs(experience.timestamp - memory.timestamp) < RELATED_TIME_WINDOW
    return (close and recent) or _shares_context(experience.context, memory.context)


class MemoryReconstructor:
    """Re-records memories related to an agent's latest experience."""

    def __init__(self, store: EpisodicView, options: Optional[TemporalOptions] = None) -> None:
        self.store = store
        self.options = options or TemporalOptions()

    def find_memories_to_reconstruct(
        self, agent_id: str, experience: EpisodicRecord
    ) -> List[EpisodicRecord]:
        related = [
            record
            for record in self.store.get_records(agent_id)
            if record.id != experience.id
            and not record.reconstructed
            and is_related(experience, record)
        ]
        return related[: self.options.max_reconstructions]

    def build_context(self, tick: int, pattern_ids: Sequence[str]) -> Dict[str, Any]:
        return {
            "reconstructed": True,
            "reconstruction_time": tick,
            "semantic_patterns": list(pattern_ids),
            "interpretation_updated": True,
        }

    def reconstruct(
        self, agent_id: str, memory: EpisodicRecord, new_context: Dict[str, Any], tick: int
    ) -> EpisodicRecord:
        event = MemoryEvent(
            entity_id=memory.entity_id,
            kind=memory.kind,
            position=memory.position,
            importance=min(1.0, memory.importance + 0.1),
            fidelity=min(1.0, memory.fidelity * 0.95),
            context={**memory.context, **new_context},
            tags=[*memory.tags, "reconstructed"],
            emotional_impact=memory.emotional_impact,
        )
        return self.store.record(agent_id, event, tick=tick)

    def run(self, agent_id: str, tick: int, pattern_ids: Sequence[str] = ()) -> List[EpisodicRecord]:
        """Reconstruct memories related to the latest record. Returns the new records."""
        latest = self.store.latest_record(agent_id)
        if latest is None:
            return []
        targets = self.find_memories_to_reconstruct(agent_id, latest)
        if not targets:
            return []
        context = self.build_context(tick, pattern_ids)
        return [self.reconstruct(agent_id, memory, context, tick) for memory in targets]
