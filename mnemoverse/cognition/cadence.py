"""Utilities for configuring memory-maintenance cadences.

These helpers let hosts throttle how often distillation, generalization,
reconstruction, consolidation, and sync run without duplicating bookkeeping.
The orchestrator stores the last run tick of each stage in the agent's
cognition bundle and consults the cadence before running the stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from mnemoverse.config import KnowledgeOptions, MemoryOptions, SyncOptions, TemporalOptions


@dataclass(frozen=True)
class TickInterval:
    """Represents an ``every N ticks`` cadence aligned to the tick counter."""

    every: int = 1
    offset: int = 0

    def is_due(self, *, tick: int, last_run_tick: Optional[int]) -> bool:
        """Return ``True`` when the cadence fires on this tick."""

        if self.every <= 0:
            return True

        if last_run_tick is not None and tick <= last_run_tick:
            return False

        return ((tick - self.offset) % self.every) == 0


@dataclass(frozen=True)
class ElapsedInterval:
    """Fires once at least ``every`` ticks have passed since the last run.

    A stage that never ran counts from tick 0.
    """

    every: int = 1

    def is_due(self, *, tick: int, last_run_tick: Optional[int]) -> bool:
        if self.every <= 0:
            return True
        baseline = 0 if last_run_tick is None else last_run_tick
        return tick - baseline >= self.every


@dataclass(frozen=True)
class MemoryCadence:
    """Bundle of stage cadences used by the orchestrator."""

    distillation: ElapsedInterval = field(default_factory=lambda: ElapsedInterval(50))
    generalization: ElapsedInterval = field(default_factory=lambda: ElapsedInterval(50))
    reconstruction: ElapsedInterval = field(default_factory=lambda: ElapsedInterval(50))
    consolidation: TickInterval = field(default_factory=lambda: TickInterval(100))
    sync: ElapsedInterval = field(default_factory=lambda: ElapsedInterval(10))

    @classmethod
    def from_options(
        cls,
        memory: MemoryOptions,
        knowledge: KnowledgeOptions,
        temporal: TemporalOptions,
        sync: SyncOptions,
    ) -> "MemoryCadence":
        return cls(
            distillation=ElapsedInterval(memory.semantic_update_interval),
            generalization=ElapsedInterval(knowledge.generalization_interval),
            reconstruction=ElapsedInterval(temporal.reconstruction_interval),
            consolidation=TickInterval(memory.consolidation_interval),
            sync=ElapsedInterval(sync.interval),
        )


# Keys used by the orchestrator to cache last-run ticks per agent.
DISTILLATION_LAST_TICK_KEY = "__distillation_last_tick"
GENERALIZATION_LAST_TICK_KEY = "__generalization_last_tick"
RECONSTRUCTION_LAST_TICK_KEY = "__reconstruction_last_tick"
CONSOLIDATION_LAST_TICK_KEY = "__consolidation_last_tick"
SYNC_LAST_TICK_KEY = "__sync_last_tick"
