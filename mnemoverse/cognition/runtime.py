"""Agent cognition runtime.

Bundles the per-agent state that sits above episodic memory: the merged semantic
pattern set, the knowledge hierarchy, environment bookkeeping, temporal patterns,
and the knowledge-transfer scalars. Nothing in here is shared between agents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from mnemoverse.config import KnowledgeOptions, MemoryOptions, TemporalOptions
from mnemoverse.environment import AgentEnvironmentState
from mnemoverse.knowledge import KnowledgeHierarchy, KnowledgeLevel
from mnemoverse.semantic import SemanticMemory

from .temporal import TemporalPatternTracker


@dataclass
class AgentKnowledgeState:
    """Scalars describing how the agent's knowledge is doing."""

    tier_counts: Dict[str, int] = field(default_factory=lambda: {"low": 0, "mid": 0, "high": 0})
    last_generalization: int = 0
    adaptation_rate: float = 0.2
    abstraction_level: float = 0.0
    transfer_success_rate: float = 0.5

    def refresh(self, hierarchy: KnowledgeHierarchy) -> None:
        self.tier_counts = hierarchy.counts()
        total = sum(self.tier_counts.values())
        if total == 0:
            self.abstraction_level = 0.0
        else:
            self.abstraction_level = (
                self.tier_counts["mid"] + 2 * self.tier_counts["high"]
            ) / (2 * total)

    def record_transfer(self, success: bool) -> float:
        """Blend one cross-environment application into the transfer success rate."""
        rate = self.adaptation_rate
        self.transfer_success_rate = (
            self.transfer_success_rate * (1 - rate) + (1.0 if success else 0.0) * rate
        )
        return self.transfer_success_rate


@dataclass
class AgentCognition:
    """Collection of cognition state bound to a single agent."""

    agent_id: str
    semantic: SemanticMemory
    knowledge: KnowledgeHierarchy
    temporal: TemporalPatternTracker
    environment: AgentEnvironmentState = field(default_factory=AgentEnvironmentState)
    state: AgentKnowledgeState = field(default_factory=AgentKnowledgeState)
    # Last tick each maintenance stage ran, keyed by the cadence module's *_LAST_TICK_KEY
    last_runs: Dict[str, int] = field(default_factory=dict)

    def cross_reality_report(self) -> Dict[str, Any]:
        """Summary of the agent's knowledge and environment situation."""
        self.state.refresh(self.knowledge)
        return {
            "agent_id": self.agent_id,
            "knowledge_counts": dict(self.state.tier_counts),
            "abstraction_level": self.state.abstraction_level,
            "environment_similarity": self.environment.similarity,
            "current_environment": self.environment.current_id,
            "previous_environment": self.environment.previous_id,
            "transfer_success_rate": self.state.transfer_success_rate,
            "adaptation_rate": self.state.adaptation_rate,
            "top_knowledge": {
                level.value: [
                    {
                        "id": entry.id,
                        "type": entry.type.value,
                        "confidence": entry.confidence,
                        "environments": list(entry.environment_ids),
                    }
                    for entry in self.knowledge.top_entries(level)
                ]
                for level in KnowledgeLevel
            },
        }


def build_agent_cognition(
    agent_id: str,
    *,
    memory_options: Optional[MemoryOptions] = None,
    knowledge_options: Optional[KnowledgeOptions] = None,
    temporal_options: Optional[TemporalOptions] = None,
) -> AgentCognition:
    """Return a fresh cognition bundle for an agent."""
    knowledge_options = knowledge_options or KnowledgeOptions()
    cognition = AgentCognition(
        agent_id=agent_id,
        semantic=SemanticMemory(memory_options),
        knowledge=KnowledgeHierarchy(knowledge_options),
        temporal=TemporalPatternTracker(temporal_options),
    )
    cognition.state.adaptation_rate = knowledge_options.adaptation_learning_rate
    return cognition


AgentCognitionMap = Dict[str, AgentCognition]
