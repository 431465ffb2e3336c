"""Cognition layer for Mnemoverse.

This package houses the per-agent stages that sit on top of episodic memory:
stage cadences, temporal patterns, memory reconstruction, knowledge-driven
decisions, and the runtime bundle that ties them to one agent.
"""

from .cadence import ElapsedInterval, MemoryCadence, TickInterval
from .decision import DecisionContext, DecisionEngine, build_decision_context
from .reconstruction import MemoryReconstructor, is_related
from .runtime import (
    AgentCognition,
    AgentCognitionMap,
    AgentKnowledgeState,
    build_agent_cognition,
)
from .temporal import TemporalPattern, TemporalPatternTracker, detect_pattern

__all__ = [
    "ElapsedInterval",
    "MemoryCadence",
    "TickInterval",
    "DecisionContext",
    "DecisionEngine",
    "build_decision_context",
    "MemoryReconstructor",
    "is_related",
    "AgentCognition",
    "AgentCognitionMap",
    "AgentKnowledgeState",
    "build_agent_cognition",
    "TemporalPattern",
    "TemporalPatternTracker",
    "detect_pattern",
]
