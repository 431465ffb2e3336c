"""
Mnemoverse - hierarchical memory and cross-environment knowledge for simulated agents.

Agents in a tick-driven world record what they perceive, distill recurring
patterns, generalize knowledge across environments, and let that knowledge
steer their goals.

Embedded library: the host owns the world loop, movement, and rendering.
All dependencies are injected by the user.
"""

__version__ = "0.1.0"

# Main simulation components
from .orchestrator import Orchestrator

# Core interfaces
from .simulation_rules import SimulationRules, StaticWorldRules
from .perception import build_agent_percepts
from .config import Config, KnowledgeOptions, MemoryOptions, SyncOptions, TemporalOptions
from .memory import EpisodicStore, EpisodicView, ShortTermBuffer, SpatialIndex
from .semantic import SemanticDistiller, SemanticMemory
from .knowledge import (
    KnowledgeCondition,
    KnowledgeEntry,
    KnowledgeHierarchy,
    KnowledgeLevel,
    KnowledgePattern,
    KnowledgeType,
)
from .environment import EnvironmentTracker, detect_environment_id
from .cognition import (
    AgentCognition,
    AgentCognitionMap,
    DecisionContext,
    DecisionEngine,
    MemoryReconstructor,
    TemporalPatternTracker,
    build_agent_cognition,
    build_decision_context,
)
from .sync import CloudSync, HttpSyncTransport, InMemorySyncTransport, SyncError, SyncTransport

# Core schemas
from .schemas import (
    AgentGoal,
    AgentState,
    Decision,
    DecisionType,
    EntityKind,
    EpisodicRecord,
    FluxEffect,
    GoalKind,
    MemoryEvent,
    PatternType,
    Percept,
    Position,
    SemanticPattern,
    TickReport,
    WorldEntity,
    WorldState,
)

__all__ = [
    # Main class
    "Orchestrator",
    # Core interfaces
    "SimulationRules",
    "StaticWorldRules",
    "build_agent_percepts",
    # Configuration
    "Config",
    "KnowledgeOptions",
    "MemoryOptions",
    "SyncOptions",
    "TemporalOptions",
    # Memory
    "EpisodicStore",
    "EpisodicView",
    "ShortTermBuffer",
    "SpatialIndex",
    "SemanticDistiller",
    "SemanticMemory",
    # Knowledge
    "KnowledgeCondition",
    "KnowledgeEntry",
    "KnowledgeHierarchy",
    "KnowledgeLevel",
    "KnowledgePattern",
    "KnowledgeType",
    # Environment
    "EnvironmentTracker",
    "detect_environment_id",
    # Cognition
    "AgentCognition",
    "AgentCognitionMap",
    "DecisionContext",
    "DecisionEngine",
    "MemoryReconstructor",
    "TemporalPatternTracker",
    "build_agent_cognition",
    "build_decision_context",
    # Sync
    "CloudSync",
    "HttpSyncTransport",
    "InMemorySyncTransport",
    "SyncError",
    "SyncTransport",
    # Schemas
    "AgentGoal",
    "AgentState",
    "Decision",
    "DecisionType",
    "EntityKind",
    "EpisodicRecord",
    "FluxEffect",
    "GoalKind",
    "MemoryEvent",
    "PatternType",
    "Percept",
    "Position",
    "SemanticPattern",
    "TickReport",
    "WorldEntity",
    "WorldState",
]
