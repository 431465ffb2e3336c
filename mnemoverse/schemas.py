"""
Pydantic schemas for the Mnemoverse memory simulation.

All data structures shared between the memory, knowledge, and decision layers are
defined here.

Design Philosophy:
- The host world owns agents and entities; memory layers only read them
- Records and patterns are plain data (no behaviour beyond small helpers)
- Context maps stay free-form so scenarios can attach extra observations
- Pydantic validation keeps importance/fidelity/confidence inside [0, 1]
"""

import json
import math
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Enumerations
# ============================================================================


class EntityKind(IntEnum):
    """Kind of entity an episodic record refers to.

    Numeric values are part of the compressed sync format (`et` key) and of the
    sequence-pattern rules ("0->2"), so they must stay stable.
    """

    RESOURCE = 0
    OBSTACLE = 1
    HAZARD = 2
    AGENT = 3
    # Events the agent produced itself (reality shifts, reconstructions)
    SYNTHETIC = 99


class GoalKind(IntEnum):
    """Primary goal kind read by the host's movement system."""

    EXPLORE = 0
    RESOURCE = 1
    AVOID_HAZARD = 2
    SOCIAL = 3


class FluxEffect(IntEnum):
    """Active reality-flux effect on an agent or entity."""

    NONE = 0
    TELEPORT = 1
    PHASE = 2
    TRANSFORM = 3


class PatternType(str, Enum):
    """Rule kinds emitted by semantic distillation."""

    RESOURCE_OBSTACLE_PROXIMITY = "resource_obstacle_proximity"
    RESOURCE_CLUSTERING = "resource_clustering"
    HAZARD_SHIFT_STABILITY = "hazard_shift_stability"
    SEQUENCE = "sequence"


class DecisionType(str, Enum):
    """Directive kinds produced by the decision engine."""

    SEEK_RESOURCE = "seek_resource"
    AVOID_HAZARD = "avoid_hazard"
    NAVIGATE_OBSTACLE = "navigate_obstacle"
    INTERACT_AGENT = "interact_agent"
    ADAPT_FLUX = "adapt_flux"
    EXPLORE = "explore"


# ============================================================================
# World State Schemas
# ============================================================================


class Position(BaseModel):
    """2D world coordinate."""

    x: float = Field(0.0, description="Horizontal coordinate")
    y: float = Field(0.0, description="Vertical coordinate")

    def distance_to(self, other: "Position") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


class AgentGoal(BaseModel):
    """Goal fields consumed by the host's action/movement system each tick.

    The decision engine is the only writer. `completion_percentage` is written by the
    host (how far along the agent is), reset to 0 when the engine sets a different goal,
    and read back on the next decision when judging the knowledge that set the goal.
    """

    kind: GoalKind = Field(GoalKind.EXPLORE, description="Primary goal kind")
    priority: float = Field(0.0, ge=0, le=100, description="Urgency of the goal (0-100)")
    target_x: Optional[float] = Field(None, description="Target x coordinate")
    target_y: Optional[float] = Field(None, description="Target y coordinate")
    # None means the goal is a location, not an entity
    target_entity: Optional[str] = Field(None, description="Target entity id, if any")
    completion_percentage: float = Field(
        0.0, ge=0, le=100, description="Host-reported goal progress (0-100)"
    )


class AgentState(BaseModel):
    """Scalar state of one agent, as exposed by the host simulation.

    The memory layers read position, emotional state, goal kind, and flux effect;
    they write only the `goal` block.
    """

    agent_id: str = Field(..., description="Unique agent identifier")
    position: Position = Field(default_factory=Position, description="Current position")
    # Peaks outside [30, 70] boost memory importance
    emotional_state: float = Field(50.0, ge=0, le=100, description="Emotional scalar (0-100)")
    adaptability: float = Field(50.0, ge=0, le=100, description="Adaptability scalar (0-100)")
    goal: AgentGoal = Field(default_factory=AgentGoal, description="Current goal")
    flux_effect: FluxEffect = Field(FluxEffect.NONE, description="Active reality-flux effect")
    current_action: Optional[str] = Field(None, description="Action currently being executed")
    action_success_rate: Optional[float] = Field(
        None, ge=0, le=100, description="Running success rate of the current action (0-100)"
    )
    vision_range: float = Field(30.0, gt=0, description="Sensing radius in world units")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Scenario-defined metadata")


class WorldEntity(BaseModel):
    """A non-agent entity in the world (resource, obstacle, hazard)."""

    entity_id: str = Field(..., description="Unique entity identifier")
    kind: EntityKind = Field(..., description="Entity kind")
    position: Position = Field(default_factory=Position, description="Entity position")
    flux_effect: FluxEffect = Field(FluxEffect.NONE, description="Flux effect on this entity")


class WorldState(BaseModel):
    """Complete state of the simulated world at a tick.

    Produced by the host. The orchestrator passes it through SimulationRules.apply_tick()
    and then reads it for perception and environment detection.
    """

    tick: int = Field(0, ge=0, description="Current simulation tick")
    agents: List[AgentState] = Field(default_factory=list, description="All agents")
    entities: List[WorldEntity] = Field(default_factory=list, description="All non-agent entities")
    # Global environment id that beats quadrant/flux detection when set
    environment_override: Optional[int] = Field(
        None, description="Forced environment id for every agent"
    )
    reality_wave_active: bool = Field(False, description="Whether a global reality wave is active")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Scenario-defined metadata")

    def get_agent(self, agent_id: str) -> Optional[AgentState]:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None


class Percept(BaseModel):
    """One entry of an agent's per-tick perception feed."""

    entity_id: str = Field(..., description="Perceived entity id")
    kind: EntityKind = Field(..., description="Perceived entity kind")
    position: Position = Field(..., description="Perceived position")
    distance: float = Field(0.0, ge=0, description="Distance from the perceiving agent")
    flux_effect: FluxEffect = Field(FluxEffect.NONE, description="Flux effect on the entity")


# ============================================================================
# Memory Schemas
# ============================================================================


class MemoryEvent(BaseModel):
    """Input to EpisodicStore.record(): something the agent just experienced."""

    entity_id: Optional[str] = Field(None, description="Source entity id (None for none)")
    kind: EntityKind = Field(EntityKind.RESOURCE, description="Source entity kind")
    position: Position = Field(default_factory=Position, description="Where it happened")
    importance: float = Field(0.5, description="Base importance before salience boosts")
    # None uses the agent's current global fidelity
    fidelity: Optional[float] = Field(None, ge=0, le=1, description="Recall accuracy override")
    context: Dict[str, Any] = Field(default_factory=dict, description="Extra context values")
    tags: List[str] = Field(default_factory=list, description="Extra tags to attach")
    emotional_impact: Optional[float] = Field(
        None, ge=0, le=100, description="Emotional impact override (0-100)"
    )


class EpisodicRecord(BaseModel):
    """A timestamped single-event memory owned by one agent.

    Records are never edited after creation except for importance decay and the
    sighting count. Reconstruction produces a new record rather than modifying an old one.
    """

    id: str = Field(..., description="Unique record identifier")
    agent_id: str = Field(..., description="Owning agent")
    timestamp: int = Field(0, description="Tick when the event was recorded")
    entity_id: Optional[str] = Field(None, description="Source entity id")
    kind: EntityKind = Field(EntityKind.RESOURCE, description="Source entity kind")
    position: Position = Field(default_factory=Position, description="Event position")
    importance: float = Field(0.5, ge=0, le=1, description="Salience (0-1), decays over time")
    fidelity: float = Field(1.0, ge=0, le=1, description="Recall accuracy (0-1)")
    context: Dict[str, Any] = Field(default_factory=dict, description="Context map")
    tags: List[str] = Field(default_factory=list, description="Unique retrieval tags")
    emotional_impact: float = Field(50.0, ge=0, le=100, description="Emotional impact (0-100)")
    # Repeat sightings inside the recent-record window bump this instead of writing a record
    occurrences: int = Field(1, ge=1, description="Times the entity was seen for this record")

    @property
    def reconstructed(self) -> bool:
        return "reconstructed" in self.tags

    def compress(self) -> Dict[str, Any]:
        """Return the compact key format used in sync payloads."""
        return {
            "id": self.id,
            "ts": self.timestamp,
            "eid": self.entity_id,
            "et": int(self.kind),
            "pos": f"{self.position.x:.1f},{self.position.y:.1f}",
            "imp": self.importance,
            "ctx": json.dumps(self.context, sort_keys=True, default=str),
            "fid": self.fidelity,
            "tags": "|".join(self.tags),
            "emo": self.emotional_impact,
            "occ": self.occurrences,
        }

    @classmethod
    def decompress(cls, agent_id: str, data: Dict[str, Any]) -> "EpisodicRecord":
        """Rebuild a record from its compressed form (positions keep one decimal)."""
        x_str, y_str = data["pos"].split(",")
        tags = [tag for tag in data.get("tags", "").split("|") if tag]
        return cls(
            id=data["id"],
            agent_id=agent_id,
            timestamp=data["ts"],
            entity_id=data.get("eid"),
            kind=EntityKind(data["et"]),
            position=Position(x=float(x_str), y=float(y_str)),
            importance=data["imp"],
            fidelity=data["fid"],
            context=json.loads(data["ctx"]) if data.get("ctx") else {},
            tags=tags,
            emotional_impact=data["emo"],
            occurrences=data.get("occ", 1),
        )


class ShortTermSlot(BaseModel):
    """One slot of the fixed-size short-term ring buffer."""

    entity_id: Optional[str] = Field(None, description="Entity held in the slot")
    kind: EntityKind = Field(EntityKind.RESOURCE, description="Entity kind")
    position: Position = Field(default_factory=Position, description="Entity position")
    timestamp: int = Field(0, description="Tick when written")
    importance: float = Field(0.0, ge=0, le=1, description="Importance at write time")
    fidelity: float = Field(1.0, ge=0, le=1, description="Fidelity of the slot")
    occupied: bool = Field(False, description="Whether the slot has ever been written")


class SemanticPattern(BaseModel):
    """A recurring regularity distilled from episodic records."""

    type: PatternType = Field(..., description="Rule kind")
    rule: str = Field(..., description="Human-readable rule description")
    confidence: float = Field(..., ge=0, le=1, description="Confidence (0-1)")
    # Weight used for count-weighted confidence merging
    source_count: int = Field(1, ge=0, description="Number of records backing the pattern")
    created: int = Field(0, description="Tick the pattern was first seen")
    last_confirmed: int = Field(0, description="Tick the pattern was last confirmed")
    evidence: List[str] = Field(default_factory=list, description="Backing record ids")

    @property
    def merge_key(self) -> str:
        # Each kind transition is its own sequence rule
        if self.type == PatternType.SEQUENCE:
            return f"{self.type.value}:{self.rule}"
        return self.type.value


# ============================================================================
# Decision Schemas
# ============================================================================


class Decision(BaseModel):
    """Goal directive produced by the decision engine."""

    type: DecisionType = Field(..., description="Directive kind")
    goal_kind: GoalKind = Field(..., description="Goal kind written to the agent")
    target_x: Optional[float] = Field(None, description="Target x coordinate")
    target_y: Optional[float] = Field(None, description="Target y coordinate")
    target_entity: Optional[str] = Field(None, description="Target entity id")
    priority: float = Field(0.0, ge=0, le=100, description="Priority (0-100)")
    # Id of the knowledge entry the directive came from (None for fallbacks)
    knowledge_id: Optional[str] = Field(None, description="Source knowledge entry id")
    knowledge_level: Optional[str] = Field(None, description="Tier of the source entry")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Extra parameters")


class TickReport(BaseModel):
    """Summary of one orchestrator tick."""

    tick: int = Field(..., ge=0, description="Tick number")
    decisions: Dict[str, Decision] = Field(default_factory=dict, description="Decision per agent")
    records_created: int = Field(0, ge=0, description="Episodic records written this tick")
    transitions: Dict[str, int] = Field(
        default_factory=dict, description="Agents that changed environment -> new environment id"
    )
    promotions: int = Field(0, ge=0, description="Knowledge entries promoted this tick")
    # Per-agent failures; the tick continues past them
    errors: Dict[str, str] = Field(default_factory=dict, description="Agent id -> error message")
