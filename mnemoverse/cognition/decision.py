"""
Knowledge-driven decisions.

The engine looks for applicable knowledge tier by tier (high, then mid, then low),
turns the best match into a goal directive, and falls back to simple perception
rules when no knowledge applies. Memories nudge the priority: a remembered hazard
nearby or an emotionally similar failure makes the directive more urgent.

Applying a decision writes the agent's goal fields. On the following call the
goal's completion is fed back into the knowledge entry that produced it.
"""

import math
import random
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from mnemoverse.config import KnowledgeOptions
from mnemoverse.knowledge import (
    KnowledgeHierarchy,
    KnowledgeLevel,
    KnowledgeMatch,
    KnowledgeType,
)
from mnemoverse.memory import EpisodicView
from mnemoverse.schemas import (
    AgentState,
    Decision,
    DecisionType,
    EntityKind,
    FluxEffect,
    GoalKind,
    Percept,
)


TIER_PRECEDENCE = (KnowledgeLevel.HIGH, KnowledgeLevel.MID, KnowledgeLevel.LOW)

KNOWLEDGE_TO_DECISION = {
    KnowledgeType.RESOURCE_LOCATION: DecisionType.SEEK_RESOURCE,
    KnowledgeType.HAZARD_BEHAVIOR: DecisionType.AVOID_HAZARD,
    KnowledgeType.OBSTACLE_PROPERTIES: DecisionType.NAVIGATE_OBSTACLE,
    KnowledgeType.AGENT_INTERACTION: DecisionType.INTERACT_AGENT,
    KnowledgeType.REALITY_FLUX_EFFECT: DecisionType.ADAPT_FLUX,
}

# Base priority per directive, scaled by match confidence
KNOWLEDGE_PRIORITY = {
    DecisionType.SEEK_RESOURCE: 60.0,
    DecisionType.AVOID_HAZARD: 80.0,
    DecisionType.NAVIGATE_OBSTACLE: 50.0,
    DecisionType.INTERACT_AGENT: 40.0,
    DecisionType.ADAPT_FLUX: 70.0,
}

KNOWLEDGE_FLEE_DISTANCE = 20.0
FALLBACK_FLEE_DISTANCE = 15.0
EXPLORE_DISTANCE = 10.0
HAZARD_MEMORY_RADIUS = 20.0
SUCCESS_COMPLETION = 50.0


class DecisionContext(BaseModel):
    """What the agent knows about its surroundings when deciding.

    Knowledge conditions read these fields by name through lookup(); a field that
    is None counts as missing.
    """

    environment_id: Optional[int] = Field(None, description="Current environment id")
    position: Tuple[float, float] = Field((0.0, 0.0), description="Agent position")
    emotional_state: float = Field(50.0, description="Agent emotional state")
    adaptability: float = Field(50.0, description="Agent adaptability")
    goal_kind: GoalKind = Field(GoalKind.EXPLORE, description="Goal kind before deciding")
    reality_flux: bool = Field(False, description="Whether a flux effect is active")
    flux_effect: int = Field(0, description="Active flux effect value")
    reality_wave_active: bool = Field(False, description="Global reality wave flag")
    resource_visible: bool = False
    obstacle_visible: bool = False
    hazard_visible: bool = False
    agent_visible: bool = False
    nearest_resource_distance: Optional[float] = None
    nearest_obstacle_distance: Optional[float] = None
    nearest_hazard_distance: Optional[float] = None
    nearest_agent_distance: Optional[float] = None
    percepts: List[Percept] = Field(default_factory=list, description="This tick's percepts")
    extras: Dict[str, Any] = Field(default_factory=dict, description="Host-provided properties")

    def lookup(self, prop: str) -> Tuple[bool, Any]:
        if prop != "percepts" and prop in type(self).model_fields:
            value = getattr(self, prop)
            return value is not None, value
        if prop in self.extras:
            return True, self.extras[prop]
        return False, None

    def nearest(self, kind: EntityKind) -> Optional[Percept]:
        candidates = [p for p in self.percepts if p.kind == kind]
        return min(candidates, key=lambda p: p.distance) if candidates else None


KIND_FIELDS = {
    EntityKind.RESOURCE: "resource",
    EntityKind.OBSTACLE: "obstacle",
    EntityKind.HAZARD: "hazard",
    EntityKind.AGENT: "agent",
}


def build_decision_context(
    agent: AgentState,
    percepts: Sequence[Percept],
    environment_id: Optional[int] = None,
    *,
    reality_wave_active: bool = False,
    extras: Optional[Dict[str, Any]] = None,
) -> DecisionContext:
    values: Dict[str, Any] = {}
    for kind, name in KIND_FIELDS.items():
        seen = [p.distance for p in percepts if p.kind == kind]
        values[f"{name}_visible"] = bool(seen)
        values[f"nearest_{name}_distance"] = min(seen) if seen else None
    return DecisionContext(
        environment_id=environment_id,
        position=agent.position.as_tuple(),
        emotional_state=agent.emotional_state,
        adaptability=agent.adaptability,
        goal_kind=agent.goal.kind,
        reality_flux=agent.flux_effect != FluxEffect.NONE,
        flux_effect=int(agent.flux_effect),
        reality_wave_active=reality_wave_active,
        percepts=list(percepts),
        extras=dict(extras or {}),
        **values,
    )


HierarchyResolver = Callable[[str], Optional[KnowledgeHierarchy]]


class DecisionEngine:
    """Turns knowledge and perception into goal directives."""

    def __init__(
        self,
        memory: Optional[EpisodicView] = None,
        knowledge: Optional[HierarchyResolver] = None,
        options: Optional[KnowledgeOptions] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.memory = memory
        self.knowledge = knowledge
        self.options = options or KnowledgeOptions()
        self.rng = rng or random.Random()
        # agent_id -> (knowledge_id, environment_id) of the last knowledge-driven directive
        self._pending: Dict[str, Tuple[str, Optional[int]]] = {}

    def _hierarchy(self, agent_id: str) -> Optional[KnowledgeHierarchy]:
        return self.knowledge(agent_id) if self.knowledge is not None else None

    # ------------------------------------------------------------------
    # Deciding
    # ------------------------------------------------------------------

    def decide(self, agent_id: str, agent: AgentState, context: DecisionContext) -> Decision:
        decision: Optional[Decision] = None
        hierarchy = self._hierarchy(agent_id)
        if hierarchy is not None:
            for level in TIER_PRECEDENCE:
                for match in hierarchy.find_applicable_knowledge(level, context):
                    decision = self._from_knowledge(match, agent, context)
                    if decision is not None:
                        break
                if decision is not None:
                    break

        if decision is None:
            decision = self._fallback(agent, context)

        bias = self.memory_bias(agent_id, agent)
        decision.priority = min(100.0, max(0.0, decision.priority + bias))
        if bias:
            decision.parameters["memory_bias"] = bias
        return decision

    def _from_knowledge(
        self, match: KnowledgeMatch, agent: AgentState, context: DecisionContext
    ) -> Optional[Decision]:
        entry = match.entry
        decision_type = KNOWLEDGE_TO_DECISION[entry.type]
        priority = KNOWLEDGE_PRIORITY[decision_type] * match.match_confidence
        outcome = entry.pattern.outcome
        remembered = _outcome_target(outcome)
        x, y = agent.position.x, agent.position.y
        common = {
            "type": decision_type,
            "priority": priority,
            "knowledge_id": entry.id,
            "knowledge_level": entry.level.value,
            "parameters": {"match_confidence": match.match_confidence},
        }

        if decision_type == DecisionType.SEEK_RESOURCE:
            resource = context.nearest(EntityKind.RESOURCE)
            if resource is not None:
                return Decision(
                    goal_kind=GoalKind.RESOURCE,
                    target_x=resource.position.x,
                    target_y=resource.position.y,
                    target_entity=resource.entity_id,
                    **common,
                )
            if remembered is None:
                return None
            return Decision(
                goal_kind=GoalKind.RESOURCE, target_x=remembered[0], target_y=remembered[1], **common
            )

        if decision_type == DecisionType.AVOID_HAZARD:
            hazard = context.nearest(EntityKind.HAZARD)
            source = hazard.position.as_tuple() if hazard is not None else remembered
            if source is None:
                return None
            tx, ty = self._flee(x, y, source, KNOWLEDGE_FLEE_DISTANCE)
            return Decision(goal_kind=GoalKind.AVOID_HAZARD, target_x=tx, target_y=ty, **common)

        if decision_type == DecisionType.NAVIGATE_OBSTACLE:
            obstacle = context.nearest(EntityKind.OBSTACLE)
            anchor = obstacle.position.as_tuple() if obstacle is not None else remembered
            if anchor is None:
                return None
            angle = self.rng.random() * math.pi * 2
            offset = 5 + self.rng.random() * 5
            return Decision(
                goal_kind=GoalKind.RESOURCE,
                target_x=anchor[0] + math.cos(angle) * offset,
                target_y=anchor[1] + math.sin(angle) * offset,
                **common,
            )

        if decision_type == DecisionType.INTERACT_AGENT:
            other = context.nearest(EntityKind.AGENT)
            if other is not None:
                return Decision(
                    goal_kind=GoalKind.SOCIAL,
                    target_x=other.position.x,
                    target_y=other.position.y,
                    target_entity=other.entity_id,
                    **common,
                )
            if remembered is None:
                return None
            return Decision(
                goal_kind=GoalKind.SOCIAL, target_x=remembered[0], target_y=remembered[1], **common
            )

        # Flux: hold position until the effect settles
        common["parameters"]["flux_effect"] = context.flux_effect
        return Decision(goal_kind=GoalKind.EXPLORE, target_x=x, target_y=y, **common)

    def _fallback(self, agent: AgentState, context: DecisionContext) -> Decision:
        preferred = {
            GoalKind.RESOURCE: self._seek_resource,
            GoalKind.AVOID_HAZARD: self._avoid_hazard,
            GoalKind.SOCIAL: self._approach_agent,
        }.get(agent.goal.kind)
        if preferred is not None:
            decision = preferred(agent, context)
            if decision is not None:
                return decision

        decision = self._avoid_hazard(agent, context) or self._seek_resource(agent, context)
        if decision is None and context.agent_visible and self.rng.random() < 0.2:
            decision = self._approach_agent(agent, context)
        return decision or self._explore(agent)

    def _seek_resource(self, agent: AgentState, context: DecisionContext) -> Optional[Decision]:
        resource = context.nearest(EntityKind.RESOURCE)
        if resource is None:
            return None
        return Decision(
            type=DecisionType.SEEK_RESOURCE,
            goal_kind=GoalKind.RESOURCE,
            target_x=resource.position.x,
            target_y=resource.position.y,
            target_entity=resource.entity_id,
            priority=50.0,
        )

    def _avoid_hazard(self, agent: AgentState, context: DecisionContext) -> Optional[Decision]:
        hazard = context.nearest(EntityKind.HAZARD)
        if hazard is None:
            return None
        tx, ty = self._flee(
            agent.position.x, agent.position.y, hazard.position.as_tuple(), FALLBACK_FLEE_DISTANCE
        )
        return Decision(
            type=DecisionType.AVOID_HAZARD,
            goal_kind=GoalKind.AVOID_HAZARD,
            target_x=tx,
            target_y=ty,
            priority=70.0,
        )

    def _approach_agent(self, agent: AgentState, context: DecisionContext) -> Optional[Decision]:
        other = context.nearest(EntityKind.AGENT)
        if other is None:
            return None
        return Decision(
            type=DecisionType.INTERACT_AGENT,
            goal_kind=GoalKind.SOCIAL,
            target_x=other.position.x,
            target_y=other.position.y,
            target_entity=other.entity_id,
            priority=30.0,
        )

    def _explore(self, agent: AgentState) -> Decision:
        angle = self.rng.random() * math.pi * 2
        return Decision(
            type=DecisionType.EXPLORE,
            goal_kind=GoalKind.EXPLORE,
            target_x=agent.position.x + math.cos(angle) * EXPLORE_DISTANCE,
            target_y=agent.position.y + math.sin(angle) * EXPLORE_DISTANCE,
            priority=20.0,
        )

    def _flee(
        self, x: float, y: float, source: Tuple[float, float], distance: float
    ) -> Tuple[float, float]:
        dx, dy = x - source[0], y - source[1]
        norm = math.hypot(dx, dy)
        if norm == 0:
            angle = self.rng.random() * math.pi * 2
            return x + math.cos(angle) * distance, y + math.sin(angle) * distance
        return x + dx / norm * distance, y + dy / norm * distance

    def memory_bias(self, agent_id: str, agent: AgentState) -> float:
        """Extra priority from remembered hazards nearby and similar past failures."""
        if self.memory is None:
            return 0.0
        bias = 0.0
        nearby = self.memory.records_near(
            agent_id, agent.position.x, agent.position.y, HAZARD_MEMORY_RADIUS
        )
        if any(r.kind == EntityKind.HAZARD for r in nearby):
            bias += 20.0
        for record in self.memory.get_long_term(agent_id):
            if abs(record.emotional_impact - agent.emotional_state) >= 10:
                continue
            success = record.context.get("success")
            if success is not None and success < 50:
                bias += 10.0
                break
        return bias

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    @staticmethod
    def apply_decision(agent: AgentState, decision: Decision) -> None:
        goal = agent.goal
        if (goal.kind, goal.target_x, goal.target_y, goal.target_entity) != (
            decision.goal_kind,
            decision.target_x,
            decision.target_y,
            decision.target_entity,
        ):
            # A new goal starts from zero completion
            goal.completion_percentage = 0.0
        agent.goal.kind = decision.goal_kind
        agent.goal.target_x = decision.target_x
        agent.goal.target_y = decision.target_y
        agent.goal.target_entity = decision.target_entity
        agent.goal.priority = decision.priority

    def apply_knowledge_to_decisions(
        self,
        agent_id: str,
        agent: AgentState,
        context: DecisionContext,
        tick: Optional[int] = None,
    ) -> Decision:
        """Judge the previous directive, then decide and write the new goal.

        The previous knowledge-driven directive is judged from the host-reported
        completion of the goal it set (> 50%), so the host gets one tick to act on
        a goal before it counts. The returned decision carries that verdict under
        ``feedback`` (knowledge_id, success, transfer) when there was one.
        """
        feedback = self.evaluate_pending(agent_id, agent, tick)

        decision = self.decide(agent_id, agent, context)
        self.apply_decision(agent, decision)
        if feedback is not None:
            decision.parameters["feedback"] = feedback

        if decision.knowledge_id is not None:
            self._pending[agent_id] = (decision.knowledge_id, context.environment_id)
        return decision

    def evaluate_pending(
        self, agent_id: str, agent: AgentState, tick: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """Feed the current goal completion back into the entry that set the goal."""
        pending = self._pending.pop(agent_id, None)
        hierarchy = self._hierarchy(agent_id)
        if pending is None or hierarchy is None:
            return None
        knowledge_id, environment_id = pending
        entry = hierarchy.get_entry(knowledge_id)
        if entry is None:
            return None

        success = agent.goal.completion_percentage > SUCCESS_COMPLETION
        # Transfer means the entry was used outside the environments it was learned in
        transfer = environment_id is not None and environment_id not in entry.environment_ids
        entry.record_application(success, environment_id, tick)
        return {"knowledge_id": knowledge_id, "success": success, "transfer": transfer}


def _outcome_target(outcome: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    tx, ty = outcome.get("target_x"), outcome.get("target_y")
    if isinstance(tx, (int, float)) and isinstance(ty, (int, float)):
        return float(tx), float(ty)
    return None
