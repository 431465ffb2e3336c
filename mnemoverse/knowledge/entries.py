"""
Knowledge entries and condition matching.

A KnowledgeEntry pairs a pattern (a type, a list of conditions over decision
context properties, and an outcome map) with bookkeeping: the tier it lives in,
its confidence, the instances and environments it was learned from, and how well
it worked when applied.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field


class KnowledgeLevel(str, Enum):
    LOW = "low"
    MID = "mid"
    HIGH = "high"


class KnowledgeType(str, Enum):
    RESOURCE_LOCATION = "resource_location"
    HAZARD_BEHAVIOR = "hazard_behavior"
    OBSTACLE_PROPERTIES = "obstacle_properties"
    AGENT_INTERACTION = "agent_interaction"
    REALITY_FLUX_EFFECT = "reality_flux_effect"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    NEAR = "near"


class ContextLookup(Protocol):
    """Anything that can resolve a condition property to a value."""

    def lookup(self, prop: str) -> Tuple[bool, Any]:
        """Return (found, value) for a property name."""
        ...


_MISSING = object()


def _resolve(context: Any, prop: str) -> Any:
    if hasattr(context, "lookup"):
        found, value = context.lookup(prop)
        return value if found else _MISSING
    if isinstance(context, dict):
        return context.get(prop, _MISSING)
    return _MISSING


def _as_point(value: Any) -> Optional[Tuple[float, float]]:
    if isinstance(value, dict) and "x" in value and "y" in value:
        return float(value["x"]), float(value["y"])
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return float(value[0]), float(value[1])
    if hasattr(value, "x") and hasattr(value, "y"):
        return float(value.x), float(value.y)
    return None


class KnowledgeCondition(BaseModel):
    """One predicate over a decision-context property.

    A condition whose value is None (and has no range) is environment-agnostic and
    matches any context. A property missing from the context never matches.
    """

    property: str = Field(..., description="Context property the condition reads")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Comparison value; None matches everywhere")
    # Generalized numeric conditions carry an inclusive [min, max] range instead of a value
    value_range: Optional[Tuple[float, float]] = Field(None, description="Inclusive range")
    threshold: Optional[float] = Field(None, description="Distance threshold for `near`")

    def matches(self, context: Any) -> bool:
        if self.value is None and self.value_range is None:
            return True
        actual = _resolve(context, self.property)
        if actual is _MISSING or actual is None:
            return False
        if self.value_range is not None:
            return self._matches_range(actual)
        return self._matches_value(actual)

    def _matches_range(self, actual: Any) -> bool:
        low, high = self.value_range
        if not isinstance(actual, (int, float)) or isinstance(actual, bool):
            return False
        op = self.operator
        if op == ConditionOperator.EQUALS or op == ConditionOperator.NEAR:
            return low <= actual <= high
        if op == ConditionOperator.NOT_EQUALS:
            return not (low <= actual <= high)
        if op == ConditionOperator.GREATER_THAN:
            return actual > low
        if op == ConditionOperator.LESS_THAN:
            return actual < high
        if op == ConditionOperator.CONTAINS:
            return False
        raise ValueError(f"Unknown condition operator: {op!r}")

    def _matches_value(self, actual: Any) -> bool:
        op = self.operator
        expected = self.value
        try:
            if op == ConditionOperator.EQUALS:
                return actual == expected
            if op == ConditionOperator.NOT_EQUALS:
                return actual != expected
            if op == ConditionOperator.GREATER_THAN:
                return actual > expected
            if op == ConditionOperator.LESS_THAN:
                return actual < expected
            if op == ConditionOperator.CONTAINS:
                return expected in actual
            if op == ConditionOperator.NEAR:
                a, b = _as_point(actual), _as_point(expected)
                if a is None or b is None:
                    return abs(float(actual) - float(expected)) < (self.threshold or 0.0)
                dx, dy = a[0] - b[0], a[1] - b[1]
                return (dx * dx + dy * dy) ** 0.5 < (self.threshold or 0.0)
        except (TypeError, ValueError):
            # Incomparable or non-numeric values are a non-match
            return False
        raise ValueError(f"Unknown condition operator: {op!r}")


class KnowledgePattern(BaseModel):
    type: KnowledgeType = Field(..., description="What the knowledge is about")
    conditions: List[KnowledgeCondition] = Field(default_factory=list)
    outcome: Dict[str, Any] = Field(default_factory=dict, description="Expected outcome values")


class KnowledgeEntry(BaseModel):
    """A unit of generalized knowledge in one tier of the hierarchy."""

    id: str = Field(default_factory=lambda: f"k-{uuid4().hex[:12]}", description="Entry id")
    pattern: KnowledgePattern = Field(..., description="Conditions and outcome")
    level: KnowledgeLevel = Field(KnowledgeLevel.LOW, description="Abstraction tier")
    confidence: float = Field(0.5, ge=0, le=1, description="Confidence (0-1)")
    # Instances are the record ids (low) or entry ids (mid/high) the entry was built from
    instances: List[str] = Field(default_factory=list, description="Source instance ids")
    environment_ids: List[int] = Field(default_factory=list, description="Environments seen in")
    application_count: int = Field(0, ge=0, description="Times applied to a decision")
    success_count: int = Field(0, ge=0, description="Applications judged successful")
    transfer_success: Dict[int, Tuple[int, int]] = Field(
        default_factory=dict, description="Environment id -> (applications, successes)"
    )
    universal_principle: bool = Field(False, description="Applies in every environment")
    created: int = Field(0, description="Tick of creation")
    last_used: int = Field(0, description="Tick of last application or reinforcement")

    @property
    def type(self) -> KnowledgeType:
        return self.pattern.type

    @property
    def application_factor(self) -> float:
        if self.application_count == 0:
            return 0.5
        return self.success_count / self.application_count

    @property
    def instance_factor(self) -> float:
        return min(1.0, len(self.instances) / 5)

    @property
    def environment_factor(self) -> float:
        return min(1.0, len(self.environment_ids) / 3)

    def calculate_confidence(self) -> float:
        value = (
            0.4 * self.instance_factor
            + 0.2 * self.environment_factor
            + 0.4 * self.application_factor
        )
        return min(1.0, max(0.0, value))

    def add_environment(self, environment_id: int) -> None:
        if environment_id not in self.environment_ids:
            self.environment_ids.append(environment_id)

    def add_instance(self, instance_id: str, max_instances: int = 50) -> None:
        if instance_id in self.instances:
            return
        self.instances.append(instance_id)
        if len(self.instances) > max_instances:
            del self.instances[0]

    def record_application(
        self, success: bool, environment_id: Optional[int] = None, tick: Optional[int] = None
    ) -> float:
        """Count an application, update transfer stats, and recompute confidence."""
        self.application_count += 1
        if success:
            self.success_count += 1
        if environment_id is not None:
            applied, succeeded = self.transfer_success.get(environment_id, (0, 0))
            self.transfer_success[environment_id] = (applied + 1, succeeded + int(success))
        if tick is not None:
            self.last_used = tick
        self.confidence = self.calculate_confidence()
        return self.confidence

    def average_transfer_success(self) -> Optional[float]:
        """Mean success rate over environments the entry was not learned in."""
        rates = [
            s / a
            for env, (a, s) in self.transfer_success.items()
            if a > 0 and env not in self.environment_ids
        ]
        if not rates:
            return None
        return sum(rates) / len(rates)

    def is_applicable_in_environment(
        self, environment_id: Optional[int], validation_threshold: float = 0.7
    ) -> bool:
        if self.level == KnowledgeLevel.HIGH:
            return True
        if self.level == KnowledgeLevel.MID:
            if environment_id in self.environment_ids:
                return True
            average = self.average_transfer_success()
            return average is None or average >= validation_threshold
        # Low-level knowledge only holds where it was learned
        return bool(self.environment_ids) and environment_id == self.environment_ids[0]

    def calculate_match_confidence(self, context: Any) -> float:
        """Entry confidence scaled by the fraction of conditions the context satisfies."""
        conditions = self.pattern.conditions
        if not conditions:
            return self.confidence
        satisfied = sum(1 for condition in conditions if condition.matches(context))
        return self.confidence * (satisfied / len(conditions))


class KnowledgeMatch(BaseModel):
    entry: KnowledgeEntry
    match_confidence: float = Field(..., ge=0, le=1)
