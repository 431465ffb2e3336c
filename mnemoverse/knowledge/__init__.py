"""Cross-environment knowledge: entries, generalization helpers, and the tiered hierarchy."""

from .entries import (
    ConditionOperator,
    KnowledgeCondition,
    KnowledgeEntry,
    KnowledgeLevel,
    KnowledgeMatch,
    KnowledgePattern,
    KnowledgeType,
)
from .generalize import aggregate_outcome, common_conditions, universal_conditions
from .hierarchy import KnowledgeHierarchy, build_low_level_pattern, knowledge_type_for

__all__ = [
    "ConditionOperator",
    "KnowledgeCondition",
    "KnowledgeEntry",
    "KnowledgeLevel",
    "KnowledgeMatch",
    "KnowledgePattern",
    "KnowledgeType",
    "aggregate_outcome",
    "common_conditions",
    "universal_conditions",
    "KnowledgeHierarchy",
    "build_low_level_pattern",
    "knowledge_type_for",
]
