"""Helpers that find what a group of knowledge entries has in common."""

from typing import Any, Dict, List, Sequence, Tuple

from mnemoverse.knowledge.entries import (
    ConditionOperator,
    KnowledgeCondition,
    KnowledgeEntry,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _mode(values: Sequence[Any]) -> Any:
    # values may be unhashable (tuples of lists, dicts), so count by equality
    best, best_count = None, 0
    for candidate in values:
        count = sum(1 for v in values if v == candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def _majority(values: Sequence[bool]) -> bool:
    return sum(1 for v in values if v) > len(values) / 2


def common_conditions(entries: Sequence[KnowledgeEntry]) -> List[KnowledgeCondition]:
    """Conditions (same property and operator) present in every entry, generalized.

    Numeric values widen to an inclusive [min, max] range, booleans take the majority
    value, and anything else keeps its value only when every entry agrees.
    """
    if not entries:
        return []

    keys: List[Tuple[str, ConditionOperator]] = []
    for condition in entries[0].pattern.conditions:
        key = (condition.property, condition.operator)
        if key not in keys:
            keys.append(key)

    generalized: List[KnowledgeCondition] = []
    for prop, op in keys:
        found: List[KnowledgeCondition] = []
        for entry in entries:
            match = next(
                (c for c in entry.pattern.conditions if c.property == prop and c.operator == op),
                None,
            )
            if match is None:
                break
            found.append(match)
        if len(found) != len(entries):
            continue
        generalized.append(_generalize(prop, op, found))
    return generalized


def _generalize(
    prop: str, op: ConditionOperator, conditions: Sequence[KnowledgeCondition]
) -> KnowledgeCondition:
    thresholds = [c.threshold for c in conditions if c.threshold is not None]
    threshold = max(thresholds) if thresholds else None

    # Conditions that are already environment-agnostic stay that way
    if any(c.value is None and c.value_range is None for c in conditions):
        return KnowledgeCondition(property=prop, operator=op, threshold=threshold)

    lows: List[float] = []
    highs: List[float] = []
    numeric = True
    for condition in conditions:
        if condition.value_range is not None:
            lows.append(condition.value_range[0])
            highs.append(condition.value_range[1])
        elif _is_number(condition.value):
            lows.append(condition.value)
            highs.append(condition.value)
        else:
            numeric = False
            break
    if numeric:
        return KnowledgeCondition(
            property=prop, operator=op, value_range=(min(lows), max(highs)), threshold=threshold
        )

    values = [c.value for c in conditions]
    if all(isinstance(v, bool) for v in values):
        return KnowledgeCondition(
            property=prop, operator=op, value=_majority(values), threshold=threshold
        )

    first = values[0]
    common = first if all(v == first for v in values) else None
    return KnowledgeCondition(property=prop, operator=op, value=common, threshold=threshold)


def aggregate_outcome(entries: Sequence[KnowledgeEntry]) -> Dict[str, Any]:
    """Numeric outcome fields average, booleans take the majority, others the mode."""
    keys: List[str] = []
    for entry in entries:
        for key in entry.pattern.outcome:
            if key not in keys:
                keys.append(key)

    outcome: Dict[str, Any] = {}
    for key in keys:
        values = [e.pattern.outcome[key] for e in entries if key in e.pattern.outcome]
        if all(isinstance(v, bool) for v in values):
            outcome[key] = _majority(values)
        elif all(_is_number(v) for v in values):
            outcome[key] = sum(values) / len(values)
        else:
            outcome[key] = _mode(values)
    return outcome


def universal_conditions(
    entries: Sequence[KnowledgeEntry], ratio: float = 0.7
) -> List[KnowledgeCondition]:
    """Properties present in at least `ratio` of entries, with the value dropped."""
    if not entries:
        return []
    counts: Dict[str, int] = {}
    operators: Dict[str, ConditionOperator] = {}
    for entry in entries:
        seen = set()
        for condition in entry.pattern.conditions:
            if condition.property in seen:
                continue
            seen.add(condition.property)
            counts[condition.property] = counts.get(condition.property, 0) + 1
            operators.setdefault(condition.property, condition.operator)

    needed = ratio * len(entries)
    return [
        KnowledgeCondition(property=prop, operator=operators[prop], value=None)
        for prop, count in counts.items()
        if count >= needed
    ]
