"""
Semantic distillation: turning episodic records into weighted rules.

SemanticDistiller is a pure function of its input records. SemanticMemory holds one
agent's merged pattern set plus concept associations and merges each distillation
cycle into it.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

from mnemoverse.config import MemoryOptions
from mnemoverse.schemas import EntityKind, EpisodicRecord, PatternType, SemanticPattern


PROXIMITY_DISTANCE = 15.0
PROXIMITY_TIME_WINDOW = 10
PROXIMITY_MIN_CONFIDENCE = 0.3
CLUSTER_DISTANCE = 20.0
CLUSTER_MIN_NEIGHBORS = 2
CLUSTER_MIN_CONFIDENCE = 0.4
SHIFT_DISTANCE = 20.0
SEQUENCE_MIN_OCCURRENCES = 2  # strictly more than this
TRANSITION_GAP = 20
ASSOCIATION_SCALE = 0.3


def _distance(a: EpisodicRecord, b: EpisodicRecord) -> float:
    return math.hypot(a.position.x - b.position.x, a.position.y - b.position.y)


def _chronological(records: Sequence[EpisodicRecord]) -> List[EpisodicRecord]:
    return sorted(records, key=lambda r: r.timestamp)


def _cluster_neighbors(record: EpisodicRecord, resources: Sequence[EpisodicRecord]) -> int:
    """Sightings within cluster distance of `record`, excluding one for itself."""
    nearby = sum(
        other.occurrences
        for other in resources
        if other.id != record.id and _distance(record, other) < CLUSTER_DISTANCE
    )
    return nearby + record.occurrences - 1


class SemanticDistiller:
    """Extract proximity, clustering, shift-stability, and sequence patterns."""

    def distill(self, records: Sequence[EpisodicRecord]) -> List[SemanticPattern]:
        if not records:
            return []
        patterns: List[SemanticPattern] = []
        patterns.extend(self.resource_patterns(records))
        patterns.extend(self.hazard_patterns(records))
        patterns.extend(self.sequence_patterns(records))
        return patterns

    def proximity_evidence(
        self,
        references: Sequence[EpisodicRecord],
        candidates: Sequence[EpisodicRecord],
        target_kind: EntityKind,
    ) -> List[str]:
        """Ids of reference records with a target-kind neighbor close in space and time."""
        evidence: List[str] = []
        for record in references:
            for other in candidates:
                if other.id == record.id or other.kind != target_kind:
                    continue
                if (
                    abs(other.timestamp - record.timestamp) < PROXIMITY_TIME_WINDOW
                    and _distance(record, other) < PROXIMITY_DISTANCE
                ):
                    evidence.append(record.id)
                    break
        return evidence

    def resource_patterns(self, records: Sequence[EpisodicRecord]) -> List[SemanticPattern]:
        """Proximity and clustering patterns, counting every sighting of a resource.

        A record seen n times counts as n resources at its position, so its own
        repeat sightings are cluster neighbors of each other.
        """
        resources = [r for r in records if r.kind == EntityKind.RESOURCE]
        sightings = sum(r.occurrences for r in resources)
        if sightings < 3:
            return []
        latest = max(r.timestamp for r in records)
        patterns: List[SemanticPattern] = []

        # Obstacle neighbors come from the full record set; resources alone never have any
        evidence = self.proximity_evidence(resources, records, EntityKind.OBSTACLE)
        near = set(evidence)
        confidence = sum(r.occurrences for r in resources if r.id in near) / sightings
        if confidence > PROXIMITY_MIN_CONFIDENCE:
            patterns.append(
                SemanticPattern(
                    type=PatternType.RESOURCE_OBSTACLE_PROXIMITY,
                    rule="Resources are often near obstacles",
                    confidence=confidence,
                    source_count=sightings,
                    created=latest,
                    last_confirmed=latest,
                    evidence=evidence,
                )
            )

        clustered = [
            record
            for record in resources
            if _cluster_neighbors(record, resources) >= CLUSTER_MIN_NEIGHBORS
        ]
        confidence = sum(r.occurrences for r in clustered) / sightings
        if confidence > CLUSTER_MIN_CONFIDENCE:
            patterns.append(
                SemanticPattern(
                    type=PatternType.RESOURCE_CLUSTERING,
                    rule="Resources tend to cluster",
                    confidence=confidence,
                    source_count=sightings,
                    created=latest,
                    last_confirmed=latest,
                    evidence=[r.id for r in clustered],
                )
            )
        return patterns

    def hazard_patterns(self, records: Sequence[EpisodicRecord]) -> List[SemanticPattern]:
        hazards = [r for r in records if r.kind == EntityKind.HAZARD]
        if len(hazards) < 2:
            return []
        shifts = [r for r in _chronological(records) if r.context.get("reality_shift")]
        if not shifts:
            return []
        shift_time = shifts[0].timestamp
        before = [h for h in hazards if h.timestamp < shift_time]
        after = [h for h in hazards if h.timestamp >= shift_time]
        if not before:
            return []

        moved = sum(
            1 for b in before if any(_distance(a, b) > SHIFT_DISTANCE for a in after)
        )
        ratio = moved / len(before)
        latest = max(r.timestamp for r in records)
        rule = (
            "Hazards often relocate during shifts"
            if ratio > 0.7
            else "Hazards tend to stay stable"
        )
        return [
            SemanticPattern(
                type=PatternType.HAZARD_SHIFT_STABILITY,
                rule=rule,
                confidence=min(0.5 + ratio * 0.5, 0.95),
                source_count=len(before),
                created=latest,
                last_confirmed=latest,
                evidence=[b.id for b in before],
            )
        ]

    def sequence_patterns(self, records: Sequence[EpisodicRecord]) -> List[SemanticPattern]:
        ordered = _chronological(records)
        if len(ordered) < 2:
            return []
        counts: Dict[str, int] = {}
        evidence: Dict[str, List[str]] = {}
        for prev, curr in zip(ordered, ordered[1:]):
            key = f"{int(prev.kind)}->{int(curr.kind)}"
            counts[key] = counts.get(key, 0) + 1
            evidence.setdefault(key, []).append(curr.id)

        latest = ordered[-1].timestamp
        transitions = len(ordered) - 1
        return [
            SemanticPattern(
                type=PatternType.SEQUENCE,
                rule=key,
                confidence=min(1.0, count / transitions),
                source_count=count,
                created=latest,
                last_confirmed=latest,
                evidence=evidence[key],
            )
            for key, count in counts.items()
            if count > SEQUENCE_MIN_OCCURRENCES
        ]


class SemanticMemory:
    """One agent's merged pattern set and concept associations."""

    def __init__(
        self,
        options: Optional[MemoryOptions] = None,
        distiller: Optional[SemanticDistiller] = None,
    ) -> None:
        self.options = options or MemoryOptions()
        self.distiller = distiller or SemanticDistiller()
        self.patterns: List[SemanticPattern] = []
        self.associations: Dict[Tuple[str, str], float] = {}
        self.confidence: Dict[str, float] = {}
        self.last_updated = 0
        self.version = 1

    def add_pattern(self, pattern: SemanticPattern) -> SemanticPattern:
        """Merge a pattern into the set.

        Patterns with the same merge key combine confidence by source-count weighted
        average; evidence ids accumulate without duplicates. When the set is full the
        lowest-confidence pattern is dropped.
        """
        existing = next((p for p in self.patterns if p.merge_key == pattern.merge_key), None)
        if existing is not None:
            total = existing.source_count + pattern.source_count
            if total > 0:
                existing.confidence = (
                    existing.confidence * existing.source_count
                    + pattern.confidence * pattern.source_count
                ) / total
            existing.source_count = total
            existing.last_confirmed = pattern.last_confirmed
            seen = set(existing.evidence)
            existing.evidence.extend(e for e in pattern.evidence if e not in seen)
            return existing

        stored = pattern.model_copy(deep=True)
        self.patterns.append(stored)
        if len(self.patterns) > self.options.max_semantic_patterns:
            weakest = min(self.patterns, key=lambda p: p.confidence)
            self.patterns.remove(weakest)
        return stored

    def add_association(self, concept_a: str, concept_b: str, strength: float = 0.5) -> float:
        current = self.associations.get((concept_a, concept_b), 0.0)
        updated = min(1.0, current + strength * ASSOCIATION_SCALE)
        self.associations[(concept_a, concept_b)] = updated
        self.associations[(concept_b, concept_a)] = updated
        return updated

    def get_association(self, concept_a: str, concept_b: str) -> float:
        return self.associations.get((concept_a, concept_b), 0.0)

    def get_confidence(self, concept: str) -> float:
        return self.confidence.get(concept, 0.0)

    def update_from_episodic(
        self, records: Sequence[EpisodicRecord], timestamp: int
    ) -> List[SemanticPattern]:
        """Distill `records`, merge the result, and refresh associations."""
        if not records:
            return []
        distilled = self.distiller.distill(records)
        for pattern in distilled:
            self.add_pattern(pattern)
        self._update_associations(records)
        self.last_updated = timestamp
        self.version += 1
        return distilled

    def _update_associations(self, records: Sequence[EpisodicRecord]) -> None:
        resources = [r for r in records if r.kind == EntityKind.RESOURCE]
        if sum(r.occurrences for r in resources) >= 3:
            near_obstacles = self.distiller.proximity_evidence(
                resources, records, EntityKind.OBSTACLE
            )
            for _ in near_obstacles:
                self.add_association(
                    f"type_{int(EntityKind.RESOURCE)}", f"type_{int(EntityKind.OBSTACLE)}", 0.3
                )

        ordered = _chronological(records)
        for prev, curr in zip(ordered, ordered[1:]):
            if curr.timestamp - prev.timestamp < TRANSITION_GAP:
                key = f"{int(prev.kind)}->{int(curr.kind)}"
                self.add_association(key, f"seq_{prev.timestamp}", 0.4)
                self.confidence[key] = self.confidence.get(key, 0.0) + 0.1

    def find_relevant_patterns(self, type_filter: Optional[str] = None) -> List[SemanticPattern]:
        threshold = self.options.pattern_confidence_threshold
        relevant = [
            p
            for p in self.patterns
            if p.confidence >= threshold and (not type_filter or type_filter in p.type.value)
        ]
        return sorted(relevant, key=lambda p: p.confidence, reverse=True)
