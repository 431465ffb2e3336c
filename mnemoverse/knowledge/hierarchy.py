"""
Three-tier knowledge hierarchy.

Low-level entries are learned directly from recent, important experiences and only
hold in the environment they were learned in. Periodic generalization promotes
groups of confident low-level entries to a mid-level entry per knowledge type, and
mid-level entries seen across several environments to a universal high-level entry.
All tiers decay with elapsed time and are discounted when the agent moves into a
dissimilar environment.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from mnemoverse.config import KnowledgeOptions
from mnemoverse.knowledge.entries import (
    ConditionOperator,
    KnowledgeCondition,
    KnowledgeEntry,
    KnowledgeLevel,
    KnowledgeMatch,
    KnowledgePattern,
    KnowledgeType,
)
from mnemoverse.knowledge.generalize import (
    aggregate_outcome,
    common_conditions,
    universal_conditions,
)
from mnemoverse.schemas import EntityKind, EpisodicRecord


LEVELS = (KnowledgeLevel.LOW, KnowledgeLevel.MID, KnowledgeLevel.HIGH)

KIND_TO_KNOWLEDGE = {
    EntityKind.RESOURCE: KnowledgeType.RESOURCE_LOCATION,
    EntityKind.OBSTACLE: KnowledgeType.OBSTACLE_PROPERTIES,
    EntityKind.HAZARD: KnowledgeType.HAZARD_BEHAVIOR,
    EntityKind.AGENT: KnowledgeType.AGENT_INTERACTION,
}

KIND_NAMES = {
    EntityKind.RESOURCE: "resource",
    EntityKind.OBSTACLE: "obstacle",
    EntityKind.HAZARD: "hazard",
    EntityKind.AGENT: "agent",
}

POSITION_NEAR_THRESHOLD = 20.0
HAZARD_DISTANCE_THRESHOLD = 25.0


def knowledge_type_for(record: EpisodicRecord) -> Optional[KnowledgeType]:
    if record.kind == EntityKind.SYNTHETIC:
        if record.context.get("reality_shift"):
            return KnowledgeType.REALITY_FLUX_EFFECT
        return None
    return KIND_TO_KNOWLEDGE.get(record.kind)


def build_low_level_pattern(record: EpisodicRecord, ktype: KnowledgeType) -> KnowledgePattern:
    """Conditions and outcome describing a single experience."""
    in_flux = bool(record.context.get("reality_shift"))
    conditions: List[KnowledgeCondition] = []
    kind_name = KIND_NAMES.get(record.kind)
    if kind_name is not None:
        conditions.append(
            KnowledgeCondition(
                property=f"{kind_name}_visible", operator=ConditionOperator.EQUALS, value=True
            )
        )
    conditions.append(
        KnowledgeCondition(
            property="position",
            operator=ConditionOperator.NEAR,
            value=(record.position.x, record.position.y),
            threshold=POSITION_NEAR_THRESHOLD,
        )
    )
    conditions.append(
        KnowledgeCondition(
            property="reality_flux", operator=ConditionOperator.EQUALS, value=in_flux
        )
    )
    if record.kind == EntityKind.HAZARD:
        conditions.append(
            KnowledgeCondition(
                property="nearest_hazard_distance",
                operator=ConditionOperator.LESS_THAN,
                value=HAZARD_DISTANCE_THRESHOLD,
            )
        )

    outcome: Dict[str, Any] = {
        "target_x": record.position.x,
        "target_y": record.position.y,
        "importance": record.importance,
        "entity_kind": int(record.kind),
        "approach": record.kind != EntityKind.HAZARD,
    }
    return KnowledgePattern(type=ktype, conditions=conditions, outcome=outcome)


class KnowledgeHierarchy:
    """One agent's low/mid/high knowledge tiers."""

    def __init__(self, options: Optional[KnowledgeOptions] = None) -> None:
        self.options = options or KnowledgeOptions()
        self.tiers: Dict[KnowledgeLevel, List[KnowledgeEntry]] = {level: [] for level in LEVELS}
        self.last_generalization = 0
        self._last_decay_time: Optional[int] = None
        self._ingested: set[str] = set()

    # ------------------------------------------------------------------
    # Tier access
    # ------------------------------------------------------------------

    def capacity(self, level: KnowledgeLevel) -> int:
        return {
            KnowledgeLevel.LOW: self.options.low_capacity,
            KnowledgeLevel.MID: self.options.mid_capacity,
            KnowledgeLevel.HIGH: self.options.high_capacity,
        }[level]

    def entries(self, level: KnowledgeLevel) -> List[KnowledgeEntry]:
        return list(self.tiers[level])

    def all_entries(self) -> List[KnowledgeEntry]:
        return [entry for level in LEVELS for entry in self.tiers[level]]

    def counts(self) -> Dict[str, int]:
        return {level.value: len(self.tiers[level]) for level in LEVELS}

    def get_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        return next((e for e in self.all_entries() if e.id == entry_id), None)

    @property
    def ingested_ids(self) -> frozenset:
        return frozenset(self._ingested)

    def top_entries(self, level: KnowledgeLevel, limit: int = 3) -> List[KnowledgeEntry]:
        return sorted(self.tiers[level], key=lambda e: e.confidence, reverse=True)[:limit]

    def insert(self, entry: KnowledgeEntry) -> Optional[KnowledgeEntry]:
        """Add an entry to its tier, evicting the weakest entry when the tier is full.

        Ties on confidence evict the entry inserted first.

        Returns:
            The evicted entry, if any
        """
        tier = self.tiers[entry.level]
        evicted = None
        if len(tier) >= self.capacity(entry.level):
            evicted = min(tier, key=lambda e: e.confidence)
            tier.remove(evicted)
        tier.append(entry)
        return evicted

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_experiences(
        self,
        records: Iterable[EpisodicRecord],
        environment_id: int,
        tick: int,
    ) -> List[KnowledgeEntry]:
        """Learn low-level entries from recent, important records not seen before.

        An experience close to an existing entry of the same type in the same
        environment reinforces that entry instead of creating a new one. `records` is
        the agent's current log; ids that are no longer in it are forgotten.
        """
        records = list(records)
        # Forget ids of records that have left the log
        self._ingested.intersection_update(r.id for r in records)
        touched: List[KnowledgeEntry] = []
        for record in records:
            if record.id in self._ingested:
                continue
            if tick - record.timestamp >= self.options.experience_window:
                continue
            if record.importance <= self.options.experience_importance:
                continue
            ktype = knowledge_type_for(record)
            if ktype is None:
                continue
            self._ingested.add(record.id)
            env = record.context.get("environment_id", environment_id)

            existing = self._find_similar_low(ktype, env, record)
            if existing is not None:
                existing.add_instance(record.id, self.options.max_instances)
                existing.last_used = tick
                existing.confidence = max(existing.confidence, existing.calculate_confidence())
                touched.append(existing)
                continue

            entry = KnowledgeEntry(
                pattern=build_low_level_pattern(record, ktype),
                level=KnowledgeLevel.LOW,
                confidence=min(1.0, record.importance * record.fidelity),
                instances=[record.id],
                environment_ids=[env],
                created=tick,
                last_used=tick,
            )
            self.insert(entry)
            touched.append(entry)
        return touched

    def _find_similar_low(
        self, ktype: KnowledgeType, environment_id: int, record: EpisodicRecord
    ) -> Optional[KnowledgeEntry]:
        radius = self.options.reinforcement_radius
        for entry in self.tiers[KnowledgeLevel.LOW]:
            if entry.type != ktype or environment_id not in entry.environment_ids:
                continue
            tx = entry.pattern.outcome.get("target_x")
            ty = entry.pattern.outcome.get("target_y")
            if tx is None or ty is None:
                continue
            dx, dy = tx - record.position.x, ty - record.position.y
            if (dx * dx + dy * dy) ** 0.5 <= radius:
                return entry
        return None

    # ------------------------------------------------------------------
    # Generalization
    # ------------------------------------------------------------------

    def generalize(self, tick: int, known_environments: Iterable[int] = ()) -> List[KnowledgeEntry]:
        """Run low->mid then mid->high promotion. Returns promoted or merged entries."""
        promoted = self.promote_low_to_mid(tick)
        promoted.extend(self.promote_mid_to_high(tick, known_environments))
        self.last_generalization = tick
        return promoted

    def _group_by_type(
        self, entries: Sequence[KnowledgeEntry]
    ) -> Dict[KnowledgeType, List[KnowledgeEntry]]:
        groups: Dict[KnowledgeType, List[KnowledgeEntry]] = {}
        for entry in entries:
            groups.setdefault(entry.type, []).append(entry)
        return groups

    def promote_low_to_mid(self, tick: int) -> List[KnowledgeEntry]:
        opts = self.options
        promoted: List[KnowledgeEntry] = []
        for ktype, group in self._group_by_type(self.tiers[KnowledgeLevel.LOW]).items():
            if len(group) < opts.abstraction_instance_threshold:
                continue
            confident = [e for e in group if e.confidence >= opts.abstraction_confidence_threshold]
            if len(confident) < opts.min_confident_low_entries:
                continue
            promoted.append(self._merge_into(KnowledgeLevel.MID, ktype, confident, tick))
        return promoted

    def promote_mid_to_high(
        self, tick: int, known_environments: Iterable[int] = ()
    ) -> List[KnowledgeEntry]:
        opts = self.options
        known = list(known_environments)
        promoted: List[KnowledgeEntry] = []
        for ktype, group in self._group_by_type(self.tiers[KnowledgeLevel.MID]).items():
            qualifying = [e for e in group if e.confidence >= opts.abstraction_confidence_threshold]
            if len(qualifying) < opts.min_confident_mid_entries:
                continue
            total_instances = sum(len(e.instances) for e in qualifying)
            if total_instances < opts.abstraction_instance_threshold:
                continue
            environments = {env for e in qualifying for env in e.environment_ids}
            if len(environments) < opts.min_high_environments:
                continue

            conditions = universal_conditions(qualifying, opts.universal_condition_ratio)
            outcome = aggregate_outcome(qualifying)
            confidence = sum(e.confidence for e in qualifying) / len(qualifying)
            all_envs = sorted(environments.union(known))

            existing = next((e for e in self.tiers[KnowledgeLevel.HIGH] if e.type == ktype), None)
            if existing is not None:
                existing.pattern = KnowledgePattern(
                    type=ktype, conditions=conditions, outcome=outcome
                )
                existing.confidence = min(1.0, (existing.confidence + confidence) / 2)
                for env in all_envs:
                    existing.add_environment(env)
                for source in qualifying:
                    existing.add_instance(source.id, opts.max_instances)
                existing.last_used = tick
                promoted.append(existing)
                continue

            entry = KnowledgeEntry(
                pattern=KnowledgePattern(type=ktype, conditions=conditions, outcome=outcome),
                level=KnowledgeLevel.HIGH,
                confidence=min(1.0, confidence),
                instances=[e.id for e in qualifying],
                environment_ids=all_envs,
                universal_principle=True,
                created=tick,
                last_used=tick,
            )
            self.insert(entry)
            promoted.append(entry)
        return promoted

    def _merge_into(
        self,
        level: KnowledgeLevel,
        ktype: KnowledgeType,
        sources: Sequence[KnowledgeEntry],
        tick: int,
    ) -> KnowledgeEntry:
        confidence = sum(e.confidence for e in sources) / len(sources)
        environments: List[int] = []
        for source in sources:
            for env in source.environment_ids:
                if env not in environments:
                    environments.append(env)

        existing = next((e for e in self.tiers[level] if e.type == ktype), None)
        if existing is not None:
            merged = [existing, *sources]
            existing.pattern = KnowledgePattern(
                type=ktype,
                conditions=common_conditions(merged),
                outcome=aggregate_outcome(merged),
            )
            existing.confidence = min(1.0, (existing.confidence + confidence) / 2)
            for env in environments:
                existing.add_environment(env)
            for source in sources:
                existing.add_instance(source.id, self.options.max_instances)
            existing.last_used = tick
            return existing

        entry = KnowledgeEntry(
            pattern=KnowledgePattern(
                type=ktype,
                conditions=common_conditions(sources),
                outcome=aggregate_outcome(sources),
            ),
            level=level,
            confidence=min(1.0, confidence),
            instances=[e.id for e in sources],
            environment_ids=environments,
            created=tick,
            last_used=tick,
        )
        self.insert(entry)
        return entry

    # ------------------------------------------------------------------
    # Decay and adaptation
    # ------------------------------------------------------------------

    def decay(self, current_time: int) -> int:
        """Reduce confidence by elapsed time and prune weak entries.

        Each tier loses rate * tier multiplier * elapsed / time unit since the previous
        call; the first call only records the time.

        Returns:
            Number of entries pruned
        """
        if self._last_decay_time is None:
            self._last_decay_time = current_time
            return 0
        elapsed = current_time - self._last_decay_time
        if elapsed <= 0:
            return 0
        self._last_decay_time = current_time

        opts = self.options
        pruned = 0
        for level in LEVELS:
            amount = (
                opts.decay_rate
                * opts.decay_multipliers.get(level.value, 1.0)
                * elapsed
                / opts.decay_time_unit
            )
            kept: List[KnowledgeEntry] = []
            for entry in self.tiers[level]:
                entry.confidence = max(0.0, entry.confidence - amount)
                if entry.confidence < opts.minimum_confidence:
                    pruned += 1
                else:
                    kept.append(entry)
            self.tiers[level] = kept
        return pruned

    def adapt_knowledge(self, new_environment_id: int, similarity: float) -> int:
        """Discount entries not learned in the new environment.

        Confidence is multiplied by (1 - (1 - similarity) * tier weight); low-level
        knowledge is discounted hardest.

        Returns:
            Number of entries discounted
        """
        factor = 1.0 - similarity
        affected = 0
        for level in LEVELS:
            weight = self.options.adaptation_weights.get(level.value, 0.0)
            for entry in self.tiers[level]:
                if new_environment_id in entry.environment_ids:
                    continue
                entry.confidence = max(0.0, entry.confidence * (1.0 - factor * weight))
                affected += 1
        return affected

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def find_applicable_knowledge(
        self,
        level: KnowledgeLevel,
        context: Any,
        environment_id: Optional[int] = None,
    ) -> List[KnowledgeMatch]:
        """Entries of a tier usable in this context, best match first."""
        if environment_id is None:
            environment_id = getattr(context, "environment_id", None)
        opts = self.options
        matches: List[KnowledgeMatch] = []
        for entry in self.tiers[level]:
            if entry.confidence < opts.minimum_confidence:
                continue
            if not entry.is_applicable_in_environment(environment_id, opts.validation_threshold):
                continue
            score = entry.calculate_match_confidence(context)
            if score >= opts.validation_threshold:
                matches.append(KnowledgeMatch(entry=entry, match_confidence=min(1.0, score)))
        matches.sort(key=lambda m: m.match_confidence, reverse=True)
        return matches
