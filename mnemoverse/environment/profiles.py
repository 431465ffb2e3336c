"""Environment profiles: smoothed summaries of what an agent sees in an environment."""

from typing import Dict, Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from mnemoverse.schemas import AgentState, EntityKind, FluxEffect, Percept


PROFILE_ALPHA = 0.1

KIND_LABELS = {
    EntityKind.RESOURCE: "resource",
    EntityKind.OBSTACLE: "obstacle",
    EntityKind.HAZARD: "hazard",
    EntityKind.AGENT: "agent",
}


class EnvironmentProfile(BaseModel):
    """Exponential moving averages of entity mix, spatial layout, and stability."""

    id: int = Field(..., description="Environment id")
    entity_type_distribution: Dict[str, float] = Field(
        default_factory=dict, description="Share of perceived entities per kind"
    )
    spatial_features: Dict[str, float] = Field(
        default_factory=dict, description="Density and distance features"
    )
    stability_metrics: Dict[str, float] = Field(
        default_factory=dict, description="Flux and reality-wave activity"
    )
    visit_count: int = Field(0, ge=0, description="Ticks spent in this environment")
    last_updated: int = Field(0, description="Tick of the last update")


def snapshot_features(
    agent: AgentState,
    percepts: Sequence[Percept],
    reality_wave_active: bool = False,
    perception_capacity: int = 10,
) -> Dict[str, Dict[str, float]]:
    """Instantaneous feature values for one tick of perception."""
    total = len(percepts)
    distribution = {label: 0.0 for label in KIND_LABELS.values()}
    for percept in percepts:
        label = KIND_LABELS.get(percept.kind)
        if label is not None:
            distribution[label] += 1.0
    if total:
        distribution = {label: count / total for label, count in distribution.items()}

    mean_distance = sum(p.distance for p in percepts) / total if total else 0.0
    spatial = {
        "density": min(1.0, total / perception_capacity),
        "mean_distance": mean_distance,
    }

    fluxed = sum(1 for p in percepts if p.flux_effect != FluxEffect.NONE)
    stability = {
        "agent_flux": 1.0 if agent.flux_effect != FluxEffect.NONE else 0.0,
        "entity_flux": fluxed / total if total else 0.0,
        "reality_wave": 1.0 if reality_wave_active else 0.0,
    }
    return {
        "entity_type_distribution": distribution,
        "spatial_features": spatial,
        "stability_metrics": stability,
    }


def _blend(current: Dict[str, float], observed: Dict[str, float], alpha: float) -> Dict[str, float]:
    blended = dict(current)
    for key, value in observed.items():
        previous = current.get(key)
        blended[key] = value if previous is None else previous * (1 - alpha) + value * alpha
    return blended


def update_profile(
    profile: EnvironmentProfile,
    features: Dict[str, Dict[str, float]],
    tick: int,
    alpha: float = PROFILE_ALPHA,
) -> EnvironmentProfile:
    """Fold one tick of features into the profile. The first visit copies them as-is."""
    if profile.visit_count == 0:
        profile.entity_type_distribution = dict(features["entity_type_distribution"])
        profile.spatial_features = dict(features["spatial_features"])
        profile.stability_metrics = dict(features["stability_metrics"])
    else:
        profile.entity_type_distribution = _blend(
            profile.entity_type_distribution, features["entity_type_distribution"], alpha
        )
        profile.spatial_features = _blend(profile.spatial_features, features["spatial_features"], alpha)
        profile.stability_metrics = _blend(
            profile.stability_metrics, features["stability_metrics"], alpha
        )
    profile.visit_count += 1
    profile.last_updated = tick
    return profile


def _feature_similarity(a: float, b: float) -> float:
    scale = max(abs(a), abs(b))
    if scale == 0:
        return 1.0
    return max(0.0, 1.0 - abs(a - b) / scale)


def _group_scores(left: Dict[str, float], right: Dict[str, float]) -> Iterable[float]:
    for key in sorted(set(left) | set(right)):
        yield _feature_similarity(left.get(key, 0.0), right.get(key, 0.0))


def profile_similarity(a: EnvironmentProfile, b: EnvironmentProfile) -> Optional[float]:
    """Mean normalized similarity over every compared feature (1.0 = identical)."""
    scores = [
        *_group_scores(a.entity_type_distribution, b.entity_type_distribution),
        *_group_scores(a.spatial_features, b.spatial_features),
        *_group_scores(a.stability_metrics, b.stability_metrics),
    ]
    if not scores:
        return None
    return sum(scores) / len(scores)
