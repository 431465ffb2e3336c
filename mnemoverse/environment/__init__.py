"""Environment detection, profiling, and similarity for Mnemoverse agents."""

from .profiles import EnvironmentProfile, profile_similarity, snapshot_features, update_profile
from .tracker import (
    FLUX_ENVIRONMENT_BASE,
    AgentEnvironmentState,
    EnvironmentTracker,
    EnvironmentTransition,
    detect_environment_id,
    is_flux_environment,
)

__all__ = [
    "EnvironmentProfile",
    "profile_similarity",
    "snapshot_features",
    "update_profile",
    "FLUX_ENVIRONMENT_BASE",
    "AgentEnvironmentState",
    "EnvironmentTracker",
    "EnvironmentTransition",
    "detect_environment_id",
    "is_flux_environment",
]
