"""
Mnemoverse Configuration

Loads configuration from environment variables with sensible defaults.
Component option models are built from these defaults and injected into
each subsystem; algorithms never read Config directly.
"""

import os
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file if it exists
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration loaded from environment variables."""

    # Short-term / episodic memory
    SHORT_TERM_CAPACITY: int = int(os.getenv("SHORT_TERM_CAPACITY", "10"))
    SPATIAL_CELL_SIZE: float = float(os.getenv("SPATIAL_CELL_SIZE", "10"))
    MEMORY_DECAY_RATE: float = float(os.getenv("MEMORY_DECAY_RATE", "0.05"))
    # Records decayed below this importance are removed from the logs
    IMPORTANCE_FLOOR: float = float(os.getenv("IMPORTANCE_FLOOR", "0.1"))
    CONSOLIDATION_INTERVAL: int = int(os.getenv("CONSOLIDATION_INTERVAL", "100"))
    CONSOLIDATION_IMPORTANCE: float = float(os.getenv("CONSOLIDATION_IMPORTANCE", "0.7"))
    RECENT_RECORD_WINDOW: int = int(os.getenv("RECENT_RECORD_WINDOW", "10"))

    # Semantic distillation
    SEMANTIC_UPDATE_INTERVAL: int = int(os.getenv("SEMANTIC_UPDATE_INTERVAL", "50"))
    # New records or repeat sightings that trigger an early distillation
    SEMANTIC_PENDING_THRESHOLD: int = int(os.getenv("SEMANTIC_PENDING_THRESHOLD", "3"))
    PATTERN_CONFIDENCE_THRESHOLD: float = float(os.getenv("PATTERN_CONFIDENCE_THRESHOLD", "0.7"))
    MAX_SEMANTIC_PATTERNS: int = int(os.getenv("MAX_SEMANTIC_PATTERNS", "50"))

    # Cross-environment knowledge
    LOW_LEVEL_CAPACITY: int = int(os.getenv("LOW_LEVEL_CAPACITY", "20"))
    MID_LEVEL_CAPACITY: int = int(os.getenv("MID_LEVEL_CAPACITY", "15"))
    HIGH_LEVEL_CAPACITY: int = int(os.getenv("HIGH_LEVEL_CAPACITY", "10"))
    ABSTRACTION_CONFIDENCE_THRESHOLD: float = float(os.getenv("ABSTRACTION_CONFIDENCE_THRESHOLD", "0.6"))
    ABSTRACTION_INSTANCE_THRESHOLD: int = int(os.getenv("ABSTRACTION_INSTANCE_THRESHOLD", "5"))
    KNOWLEDGE_DECAY_RATE: float = float(os.getenv("KNOWLEDGE_DECAY_RATE", "0.05"))
    KNOWLEDGE_DECAY_TIME_UNIT: float = float(os.getenv("KNOWLEDGE_DECAY_TIME_UNIT", "100"))
    ADAPTATION_LEARNING_RATE: float = float(os.getenv("ADAPTATION_LEARNING_RATE", "0.2"))
    MINIMUM_KNOWLEDGE_CONFIDENCE: float = float(os.getenv("MINIMUM_KNOWLEDGE_CONFIDENCE", "0.2"))
    GENERALIZATION_INTERVAL: int = int(os.getenv("GENERALIZATION_INTERVAL", "50"))
    VALIDATION_THRESHOLD: float = float(os.getenv("VALIDATION_THRESHOLD", "0.7"))
    ENVIRONMENT_TRANSITION_THRESHOLD: float = float(os.getenv("ENVIRONMENT_TRANSITION_THRESHOLD", "0.6"))
    MAX_ENVIRONMENT_CACHE: int = int(os.getenv("MAX_ENVIRONMENT_CACHE", "5"))
    EXPERIENCE_WINDOW: int = int(os.getenv("EXPERIENCE_WINDOW", "100"))
    EXPERIENCE_IMPORTANCE: float = float(os.getenv("EXPERIENCE_IMPORTANCE", "0.5"))

    # Temporal patterns / reconstruction
    MAX_TEMPORAL_PATTERNS: int = int(os.getenv("MAX_TEMPORAL_PATTERNS", "20"))
    MIN_PATTERN_INSTANCES: int = int(os.getenv("MIN_PATTERN_INSTANCES", "3"))
    PATTERN_DETECTION_THRESHOLD: float = float(os.getenv("PATTERN_DETECTION_THRESHOLD", "0.65"))
    MEMORY_RECONSTRUCTION_INTERVAL: int = int(os.getenv("MEMORY_RECONSTRUCTION_INTERVAL", "50"))

    # Cloud sync (best-effort telemetry, off by default)
    ENABLE_CLOUD_SYNC: bool = _env_bool("ENABLE_CLOUD_SYNC", False)
    API_ENDPOINT: str | None = os.getenv("API_ENDPOINT", "http://localhost:5001/api")
    MEMORY_SYNC_INTERVAL: int = int(os.getenv("MEMORY_SYNC_INTERVAL", "10"))
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "50"))
    RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "1.0"))
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    SYNC_TIMEOUT_SECONDS: float = float(os.getenv("SYNC_TIMEOUT_SECONDS", "10.0"))

    # Simulation
    DEFAULT_TICK_COUNT: int = int(os.getenv("DEFAULT_TICK_COUNT", "100"))
    WORLD_CENTER: float = float(os.getenv("WORLD_CENTER", "50"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.ENABLE_CLOUD_SYNC and not cls.API_ENDPOINT:
            raise ValueError(
                "API_ENDPOINT is required when ENABLE_CLOUD_SYNC is set. "
                "Set it to the telemetry endpoint (e.g., http://localhost:5001/api)"
            )

        if cls.SHORT_TERM_CAPACITY <= 0:
            raise ValueError("SHORT_TERM_CAPACITY must be >= 1")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Mnemoverse Configuration:",
            f"  Short-term capacity: {cls.SHORT_TERM_CAPACITY}",
            f"  Knowledge tiers (low/mid/high): {cls.LOW_LEVEL_CAPACITY}/{cls.MID_LEVEL_CAPACITY}/{cls.HIGH_LEVEL_CAPACITY}",
            f"  Generalization interval: {cls.GENERALIZATION_INTERVAL} ticks",
            f"  Consolidation interval: {cls.CONSOLIDATION_INTERVAL} ticks",
            f"  Cloud sync: {'on' if cls.ENABLE_CLOUD_SYNC else 'off'} ({cls.API_ENDPOINT})",
        ]
        return "\n".join(lines)


class MemoryOptions(BaseModel):
    """Episodic store and semantic distillation settings."""

    short_term_capacity: int = Field(default_factory=lambda: Config.SHORT_TERM_CAPACITY, ge=1)
    spatial_cell_size: float = Field(default_factory=lambda: Config.SPATIAL_CELL_SIZE, gt=0)
    decay_rate: float = Field(default_factory=lambda: Config.MEMORY_DECAY_RATE, ge=0)
    importance_floor: float = Field(default_factory=lambda: Config.IMPORTANCE_FLOOR, ge=0, le=1)
    # Physically remove records that decayed below the floor
    prune_decayed: bool = True
    consolidation_interval: int = Field(default_factory=lambda: Config.CONSOLIDATION_INTERVAL, ge=1)
    consolidation_importance: float = Field(default_factory=lambda: Config.CONSOLIDATION_IMPORTANCE)
    recent_record_window: int = Field(default_factory=lambda: Config.RECENT_RECORD_WINDOW, ge=0)
    semantic_update_interval: int = Field(default_factory=lambda: Config.SEMANTIC_UPDATE_INTERVAL, ge=1)
    semantic_pending_threshold: int = Field(default_factory=lambda: Config.SEMANTIC_PENDING_THRESHOLD, ge=1)
    pattern_confidence_threshold: float = Field(default_factory=lambda: Config.PATTERN_CONFIDENCE_THRESHOLD)
    max_semantic_patterns: int = Field(default_factory=lambda: Config.MAX_SEMANTIC_PATTERNS, ge=1)
    # Quadrant boundary used for location tags
    world_center: float = Field(default_factory=lambda: Config.WORLD_CENTER)


class KnowledgeOptions(BaseModel):
    """Knowledge hierarchy and environment tracking settings."""

    low_capacity: int = Field(default_factory=lambda: Config.LOW_LEVEL_CAPACITY, ge=1)
    mid_capacity: int = Field(default_factory=lambda: Config.MID_LEVEL_CAPACITY, ge=1)
    high_capacity: int = Field(default_factory=lambda: Config.HIGH_LEVEL_CAPACITY, ge=1)
    abstraction_confidence_threshold: float = Field(default_factory=lambda: Config.ABSTRACTION_CONFIDENCE_THRESHOLD)
    abstraction_instance_threshold: int = Field(default_factory=lambda: Config.ABSTRACTION_INSTANCE_THRESHOLD, ge=1)
    # Confident entries required among a promotion group
    min_confident_low_entries: int = 3
    min_confident_mid_entries: int = 1
    min_high_environments: int = 2
    universal_condition_ratio: float = 0.7
    decay_rate: float = Field(default_factory=lambda: Config.KNOWLEDGE_DECAY_RATE, ge=0)
    decay_time_unit: float = Field(default_factory=lambda: Config.KNOWLEDGE_DECAY_TIME_UNIT, gt=0)
    decay_multipliers: dict[str, float] = Field(
        default_factory=lambda: {"low": 1.2, "mid": 1.0, "high": 0.8}
    )
    adaptation_weights: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.7, "mid": 0.4, "high": 0.1}
    )
    adaptation_learning_rate: float = Field(default_factory=lambda: Config.ADAPTATION_LEARNING_RATE)
    minimum_confidence: float = Field(default_factory=lambda: Config.MINIMUM_KNOWLEDGE_CONFIDENCE)
    generalization_interval: int = Field(default_factory=lambda: Config.GENERALIZATION_INTERVAL, ge=1)
    validation_threshold: float = Field(default_factory=lambda: Config.VALIDATION_THRESHOLD)
    transition_threshold: float = Field(default_factory=lambda: Config.ENVIRONMENT_TRANSITION_THRESHOLD)
    max_environment_cache: int = Field(default_factory=lambda: Config.MAX_ENVIRONMENT_CACHE, ge=1)
    experience_window: int = Field(default_factory=lambda: Config.EXPERIENCE_WINDOW, ge=1)
    experience_importance: float = Field(default_factory=lambda: Config.EXPERIENCE_IMPORTANCE)
    # Radius within which a new experience reinforces an existing low-level entry
    reinforcement_radius: float = 15.0
    max_instances: int = 50
    world_center: float = Field(default_factory=lambda: Config.WORLD_CENTER)


class TemporalOptions(BaseModel):
    """Temporal pattern and memory reconstruction settings."""

    max_patterns: int = Field(default_factory=lambda: Config.MAX_TEMPORAL_PATTERNS, ge=1)
    min_events: int = Field(default_factory=lambda: Config.MIN_PATTERN_INSTANCES, ge=2)
    detection_threshold: float = Field(default_factory=lambda: Config.PATTERN_DETECTION_THRESHOLD)
    recent_events: int = 10
    reconstruction_interval: int = Field(default_factory=lambda: Config.MEMORY_RECONSTRUCTION_INTERVAL, ge=1)
    max_reconstructions: int = 10


class SyncOptions(BaseModel):
    """Cloud sync transport settings."""

    enabled: bool = Field(default_factory=lambda: Config.ENABLE_CLOUD_SYNC)
    endpoint: str | None = Field(default_factory=lambda: Config.API_ENDPOINT)
    interval: int = Field(default_factory=lambda: Config.MEMORY_SYNC_INTERVAL, ge=1)
    batch_size: int = Field(default_factory=lambda: Config.BATCH_SIZE, ge=1)
    retry_delay_seconds: float = Field(default_factory=lambda: Config.RETRY_DELAY_SECONDS, ge=0)
    max_retries: int = Field(default_factory=lambda: Config.MAX_RETRIES, ge=1)
    timeout_seconds: float = Field(default_factory=lambda: Config.SYNC_TIMEOUT_SECONDS, gt=0)
