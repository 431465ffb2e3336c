"""Tests for environment-driven configuration and option models."""

import pytest
from pydantic import ValidationError

from mnemoverse.config import (
    Config,
    KnowledgeOptions,
    MemoryOptions,
    SyncOptions,
    TemporalOptions,
)


def test_option_defaults_come_from_config():
    memory = MemoryOptions()
    knowledge = KnowledgeOptions()
    temporal = TemporalOptions()
    sync = SyncOptions()

    assert memory.short_term_capacity == Config.SHORT_TERM_CAPACITY
    assert memory.decay_rate == Config.MEMORY_DECAY_RATE
    assert knowledge.low_capacity == Config.LOW_LEVEL_CAPACITY
    assert knowledge.transition_threshold == Config.ENVIRONMENT_TRANSITION_THRESHOLD
    assert temporal.reconstruction_interval == Config.MEMORY_RECONSTRUCTION_INTERVAL
    assert sync.max_retries == Config.MAX_RETRIES


def test_fixed_knowledge_tables():
    knowledge = KnowledgeOptions()

    assert knowledge.decay_multipliers == {"low": 1.2, "mid": 1.0, "high": 0.8}
    assert knowledge.adaptation_weights == {"low": 0.7, "mid": 0.4, "high": 0.1}
    assert knowledge.min_confident_low_entries == 3


def test_options_reject_invalid_values():
    with pytest.raises(ValidationError):
        MemoryOptions(short_term_capacity=0)
    with pytest.raises(ValidationError):
        SyncOptions(batch_size=0)


def test_validate_requires_endpoint_when_sync_enabled(monkeypatch):
    monkeypatch.setattr(Config, "ENABLE_CLOUD_SYNC", True)
    monkeypatch.setattr(Config, "API_ENDPOINT", None)

    with pytest.raises(ValueError, match="API_ENDPOINT"):
        Config.validate()


def test_validate_passes_with_sync_disabled(monkeypatch):
    monkeypatch.setattr(Config, "ENABLE_CLOUD_SYNC", False)
    monkeypatch.setattr(Config, "API_ENDPOINT", None)

    Config.validate()


def test_display_lists_key_settings():
    text = Config.display()

    assert text.startswith("Mnemoverse Configuration:")
    assert "Short-term capacity" in text
    assert "Cloud sync" in text
