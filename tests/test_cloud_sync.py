"""Tests for best-effort background sync of records and patterns."""

from urllib import error

import pytest

from mnemoverse import sync as sync_module
from mnemoverse.config import SyncOptions
from mnemoverse.schemas import EpisodicRecord, PatternType, SemanticPattern
from mnemoverse.sync import (
    CloudSync,
    HttpSyncTransport,
    InMemorySyncTransport,
    SyncError,
)


def options(**overrides) -> SyncOptions:
    values = {"enabled": True, "retry_delay_seconds": 0, "max_retries": 3, "batch_size": 2}
    values.update(overrides)
    return SyncOptions(**values)


def make_records(*importances):
    return [
        EpisodicRecord(id=f"r{i}", agent_id="a1", timestamp=i, importance=importance)
        for i, importance in enumerate(importances)
    ]


def test_disabled_sync_schedules_nothing():
    sync = CloudSync(SyncOptions(enabled=False))

    assert sync.enabled is False
    assert sync.schedule("a1", make_records(0.5), tick=1) == []


def test_enabled_sync_requires_endpoint():
    with pytest.raises(ValueError, match="endpoint"):
        CloudSync(SyncOptions(enabled=True, endpoint=None))


def test_enabled_sync_builds_http_transport():
    sync = CloudSync(SyncOptions(enabled=True, endpoint="http://sync.local/api/"))

    assert isinstance(sync.transport, HttpSyncTransport)
    assert sync.transport.endpoint == "http://sync.local/api"


@pytest.mark.asyncio
async def test_batches_are_sorted_by_importance():
    transport = InMemorySyncTransport()
    sync = CloudSync(options(), transport)

    tasks = sync.schedule("a1", make_records(0.2, 0.9, 0.5), tick=7)
    await sync.drain()

    assert len(tasks) == 2
    assert sync.sent_batches == 2
    paths = [path for path, _ in transport.posts]
    assert paths == ["memory/a1/episodic", "memory/a1/episodic"]
    first_batch = transport.posts[0][1]
    assert first_batch["tick"] == 7
    assert [m["id"] for m in first_batch["memories"]] == ["r1", "r2"]
    assert [m["id"] for m in transport.posts[1][1]["memories"]] == ["r0"]


@pytest.mark.asyncio
async def test_records_are_only_scheduled_once():
    transport = InMemorySyncTransport()
    sync = CloudSync(options(), transport)
    records = make_records(0.5)

    sync.schedule("a1", records, tick=1)
    assert sync.schedule("a1", records, tick=2) == []
    await sync.drain()

    assert len(transport.posts) == 1


@pytest.mark.asyncio
async def test_pattern_snapshot_is_posted():
    transport = InMemorySyncTransport()
    sync = CloudSync(options(), transport)
    pattern = SemanticPattern(
        type=PatternType.RESOURCE_CLUSTERING, rule="Resources tend to cluster", confidence=0.8
    )

    sync.schedule("a1", [], tick=3, patterns=[pattern])
    await sync.drain()

    path, payload = transport.posts[0]
    assert path == "memory/a1/semantic"
    assert payload["patterns"][0]["type"] == "resource_clustering"


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    transport = InMemorySyncTransport(fail_times=2)
    sync = CloudSync(options(max_retries=3), transport)

    sync.schedule("a1", make_records(0.5), tick=1)
    await sync.drain()

    assert transport.attempts == 3
    assert sync.sent_batches == 1
    assert sync.dropped_batches == 0


@pytest.mark.asyncio
async def test_exhausted_retries_drop_the_batch(capsys):
    transport = InMemorySyncTransport(fail_times=5)
    sync = CloudSync(options(max_retries=3), transport)

    sync.schedule("a1", make_records(0.5), tick=1)
    await sync.drain()

    assert transport.attempts == 3
    assert transport.posts == []
    assert sync.dropped_batches == 1
    assert "Dropping sync batch" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_http_transport_joins_endpoint_and_path(monkeypatch):
    calls = []

    def fake_post(url, payload, timeout):
        calls.append((url, payload, timeout))

    monkeypatch.setattr(sync_module, "_perform_post", fake_post)
    transport = HttpSyncTransport("http://sync.local/api/", timeout=2.5)

    await transport.post("/memory/a1/episodic", {"tick": 1})

    assert calls == [("http://sync.local/api/memory/a1/episodic", {"tick": 1}, 2.5)]


def test_perform_post_wraps_network_errors(monkeypatch):
    def unreachable(req, timeout):
        raise error.URLError("connection refused")

    monkeypatch.setattr(sync_module.request, "urlopen", unreachable)

    with pytest.raises(SyncError, match="Could not reach"):
        sync_module._perform_post("http://sync.local/api/x", {"tick": 1}, 1.0)


@pytest.mark.asyncio
async def test_scheduled_ids_follow_the_current_record_set():
    transport = InMemorySyncTransport()
    sync = CloudSync(options(batch_size=50), transport)
    records = make_records(0.5, 0.6, 0.7)

    sync.schedule("a1", records, tick=1)
    assert sync.scheduled_ids("a1") == {"r0", "r1", "r2"}

    # r0 and r1 were pruned from the store
    sync.schedule("a1", records[2:], tick=2)
    await sync.drain()

    assert sync.scheduled_ids("a1") == {"r2"}
    assert len(transport.posts) == 1
