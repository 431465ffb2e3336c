"""
Best-effort cloud sync of episodic records and semantic snapshots.

Sync is telemetry, not a correctness dependency: batches are scheduled as
background tasks that the tick never waits on, retried with a delay that grows
by a fixed step per attempt, and dropped with a warning once retries run out.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Set
from urllib import error, request

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from mnemoverse.config import SyncOptions
from mnemoverse.logging_utils import log_error, log_warning
from mnemoverse.schemas import EpisodicRecord, SemanticPattern


class SyncError(RuntimeError):
    """Raised when a sync transport fails to deliver a payload."""


class SyncTransport(ABC):
    """Delivers one JSON payload to a path under the sync endpoint."""

    @abstractmethod
    async def post(self, path: str, payload: Dict[str, Any]) -> None:
        """Send the payload.

        Raises:
            SyncError: If delivery fails (the caller retries)
        """
        pass


def _perform_post(url: str, payload: Dict[str, Any], timeout: float) -> None:
    """Execute the blocking HTTP POST."""

    data = json.dumps(payload, default=str).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            resp.read()
    except error.HTTPError as exc:
        raise SyncError(f"Sync request to {url} failed with status {exc.code}: {exc.reason}") from exc
    except error.URLError as exc:
        raise SyncError(f"Could not reach sync endpoint {url}: {exc.reason}") from exc
    except TimeoutError as exc:
        raise SyncError(f"Sync request to {url} timed out") from exc


class HttpSyncTransport(SyncTransport):
    """POSTs JSON payloads with urllib on a worker thread."""

    def __init__(self, endpoint: str, timeout: float = 10.0) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    async def post(self, path: str, payload: Dict[str, Any]) -> None:
        url = f"{self.endpoint}/{path.lstrip('/')}"
        await asyncio.to_thread(_perform_post, url, payload, self.timeout)


class InMemorySyncTransport(SyncTransport):
    """Collects payloads in memory. Can be told to fail the first N posts."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.attempts = 0
        self.posts: List[tuple[str, Dict[str, Any]]] = []

    async def post(self, path: str, payload: Dict[str, Any]) -> None:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise SyncError(f"simulated failure {self.attempts}/{self.fail_times}")
        self.posts.append((path, payload))


class CloudSync:
    """Schedules background sync batches for each agent."""

    def __init__(
        self,
        options: Optional[SyncOptions] = None,
        transport: Optional[SyncTransport] = None,
    ) -> None:
        self.options = options or SyncOptions()
        if transport is None and self.options.enabled:
            if not self.options.endpoint:
                raise ValueError("SyncOptions.endpoint is required when sync is enabled")
            transport = HttpSyncTransport(self.options.endpoint, self.options.timeout_seconds)
        self.transport = transport
        self.sent_batches = 0
        self.dropped_batches = 0
        self._scheduled: Dict[str, Set[str]] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.options.enabled and self.transport is not None

    def scheduled_ids(self, agent_id: str) -> Set[str]:
        return set(self._scheduled.get(agent_id, ()))

    def unsynced(self, agent_id: str, records: Sequence[EpisodicRecord]) -> List[EpisodicRecord]:
        """Records not yet scheduled, most important first."""
        seen = self._scheduled.get(agent_id, set())
        pending = [r for r in records if r.id not in seen]
        return sorted(pending, key=lambda r: r.importance, reverse=True)

    def schedule(
        self,
        agent_id: str,
        records: Sequence[EpisodicRecord],
        tick: int,
        patterns: Sequence[SemanticPattern] = (),
    ) -> List[asyncio.Task]:
        """Create background tasks for unsynced records and a pattern snapshot.

        `records` is the agent's full current record set. Must be called from a
        running event loop. Records are marked as scheduled immediately; a batch
        that exhausts its retries is not re-sent.
        """
        if not self.enabled:
            return []
        loop = asyncio.get_running_loop()
        created: List[asyncio.Task] = []

        seen = self._scheduled.setdefault(agent_id, set())
        # Forget ids of records the store no longer holds
        seen.intersection_update(r.id for r in records)
        pending = self.unsynced(agent_id, records)
        size = self.options.batch_size
        for start in range(0, len(pending), size):
            batch = pending[start : start + size]
            seen.update(r.id for r in batch)
            payload = {"tick": tick, "memories": [r.compress() for r in batch]}
            created.append(
                loop.create_task(
                    self._send(
                        f"memory/{agent_id}/episodic",
                        payload,
                        f"{len(batch)} records for {agent_id}",
                    )
                )
            )

        if patterns:
            payload = {
                "tick": tick,
                "patterns": [p.model_dump(mode="json") for p in patterns],
            }
            created.append(
                loop.create_task(
                    self._send(f"memory/{agent_id}/semantic", payload, f"patterns for {agent_id}")
                )
            )

        for task in created:
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return created

    async def _send(self, path: str, payload: Dict[str, Any], description: str) -> bool:
        max_attempts = self.options.max_retries
        delay = self.options.retry_delay_seconds
        attempt_number = 0
        try:
            # Waits delay x attempt number between attempts
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(SyncError),
                stop=stop_after_attempt(max_attempts),
                wait=wait_incrementing(start=delay, increment=delay),
                reraise=True,
            ):
                with attempt:
                    attempt_number += 1
                    if attempt_number > 1:
                        log_warning(f"Sync retry {attempt_number}/{max_attempts} for {description}")
                    await self.transport.post(path, payload)
        except SyncError as exc:
            self.dropped_batches += 1
            log_warning(
                f"Dropping sync batch ({description}) after {attempt_number} attempts: {exc}"
            )
            return False
        self.sent_batches += 1
        return True

    async def drain(self) -> None:
        """Wait for every scheduled batch to finish or give up."""
        while self._tasks:
            pending = list(self._tasks)
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    log_error(f"Sync task failed unexpectedly: {result}")
            self._tasks.difference_update(pending)
