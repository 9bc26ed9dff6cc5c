"""Chunked, concurrent, retryable execution of a massive action.

A selection is split into contiguous chunks; a small pool of asyncio workers
claims chunk indexes from a shared cursor and posts each chunk to the
``process_action`` endpoint. Everything runs on one event loop, so job state
is only touched between awaits and needs no locking. Completion order is not
deterministic: the counters are sums, but ``messages``/``errors`` order across
chunks is arbitrary.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Coroutine, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from massive_action_api.core.errors import (
    ChunkProcessingError,
    EngineError,
    ValidationError,
)
from massive_action_api.services.request_composer import build_process_request
from massive_action_api.utils.batching import chunked
from massive_action_api.utils.ids import normalize_ids
from massive_action_api.utils.results import as_count, error_message, flatten_messages

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 4
MAX_RETRIES = 3
RETRY_DELAY = 0.5  # seconds; attempt N backs off N units

ProgressCallback = Callable[["BatchJob"], Awaitable[None] | None]


class ChunkAborted(Exception):
    """Cancellation interrupted a chunk attempt or its backoff."""


class InvalidChunkResponse(Exception):
    """The endpoint answered 2xx with a body that is not a result object."""


@dataclass
class BatchJob:
    """Mutable state of one batch run, shared by its workers."""

    itemtype: str
    action: str
    chunks: list[list[int]]
    action_data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    total_count: int = 0
    processed_count: int = 0
    ok: int = 0
    ko: int = 0
    noright: int = 0
    messages: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    status: str = "pending"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    _started: float | None = field(default=None, repr=False)
    _finished: float | None = field(default=None, repr=False)
    _cursor: int = field(default=0, repr=False)
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    # -- cancellation -------------------------------------------------------

    def cancel(self) -> None:
        """Request cooperative cancellation; already aggregated results are kept."""
        if not self._cancel_event.is_set():
            logger.info(f"Cancellation requested for batch {self.id}")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def wait_cancelled(self) -> None:
        await self._cancel_event.wait()

    # -- scheduling ---------------------------------------------------------

    def claim_next_chunk(self) -> int | None:
        """Hand out the next unclaimed chunk index, or ``None`` when exhausted."""
        if self._cursor >= len(self.chunks):
            return None
        index = self._cursor
        self._cursor += 1
        return index

    @property
    def dispatched_count(self) -> int:
        return self._cursor

    def mark_started(self) -> None:
        self.status = "running"
        self.started_at = datetime.now(timezone.utc)
        self._started = time.monotonic()

    def mark_finished(self, status: str | None = None) -> None:
        self.status = status or ("cancelled" if self.cancelled else "completed")
        self.finished_at = datetime.now(timezone.utc)
        self._finished = time.monotonic()

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    # -- aggregation --------------------------------------------------------

    def record_success(self, index: int, payload: Mapping[str, Any]) -> None:
        self.ok += as_count(payload.get("ok"))
        self.ko += as_count(payload.get("ko"))
        self.noright += as_count(payload.get("noright"))
        self.messages.extend(flatten_messages(payload.get("messages")))
        self.processed_count += len(self.chunks[index])

    def record_failure(self, index: int, error: ChunkProcessingError) -> None:
        # Failed items still count as processed so progress stays monotonic
        self.errors.append(str(error))
        self.processed_count += len(self.chunks[index])

    def record_aborted(self, index: int) -> None:
        self.errors.append(f"Chunk {index + 1} aborted: batch cancelled")

    # -- derived figures ----------------------------------------------------

    @property
    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        end = self._finished if self._finished is not None else time.monotonic()
        return end - self._started

    @property
    def eta(self) -> float | None:
        """Seconds left at the current rate; unknown until something is processed."""
        if self.processed_count <= 0:
            return None
        remaining = max(self.total_count - self.processed_count, 0)
        return self.elapsed / self.processed_count * remaining

    @property
    def throughput(self) -> float | None:
        """Items per second."""
        elapsed = self.elapsed
        if elapsed <= 0 or self.processed_count <= 0:
            return None
        return self.processed_count / elapsed

    @property
    def progress(self) -> float:
        if not self.total_count:
            return 0.0
        return min(self.processed_count / self.total_count, 1.0)

    def result(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "ko": self.ko,
            "noright": self.noright,
            "messages": list(self.messages),
            "errors": list(self.errors),
            "cancelled": self.cancelled,
        }


class BatchEngine:
    """Drive ``process_action`` over a large selection, chunk by chunk."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        process_url: str,
        *,
        max_concurrency: int = MAX_CONCURRENCY,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        headers: Mapping[str, str] | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.client = client
        self.process_url = process_url
        self.max_concurrency = max(1, min(max_concurrency, MAX_CONCURRENCY))
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.headers = dict(headers or {})
        self.on_progress = on_progress

    def create_job(
        self,
        itemtype: str,
        ids: Iterable[Any],
        action_key: str,
        action_data: Mapping[str, Any] | None = None,
        batch_size: int = 50,
    ) -> BatchJob:
        """Validate the selection and partition it into chunks."""
        if not itemtype:
            raise ValidationError("No item type provided")
        if not action_key:
            raise ValidationError("No action provided")
        try:
            normalized = normalize_ids(ids)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not normalized:
            raise ValidationError("No items provided")

        size = max(1, int(batch_size))
        return BatchJob(
            itemtype=itemtype,
            action=action_key,
            action_data=dict(action_data or {}),
            chunks=list(chunked(normalized, size)),
            total_count=len(normalized),
        )

    async def run(
        self,
        itemtype: str,
        ids: Iterable[Any],
        action_key: str,
        action_data: Mapping[str, Any] | None = None,
        batch_size: int = 50,
        concurrency: int = 1,
    ) -> BatchJob:
        job = self.create_job(itemtype, ids, action_key, action_data, batch_size)
        return await self.execute(job, concurrency)

    async def execute(self, job: BatchJob, concurrency: int = 1) -> BatchJob:
        """Run every chunk of ``job`` with up to ``concurrency`` workers.

        If a worker fails, the job is cancelled and its sibling workers are
        stopped before the job is marked ``failed``.
        """
        workers = max(1, min(int(concurrency), self.max_concurrency, len(job.chunks)))
        logger.info(
            f"Batch {job.id}: {job.action} on {job.total_count} {job.itemtype} item(s) "
            f"in {len(job.chunks)} chunk(s), {workers} worker(s)"
        )
        job.mark_started()
        tasks: list[asyncio.Task] = []
        try:
            await self._notify(job)
            tasks = [asyncio.create_task(self._worker(job)) for _ in range(workers)]
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            job.cancel()
            await _stop_workers(tasks)
            job.mark_finished()
            await self._notify(job)
            raise
        except Exception:
            logger.exception(f"Batch {job.id} failed")
            job.cancel()
            await _stop_workers(tasks)
            job.mark_finished("failed")
            await self._notify(job)
            raise

        job.mark_finished()
        logger.info(
            f"Batch {job.id} {job.status}: ok={job.ok} ko={job.ko} "
            f"noright={job.noright} errors={len(job.errors)} in {job.elapsed:.1f}s"
        )
        await self._notify(job)
        return job

    async def _worker(self, job: BatchJob) -> None:
        while not job.cancelled:
            index = job.claim_next_chunk()
            if index is None:
                return
            await self._run_chunk(job, index)

    async def _run_chunk(self, job: BatchJob, index: int) -> None:
        body = build_process_request(
            job.itemtype, job.chunks[index], job.action, job.action_data
        )
        reason = ""
        attempts = 0
        for attempt in range(1, self.max_retries + 2):
            attempts = attempt
            try:
                payload = await self._submit(job, body)
            except ChunkAborted:
                job.record_aborted(index)
                await self._notify(job)
                return
            except EngineError as exc:
                # The host rejected the chunk itself; retrying cannot help
                reason = str(exc)
                break
            except (httpx.HTTPError, InvalidChunkResponse) as exc:
                reason = _describe(exc)
                if attempt > self.max_retries:
                    break
                logger.warning(
                    f"Batch {job.id} chunk {index + 1} attempt {attempt} failed: "
                    f"{reason}; retrying"
                )
                try:
                    await self._backoff(job, attempt)
                except ChunkAborted:
                    job.record_aborted(index)
                    await self._notify(job)
                    return
            else:
                job.record_success(index, payload)
                await self._notify(job)
                return

        error = ChunkProcessingError(index, attempts, reason)
        logger.error(f"Batch {job.id}: {error}")
        job.record_failure(index, error)
        await self._notify(job)

    async def _submit(self, job: BatchJob, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._abortable(
            job, self.client.post(self.process_url, json=body, headers=self.headers)
        )
        if response.status_code == 400:
            message = error_message(response)
            if message is not None:
                raise EngineError(message)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidChunkResponse(f"Invalid JSON in response: {exc}") from exc
        if not isinstance(payload, dict):
            raise InvalidChunkResponse(f"Unexpected response body: {payload!r:.200}")
        return payload

    async def _abortable(
        self, job: BatchJob, request: Coroutine[Any, Any, httpx.Response]
    ) -> httpx.Response:
        """Await ``request`` unless the job is cancelled first."""
        if job.cancelled:
            request.close()
            raise ChunkAborted()
        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(job.wait_cancelled())
        try:
            await asyncio.wait(
                {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()
                await asyncio.gather(request_task, return_exceptions=True)
        if request_task.cancelled():
            raise ChunkAborted()
        return request_task.result()

    async def _backoff(self, job: BatchJob, attempt: int) -> None:
        delay = attempt * self.retry_delay
        if delay > 0:
            try:
                await asyncio.wait_for(job.wait_cancelled(), timeout=delay)
            except asyncio.TimeoutError:
                return
        if job.cancelled:
            raise ChunkAborted()

    async def _notify(self, job: BatchJob) -> None:
        if self.on_progress is None:
            return
        try:
            outcome = self.on_progress(job)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning(f"Progress callback failed for batch {job.id}", exc_info=True)


async def _stop_workers(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
    if isinstance(exc, httpx.TimeoutException):
        return f"Request timeout: {exc}"
    return f"{type(exc).__name__}: {exc}"
