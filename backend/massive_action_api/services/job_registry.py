"""In-process bookkeeping of batch jobs started from the web console."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from massive_action_api.services.batch_engine import BatchJob

logger = logging.getLogger(__name__)


class JobRegistry:
    """Keeps running batches and their tasks addressable by job id.

    Finished jobs are retained for inspection; beyond ``max_finished`` the
    oldest ones are forgotten.
    """

    def __init__(self, max_finished: int = 100):
        self.max_finished = max_finished
        self._jobs: dict[str, BatchJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def start(self, job: BatchJob, runner: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedule ``runner`` (usually ``engine.execute(job)``) in the background."""
        self._prune()
        self._jobs[job.id] = job
        task = asyncio.create_task(runner, name=f"batch-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda finished: self._on_done(job, finished))
        return task

    def get(self, job_id: str) -> BatchJob | None:
        return self._jobs.get(job_id)

    def list(self, status: str | None = None, limit: int = 50) -> list[BatchJob]:
        """Newest first, optionally filtered by status."""
        jobs = sorted(self._jobs.values(), key=lambda job: job.created_at, reverse=True)
        if status:
            jobs = [job for job in jobs if job.status == status]
        return jobs[:limit]

    def cancel(self, job_id: str) -> BatchJob | None:
        job = self._jobs.get(job_id)
        if job is not None:
            job.cancel()
        return job

    async def wait(self, job_id: str) -> BatchJob | None:
        """Wait for a job's task to end; errors stay recorded on the job."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._jobs.get(job_id)

    async def shutdown(self) -> None:
        """Cancel every running batch and wait for the workers to settle."""
        running = [task for task in self._tasks.values() if not task.done()]
        if not running:
            return
        logger.info(f"Cancelling {len(running)} running batch(es)")
        for job in self._jobs.values():
            if not job.finished:
                job.cancel()
        await asyncio.gather(*running, return_exceptions=True)

    def _on_done(self, job: BatchJob, task: asyncio.Task) -> None:
        self._tasks.pop(job.id, None)
        if task.cancelled():
            logger.warning(f"Batch {job.id} task was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Batch {job.id} crashed: {exc}", exc_info=exc)

    def _prune(self) -> None:
        finished = sorted(
            (job for job in self._jobs.values() if job.finished),
            key=lambda job: job.created_at,
        )
        excess = len(finished) - self.max_finished
        for job in finished[: max(excess, 0)]:
            self._jobs.pop(job.id, None)
