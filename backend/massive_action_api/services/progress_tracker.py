"""Mirror batch job progress snapshots to Redis for out-of-process readers."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from typing import Any

from redis.exceptions import RedisError

from massive_action_api.services.batch_engine import BatchJob
from massive_action_api.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)

PROGRESS_PREFIX = "massive_actions:progress:"
PROGRESS_TTL = timedelta(hours=24)


def _key(job_id: str) -> str:
    return f"{PROGRESS_PREFIX}{job_id}"


def progress_snapshot(job: BatchJob) -> dict[str, Any]:
    """Plain-data view of a job, shared by the Redis mirror and the API."""
    return {
        "job_id": job.id,
        "itemtype": job.itemtype,
        "action": job.action,
        "status": job.status,
        "progress": job.progress,
        "message": f"Processed {job.processed_count}/{job.total_count} items",
        "total_count": job.total_count,
        "processed_count": job.processed_count,
        "chunk_count": len(job.chunks),
        "elapsed": job.elapsed,
        "eta": job.eta,
        "throughput": job.throughput,
        **job.result(),
    }


async def publish_progress(job: BatchJob) -> None:
    """Persist the latest snapshot; Redis outages never break a batch.

    The write runs in a worker thread so a slow Redis does not stall the
    event loop that drives the batch.
    """
    client = get_redis_client()
    if client is None:
        return
    try:
        await asyncio.to_thread(
            client.set,
            _key(job.id),
            json.dumps(progress_snapshot(job)),
            ex=int(PROGRESS_TTL.total_seconds()),
        )
    except RedisError as exc:
        logger.warning(f"Could not publish progress for batch {job.id}: {exc}")


def fetch_progress(job_id: str) -> dict[str, Any]:
    """Return the mirrored snapshot of ``job_id`` (empty when unknown)."""
    client = get_redis_client()
    if client is None:
        return {}
    try:
        raw = client.get(_key(job_id))
    except RedisError as exc:
        logger.warning(f"Could not read progress for batch {job_id}: {exc}")
        return {}
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {}
