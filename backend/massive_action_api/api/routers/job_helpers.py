"""Shared helpers for shaping job responses."""
from __future__ import annotations

from massive_action_api.api.schemas.job import JobStatus
from massive_action_api.services.batch_engine import BatchJob
from massive_action_api.services.progress_tracker import progress_snapshot


def serialize_job(job: BatchJob) -> JobStatus:
    """Live job state from this process."""
    snapshot = progress_snapshot(job)
    snapshot["started_at"] = job.started_at
    snapshot["finished_at"] = job.finished_at
    return serialize_snapshot(snapshot)


def serialize_snapshot(progress_payload: dict) -> JobStatus:
    """Job state from a progress snapshot (live or mirrored in Redis)."""
    payload = dict(progress_payload)
    payload["id"] = payload.pop("job_id")
    message = payload.get("message")
    if not message:
        total_display = payload.get("total_count") or "?"
        payload["message"] = f"Processed {payload.get('processed_count', 0)}/{total_display} items"
    return JobStatus(**payload)
