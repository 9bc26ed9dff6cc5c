"""Web console endpoints: parameter forms and batch job tracking."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from massive_action_api.api.dependencies.auth import get_request_context
from massive_action_api.api.dependencies.console import get_console_service, get_job_registry
from massive_action_api.api.routers.job_helpers import serialize_job, serialize_snapshot
from massive_action_api.api.schemas.console import JobCreate, SchemaRequest, SchemaResponse
from massive_action_api.api.schemas.job import JobStatus
from massive_action_api.core.config import Settings, get_settings
from massive_action_api.core.errors import BridgeError
from massive_action_api.services.console import ConsoleService
from massive_action_api.services.job_registry import JobRegistry
from massive_action_api.services.progress_tracker import fetch_progress

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_request_context)])


@router.post(
    "/schema",
    summary="Derive the parameter form of an action",
    response_model=SchemaResponse,
)
async def derive_schema(
    payload: SchemaRequest,
    console: ConsoleService = Depends(get_console_service),
) -> SchemaResponse:
    """Fields and initial values of the action's subform for this selection.

    An empty form is returned until item type, IDs and action are all set.
    """
    form = await console.derive_form(payload.itemtype, payload.resolved_ids(), payload.action)
    return SchemaResponse(fields=form.fields, values=form.values, error=form.error)


@router.post(
    "/jobs",
    summary="Run an action over a selection in batches",
    response_model=JobStatus,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_job(
    payload: JobCreate,
    console: ConsoleService = Depends(get_console_service),
    registry: JobRegistry = Depends(get_job_registry),
    settings: Settings = Depends(get_settings),
) -> JobStatus:
    """Validate, compose and start a batch; poll or stream it by id afterwards."""
    ids = payload.resolved_ids()
    try:
        form = await console.derive_form(payload.itemtype, ids, payload.action)
        job = console.prepare_job(
            payload.itemtype,
            ids,
            payload.action,
            form,
            values=payload.values,
            batch_size=settings.batch_size if payload.batch_size is None else payload.batch_size,
            has_ids_input=payload.has_ids_input,
        )
    except BridgeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    concurrency = payload.concurrency if payload.concurrency is not None else settings.batch_concurrency
    registry.start(job, console.run(job, concurrency))
    logger.info(f"Started batch {job.id}: {job.action} on {job.total_count} {job.itemtype} item(s)")
    return serialize_job(job)


@router.get(
    "/jobs",
    summary="List batch jobs",
    response_model=list[JobStatus],
)
async def list_jobs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    status: str | None = Query(
        None, description="Filter by status (pending, running, completed, cancelled, failed)"
    ),
    registry: JobRegistry = Depends(get_job_registry),
) -> list[JobStatus]:
    """Jobs known to this process, newest first."""
    return [serialize_job(job) for job in registry.list(status=status, limit=limit)]


@router.get(
    "/jobs/{job_id}",
    summary="Fetch job progress and results",
    response_model=JobStatus,
)
async def get_job(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),
) -> JobStatus:
    """Live state, or the Redis snapshot when another process ran the job."""
    job = registry.get(job_id)
    if job is not None:
        return serialize_job(job)
    progress_payload = fetch_progress(job_id)
    if not progress_payload:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_snapshot(progress_payload)


@router.post(
    "/jobs/{job_id}/cancel",
    summary="Cancel a running batch",
    response_model=JobStatus,
)
async def cancel_job(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),
) -> JobStatus:
    """Stop dispatching chunks; results already aggregated are kept."""
    job = registry.cancel(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_job(job)


@router.get(
    "/jobs/{job_id}/stream",
    summary="Server-Sent Events stream for real-time progress",
)
async def stream_job_progress(
    job_id: str,
    registry: JobRegistry = Depends(get_job_registry),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    """Stream job progress updates via Server-Sent Events (SSE).

    Each ``data:`` event carries the latest job status as JSON. The stream
    ends with a ``close`` event once the job has finished.
    """
    if registry.get(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")

    async def event_generator() -> AsyncGenerator[str, None]:
        """Yield SSE-formatted progress updates."""
        while True:
            job = registry.get(job_id)
            if job is None:
                yield f"event: error\ndata: {json.dumps({'error': 'Job not found'})}\n\n"
                break

            yield f"data: {serialize_job(job).model_dump_json()}\n\n"

            if job.finished:
                yield "event: close\ndata: {}\n\n"
                break

            await asyncio.sleep(settings.stream_interval)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
