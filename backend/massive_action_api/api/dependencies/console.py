"""Dependencies of the web console endpoints."""

from __future__ import annotations

import httpx
from fastapi import Depends, HTTPException, Request, status

from massive_action_api.api.dependencies.auth import RequestContext, get_request_context
from massive_action_api.core.config import Settings, get_settings
from massive_action_api.services.console import ConsoleService
from massive_action_api.services.job_registry import JobRegistry
from massive_action_api.services.progress_tracker import publish_progress


def get_job_registry(request: Request) -> JobRegistry:
    registry = getattr(request.app.state, "job_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job registry not ready"
        )
    return registry


def get_http_client(request: Request) -> httpx.AsyncClient:
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="HTTP client not ready"
        )
    return client


def get_console_service(
    context: RequestContext = Depends(get_request_context),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> ConsoleService:
    """Console bound to the caller's session; follow-up calls reuse its token."""
    return ConsoleService.from_settings(
        client,
        settings,
        headers=context.forward_headers(),
        on_progress=publish_progress,
    )
