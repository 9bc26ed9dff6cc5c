"""Simple health and readiness endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from redis.exceptions import RedisError

from massive_action_api.core.config import Settings, get_settings
from massive_action_api.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="Liveness probe")
async def live() -> dict[str, str]:
    """Indicates API process is running."""
    return {"status": "ok", "service": "massive-action-api"}


@router.get("/ready", summary="Readiness probe")
async def ready(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Check readiness of dependencies (host engine, Redis when configured).

    Redis only mirrors progress, so an unreachable Redis is reported but
    does not fail readiness.
    """
    checks: dict[str, Any] = {
        "status": "ok",
        "service": "massive-action-api",
        "checks": {},
    }
    all_healthy = True

    if getattr(request.app.state, "host_engine", None) is not None:
        checks["checks"]["host_engine"] = {
            "status": "healthy",
            "message": "Host engine configured",
        }
    else:
        checks["checks"]["host_engine"] = {
            "status": "unhealthy",
            "message": "No host engine configured (set HOST_ENGINE)",
        }
        all_healthy = False

    if settings.redis_url:
        try:
            redis_client = create_redis_client(
                settings.redis_url, decode_responses=True, socket_connect_timeout=2
            )
            redis_client.ping()
            checks["checks"]["redis"] = {
                "status": "healthy",
                "message": "Redis connection successful",
            }
            redis_client.close()
        except RedisError as e:
            logger.warning(f"Redis health check failed: {e}", exc_info=True)
            checks["checks"]["redis"] = {
                "status": "unhealthy",
                "message": f"Redis connection failed: {str(e)}",
            }
    else:
        checks["checks"]["redis"] = {
            "status": "disabled",
            "message": "Progress mirroring is off (REDIS_URL unset)",
        }

    if not all_healthy:
        checks["status"] = "unhealthy"
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=checks,
        )

    return checks
