"""Host engine dependency."""

from fastapi import HTTPException, Request, status

from massive_action_api.core.host import HostEngine


def get_host_engine(request: Request) -> HostEngine:
    """FastAPI dependency returning the host engine wired into the app."""
    engine = getattr(request.app.state, "host_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Host engine not configured",
        )
    return engine
