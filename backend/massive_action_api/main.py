"""FastAPI application bootstrap: bridge, console and health routers."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from massive_action_api.api.routers import actions, console, health
from massive_action_api.core.config import Settings, get_settings
from massive_action_api.core.host import HostEngine, load_host_engine
from massive_action_api.services.job_registry import JobRegistry

logger = logging.getLogger(__name__)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render errors as ``{"error": ...}``, the shape bridge clients expect."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def create_app(
    host_engine: HostEngine | None = None,
    http_client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers.

    ``host_engine`` defaults to the factory named by ``HOST_ENGINE``. An
    ``http_client`` passed in is used for console follow-up calls and left
    open on shutdown.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if host_engine is None and settings.host_engine:
        host_engine = load_host_engine(settings.host_engine)
    if host_engine is None:
        logger.warning("No host engine configured; bridge endpoints will answer 503")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = http_client is None
        app.state.http_client = http_client or httpx.AsyncClient(timeout=settings.http_timeout)
        app.state.job_registry = JobRegistry()
        try:
            yield
        finally:
            await app.state.job_registry.shutdown()
            if owns_client:
                await app.state.http_client.aclose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.host_engine = host_engine
    app.dependency_overrides[get_settings] = lambda: settings

    cors_origins = settings.cors_origins
    logger.info(f"[CORS] Allowed origins: {cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    prefix = settings.api_prefix
    app.include_router(health.router)
    app.include_router(actions.router, prefix=prefix, tags=["massive-actions"])
    app.include_router(console.router, prefix=f"{prefix}/console", tags=["console"])

    return app


app = create_app()
