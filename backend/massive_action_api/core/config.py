"""Centralized application settings using pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
# Look for .env in the backend directory or project root
env_path = Path(__file__).parent.parent.parent / ".env"
if not env_path.exists():
    env_path = Path(__file__).parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)

DEFAULT_CORS_ORIGINS = ["http://localhost", "http://localhost:8080"]


class Settings(BaseSettings):
    """Environment-aware configuration (host location, batching, auth gates)."""

    # Application settings
    app_name: str = "Massive Action API"
    log_level: str = "INFO"
    api_prefix: str = Field(
        default="/api.php",
        description="Mount point of the bridge endpoints",
    )
    api_enabled: bool = Field(
        default=True,
        description="Global switch; when off every API call is refused with 403",
    )

    # Host platform settings
    host_engine: str | None = Field(
        default=None,
        description="Dotted 'module:attribute' path of the HostEngine factory",
    )
    host_base_url: str = Field(
        default="http://localhost",
        description="Root URL of the ITSM host (used for subform rendering)",
    )
    subform_path: str = "/ajax/dropdownMassiveAction.php"
    bridge_base_url: str = Field(
        default="http://localhost/plugins/massive_action_api/api.php",
        description="Public URL of this bridge, used by consoles to reach process_action",
    )
    http_timeout: float = 30.0
    session_token: str | None = Field(
        default=None,
        description="Session token the command-line console authenticates with",
    )

    # Batch execution settings
    batch_size: int = Field(default=50, ge=1)
    batch_concurrency: int = Field(default=2, ge=1)
    max_concurrency: int = Field(default=4, ge=1, le=4)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(
        default=0.5,
        ge=0,
        description="Backoff unit in seconds; attempt N waits N units",
    )
    stream_interval: float = Field(
        default=1.0,
        gt=0,
        description="Polling interval of the job progress SSE stream",
    )

    # Redis mirror for job progress snapshots (optional)
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL; progress mirroring is off when unset",
    )

    # CORS settings - stored as string, converted to list via property
    cors_origins_raw: str | None = Field(
        default=None,
        alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
        exclude=True,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string to list."""
        if self.cors_origins_raw is None or not self.cors_origins_raw.strip():
            return list(DEFAULT_CORS_ORIGINS)
        origins = [
            origin.strip().rstrip("/")
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]
        return origins if origins else list(DEFAULT_CORS_ORIGINS)

    @field_validator("api_prefix", mode="after")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Keep a single leading slash and no trailing slash ("" mounts at root)."""
        v = v.strip().strip("/")
        return f"/{v}" if v else ""

    @field_validator("host_base_url", "bridge_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("redis_url", "host_engine", "session_token", mode="before")
    @classmethod
    def empty_as_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Provide singleton-like access for dependency injection."""
    return Settings()
