"""Batch job status payloads."""

from datetime import datetime

from pydantic import BaseModel, Field


class JobStatus(BaseModel):
    id: str
    itemtype: str
    action: str
    status: str = Field(..., description="pending|running|completed|cancelled|failed")
    progress: float | None = Field(None, description="0-1 range for UI progress bars")
    message: str | None = None
    total_count: int = 0
    processed_count: int = 0
    chunk_count: int = 0
    ok: int = 0
    ko: int = 0
    noright: int = 0
    messages: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False
    elapsed: float | None = Field(None, description="Seconds since the batch started")
    eta: float | None = Field(None, description="Estimated seconds left; unknown until progress")
    throughput: float | None = Field(None, description="Items per second")
    started_at: datetime | None = None
    finished_at: datetime | None = None
