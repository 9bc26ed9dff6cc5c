"""Pydantic models describing the massive action endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActionDescriptor(BaseModel):
    key: str = Field(..., description="processor:action")
    label: str
    category: str = Field(..., description="Key prefix before ':'")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_key(cls, key: str, label: str) -> "ActionDescriptor":
        return cls(key=key, label=label, category=key.split(":", 1)[0] or "unknown")


class AvailableActionsResponse(BaseModel):
    actions: list[ActionDescriptor]
    itemtype: str
    is_deleted: int
    single: int
    count: int


class SpecializeRequest(BaseModel):
    items: dict[str, Any] | None = Field(
        None, description="Item type -> list of IDs (or the host's {id: id} map)"
    )
    action: str | None = None
    is_deleted: int = Field(0, ge=0, le=1)
    specialize_itemtype: str | None = None


class SpecializeResponse(BaseModel):
    form_html: str
    data_for_process: dict[str, Any]


class ProcessRequest(BaseModel):
    items: dict[str, Any] | None = Field(
        None, description="Item type -> list of IDs (or the host's {id: id} map)"
    )
    action: str | None = Field(None, description="processor:action")
    processor: str | None = Field(
        None, description="Defaults to the action key prefix"
    )
    initial_items: dict[str, Any] | None = Field(
        None, description="Defaults to items"
    )
    is_deleted: int = Field(0, ge=0, le=1)
    action_data: dict[str, Any] | None = Field(
        None, description="Action parameters, merged flat into the engine input"
    )


class ProcessResult(BaseModel):
    ok: int = 0
    ko: int = 0
    noright: int = 0
    messages: list[str] = Field(default_factory=list)
