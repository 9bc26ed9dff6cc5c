"""Payloads of the web console endpoints."""

from pydantic import BaseModel, Field

from massive_action_api.api.schemas.fields import FieldSchema, FieldValue
from massive_action_api.utils.ids import parse_ids


class ConsoleSelection(BaseModel):
    itemtype: str | None = None
    action: str | None = Field(None, description="processor:action")
    ids: list[int] | None = Field(None, description="Selected item IDs")
    ids_text: str | None = Field(
        None, description="Free text IDs (comma/space/newline separated), used when ids is absent"
    )

    @property
    def has_ids_input(self) -> bool:
        if self.ids is not None:
            return bool(self.ids)
        return bool(self.ids_text and self.ids_text.strip())

    def resolved_ids(self) -> list[int]:
        """Distinct positive IDs in input order."""
        if self.ids is not None:
            return parse_ids(" ".join(str(item_id) for item_id in self.ids))
        return parse_ids(self.ids_text)


class SchemaRequest(ConsoleSelection):
    pass


class SchemaResponse(BaseModel):
    fields: list[FieldSchema] = Field(default_factory=list)
    values: dict[str, FieldValue] = Field(default_factory=dict)
    error: str | None = Field(None, description="Set when the parameter form is unavailable")


class JobCreate(ConsoleSelection):
    values: dict[str, FieldValue] = Field(
        default_factory=dict, description="Action form values keyed by field name"
    )
    batch_size: int | None = Field(None, description="Items per chunk (default from settings)")
    concurrency: int | None = Field(
        None, description="Parallel chunk requests, capped at 4 (default from settings)"
    )
