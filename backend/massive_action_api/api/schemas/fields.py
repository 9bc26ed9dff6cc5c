"""Structured description of an action's parameter subform."""

from typing import Union

from pydantic import BaseModel, Field

FieldValue = Union[bool, str, list[str]]


class FieldOption(BaseModel):
    value: str
    label: str
    selected: bool = False


class FieldSchema(BaseModel):
    name: str
    label: str
    type: str = Field(..., description="text|textarea|select|checkbox|radio|number|...")
    required: bool = False
    default: FieldValue = ""
    options: list[FieldOption] | None = Field(None, description="Ordered, for selects only")
    multiple: bool | None = Field(None, description="Multi-select flag, for selects only")
    value: str | None = Field(
        None, description="Value submitted when a checkbox/radio is checked"
    )

    @property
    def is_list(self) -> bool:
        """Whether the processor expects a list under the base name."""
        return self.name.endswith("[]") or bool(self.multiple)
