"""Re-assemble structured form values into the payload the processor expects."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from massive_action_api.api.schemas.fields import FieldSchema, FieldValue

LIST_MARKER = "[]"


def initial_values(schema: Iterable[FieldSchema]) -> dict[str, FieldValue]:
    """Seed form values from the schema defaults."""
    values: dict[str, FieldValue] = {}
    for field in schema:
        if field.multiple:
            selected = [opt.value for opt in field.options or [] if opt.selected]
            if selected:
                values[field.name] = selected
            else:
                values[field.name] = list(field.default) if isinstance(field.default, list) else []
        elif field.type in ("checkbox", "radio"):
            values[field.name] = bool(field.default)
        else:
            values[field.name] = field.default if field.default is not None else ""
    return values


def compose(
    form_values: Mapping[str, Any], schema: Iterable[FieldSchema]
) -> dict[str, Any]:
    """Flatten form values into action data.

    Only schema fields present in ``form_values`` are emitted; an omitted
    field means "use the processor default", not "explicitly empty". Names
    ending in ``[]`` are stored under their base name as lists.
    """
    action_data: dict[str, Any] = {}
    for field in schema:
        if field.name not in form_values:
            continue
        value = form_values[field.name]
        if field.name.endswith(LIST_MARKER):
            action_data[field.name[: -len(LIST_MARKER)]] = _as_list(value)
        else:
            action_data[field.name] = value
    return action_data


def validate_required(
    schema: Iterable[FieldSchema], form_values: Mapping[str, Any]
) -> bool:
    """True when every required field carries a non-empty value."""
    return not missing_required(schema, form_values)


def missing_required(
    schema: Iterable[FieldSchema], form_values: Mapping[str, Any]
) -> list[str]:
    """Names of required fields that are missing, blank, or an empty list.

    An unchecked required checkbox is still an answer; ``False`` anywhere
    else is not.
    """
    missing = []
    for field in schema:
        if not field.required:
            continue
        value = form_values.get(field.name)
        if value is False:
            if field.type != "checkbox":
                missing.append(field.name)
        elif _is_empty(value):
            missing.append(field.name)
    return missing


def processor_for(action_key: str) -> str:
    """Processor namespace of ``processor:action``."""
    return action_key.split(":", 1)[0]


def build_process_request(
    itemtype: str,
    ids: list[int],
    action_key: str,
    action_data: Mapping[str, Any],
) -> dict[str, Any]:
    """Body of a ``process_action`` call for one selection."""
    return {
        "items": {itemtype: list(ids)},
        "action": action_key,
        "processor": processor_for(action_key),
        "initial_items": {itemtype: list(ids)},
        "action_data": dict(action_data),
    }


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None or value == "":
        return []
    return [value]


def _is_empty(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return value is None or str(value).strip() == ""
