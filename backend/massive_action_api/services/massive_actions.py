"""Translate JSON calls into calls on the host's massive action engine.

Each function is stateless: item type, rights and action semantics all stay
with the host. Only input validation happens here. Anything the host raises
while a stage runs is re-raised as ``EngineError`` with its message intact.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from massive_action_api.api.schemas.actions import (
    ActionDescriptor,
    AvailableActionsResponse,
    ProcessRequest,
    ProcessResult,
    SpecializeRequest,
    SpecializeResponse,
)
from massive_action_api.core.errors import EngineError, InvalidItemType, ValidationError
from massive_action_api.core.host import ITEM_TYPE_LISTS, HostEngine
from massive_action_api.utils.ids import normalize_ids
from massive_action_api.utils.results import as_count, flatten_messages

logger = logging.getLogger(__name__)

DEFAULT_PROCESSOR = "MassiveAction"


def list_item_types(engine: HostEngine) -> list[str]:
    """Union of the host's configured asset/document/consumable/infocom types."""
    lists = engine.item_type_lists()
    itemtypes: set[str] = set()
    for key in ITEM_TYPE_LISTS:
        itemtypes.update(lists.get(key) or [])
    return sorted(itemtypes)


def available_actions(
    engine: HostEngine, itemtype: str, is_deleted: int = 0, single: int = 0
) -> AvailableActionsResponse:
    if not engine.is_item_type(itemtype):
        raise InvalidItemType(itemtype)

    actions = engine.get_all_massive_actions(itemtype, bool(is_deleted), bool(single))
    if actions is None:
        raise EngineError("Cannot retrieve actions for this item type")

    forbidden = set(engine.forbidden_actions(itemtype) or [])
    descriptors = [
        ActionDescriptor.from_key(key, label)
        for key, label in actions.items()
        if key not in forbidden
    ]
    return AvailableActionsResponse(
        actions=descriptors,
        itemtype=itemtype,
        is_deleted=is_deleted,
        single=single,
        count=len(descriptors),
    )


def specialize_action(
    engine: HostEngine, request: SpecializeRequest
) -> SpecializeResponse:
    """Run the host's initial and specialize stages and capture the subform."""
    selection = normalize_selection(request.items)
    if not selection:
        raise ValidationError("No items provided")
    if not request.action:
        raise ValidationError("No action provided")

    initial_post: dict[str, Any] = {
        "is_deleted": request.is_deleted,
        "item": {
            itemtype: {item_id: 1 for item_id in ids}
            for itemtype, ids in selection.items()
        },
    }
    try:
        initial = engine.massive_action(initial_post, "initial")
        specialize_post = dict(initial.get_input())
        specialize_post["items"] = initial.get_items()
    except Exception as exc:
        logger.warning(f"Initial stage failed for {request.action}: {exc}", exc_info=True)
        raise EngineError(f"Initial stage failed: {exc}") from exc

    specialize_post["action"] = request.action
    if request.specialize_itemtype is not None:
        specialize_post["specialize_itemtype"] = request.specialize_itemtype

    try:
        specialized = engine.massive_action(specialize_post, "specialize")
        form_html = specialized.show_subform()
        process_data = dict(specialized.get_input())
        process_data["items"] = specialized.get_items()
        process_data["action"] = specialized.get_action()
    except Exception as exc:
        logger.warning(f"Specialize stage failed for {request.action}: {exc}", exc_info=True)
        raise EngineError(f"Specialize stage failed: {exc}") from exc

    process_data["processor"] = process_data.get("processor") or DEFAULT_PROCESSOR
    process_data["is_deleted"] = request.is_deleted
    if "initial_items" in specialize_post:
        process_data["initial_items"] = specialize_post["initial_items"]

    return SpecializeResponse(form_html=form_html, data_for_process=process_data)


def process_action(engine: HostEngine, request: ProcessRequest) -> ProcessResult:
    """Apply an action to a selection in one host call."""
    selection = normalize_selection(request.items)
    if not selection:
        raise ValidationError("No items provided")
    if not request.action:
        raise ValidationError("No action provided")
    processor = request.processor or _processor_from_key(request.action)
    if not processor:
        raise ValidationError("No processor provided")

    initial_selection = normalize_selection(request.initial_items) or selection
    data: dict[str, Any] = dict(request.action_data or {})
    data.update(
        {
            "items": _host_items(selection),
            "initial_items": _host_items(initial_selection),
            "action": request.action,
            "processor": processor,
            "is_deleted": request.is_deleted,
        }
    )

    try:
        results = engine.massive_action(data, "process").process()
    except Exception as exc:
        logger.error(f"Processing {request.action} failed: {exc}", exc_info=True)
        raise EngineError(str(exc)) from exc

    results = results or {}
    return ProcessResult(
        ok=as_count(results.get("ok")),
        ko=as_count(results.get("ko")),
        noright=as_count(results.get("noright")),
        messages=flatten_messages(results.get("messages")),
    )


def normalize_selection(items: Mapping[str, Any] | None) -> dict[str, list[int]]:
    """Item type -> distinct positive IDs; empty item types are dropped.

    Accepts ID lists or the host's ``{id: id}`` maps (keys are the IDs).
    """
    selection: dict[str, list[int]] = {}
    for itemtype, ids in (items or {}).items():
        raw = ids.keys() if isinstance(ids, Mapping) else ids
        try:
            normalized = normalize_ids(raw or [])
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        if normalized:
            selection[itemtype] = normalized
    return selection


def _host_items(selection: Mapping[str, list[int]]) -> dict[str, dict[int, int]]:
    """The host's ``items[itemtype][id] = id`` convention."""
    return {itemtype: {item_id: item_id for item_id in ids} for itemtype, ids in selection.items()}


def _processor_from_key(action_key: str) -> str | None:
    processor, separator, _ = action_key.partition(":")
    return processor if separator else None
