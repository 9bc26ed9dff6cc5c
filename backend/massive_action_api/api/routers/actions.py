"""Massive action endpoints: item types, available actions, specialize, process."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from massive_action_api.api.dependencies.auth import get_request_context
from massive_action_api.api.dependencies.host import get_host_engine
from massive_action_api.api.schemas.actions import (
    AvailableActionsResponse,
    ProcessRequest,
    ProcessResult,
    SpecializeRequest,
    SpecializeResponse,
)
from massive_action_api.core.errors import BridgeError
from massive_action_api.core.host import HostEngine
from massive_action_api.services import massive_actions

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_request_context)])


@router.get(
    "/itemtypes",
    summary="List item types eligible for massive actions",
    response_model=list[str],
)
async def get_item_types(
    engine: HostEngine = Depends(get_host_engine),
) -> list[str]:
    """Sorted union of the host's asset, document, consumable and infocom types."""
    return massive_actions.list_item_types(engine)


# Path the plugin's console page calls
router.add_api_route(
    "/ui/itsm-itemtypes",
    get_item_types,
    methods=["GET"],
    response_model=list[str],
    include_in_schema=False,
)


@router.get(
    "/available_actions/{itemtype}",
    summary="Get available massive actions for an item type",
    response_model=AvailableActionsResponse,
)
async def get_available_actions(
    itemtype: str,
    is_deleted: int = Query(0, ge=0, le=1, description="Actions for deleted items"),
    single: int = Query(0, ge=0, le=1, description="Actions for a single item"),
    engine: HostEngine = Depends(get_host_engine),
) -> AvailableActionsResponse:
    """Actions the host allows on ``itemtype``, minus the ones it forbids."""
    try:
        return massive_actions.available_actions(engine, itemtype, is_deleted, single)
    except BridgeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post(
    "/specialize_action",
    summary="Specialize a massive action",
    response_model=SpecializeResponse,
)
async def post_specialize_action(
    payload: SpecializeRequest,
    engine: HostEngine = Depends(get_host_engine),
) -> SpecializeResponse:
    """Return the action's parameter subform and the prefilled process payload."""
    try:
        return massive_actions.specialize_action(engine, payload)
    except BridgeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post(
    "/process_action",
    summary="Process a massive action",
    response_model=ProcessResult,
)
async def post_process_action(
    payload: ProcessRequest,
    engine: HostEngine = Depends(get_host_engine),
) -> ProcessResult:
    """Apply the action to the selection in one host call.

    Host exceptions come back as 400 with the host's message.
    """
    try:
        return massive_actions.process_action(engine, payload)
    except BridgeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
