"""Read-side queries against the bridge and the host: item types, actions, subforms."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import httpx

from massive_action_api.api.schemas.actions import ActionDescriptor
from massive_action_api.core.errors import InvalidItemType, SubformFetchError
from massive_action_api.utils.ids import short_type_name
from massive_action_api.utils.results import error_message

logger = logging.getLogger(__name__)

SUBFORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"


def build_subform_payload(
    itemtype: str, ids: Iterable[int], action_key: str
) -> dict[str, str]:
    """Form fields the host expects when rendering an action's parameter subform.

    Only the selected action is declared in ``action_filter`` and ``actions``;
    that is enough for the host to render its parameters.
    """
    short_type = short_type_name(itemtype)
    fields = {
        "action": action_key,
        "container": f"SearchTableFor{short_type}",
        "is_deleted": "0",
        f"action_filter[{action_key}][]": short_type,
        f"actions[{action_key}]": action_key,
    }
    for item_id in ids:
        fields[f"items[{short_type}][{item_id}]"] = str(item_id)
        fields[f"initial_items[{short_type}][{item_id}]"] = str(item_id)
    fields["sub_form"] = "1"
    return fields


class ActionDiscoveryClient:
    """Asks the bridge which types/actions exist and the host how an action's form looks."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_base_url: str,
        host_base_url: str,
        subform_path: str = "/ajax/dropdownMassiveAction.php",
        headers: Mapping[str, str] | None = None,
    ):
        self.client = client
        self.api_base_url = api_base_url.rstrip("/")
        self.host_base_url = host_base_url.rstrip("/")
        self.subform_path = subform_path
        self.headers = dict(headers or {})

    async def list_item_types(self) -> list[str]:
        response = await self.client.get(
            f"{self.api_base_url}/itemtypes", headers=self.headers
        )
        response.raise_for_status()
        return sorted({str(itemtype) for itemtype in response.json()})

    async def list_actions(
        self, itemtype: str, is_deleted: int = 0, single: int = 0
    ) -> list[ActionDescriptor]:
        response = await self.client.get(
            f"{self.api_base_url}/available_actions/{itemtype}",
            params={"is_deleted": is_deleted, "single": single},
            headers=self.headers,
        )
        if response.status_code == 400:
            message = error_message(response) or "Invalid item type"
            raise InvalidItemType(itemtype, message)
        response.raise_for_status()
        return [ActionDescriptor(**action) for action in response.json().get("actions", [])]

    async def fetch_subform(
        self, itemtype: str, ids: Iterable[int], action_key: str
    ) -> str:
        """Return the raw HTML the host renders for ``action_key`` on this selection."""
        url = f"{self.host_base_url}{self.subform_path}"
        try:
            response = await self.client.post(
                url,
                data=build_subform_payload(itemtype, ids, action_key),
                headers={**self.headers, "Content-Type": SUBFORM_CONTENT_TYPE},
            )
        except httpx.RequestError as exc:
            logger.error(f"Subform request for {action_key} failed: {exc}", exc_info=True)
            raise SubformFetchError(f"Failed to fetch action subform: {exc}") from exc

        if not response.is_success:
            logger.warning(
                f"Subform request for {action_key} on {itemtype} returned "
                f"HTTP {response.status_code}"
            )
            raise SubformFetchError(
                f"Failed to fetch action subform ({response.status_code})",
                status_code=response.status_code,
            )
        return response.text
