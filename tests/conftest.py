"""Shared fixtures: an in-memory host engine and an app wired to it."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from massive_action_api.core.config import Settings
from massive_action_api.core.host import ApiClient, HostEngine, HostSession
from massive_action_api.main import create_app

SESSION_TOKEN = "valid-session-token"
HOST_URL = "http://glpi.test"
BRIDGE_URL = "http://glpi.test/plugins/massive_action_api/api.php"

UPDATE_SUBFORM = """
<span>
  <input type="hidden" name="action" value="MassiveAction:update">
  <input type="hidden" name="items[Computer][1]" value="1">
  <label for="dropdown_field">Field</label>
  <select id="dropdown_field" name="field" required>
    <option value="0">-----</option>
    <option value="comment">Comments</option>
    <option value="states_id">Status</option>
  </select>
  <label for="value">Value</label>
  <input type="text" id="value" name="value" required>
  <input type="submit" name="massiveaction" value="Post">
</span>
"""


class FakeStage:
    """One stage of the host's massive action, driven by a POST-like dict."""

    def __init__(self, engine: "FakeHostEngine", post: dict[str, Any], stage: str):
        self.engine = engine
        self.post = post
        self.stage = stage
        if stage == "specialize" and post.get("action") in engine.broken_actions:
            raise RuntimeError("Action is not available for this selection")

    def get_input(self) -> dict[str, Any]:
        return {key: value for key, value in self.post.items() if key not in ("item", "items")}

    def get_items(self) -> dict[str, Any]:
        if "items" in self.post:
            return self.post["items"]
        return {
            itemtype: {item_id: item_id for item_id, checked in ids.items() if checked}
            for itemtype, ids in self.post.get("item", {}).items()
        }

    def get_action(self) -> str | None:
        return self.post.get("action")

    def show_subform(self) -> str:
        return self.engine.subforms.get(self.post.get("action"), "")

    def process(self) -> dict[str, Any]:
        self.engine.processed.append(self.post)
        if self.engine.process_error:
            raise RuntimeError(self.engine.process_error)
        count = sum(len(ids) for ids in self.post["items"].values())
        return {"ok": count, "ko": 0, "noright": 0, "messages": [f"{count} item(s) updated"]}


class FakeHostEngine(HostEngine):
    def __init__(self):
        self.sessions = {
            SESSION_TOKEN: HostSession(user_id=2, active_profile={"id": 4, "name": "Super-Admin"}),
            "no-profile": HostSession(user_id=3, active_profile={}),
        }
        self.enabled = True
        self.clients = [ApiClient(id=1)]
        self.lists = {
            "project_asset_types": ["Computer", "Monitor"],
            "document_types": ["Computer", "Software"],
            "consumables_types": ["ConsumableItem"],
            "infocom_types": ["Computer", "Peripheral"],
        }
        self.known_types = {"Computer", "Monitor", "Software", "ConsumableItem", "Peripheral", "Ticket"}
        self.actions = {
            "Computer": {
                "MassiveAction:update": "Update",
                "MassiveAction:delete": "Put in trashbin",
                "Infocom:activate": "Enable the financial and administrative information",
                "Lock:unlock": "Unlock components",
            },
        }
        self.forbidden = {"Computer": ["Lock:unlock"]}
        self.subforms = {"MassiveAction:update": UPDATE_SUBFORM}
        self.broken_actions: set[str] = set()
        self.process_error: str | None = None
        self.processed: list[dict[str, Any]] = []

    def authenticate(self, session_token):
        return self.sessions.get(session_token)

    def api_enabled(self):
        return self.enabled

    def api_clients(self):
        return list(self.clients)

    def item_type_lists(self):
        return self.lists

    def is_item_type(self, itemtype):
        return itemtype in self.known_types

    def get_all_massive_actions(self, itemtype, is_deleted, single):
        return self.actions.get(itemtype)

    def forbidden_actions(self, itemtype):
        return self.forbidden.get(itemtype, [])

    def massive_action(self, post, stage):
        return FakeStage(self, post, stage)


class OutboundRecorder:
    """MockTransport handler standing in for the host and the bridge."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.subform_status = 200
        self.subform_html = UPDATE_SUBFORM

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/ajax/dropdownMassiveAction.php"):
            return httpx.Response(self.subform_status, text=self.subform_html)
        if request.url.path.endswith("/process_action"):
            body = json.loads(request.content)
            count = sum(len(ids) for ids in body["items"].values())
            return httpx.Response(200, json={"ok": count, "ko": 0, "noright": 0, "messages": []})
        return httpx.Response(404, json={"error": "Not Found"})

    def bodies(self, suffix: str) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith(suffix)
        ]


@pytest.fixture
def host_engine() -> FakeHostEngine:
    return FakeHostEngine()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        host_base_url=HOST_URL,
        bridge_base_url=BRIDGE_URL,
        retry_delay=0,
        stream_interval=0.01,
        batch_size=2,
        batch_concurrency=2,
        redis_url=None,
    )


@pytest.fixture
def outbound() -> OutboundRecorder:
    return OutboundRecorder()


@pytest.fixture
def client(host_engine, settings, outbound):
    """TestClient with the lifespan running, authenticated by header."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(outbound))
    app = create_app(host_engine=host_engine, http_client=http_client, settings=settings)
    with TestClient(app, headers={"Session-Token": SESSION_TOKEN}) as test_client:
        yield test_client


@pytest.fixture
def anonymous_client(host_engine, settings):
    app = create_app(host_engine=host_engine, settings=settings)
    with TestClient(app) as test_client:
        yield test_client
