"""Tests for the massive action bridge endpoints and their access gates."""

from __future__ import annotations

import ipaddress

from massive_action_api.core.host import ApiClient

from .conftest import SESSION_TOKEN

PREFIX = "/api.php"


class TestAccessControl:
    """Session, API switch and IP allow-list checks run before any handler."""

    def test_missing_session_is_unauthorized(self, anonymous_client):
        """Should answer 401 without a session token."""
        response = anonymous_client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_unknown_session_is_unauthorized(self, anonymous_client):
        """Should answer 401 for a token the host does not know."""
        response = anonymous_client.get(
            f"{PREFIX}/itemtypes", headers={"Session-Token": "expired"}
        )
        assert response.status_code == 401

    def test_session_cookie_is_accepted(self, anonymous_client):
        """Should read the session from a glpi_<x> cookie."""
        anonymous_client.cookies.set("glpi_8ac3f1", SESSION_TOKEN)
        response = anonymous_client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 200

    def test_remember_me_cookie_is_ignored(self, anonymous_client):
        """Should not treat glpi_<x>_rememberme as a session cookie."""
        anonymous_client.cookies.set("glpi_8ac3f1_rememberme", SESSION_TOKEN)
        response = anonymous_client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 401

    def test_no_active_profile_is_forbidden(self, anonymous_client):
        response = anonymous_client.get(
            f"{PREFIX}/itemtypes", headers={"Session-Token": "no-profile"}
        )
        assert response.status_code == 403
        assert response.json() == {"error": "No active profile found"}

    def test_api_disabled_is_forbidden(self, client, host_engine):
        host_engine.enabled = False
        response = client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 403
        assert response.json() == {"error": "API disabled"}

    def test_no_matching_api_client_is_forbidden(self, client, host_engine):
        """Should refuse callers outside every registered client's range."""
        host_engine.clients = [
            ApiClient(
                id=1,
                ipv4_range_start=int(ipaddress.IPv4Address("10.0.0.1")),
                ipv4_range_end=int(ipaddress.IPv4Address("10.0.0.254")),
                ipv6="::1",
            )
        ]
        response = client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 403
        assert response.json()["error"].startswith(
            "There isn't an active API client matching your IP address"
        )

    def test_inactive_clients_do_not_match(self, client, host_engine):
        host_engine.clients = [ApiClient(id=1, is_active=False)]
        response = client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 403


class TestItemTypes:
    """Tests for GET itemtypes."""

    def test_union_is_sorted_and_deduplicated(self, client):
        response = client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 200
        assert response.json() == [
            "Computer",
            "ConsumableItem",
            "Monitor",
            "Peripheral",
            "Software",
        ]

    def test_console_alias(self, client):
        """Should serve the same list on the console page's path."""
        response = client.get(f"{PREFIX}/ui/itsm-itemtypes")
        assert response.status_code == 200
        assert response.json() == client.get(f"{PREFIX}/itemtypes").json()


class TestAvailableActions:
    """Tests for GET available_actions/{itemtype}."""

    def test_forbidden_actions_are_removed(self, client):
        response = client.get(f"{PREFIX}/available_actions/Computer")
        assert response.status_code == 200
        body = response.json()
        keys = [action["key"] for action in body["actions"]]
        assert "Lock:unlock" not in keys
        assert keys == ["MassiveAction:update", "MassiveAction:delete", "Infocom:activate"]
        assert body["count"] == 3
        assert body["itemtype"] == "Computer"
        assert body["is_deleted"] == 0
        assert body["single"] == 0

    def test_category_is_the_key_prefix(self, client):
        response = client.get(f"{PREFIX}/available_actions/Computer")
        categories = {action["key"]: action["category"] for action in response.json()["actions"]}
        assert categories["Infocom:activate"] == "Infocom"
        assert categories["MassiveAction:update"] == "MassiveAction"

    def test_flags_are_echoed(self, client):
        response = client.get(f"{PREFIX}/available_actions/Computer?is_deleted=1&single=1")
        assert response.json()["is_deleted"] == 1
        assert response.json()["single"] == 1

    def test_unknown_type_is_rejected(self, client):
        response = client.get(f"{PREFIX}/available_actions/UnknownType")
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid item type"}

    def test_type_without_actions(self, client):
        response = client.get(f"{PREFIX}/available_actions/Ticket")
        assert response.status_code == 400
        assert response.json() == {"error": "Cannot retrieve actions for this item type"}

    def test_invalid_flag_is_a_bad_request(self, client):
        response = client.get(f"{PREFIX}/available_actions/Computer?is_deleted=7")
        assert response.status_code == 400
        assert "error" in response.json()


class TestSpecializeAction:
    """Tests for POST specialize_action."""

    def test_returns_subform_and_process_payload(self, client):
        response = client.post(
            f"{PREFIX}/specialize_action",
            json={"items": {"Computer": [1, 2]}, "action": "MassiveAction:update"},
        )
        assert response.status_code == 200
        body = response.json()
        assert 'name="field"' in body["form_html"]
        data = body["data_for_process"]
        assert data["action"] == "MassiveAction:update"
        assert data["processor"] == "MassiveAction"
        assert data["is_deleted"] == 0
        assert data["items"] == {"Computer": {"1": 1, "2": 2}}

    def test_missing_items(self, client):
        response = client.post(
            f"{PREFIX}/specialize_action", json={"items": {}, "action": "MassiveAction:update"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "No items provided"}

    def test_missing_action(self, client):
        response = client.post(f"{PREFIX}/specialize_action", json={"items": {"Computer": [1]}})
        assert response.status_code == 400
        assert response.json() == {"error": "No action provided"}

    def test_stage_failure_is_reported(self, client, host_engine):
        host_engine.broken_actions.add("MassiveAction:update")
        response = client.post(
            f"{PREFIX}/specialize_action",
            json={"items": {"Computer": [1]}, "action": "MassiveAction:update"},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Specialize stage failed: ")


class TestProcessAction:
    """Tests for POST process_action."""

    def test_processes_selection(self, client, host_engine):
        response = client.post(
            f"{PREFIX}/process_action",
            json={
                "items": {"Computer": [1, 2, 3]},
                "action": "MassiveAction:update",
                "action_data": {"field": "comment", "value": "Audited"},
            },
        )
        assert response.status_code == 200
        assert response.json() == {
            "ok": 3,
            "ko": 0,
            "noright": 0,
            "messages": ["3 item(s) updated"],
        }
        post = host_engine.processed[-1]
        assert post["field"] == "comment"
        assert post["value"] == "Audited"
        assert post["processor"] == "MassiveAction"
        assert post["items"] == {"Computer": {1: 1, 2: 2, 3: 3}}
        assert post["initial_items"] == post["items"]

    def test_structural_fields_win_over_action_data(self, client, host_engine):
        client.post(
            f"{PREFIX}/process_action",
            json={
                "items": {"Computer": [1]},
                "action": "MassiveAction:update",
                "action_data": {"action": "MassiveAction:delete", "items": {"Computer": [9]}},
            },
        )
        post = host_engine.processed[-1]
        assert post["action"] == "MassiveAction:update"
        assert post["items"] == {"Computer": {1: 1}}

    def test_accepts_host_item_maps(self, client, host_engine):
        """Should take the {id: id} maps that specialize_action hands back."""
        response = client.post(
            f"{PREFIX}/process_action",
            json={"items": {"Computer": {"4": 4, "5": 5}}, "action": "MassiveAction:update"},
        )
        assert response.status_code == 200
        assert response.json()["ok"] == 2

    def test_empty_items(self, client):
        response = client.post(
            f"{PREFIX}/process_action", json={"items": {}, "action": "MassiveAction:update"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "No items provided"}

    def test_missing_action(self, client):
        response = client.post(f"{PREFIX}/process_action", json={"items": {"Computer": [1]}})
        assert response.status_code == 400
        assert response.json() == {"error": "No action provided"}

    def test_missing_processor(self, client):
        """Should refuse a key without a processor prefix when none is given."""
        response = client.post(
            f"{PREFIX}/process_action", json={"items": {"Computer": [1]}, "action": "update"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "No processor provided"}

    def test_invalid_ids(self, client):
        response = client.post(
            f"{PREFIX}/process_action",
            json={"items": {"Computer": [1, "abc"]}, "action": "MassiveAction:update"},
        )
        assert response.status_code == 400

    def test_engine_exception_is_passed_through(self, client, host_engine):
        host_engine.process_error = "You don't have permission to perform this action."
        response = client.post(
            f"{PREFIX}/process_action",
            json={"items": {"Computer": [1]}, "action": "MassiveAction:update"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "You don't have permission to perform this action."}


class TestRouting:
    """Tests for routing-level errors."""

    def test_unknown_route(self, client):
        response = client.get(f"{PREFIX}/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_wrong_method(self, client):
        response = client.get(f"{PREFIX}/process_action")
        assert response.status_code == 405
        assert response.json() == {"error": "Method Not Allowed"}

    def test_without_host_engine(self, settings):
        from fastapi.testclient import TestClient

        from massive_action_api.main import create_app

        app = create_app(settings=settings)
        with TestClient(app, headers={"Session-Token": SESSION_TOKEN}) as test_client:
            response = test_client.get(f"{PREFIX}/itemtypes")
        assert response.status_code == 503
        assert response.json() == {"error": "Host engine not configured"}
