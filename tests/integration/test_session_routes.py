"""Integration tests for session and profile API endpoints."""

from collections.abc import Callable
from unittest.mock import MagicMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from src.core.session import get_session_registry


class TestSessionAuth:
    """Tests for authentication requirements on session endpoints."""

    def test_get_session_requires_auth(self, client: TestClient) -> None:
        """Test that the session endpoint rejects requests without a token."""
        response = client.get("/api/v1/session")

        assert response.status_code == 401

    def test_get_session_rejects_malformed_header(self, client: TestClient) -> None:
        """Test that a non-bearer Authorization header is rejected."""
        response = client.get("/api/v1/session", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401


class TestGetSession:
    """Tests for GET /api/v1/session."""

    def test_new_identity_has_no_profile(self, client: TestClient, login_as: Callable) -> None:
        """Test that an identity without a profile is routed to profile creation."""
        user_id = str(uuid4())

        response = client.get("/api/v1/session", headers=login_as(user_id))
        data = response.json()

        assert response.status_code == 200
        assert data["state"] == "AUTHENTICATED_NO_PROFILE"
        assert data["user_id"] == user_id
        assert data["profile"] is None
        assert data["connections"] == []
        assert data["active_connection_id"] is None

    def test_ready_session_reports_connection(
        self, client: TestClient, login_as: Callable, api_pair: Callable
    ) -> None:
        """Test that a paired parent's session has the connection active."""
        pair = api_pair()

        data = client.get("/api/v1/session", headers=login_as(pair["parent_id"])).json()

        assert data["state"] == "READY"
        assert data["profile"]["user_type"] == "PARENT"
        assert [c["id"] for c in data["connections"]] == [pair["connection_id"]]
        assert data["active_connection_id"] == pair["connection_id"]

    def test_other_party_sees_new_connection(
        self, client: TestClient, login_as: Callable, api_user: Callable, api_pair: Callable
    ) -> None:
        """Test that a session loaded before pairing picks the connection up on reload."""
        parent_id = api_user("PARENT", "Parent")
        before = client.get("/api/v1/session", headers=login_as(parent_id)).json()
        assert before["active_connection_id"] is None

        pair = api_pair(parent_id)

        after = client.get("/api/v1/session", headers=login_as(parent_id)).json()
        assert after["active_connection_id"] == pair["connection_id"]


class TestCreateProfile:
    """Tests for POST /api/v1/session/profile."""

    def test_create_parent_profile(self, client: TestClient, login_as: Callable) -> None:
        """Test that creating a profile moves the session to READY."""
        response = client.post(
            "/api/v1/session/profile",
            json={
                "user_type": "PARENT",
                "name": "Jiwoo",
                "contact": "010-1234-5678",
                "children": [{"name": "Mina", "age": 4}],
            },
            headers=login_as(str(uuid4())),
        )
        data = response.json()

        assert response.status_code == 201
        assert data["state"] == "READY"
        assert data["profile"]["name"] == "Jiwoo"
        assert data["profile"]["children"][0]["id"]
        assert data["active_connection_id"] is None

    def test_create_profile_twice_conflicts(self, client: TestClient, login_as: Callable, api_user: Callable) -> None:
        """Test that a second profile for the same identity is a 409."""
        user_id = api_user("PARENT")

        response = client.post(
            "/api/v1/session/profile",
            json={"user_type": "PARENT", "name": "Again", "contact": "010"},
            headers=login_as(user_id),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_provider_cannot_register_children(self, client: TestClient, login_as: Callable) -> None:
        """Test that children on a care provider profile fail validation."""
        response = client.post(
            "/api/v1/session/profile",
            json={
                "user_type": "CARE_PROVIDER",
                "name": "Sora",
                "contact": "010",
                "children": [{"name": "Mina"}],
            },
            headers=login_as(str(uuid4())),
        )

        assert response.status_code == 422

    def test_unknown_user_type_rejected(self, client: TestClient, login_as: Callable) -> None:
        response = client.post(
            "/api/v1/session/profile",
            json={"user_type": "ADMIN", "name": "X", "contact": "010"},
            headers=login_as(str(uuid4())),
        )

        assert response.status_code == 422


class TestSwitchAndPrimary:
    """Tests for switching and pinning the active connection."""

    def test_switch_to_second_connection(self, client: TestClient, login_as: Callable, api_pair: Callable) -> None:
        """Test that a parent with two providers can switch between them."""
        first = api_pair()
        second = api_pair(first["parent_id"])
        headers = login_as(first["parent_id"])
        client.get("/api/v1/session", headers=headers)

        response = client.post(
            "/api/v1/session/switch",
            json={"connection_id": second["connection_id"]},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["active_connection_id"] == second["connection_id"]

    def test_switch_to_unknown_connection_404(
        self, client: TestClient, login_as: Callable, api_pair: Callable
    ) -> None:
        pair = api_pair()

        response = client.post(
            "/api/v1/session/switch",
            json={"connection_id": "not-mine"},
            headers=login_as(pair["parent_id"]),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_switch_requires_profile(self, client: TestClient, login_as: Callable) -> None:
        """Test that a session without a profile cannot select connections."""
        response = client.post(
            "/api/v1/session/switch",
            json={"connection_id": "anything"},
            headers=login_as(str(uuid4())),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "authorization_error"

    def test_primary_toggle(self, client: TestClient, login_as: Callable, api_pair: Callable) -> None:
        """Test that setting the primary twice clears it again."""
        first = api_pair()
        second = api_pair(first["parent_id"])
        headers = login_as(first["parent_id"])
        client.get("/api/v1/session", headers=headers)

        pinned = client.post(
            "/api/v1/session/primary",
            json={"connection_id": second["connection_id"]},
            headers=headers,
        ).json()
        assert pinned["primary_connection_id"] == second["connection_id"]
        assert pinned["active_connection_id"] == second["connection_id"]

        cleared = client.post(
            "/api/v1/session/primary",
            json={"connection_id": second["connection_id"]},
            headers=headers,
        ).json()
        assert cleared["primary_connection_id"] is None
        assert cleared["active_connection_id"] == first["connection_id"]


class TestSignOut:
    """Tests for DELETE /api/v1/session and POST /api/v1/auth/logout."""

    @patch("src.services.auth_service.create_auth_client")
    def test_sign_out_drops_session(
        self, mock_create: MagicMock, client: TestClient, login_as: Callable, api_user: Callable
    ) -> None:
        """Test that signing out removes the session from the registry."""
        user_id = api_user("PARENT")
        assert get_session_registry().get(user_id) is not None

        response = client.delete("/api/v1/session", headers=login_as(user_id))

        assert response.status_code == 204
        assert get_session_registry().get(user_id) is None
        mock_create.return_value.auth.sign_out.assert_called_once()

    @patch("src.services.auth_service.create_auth_client")
    def test_logout_route(
        self, mock_create: MagicMock, client: TestClient, login_as: Callable, api_user: Callable
    ) -> None:
        user_id = api_user("CARE_PROVIDER")

        response = client.post("/api/v1/auth/logout", headers=login_as(user_id))

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        assert get_session_registry().get(user_id) is None


class TestProfileRoutes:
    """Tests for /api/v1/profiles/me endpoints."""

    def test_get_my_profile(self, client: TestClient, login_as: Callable, api_user: Callable) -> None:
        user_id = api_user("PARENT", "Jiwoo")

        response = client.get("/api/v1/profiles/me", headers=login_as(user_id))

        assert response.status_code == 200
        assert response.json()["id"] == user_id
        assert response.json()["name"] == "Jiwoo"

    def test_update_profile_refreshes_connection_snapshot(
        self, client: TestClient, login_as: Callable, api_pair: Callable
    ) -> None:
        """Test that a renamed provider shows up renamed in the parent's connection."""
        pair = api_pair()

        response = client.patch(
            "/api/v1/profiles/me",
            json={"name": "Sora Kim"},
            headers=login_as(pair["provider_id"]),
        )
        assert response.status_code == 200

        connection = client.get(
            f"/api/v1/connections/{pair['connection_id']}",
            headers=login_as(pair["parent_id"]),
        ).json()
        assert connection["care_provider_profile"]["name"] == "Sora Kim"

    def test_save_children_propagates_to_connection(
        self, client: TestClient, login_as: Callable, api_pair: Callable
    ) -> None:
        pair = api_pair()
        headers = login_as(pair["parent_id"])

        response = client.put(
            "/api/v1/profiles/me/children",
            json={"children": [{"name": "Mina", "age": 5}, {"name": "Joon", "age": 2}]},
            headers=headers,
        )
        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Mina", "Joon"]

        connection = client.get(f"/api/v1/connections/{pair['connection_id']}", headers=headers).json()
        assert [c["name"] for c in connection["children"]] == ["Mina", "Joon"]

    def test_provider_cannot_save_children(self, client: TestClient, login_as: Callable, api_user: Callable) -> None:
        user_id = api_user("CARE_PROVIDER")

        response = client.put(
            "/api/v1/profiles/me/children",
            json={"children": [{"name": "Mina"}]},
            headers=login_as(user_id),
        )

        assert response.status_code == 403

    def test_work_schedule_merges_days(self, client: TestClient, login_as: Callable, api_user: Callable) -> None:
        """Test that saving some days leaves the other days untouched."""
        headers = login_as(api_user("PARENT"))

        client.put(
            "/api/v1/profiles/me/work-schedule",
            json={"days": {"MON": {"start_time": "09:00", "end_time": "18:00"}, "SAT": "OFF"}},
            headers=headers,
        )
        client.put(
            "/api/v1/profiles/me/work-schedule",
            json={"days": {"TUE": {"start_time": "10:00", "end_time": "19:00"}}},
            headers=headers,
        )

        data = client.get("/api/v1/profiles/me/work-schedule", headers=headers).json()
        assert data["MON"] == {"start_time": "09:00", "end_time": "18:00"}
        assert data["TUE"] == {"start_time": "10:00", "end_time": "19:00"}
        assert data["SAT"] == "OFF"

    def test_work_schedule_rejects_bad_time(self, client: TestClient, login_as: Callable, api_user: Callable) -> None:
        headers = login_as(api_user("PARENT"))

        response = client.put(
            "/api/v1/profiles/me/work-schedule",
            json={"days": {"MON": {"start_time": "25:00", "end_time": "18:00"}}},
            headers=headers,
        )

        assert response.status_code == 422
