"""Unit tests for ConnectionService."""

from typing import Any, Callable
from unittest.mock import patch

import pytest

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from src.core.store import DocumentStore, StorePermissionError
from src.models import Collections
from src.services.connection_service import ConnectionService


@pytest.fixture
def service() -> ConnectionService:
    return ConnectionService()


def seed_records(store: DocumentStore, parent_id: str, connection_id: str) -> None:
    """One record in every collaborative collection, tagged with ``connection_id``."""
    for collection in Collections.COLLABORATIVE:
        store.insert(collection, {"parent_id": parent_id, "connection_id": connection_id})


class TestCreateConnection:
    """Tests for pairing two users."""

    @pytest.mark.asyncio
    async def test_roles_are_read_from_profiles(
        self, service: ConnectionService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that argument order does not decide who is the parent."""
        parent_id = await create_user("PARENT", "Parent")
        provider_id = await create_user("CARE_PROVIDER", "Provider")

        connection_id = await service.create_connection(provider_id, parent_id)

        connection = store.get(Collections.CONNECTIONS, connection_id)
        assert connection["parent_id"] == parent_id
        assert connection["care_provider_id"] == provider_id
        assert connection["parent_profile"]["name"] == "Parent"
        assert connection["care_provider_profile"]["name"] == "Provider"
        assert [child["name"] for child in connection["children"]] == ["Mina"]

    @pytest.mark.asyncio
    async def test_membership_is_recorded_on_both_profiles(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        pair = await connected_pair()

        parent = store.get(Collections.USERS, pair["parent_id"])
        provider = store.get(Collections.USERS, pair["provider_id"])
        assert parent["connection_ids"] == [pair["connection_id"]]
        assert provider["connection_id"] == pair["connection_id"]
        assert provider["allowed_parent_ids"] == [pair["parent_id"]]

    @pytest.mark.asyncio
    async def test_same_role_is_rejected(self, service: ConnectionService, create_user: Callable[..., Any]) -> None:
        a = await create_user("PARENT")
        b = await create_user("PARENT")

        with pytest.raises(ValidationError):
            await service.create_connection(a, b)

    @pytest.mark.asyncio
    async def test_self_connection_is_rejected(self, service: ConnectionService, create_user: Callable[..., Any]) -> None:
        a = await create_user("PARENT")

        with pytest.raises(ValidationError):
            await service.create_connection(a, a)

    @pytest.mark.asyncio
    async def test_missing_profile(self, service: ConnectionService, create_user: Callable[..., Any]) -> None:
        a = await create_user("PARENT")

        with pytest.raises(NotFoundError):
            await service.create_connection(a, "missing")

    @pytest.mark.asyncio
    async def test_duplicate_pair_conflicts(self, service: ConnectionService, connected_pair: Callable[..., Any]) -> None:
        pair = await connected_pair()

        with pytest.raises(ConflictError):
            await service.create_connection(pair["parent_id"], pair["provider_id"])

    @pytest.mark.asyncio
    async def test_parent_may_have_several_providers(
        self, service: ConnectionService, connected_pair: Callable[..., Any]
    ) -> None:
        first = await connected_pair()
        second = await connected_pair(first["parent_id"])

        connections = await service.get_all_user_connections(first["parent_id"])

        assert {c["id"] for c in connections} == {first["connection_id"], second["connection_id"]}


class TestDisconnect:
    """Tests for tearing a connection down."""

    @pytest.mark.asyncio
    async def test_last_connection_removes_every_parent_record(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that records written without a connection tag go too when nothing else shares them."""
        pair = await connected_pair()
        seed_records(store, pair["parent_id"], pair["connection_id"])
        store.insert(Collections.MEDICATIONS, {"parent_id": pair["parent_id"], "connection_id": None})

        deleted = await service.disconnect(pair["connection_id"], pair["provider_id"], pair["parent_id"])

        assert deleted[Collections.MEDICATIONS] == 2
        for collection in Collections.COLLABORATIVE:
            assert store.query(collection, eq={"parent_id": pair["parent_id"]}) == []

    @pytest.mark.asyncio
    async def test_other_connection_keeps_parent_records(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that records written through the torn-down connection stay while the parent has another."""
        first = await connected_pair()
        second = await connected_pair(first["parent_id"])
        parent_id = first["parent_id"]
        seed_records(store, parent_id, first["connection_id"])

        deleted = await service.disconnect(first["connection_id"], parent_id, first["provider_id"])

        assert sum(deleted.values()) == 0
        for collection in Collections.COLLABORATIVE:
            assert len(store.query(collection, eq={"parent_id": parent_id})) == 1
        assert await service.get_all_user_connections(parent_id) == [
            store.get(Collections.CONNECTIONS, second["connection_id"])
        ]

    @pytest.mark.asyncio
    async def test_other_connection_drops_departing_provider_items(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that notes and special items of the departing provider go, the parent's stay."""
        first = await connected_pair()
        second = await connected_pair(first["parent_id"])
        parent_id, leaving = first["parent_id"], first["provider_id"]
        parent_note = store.insert(Collections.HANDOVER_NOTES, {"parent_id": parent_id, "author_id": parent_id})
        store.insert(Collections.HANDOVER_NOTES, {"parent_id": parent_id, "author_id": leaving})
        store.insert(Collections.SPECIAL_SCHEDULES, {"parent_id": parent_id, "created_by": leaving})
        store.insert(
            Collections.SPECIAL_SCHEDULES,
            {"parent_id": parent_id, "created_by": parent_id, "target_user_id": leaving},
        )
        kept_item = store.insert(
            Collections.SPECIAL_SCHEDULES,
            {"parent_id": parent_id, "created_by": parent_id, "target_user_id": second["provider_id"]},
        )

        deleted = await service.disconnect(first["connection_id"], parent_id, leaving)

        assert deleted[Collections.HANDOVER_NOTES] == 1
        assert deleted[Collections.SPECIAL_SCHEDULES] == 2
        assert [row["id"] for row in store.query(Collections.HANDOVER_NOTES)] == [parent_note["id"]]
        assert [row["id"] for row in store.query(Collections.SPECIAL_SCHEDULES)] == [kept_item["id"]]

    @pytest.mark.asyncio
    async def test_memberships_are_cleared(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        pair = await connected_pair()
        store.update(Collections.USERS, pair["parent_id"], {"primary_connection_id": pair["connection_id"]})

        await service.disconnect(pair["connection_id"], pair["parent_id"], pair["provider_id"])

        parent = store.get(Collections.USERS, pair["parent_id"])
        provider = store.get(Collections.USERS, pair["provider_id"])
        assert parent["connection_ids"] == []
        assert parent["connection_id"] is None
        assert parent["primary_connection_id"] is None
        assert provider["allowed_parent_ids"] == []
        assert store.get(Collections.CONNECTIONS, pair["connection_id"])["is_active"] is False
        assert await service.get_all_user_connections(pair["parent_id"]) == []

    @pytest.mark.asyncio
    async def test_outsider_cannot_disconnect(
        self, service: ConnectionService, connected_pair: Callable[..., Any], create_user: Callable[..., Any]
    ) -> None:
        pair = await connected_pair()
        outsider = await create_user("CARE_PROVIDER")

        with pytest.raises(AuthorizationError):
            await service.disconnect(pair["connection_id"], pair["parent_id"], outsider)

    @pytest.mark.asyncio
    async def test_unknown_connection(self, service: ConnectionService) -> None:
        with pytest.raises(NotFoundError):
            await service.disconnect("missing", "a", "b")

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_everything_in_place(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that a batch failure deletes nothing and keeps the connection active."""
        pair = await connected_pair()
        seed_records(store, pair["parent_id"], pair["connection_id"])
        original_delete = store._remove
        calls: list[str] = []

        def flaky_remove(collection: str, doc_id: str) -> bool:
            calls.append(collection)
            if len(calls) == 3:
                raise StorePermissionError("denied")
            return original_delete(collection, doc_id)

        with patch.object(store, "_remove", side_effect=flaky_remove):
            with pytest.raises(ServiceUnavailableError):
                await service.disconnect(pair["connection_id"], pair["parent_id"], pair["provider_id"])

        assert store.get(Collections.CONNECTIONS, pair["connection_id"])["is_active"] is True
        for collection in Collections.COLLABORATIVE:
            assert len(store.query(collection, eq={"parent_id": pair["parent_id"]})) == 1


class TestMembershipRepair:
    """Tests for reconciling cached membership with the connections table."""

    @pytest.mark.asyncio
    async def test_stale_connection_ids_are_repaired(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        pair = await connected_pair()
        store.update(
            Collections.USERS,
            pair["parent_id"],
            {"connection_ids": ["gone", pair["connection_id"]], "connection_id": "gone", "primary_connection_id": "gone"},
        )

        await service.sync_user_connections(pair["parent_id"])

        parent = store.get(Collections.USERS, pair["parent_id"])
        assert parent["connection_ids"] == [pair["connection_id"]]
        assert parent["connection_id"] == pair["connection_id"]
        assert parent["primary_connection_id"] is None

    @pytest.mark.asyncio
    async def test_allowed_parent_ids_follow_active_connections(
        self, service: ConnectionService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        provider_id = await create_user("CARE_PROVIDER")
        parent_a = await create_user("PARENT")
        parent_b = await create_user("PARENT")
        await service.create_connection(parent_a, provider_id)
        await service.create_connection(parent_b, provider_id)
        store.update(Collections.USERS, provider_id, {"allowed_parent_ids": []})

        allowed = await service.sync_allowed_parent_ids(provider_id)

        assert allowed == sorted([parent_a, parent_b])
        assert store.get(Collections.USERS, provider_id)["allowed_parent_ids"] == allowed

    @pytest.mark.asyncio
    async def test_unreadable_connection_is_reported_absent(self, service: ConnectionService, store: DocumentStore) -> None:
        with patch.object(store, "_fetch", side_effect=StorePermissionError("denied")):
            assert await service.get_connection("c1") is None


class TestRefreshSnapshots:
    """Tests for re-propagating profile changes into connections."""

    @pytest.mark.asyncio
    async def test_parent_name_and_children_propagate(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        pair = await connected_pair()
        store.update(
            Collections.USERS,
            pair["parent_id"],
            {"name": "Renamed", "children": [{"id": "k1", "name": "Joon"}]},
        )

        assert await service.refresh_snapshots(pair["parent_id"]) == 1

        connection = store.get(Collections.CONNECTIONS, pair["connection_id"])
        assert connection["parent_profile"]["name"] == "Renamed"
        assert connection["children"] == [{"id": "k1", "name": "Joon"}]

    @pytest.mark.asyncio
    async def test_provider_snapshot_propagates(
        self, service: ConnectionService, connected_pair: Callable[..., Any], store: DocumentStore
    ) -> None:
        pair = await connected_pair()
        store.update(Collections.USERS, pair["provider_id"], {"contact": "010-9999-9999"})

        await service.refresh_snapshots(pair["provider_id"])

        connection = store.get(Collections.CONNECTIONS, pair["connection_id"])
        assert connection["care_provider_profile"]["contact"] == "010-9999-9999"
