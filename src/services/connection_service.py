"""Connection business logic service.

A connection pairs one parent with one care provider. The connections
table is the source of truth for membership; ``connection_ids`` on each
profile and ``allowed_parent_ids`` on care provider profiles are caches
that this service keeps in line with it.
"""

import logging
import uuid
from typing import Any

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from src.core.store import StoreError, StorePermissionError, get_document_store, utc_now_iso
from src.models import Collections, UserType

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = ("id", "user_type", "name", "contact", "email")

# Fields naming the care provider a record belongs to, per collection
DEPARTING_PARTY_FIELDS: dict[str, tuple[str, ...]] = {
    Collections.HANDOVER_NOTES: ("author_id",),
    Collections.SPECIAL_SCHEDULES: ("created_by", "target_user_id"),
}


def profile_snapshot(profile: dict[str, Any]) -> dict[str, Any]:
    """Denormalized copy of a profile as embedded in a connection."""
    return {name: profile.get(name) for name in SNAPSHOT_FIELDS}


def connection_sort_key(connection: dict[str, Any]) -> tuple[str, str]:
    return (connection.get("created_at") or "", connection["id"])


class ConnectionService:
    """Service for pairing parents with care providers."""

    def __init__(self) -> None:
        """Initialize connection service with the document store."""
        self.store = get_document_store()

    async def get_connection(self, connection_id: str) -> dict[str, Any] | None:
        """Get a connection by ID.

        A permission-denied read means the caller lost access because the
        connection was torn down; it is reported as absent.

        Args:
            connection_id: The connection id.

        Returns:
            dict | None: The connection data or None if not found.
        """
        try:
            return self.store.get(Collections.CONNECTIONS, connection_id)
        except StorePermissionError:
            logger.info("Connection %s no longer readable, treating as removed", connection_id)
            return None

    async def get_all_user_connections(self, user_id: str) -> list[dict[str, Any]]:
        """List the active connections a user is party to.

        Args:
            user_id: The user's id, matched as either parent or care provider.

        Returns:
            list[dict]: Connections ordered by creation time, then id.
        """
        found: dict[str, dict[str, Any]] = {}
        for role_field in ("parent_id", "care_provider_id"):
            try:
                rows = self.store.query(
                    Collections.CONNECTIONS,
                    eq={role_field: user_id, "is_active": True},
                )
            except StorePermissionError:
                logger.info("Connections by %s for %s not readable, skipping", role_field, user_id)
                continue
            for row in rows:
                found.setdefault(row["id"], row)

        return sorted(found.values(), key=connection_sort_key)

    async def find_active_connection(self, parent_id: str, care_provider_id: str) -> dict[str, Any] | None:
        rows = self.store.query(
            Collections.CONNECTIONS,
            eq={"parent_id": parent_id, "care_provider_id": care_provider_id, "is_active": True},
        )
        return rows[0] if rows else None

    async def create_connection(self, user_a_id: str, user_b_id: str) -> str:
        """Create a connection between a parent and a care provider.

        Roles are read from the two profiles, so argument order does not
        matter.

        Args:
            user_a_id: One party's user id.
            user_b_id: The other party's user id.

        Returns:
            str: The new connection's id.

        Raises:
            NotFoundError: If either profile does not exist.
            ValidationError: If both users have the same user type.
            ConflictError: If the pair is already connected.
        """
        if user_a_id == user_b_id:
            raise ValidationError("Cannot connect a user to themselves")

        profile_a = self.store.get(Collections.USERS, user_a_id)
        profile_b = self.store.get(Collections.USERS, user_b_id)
        if not profile_a or not profile_b:
            raise NotFoundError("Profile not found")

        if profile_a.get("user_type") == profile_b.get("user_type"):
            raise ValidationError("A connection needs one parent and one care provider")

        if profile_a["user_type"] == UserType.PARENT.value:
            parent, provider = profile_a, profile_b
        else:
            parent, provider = profile_b, profile_a

        if await self.find_active_connection(parent["id"], provider["id"]):
            raise ConflictError("These users are already connected")

        connection_id = str(uuid.uuid4())
        now = utc_now_iso()
        connection = {
            "id": connection_id,
            "parent_id": parent["id"],
            "care_provider_id": provider["id"],
            "parent_profile": profile_snapshot(parent),
            "care_provider_profile": profile_snapshot(provider),
            "children": list(parent.get("children") or []),
            "is_active": True,
            "created_at": now,
        }

        batch = self.store.batch()
        batch.set(Collections.CONNECTIONS, connection_id, connection)
        for profile in (parent, provider):
            batch.update(
                Collections.USERS,
                profile["id"],
                {
                    "connection_id": connection_id,
                    "connection_ids": _with_id(profile.get("connection_ids"), connection_id),
                },
            )
        try:
            batch.commit()
        except StoreError as e:
            logger.error("Failed to create connection %s <-> %s: %s", parent["id"], provider["id"], e)
            raise ServiceUnavailableError() from e

        logger.info("Connected parent %s with care provider %s (%s)", parent["id"], provider["id"], connection_id)
        await self.sync_allowed_parent_ids(provider["id"])
        return connection_id

    async def disconnect(self, connection_id: str, user_a_id: str, user_b_id: str) -> dict[str, int]:
        """Tear down a connection and the shared records scoped to it.

        When the parent has no other active connection, every collaborative
        record under the parent's owning key is removed. Otherwise the
        parent's records stay with the remaining providers and only what
        belongs to the departing provider goes: the handover notes they wrote
        and the special schedule items they filed or were addressed to.

        Args:
            connection_id: The connection to remove.
            user_a_id: One party's user id.
            user_b_id: The other party's user id.

        Returns:
            dict[str, int]: Number of records deleted per collection.

        Raises:
            NotFoundError: If the connection does not exist.
            AuthorizationError: If the ids are not the connection's two parties.
        """
        connection = await self.get_connection(connection_id)
        if not connection:
            raise NotFoundError("Connection not found")

        parties = {connection["parent_id"], connection["care_provider_id"]}
        if {user_a_id, user_b_id} != parties:
            raise AuthorizationError("Only the two parties can disconnect a connection")

        parent_id = connection["parent_id"]
        provider_id = connection["care_provider_id"]
        others = [
            row
            for row in self.store.query(Collections.CONNECTIONS, eq={"parent_id": parent_id, "is_active": True})
            if row["id"] != connection_id
        ]

        batch = self.store.batch()
        deleted: dict[str, int] = {}
        for collection in Collections.COLLABORATIVE:
            targets: set[str] = set()
            # Legacy rows addressed only by the connection
            for row in self.store.query(collection, eq={"connection_id": connection_id, "parent_id": None}):
                targets.add(row["id"])
            if others:
                filters = [
                    {"parent_id": parent_id, name: provider_id} for name in DEPARTING_PARTY_FIELDS.get(collection, ())
                ]
            else:
                filters = [{"parent_id": parent_id}]
            for eq in filters:
                for row in self.store.query(collection, eq=eq):
                    targets.add(row["id"])
            for doc_id in targets:
                batch.delete(collection, doc_id)
            deleted[collection] = len(targets)

        batch.update(Collections.CONNECTIONS, connection_id, {"is_active": False})
        for user_id in parties:
            profile = self.store.get(Collections.USERS, user_id)
            if profile is None:
                continue
            batch.update(Collections.USERS, user_id, _without_connection(profile, connection_id))

        try:
            batch.commit()
        except StoreError as e:
            logger.error("Failed to disconnect %s: %s", connection_id, e)
            raise ServiceUnavailableError() from e

        logger.info(
            "Disconnected %s, removed %d shared records (parent keeps %d other connections)",
            connection_id,
            sum(deleted.values()),
            len(others),
        )
        await self.sync_allowed_parent_ids(connection["care_provider_id"])
        return deleted

    async def sync_allowed_parent_ids(self, care_provider_id: str) -> list[str]:
        """Recompute the parents a care provider may read records for.

        Args:
            care_provider_id: The care provider's user id.

        Returns:
            list[str]: Sorted parent ids reachable through active connections.
        """
        rows = self.store.query(
            Collections.CONNECTIONS,
            eq={"care_provider_id": care_provider_id, "is_active": True},
        )
        parent_ids = sorted({row["parent_id"] for row in rows})

        profile = self.store.get(Collections.USERS, care_provider_id)
        if profile is not None and sorted(profile.get("allowed_parent_ids") or []) != parent_ids:
            self.store.update(Collections.USERS, care_provider_id, {"allowed_parent_ids": parent_ids})
            logger.info("Updated allowed parents for %s: %s", care_provider_id, parent_ids)
        return parent_ids

    async def sync_user_connections(
        self,
        user_id: str,
        profile: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Bring a profile's cached membership in line with the connections table.

        Args:
            user_id: The user's id.
            profile: The already-loaded profile, if the caller has it.

        Returns:
            list[dict]: The user's active connections.
        """
        connections = await self.get_all_user_connections(user_id)
        if profile is None:
            profile = self.store.get(Collections.USERS, user_id)
        if profile is None:
            return connections

        actual = [c["id"] for c in connections]
        fields: dict[str, Any] = {}
        if set(profile.get("connection_ids") or []) != set(actual):
            fields["connection_ids"] = actual
        if profile.get("connection_id") and profile["connection_id"] not in actual:
            fields["connection_id"] = actual[0] if actual else None
        if profile.get("primary_connection_id") and profile["primary_connection_id"] not in actual:
            fields["primary_connection_id"] = None

        if fields:
            logger.info("Repairing connection membership for %s: %s", user_id, sorted(fields))
            updated = self.store.update(Collections.USERS, user_id, fields)
            if updated is not None:
                profile.update(updated)

        if profile.get("user_type") == UserType.CARE_PROVIDER.value:
            allowed = await self.sync_allowed_parent_ids(user_id)
            profile["allowed_parent_ids"] = allowed

        return connections

    async def refresh_snapshots(self, user_id: str) -> int:
        """Re-propagate a user's profile (and a parent's children) into their connections.

        Args:
            user_id: The user whose profile changed.

        Returns:
            int: Number of connections refreshed.
        """
        profile = self.store.get(Collections.USERS, user_id)
        if profile is None:
            return 0

        if profile.get("user_type") == UserType.PARENT.value:
            fields = {
                "parent_profile": profile_snapshot(profile),
                "children": list(profile.get("children") or []),
            }
        else:
            fields = {"care_provider_profile": profile_snapshot(profile)}

        refreshed = 0
        for connection in await self.get_all_user_connections(user_id):
            if self.store.update(Collections.CONNECTIONS, connection["id"], fields) is not None:
                refreshed += 1
        logger.debug("Refreshed %d connection snapshots for %s", refreshed, user_id)
        return refreshed


def _with_id(ids: list[str] | None, new_id: str) -> list[str]:
    ids = list(ids or [])
    if new_id not in ids:
        ids.append(new_id)
    return ids


def _without_connection(profile: dict[str, Any], connection_id: str) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "connection_ids": [cid for cid in profile.get("connection_ids") or [] if cid != connection_id],
    }
    if profile.get("connection_id") == connection_id:
        fields["connection_id"] = None
    if profile.get("primary_connection_id") == connection_id:
        fields["primary_connection_id"] = None
    return fields
