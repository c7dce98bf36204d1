"""Session business logic service.

Turns an authenticated identity into a ``SessionContext``: profile, the
connections the user belongs to, and which of them is active.
"""

import logging
from typing import Any

from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.core.session import SessionContext, SessionState, get_session_registry
from src.core.store import get_document_store
from src.models import Collections
from src.schemas.auth import UserContext
from src.schemas.profile import ProfileCreate
from src.services.connection_service import ConnectionService, connection_sort_key
from src.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


def resolve_active_connection(
    connections: list[dict[str, Any]],
    primary_connection_id: str | None,
) -> str | None:
    """Pick the active connection.

    The primary connection wins when it is among ``connections``; otherwise
    the earliest-created connection (ties broken by id) is chosen. An empty
    list resolves to ``None``.
    """
    if not connections:
        return None
    if primary_connection_id and any(c["id"] == primary_connection_id for c in connections):
        return primary_connection_id
    return min(connections, key=connection_sort_key)["id"]


class SessionService:
    """Service for building and mutating per-identity session contexts."""

    def __init__(self) -> None:
        """Initialize session service with the document store and registry."""
        self.store = get_document_store()
        self.registry = get_session_registry()
        self.connections = ConnectionService()
        self.profiles = ProfileService()

    async def open(self, identity: UserContext) -> SessionContext:
        """Get the caller's session context, building it on first use.

        Args:
            identity: The authenticated identity.

        Returns:
            SessionContext: The registered context.
        """
        context = self.registry.get(identity.id)
        if context is not None and context.state is not SessionState.UNAUTHENTICATED:
            return context

        context = SessionContext(identity=identity)
        await self.refresh(context)
        self.registry.put(context)
        logger.info("Opened session for %s in state %s", identity.id, context.state.value)
        return context

    async def refresh(self, context: SessionContext) -> SessionContext:
        """Reload profile and connections.

        Membership drift is repaired on the way. Live queries bound to a
        connection that is gone are cancelled. A selection the user made with
        ``switch_connection`` is kept while that connection still exists.
        """
        profile = await self.profiles.get_profile(context.user_id)
        if profile is None:
            context.profile = None
            context.connections = []
            context.active_connection_id = None
            context.state = SessionState.AUTHENTICATED_NO_PROFILE
            return context

        context.profile = profile
        context.state = SessionState.AUTHENTICATED_WITH_PROFILE

        connections = await self.connections.sync_user_connections(context.user_id, profile)
        previous = context.active_connection_id
        dropped = set(context.connection_ids) - {c["id"] for c in connections}
        context.connections = connections
        for connection_id in dropped:
            context.release_prefix(f"{connection_id}:")

        if previous and context.get_connection(previous) is not None:
            context.active_connection_id = previous
        else:
            if previous:
                context.release_prefix(f"{previous}:")
            context.active_connection_id = resolve_active_connection(
                connections, profile.get("primary_connection_id")
            )

        context.state = SessionState.READY
        return context

    async def verify_connection(self, context: SessionContext, connection_id: str | None) -> dict[str, Any]:
        """Confirm a connection is still one of the caller's active connections.

        The stored row is authoritative: the cached copy is replaced with it,
        and a connection the other party tore down is dropped from the session
        (with its live queries) and reported as missing. A connection the
        session has not loaded yet triggers a reload.

        Args:
            context: The caller's session.
            connection_id: The connection to check.

        Returns:
            dict: The current connection row.

        Raises:
            NotFoundError: If the connection is missing, inactive or not the caller's.
        """
        if not connection_id:
            raise NotFoundError("Connection not found")

        if context.get_connection(connection_id) is None:
            await self.refresh(context)
            connection = context.get_connection(connection_id)
            if connection is None:
                raise NotFoundError("Connection not found")
            return connection

        connection = await self.connections.get_connection(connection_id)
        if (
            connection is None
            or not connection.get("is_active")
            or context.user_id not in (connection["parent_id"], connection["care_provider_id"])
        ):
            logger.info("Connection %s is gone for %s, reloading session", connection_id, context.user_id)
            await self.refresh(context)
            raise NotFoundError("Connection not found")

        context.connections = [connection if c["id"] == connection_id else c for c in context.connections]
        return connection

    async def refresh_registered(self, user_id: str) -> SessionContext | None:
        """Reload another user's registered session, if they have one open."""
        context = self.registry.peek(user_id)
        if context is None or context.state is not SessionState.READY:
            return None
        return await self.refresh(context)

    async def create_profile(self, context: SessionContext, data: ProfileCreate) -> SessionContext:
        """Create the caller's profile and move the session to READY.

        Raises:
            ConflictError: If the session already has a profile.
        """
        if context.state is not SessionState.AUTHENTICATED_NO_PROFILE:
            raise ConflictError("Profile already exists")

        await self.profiles.create_profile(context.user_id, data, email=context.identity.email)
        return await self.refresh(context)

    def switch_connection(self, context: SessionContext, connection_id: str) -> str:
        """Make another loaded connection active.

        Local selection only; nothing is read or written. Live queries bound
        to the previously active connection are cancelled.

        Raises:
            NotFoundError: If ``connection_id`` is not among the loaded connections.
        """
        if context.get_connection(connection_id) is None:
            raise NotFoundError("Connection not found")

        previous = context.active_connection_id
        if previous and previous != connection_id:
            context.release_prefix(f"{previous}:")
        context.active_connection_id = connection_id
        return connection_id

    async def set_primary_connection(self, context: SessionContext, connection_id: str) -> str | None:
        """Toggle the user's primary connection.

        Sets it to ``connection_id``, or clears it when that connection is
        already primary, then re-resolves the active connection.

        Returns:
            str | None: The new primary connection id.

        Raises:
            NotFoundError: If ``connection_id`` is not among the loaded connections.
        """
        if context.get_connection(connection_id) is None:
            raise NotFoundError("Connection not found")

        current = (context.profile or {}).get("primary_connection_id")
        primary = None if current == connection_id else connection_id

        updated = self.store.update(Collections.USERS, context.user_id, {"primary_connection_id": primary})
        if updated is not None:
            context.profile = updated

        previous = context.active_connection_id
        context.active_connection_id = resolve_active_connection(context.connections, primary)
        if previous and previous != context.active_connection_id:
            context.release_prefix(f"{previous}:")
        logger.info("Primary connection for %s set to %s", context.user_id, primary)
        return primary

    async def sign_out(self, context: SessionContext, access_token: str | None = None) -> None:
        """End the session: sign out with the identity provider and tear down."""
        if access_token:
            from src.services.auth_service import AuthService

            await AuthService().logout(access_token)
        self.registry.remove(context.user_id)
        context.teardown()
        logger.info("Signed out %s", context.user_id)
