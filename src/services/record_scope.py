"""Owning-key resolution for collaborative records.

Every collaborative record is addressed by the parent's user id. A session
reaches a parent through one of its loaded connections, so resolving a scope
means finding that connection and reading its ``parent_id``. There is one
code path; nothing falls back to connection-id addressing.
"""

from dataclasses import dataclass

from src.api.middleware.error_handler import AuthenticationError, NotFoundError
from src.core.session import SessionContext, SessionState


@dataclass(frozen=True)
class RecordScope:
    """Who is acting, and on whose records."""

    owner_key: str
    connection_id: str
    user_id: str
    user_type: str

    @property
    def parent_id(self) -> str:
        return self.owner_key

    def stamp(self, data: dict) -> dict:
        """Add the owning key and the legacy connection tag to a record."""
        return {**data, "parent_id": self.owner_key, "connection_id": self.connection_id}

    def subscription_key(self, kind: str, *parts: str) -> str:
        """Key a live query is registered under on the session context.

        Keys start with the connection id so that switching away from a
        connection cancels every query bound to it.
        """
        return ":".join((self.connection_id, kind, *parts))


def ensure_owned(row: dict | None, scope: RecordScope, label: str = "Record") -> dict:
    """Return ``row`` if it belongs to the scope's owner.

    Raises:
        NotFoundError: If the row is missing or belongs to another parent.
    """
    if row is None or row.get("parent_id") != scope.owner_key:
        raise NotFoundError(f"{label} not found")
    return row


def resolve_record_scope(session: SessionContext, connection_id: str | None = None) -> RecordScope:
    """Resolve the record scope for ``connection_id`` (default: the active connection).

    Raises:
        AuthenticationError: If the session has no profile yet.
        NotFoundError: If the connection is not one of the session's connections.
    """
    if session.state is not SessionState.READY or not session.user_type:
        raise AuthenticationError("Profile required before accessing shared records")

    target = connection_id or session.active_connection_id
    connection = session.get_connection(target) if target else None
    if connection is None or not connection.get("is_active", True):
        raise NotFoundError("Connection not found")

    return RecordScope(
        owner_key=connection["parent_id"],
        connection_id=connection["id"],
        user_id=session.user_id,
        user_type=session.user_type,
    )
