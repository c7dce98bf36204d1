"""Connection API routes."""

from fastapi import APIRouter

from src.api.deps import ReadySession
from src.api.middleware.error_handler import NotFoundError
from src.schemas.connection import ConnectionResponse, DisconnectResponse
from src.services.connection_service import ConnectionService
from src.services.session_service import SessionService

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get(
    "",
    response_model=list[ConnectionResponse],
    summary="List my connections",
    description="Active connections the caller belongs to, oldest first.",
)
async def list_connections(session: ReadySession) -> list[ConnectionResponse]:
    """List the caller's active connections.

    Args:
        session: The caller's session context.

    Returns:
        list[ConnectionResponse]: Connections with both parties' snapshots.
    """
    rows = await ConnectionService().get_all_user_connections(session.user_id)
    return [ConnectionResponse(**row) for row in rows]


@router.get(
    "/{connection_id}",
    response_model=ConnectionResponse,
    summary="Get a connection",
    description="A single active connection the caller belongs to.",
)
async def get_connection(connection_id: str, session: ReadySession) -> ConnectionResponse:
    """Get one of the caller's connections.

    Raises:
        NotFoundError: 404 if the connection is unknown, inactive or not the caller's.
    """
    connection = await ConnectionService().get_connection(connection_id)
    if (
        not connection
        or not connection.get("is_active")
        or session.user_id not in (connection["parent_id"], connection["care_provider_id"])
    ):
        raise NotFoundError("Connection not found")
    return ConnectionResponse(**connection)


@router.delete(
    "/{connection_id}",
    response_model=DisconnectResponse,
    summary="Disconnect",
    description="Deactivate a connection and delete the shared records scoped to it.",
)
async def disconnect(connection_id: str, session: ReadySession) -> DisconnectResponse:
    """Tear down one of the caller's connections.

    Either party may disconnect. When this was the parent's last active
    connection, all of the parent's shared records are deleted; otherwise
    only the departing provider's notes and special items are. The other
    party's open session is reloaded, which ends its live queries on the
    connection.

    Args:
        connection_id: The connection to remove.
        session: The caller's session context.

    Returns:
        DisconnectResponse: Records removed per collection.

    Raises:
        NotFoundError: 404 if the connection is unknown or not the caller's.
    """
    service = ConnectionService()
    connection = await service.get_connection(connection_id)
    if not connection or session.user_id not in (connection["parent_id"], connection["care_provider_id"]):
        raise NotFoundError("Connection not found")

    deleted = await service.disconnect(connection_id, connection["parent_id"], connection["care_provider_id"])
    sessions = SessionService()
    await sessions.refresh(session)
    other_id = connection["care_provider_id"] if session.user_id == connection["parent_id"] else connection["parent_id"]
    await sessions.refresh_registered(other_id)
    return DisconnectResponse(connection_id=connection_id, deleted=deleted)
