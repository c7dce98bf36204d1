"""Session API routes.

The session is the server-side view of a signed-in user: their profile,
the connections they belong to and which connection is active.
"""

from fastapi import APIRouter, status

from src.api.deps import AccessToken, CurrentSession, ReadySession
from src.core.session import SessionContext
from src.schemas.connection import ConnectionResponse, ConnectionSelection, SessionResponse
from src.schemas.profile import ProfileCreate, ProfileResponse
from src.services.session_service import SessionService

router = APIRouter(prefix="/session", tags=["session"])


def session_response(context: SessionContext) -> SessionResponse:
    profile = context.profile
    return SessionResponse(
        state=context.state,
        user_id=context.user_id,
        email=context.identity.email,
        profile=ProfileResponse(**profile) if profile else None,
        connections=[ConnectionResponse(**c) for c in context.connections],
        active_connection_id=context.active_connection_id,
        primary_connection_id=(profile or {}).get("primary_connection_id"),
    )


@router.get(
    "",
    response_model=SessionResponse,
    summary="Get current session",
    description="Reloads the caller's profile and connections and returns the session.",
)
async def get_session(session: CurrentSession) -> SessionResponse:
    """Get the caller's session, reloaded from the store.

    A missing profile is reported as ``AUTHENTICATED_NO_PROFILE`` so the
    client can route to profile creation.

    Args:
        session: The caller's session context.

    Returns:
        SessionResponse: State, profile and connections.
    """
    await SessionService().refresh(session)
    return session_response(session)


@router.post(
    "/profile",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create profile",
    description="Create the caller's profile. Only valid while the session has no profile.",
)
async def create_profile(data: ProfileCreate, session: CurrentSession) -> SessionResponse:
    """Create the caller's profile and move the session to READY.

    Args:
        data: Role, name, contact and (for parents) children.
        session: The caller's session context.

    Returns:
        SessionResponse: The READY session.

    Raises:
        ConflictError: 409 if the profile already exists.
    """
    await SessionService().create_profile(session, data)
    return session_response(session)


@router.post(
    "/switch",
    response_model=SessionResponse,
    summary="Switch active connection",
    description="Select which loaded connection subsequent live queries follow.",
)
async def switch_connection(data: ConnectionSelection, session: ReadySession) -> SessionResponse:
    """Make another connection active.

    Args:
        data: The connection to activate.
        session: The caller's session context.

    Returns:
        SessionResponse: The session with the new active connection.

    Raises:
        NotFoundError: 404 if the connection is not one of the caller's.
    """
    SessionService().switch_connection(session, data.connection_id)
    return session_response(session)


@router.post(
    "/primary",
    response_model=SessionResponse,
    summary="Toggle primary connection",
    description="Mark a connection as primary, or clear it when it already is.",
)
async def set_primary_connection(data: ConnectionSelection, session: ReadySession) -> SessionResponse:
    """Toggle the caller's primary connection.

    Args:
        data: The connection to toggle.
        session: The caller's session context.

    Returns:
        SessionResponse: The session with the re-resolved active connection.
    """
    await SessionService().set_primary_connection(session, data.connection_id)
    return session_response(session)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Sign out",
    description="Sign out and cancel every live subscription of the session.",
)
async def sign_out(session: CurrentSession, token: AccessToken) -> None:
    """End the caller's session.

    Args:
        session: The caller's session context.
        token: The bearer token to revoke.
    """
    await SessionService().sign_out(session, access_token=token)
