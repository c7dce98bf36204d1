"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, extract_bearer_token
from src.api.middleware.error_handler import AuthorizationError
from src.core.session import SessionContext, SessionState
from src.schemas.auth import UserContext
from src.services.record_scope import RecordScope, resolve_record_scope
from src.services.session_service import SessionService


def authenticate_token(authorization: str | None) -> UserContext:
    """Validate an Authorization header value and return the identity.

    Raises:
        HTTPException: 401 if the header is missing, malformed, invalid or expired.
    """
    try:
        token = extract_bearer_token(authorization)
        payload = decode_jwt(token)
        return payload.to_user_context()

    except AuthError as e:
        detail = "Token has expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else e.message
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    return authenticate_token(authorization)


async def get_access_token(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> str:
    try:
        return extract_bearer_token(authorization)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message) from e


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AccessToken = Annotated[str, Depends(get_access_token)]


async def get_session_context(user: CurrentUser) -> SessionContext:
    """Get (or build) the caller's session context."""
    return await SessionService().open(user)


CurrentSession = Annotated[SessionContext, Depends(get_session_context)]


async def get_ready_session(session: CurrentSession) -> SessionContext:
    """Require a session that has a profile.

    Raises:
        AuthorizationError: If the caller has not created a profile yet.
    """
    if session.state is not SessionState.READY:
        raise AuthorizationError("Complete your profile first")
    return session


ReadySession = Annotated[SessionContext, Depends(get_ready_session)]


async def get_record_scope(connection_id: str, session: ReadySession) -> RecordScope:
    """Resolve the owning key for records shared through ``connection_id``.

    The stored connection row is checked on every request, so a connection
    the other party created or tore down since login is seen at once.
    """
    await SessionService().verify_connection(session, connection_id)
    return resolve_record_scope(session, connection_id)


Scope = Annotated[RecordScope, Depends(get_record_scope)]
