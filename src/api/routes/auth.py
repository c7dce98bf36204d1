"""Authentication API routes."""

from fastapi import APIRouter, HTTPException, status

from src.api.deps import AccessToken, CurrentSession
from src.api.middleware.error_handler import ValidationError
from src.schemas.auth import (
    LoginRequest,
    LoginResponse,
    OAuthCallbackRequest,
    RefreshTokenRequest,
    RefreshTokenResponse,
    SignInOutcome,
    SignupRequest,
    SignupResponse,
)
from src.schemas.common import MessageResponse
from src.services.auth_service import AuthService
from src.services.session_service import SessionService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign up new user",
    description="Create a new user account with email and password.",
)
async def signup(data: SignupRequest) -> SignupResponse:
    """Sign up a new user with email and password.

    The new account has no profile yet; the client completes one through
    ``POST /session/profile``.

    Args:
        data: Signup request with email, password, and optional display name.

    Returns:
        SignupResponse: User ID, email, and next-step message.

    Raises:
        HTTPException: 400 if signup fails (e.g., email already exists).
    """
    service = AuthService()

    try:
        result = await service.signup(
            email=data.email,
            password=data.password,
            display_name=data.display_name,
        )
        return SignupResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login user",
    description="Authenticate user with email and password. Returns access and refresh tokens.",
)
async def login(data: LoginRequest) -> LoginResponse:
    """Login user with email and password.

    Args:
        data: Login request with email and password.

    Returns:
        LoginResponse: Access token, refresh token, and user information.

    Raises:
        HTTPException: 401 if credentials are invalid.
    """
    service = AuthService()

    try:
        return await service.login(email=data.email, password=data.password)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e


@router.post(
    "/oauth/callback",
    response_model=SignInOutcome,
    summary="Complete popup sign-in",
    description="Exchange the provider's authorization code for a session. "
    "A cancelled popup is reported as CANCELLED rather than an error.",
)
async def oauth_callback(data: OAuthCallbackRequest) -> SignInOutcome:
    """Finish an OAuth popup sign-in.

    Always answers 200; the outcome's ``status`` tells success, user
    cancellation and failure apart.

    Args:
        data: Code and verifier, or the provider's error.

    Returns:
        SignInOutcome: Status plus the session on success.
    """
    service = AuthService()
    return await service.complete_oauth_sign_in(data)


@router.post(
    "/refresh",
    response_model=RefreshTokenResponse,
    summary="Refresh access token",
    description="Get a new access token using a refresh token.",
)
async def refresh_token(data: RefreshTokenRequest) -> RefreshTokenResponse:
    """Refresh access token using refresh token.

    Args:
        data: Refresh token request.

    Returns:
        RefreshTokenResponse: New access token and refresh token.

    Raises:
        HTTPException: 401 if refresh token is invalid or expired.
    """
    service = AuthService()

    try:
        result = await service.refresh_token(data.refresh_token)
        return RefreshTokenResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout user",
    description="Sign out with the identity provider and tear down the session.",
)
async def logout(session: CurrentSession, token: AccessToken) -> MessageResponse:
    """Logout the current user.

    Live subscriptions are cancelled and cached session state is dropped.

    Args:
        session: The caller's session context.
        token: The bearer token being signed out.

    Returns:
        MessageResponse: Success message.
    """
    await SessionService().sign_out(session, access_token=token)
    return MessageResponse(message="Logged out successfully")
