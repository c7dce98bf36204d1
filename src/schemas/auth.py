"""Authentication schemas for JWT tokens, sign-in flows and user context."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    This model represents the authenticated identity for the current request.
    It is populated by the auth middleware from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    name: str | None = Field(default=None, description="Display name claim if available")
    role: str | None = Field(default=None, description="Token role (e.g., 'authenticated')")

    @property
    def id(self) -> str:
        """User id in the string form rows are keyed by."""
        return str(self.user_id)


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Represents the claims contained in a Supabase-issued JWT.
    Used for validation and extraction of user information.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    name: str | None = Field(default=None, description="Display name from user metadata")
    role: str | None = Field(default=None, description="User's role")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            name=self.name,
            role=self.role,
        )


# Password sign-up and sign-in


class SignupRequest(BaseModel):
    """Request schema for user signup."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address", min_length=3, max_length=255)
    password: str = Field(..., description="User's password", min_length=8, max_length=100)
    display_name: str | None = Field(default=None, description="User's display name", max_length=255)


class SignupResponse(BaseModel):
    """Response schema for user signup."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Newly created user ID")
    email: str = Field(description="User's email address")
    message: str = Field(description="Success message")


class LoginRequest(BaseModel):
    """Request schema for user login."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")


class LoginResponse(BaseModel):
    """Response schema for a completed sign-in."""

    model_config = ConfigDict(from_attributes=True)

    access_token: str = Field(description="JWT access token")
    refresh_token: str | None = Field(default=None, description="Refresh token if available")
    user_id: str = Field(description="User ID")
    email: str | None = Field(default=None, description="User's email address")
    expires_in: int = Field(description="Token expiration time in seconds")


# OAuth (popup) sign-in


class SignInStatus(str, Enum):
    """Outcome of an interactive sign-in."""

    SUCCESS = "SUCCESS"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class OAuthCallbackRequest(BaseModel):
    """Parameters the provider popup hands back to the client.

    Either ``code`` is present (the user completed the flow) or ``error`` is
    set. A popup closed before completion is reported with
    ``popup_closed=True`` and no code.
    """

    code: str | None = Field(default=None, description="Authorization code from the provider")
    code_verifier: str | None = Field(default=None, description="PKCE verifier held by the client")
    error: str | None = Field(default=None, description="Provider error code, e.g. access_denied")
    error_description: str | None = Field(default=None, description="Provider error detail")
    popup_closed: bool = Field(default=False, description="Popup was closed before completing")


class SignInOutcome(BaseModel):
    """Distinguishable result of an interactive sign-in."""

    status: SignInStatus
    session: LoginResponse | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SignInStatus.SUCCESS


# Refresh token schemas


class RefreshTokenRequest(BaseModel):
    """Request schema for refreshing access token."""

    model_config = ConfigDict(from_attributes=True)

    refresh_token: str = Field(..., description="Refresh token")


class RefreshTokenResponse(BaseModel):
    """Response schema for refreshing access token."""

    model_config = ConfigDict(from_attributes=True)

    access_token: str = Field(description="New JWT access token")
    refresh_token: str | None = Field(default=None, description="New refresh token if rotated")
    expires_in: int = Field(description="Token expiration time in seconds")
