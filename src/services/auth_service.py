"""Authentication business logic service."""

import logging
from typing import Any

from src.api.middleware.error_handler import ValidationError
from src.core.config import get_settings
from src.core.supabase import create_auth_client
from src.schemas.auth import LoginResponse, OAuthCallbackRequest, SignInOutcome, SignInStatus

logger = logging.getLogger(__name__)

# Provider error codes meaning the user backed out rather than something failing
CANCEL_ERRORS = {"access_denied", "user_cancelled", "popup_closed_by_user"}


class AuthService:
    """Service for managing user authentication."""

    def __init__(self) -> None:
        """Initialize auth service with isolated Supabase client.

        Uses create_auth_client() instead of get_supabase_client() so that
        set_session() during sign-out does not leak into the shared client.
        """
        self.client = create_auth_client()
        self.settings = get_settings()

    async def signup(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> dict[str, Any]:
        """Sign up a new user with email and password.

        Args:
            email: User's email address.
            password: User's password.
            display_name: Optional display name.

        Returns:
            dict: Signup response with user_id and email.

        Raises:
            ValidationError: If signup fails (e.g., email already exists).
        """
        try:
            signup_data: dict[str, Any] = {
                "email": email,
                "password": password,
                "options": {
                    "email_redirect_to": self.settings.auth_redirect_url,
                },
            }
            if display_name:
                signup_data["options"]["data"] = {"name": display_name}

            response = self.client.auth.sign_up(signup_data)

            if not response.user:
                raise ValidationError("Failed to create user account")

            user = response.user
            logger.info("User signed up: %s", user.id)

            return {
                "user_id": str(user.id),
                "email": user.email or email,
                "message": "Account created. Complete your profile to continue.",
            }

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Signup failed: %s", error_msg)

            if "already registered" in error_msg.lower() or "already exists" in error_msg.lower():
                raise ValidationError("An account with this email already exists") from e
            if "password" in error_msg.lower() and "weak" in error_msg.lower():
                raise ValidationError("Password is too weak. Please use a stronger password.") from e

            raise ValidationError(f"Signup failed: {error_msg}") from e

    async def login(self, email: str, password: str) -> LoginResponse:
        """Login user with email and password.

        Args:
            email: User's email address.
            password: User's password.

        Returns:
            LoginResponse: Access token, refresh token, and user info.

        Raises:
            ValidationError: If login fails.
        """
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})

            if not response.user or not response.session:
                raise ValidationError("Login failed: No session created")

            logger.info("User logged in: %s", response.user.id)
            return _login_response(response)

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Login failed: %s", error_msg)

            if "invalid" in error_msg.lower() and "credentials" in error_msg.lower():
                raise ValidationError("Invalid email or password") from e

            raise ValidationError(f"Login failed: {error_msg}") from e

    async def complete_oauth_sign_in(self, callback: OAuthCallbackRequest) -> SignInOutcome:
        """Finish a popup sign-in.

        A closed popup or an ``access_denied`` report from the provider is a
        cancellation, not a failure.

        Args:
            callback: What the provider popup handed back.

        Returns:
            SignInOutcome: SUCCESS with a session, CANCELLED or FAILED.
        """
        if callback.error in CANCEL_ERRORS or (callback.popup_closed and not callback.code):
            logger.info("OAuth sign-in cancelled by user")
            return SignInOutcome(status=SignInStatus.CANCELLED, message="Sign-in was cancelled")

        if callback.error or not callback.code:
            logger.warning("OAuth sign-in failed: %s", callback.error_description or callback.error)
            return SignInOutcome(
                status=SignInStatus.FAILED,
                message=callback.error_description or "Sign-in failed",
            )

        try:
            params: dict[str, Any] = {
                "auth_code": callback.code,
                "redirect_to": self.settings.auth_redirect_url,
            }
            if callback.code_verifier:
                params["code_verifier"] = callback.code_verifier
            response = self.client.auth.exchange_code_for_session(params)
        except Exception as e:
            logger.error("OAuth code exchange failed: %s", e)
            return SignInOutcome(status=SignInStatus.FAILED, message="Sign-in failed")

        if not response.user or not response.session:
            return SignInOutcome(status=SignInStatus.FAILED, message="Sign-in failed: No session created")

        logger.info("User signed in with OAuth: %s", response.user.id)
        return SignInOutcome(status=SignInStatus.SUCCESS, session=_login_response(response))

    async def logout(self, access_token: str) -> dict[str, Any]:
        """Logout user by invalidating their session.

        Args:
            access_token: User's access token.

        Returns:
            dict: Logout response.
        """
        try:
            self.client.auth.set_session(access_token, "")
            self.client.auth.sign_out()
            logger.info("User logged out")
        except Exception as e:
            # The caller is signed out locally either way
            logger.error("Logout failed: %s", str(e))

        return {"message": "Logged out successfully"}

    async def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        """Refresh access token using refresh token.

        Args:
            refresh_token: The refresh token.

        Returns:
            dict: New access token, refresh token, and expiration.

        Raises:
            ValidationError: If refresh fails.
        """
        try:
            response = self.client.auth.refresh_session(refresh_token)

            if not response.session:
                raise ValidationError("Failed to refresh token")

            session = response.session
            return {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token,
                "expires_in": session.expires_in or 3600,
            }

        except ValidationError:
            raise
        except Exception as e:
            error_msg = str(e)
            logger.error("Token refresh failed: %s", error_msg)

            if "invalid" in error_msg.lower() or "expired" in error_msg.lower():
                raise ValidationError("Invalid or expired refresh token") from e

            raise ValidationError(f"Token refresh failed: {error_msg}") from e


def _login_response(response: Any) -> LoginResponse:
    session = response.session
    return LoginResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user_id=str(response.user.id),
        email=response.user.email,
        expires_in=session.expires_in or 3600,
    )
