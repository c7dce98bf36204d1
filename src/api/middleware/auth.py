"""Access token verification.

Tokens are issued by Supabase Auth and signed with the project's ES256 key.
The public half is configured as a JWK string and loaded once per process.
"""

import json
from enum import Enum
from functools import lru_cache
from typing import Any
from uuid import UUID

import jwt
from jwt import PyJWK

from src.core.config import get_settings
from src.schemas.auth import TokenPayload


class AuthErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """A bearer credential could not be turned into an identity.

    ``code`` tells an expired session (the client should refresh) apart
    from a credential that will never be accepted.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# Checked in order; subclasses before their bases
_JWT_FAILURES: tuple[tuple[type[Exception], AuthErrorCode, str], ...] = (
    (jwt.ExpiredSignatureError, AuthErrorCode.TOKEN_EXPIRED, "Token has expired"),
    (jwt.InvalidSignatureError, AuthErrorCode.INVALID_SIGNATURE, "Invalid token signature"),
    (jwt.MissingRequiredClaimError, AuthErrorCode.INVALID_TOKEN, "Token missing required claim"),
    (jwt.InvalidAudienceError, AuthErrorCode.INVALID_TOKEN, "Token was issued for another audience"),
    (jwt.DecodeError, AuthErrorCode.INVALID_TOKEN, "Invalid token format"),
)


@lru_cache
def get_signing_key() -> Any:
    """Public key for verifying access tokens.

    Reads ``SUPABASE_SIGNING_KEY_JWK``. Failures are not cached, so a
    corrected setting takes effect after ``get_settings.cache_clear()``.

    Raises:
        AuthError: If the setting is empty or not a JWK.
    """
    jwk_json = get_settings().supabase_signing_key_jwk
    if not jwk_json:
        raise AuthError("Signing key not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        return PyJWK.from_dict(json.loads(jwk_json)).key
    except (json.JSONDecodeError, jwt.PyJWKError) as e:
        raise AuthError(f"Invalid signing key JWK: {e}", AuthErrorCode.INVALID_TOKEN) from e


def decode_jwt(token: str) -> TokenPayload:
    """Verify an access token and read its claims.

    Signature, expiry, issue time and audience are checked. The display name
    comes from ``user_metadata.name`` when the identity provider set one.

    Args:
        token: The raw JWT.

    Returns:
        TokenPayload: The verified claims.

    Raises:
        AuthError: If the token is expired, forged, malformed or its subject
            is not a user id.
    """
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            get_signing_key(),
            algorithms=["ES256"],
            audience=get_settings().jwt_audience,
            options={"require": ["exp", "iat", "sub"]},
        )
    except AuthError:
        raise
    except Exception as e:
        for error_type, code, message in _JWT_FAILURES:
            if isinstance(e, error_type):
                raise AuthError(f"{message}: {e}" if code is AuthErrorCode.INVALID_TOKEN else message, code) from e
        raise AuthError(f"Token validation failed: {e}", AuthErrorCode.INVALID_TOKEN) from e

    try:
        UUID(claims["sub"])
    except ValueError as e:
        raise AuthError("Token subject is not a user id", AuthErrorCode.INVALID_TOKEN) from e

    return TokenPayload(
        sub=claims["sub"],
        email=claims.get("email"),
        name=(claims.get("user_metadata") or {}).get("name"),
        role=claims.get("role"),
        exp=claims["exp"],
        iat=claims["iat"],
        aud=claims.get("aud"),
        iss=claims.get("iss"),
    )


def extract_bearer_token(authorization: str | None) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` value.

    Raises:
        AuthError: If the header is missing or not a bearer credential.
    """
    if not authorization:
        raise AuthError("Authorization header required", AuthErrorCode.UNAUTHORIZED)

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthError("Expected: Bearer <token>", AuthErrorCode.UNAUTHORIZED)
    return token
