"""Invite code business logic service."""

import logging
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any

from src.api.middleware.error_handler import APIError, ConflictError, ServiceUnavailableError, ValidationError
from src.core.config import get_settings
from src.core.store import StoreError, get_document_store
from src.models import Collections, UserType
from src.schemas.connection import ConsumeFailure, ConsumeResult, InviteCodeStatus
from src.services.connection_service import ConnectionService, profile_snapshot

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def is_expired(invite: dict[str, Any], now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return now >= parse_timestamp(invite["expires_at"])


class InviteCodeService:
    """Service for issuing and consuming single-use pairing codes."""

    MAX_GENERATE_ATTEMPTS = 10

    def __init__(self) -> None:
        """Initialize invite code service with the document store."""
        self.store = get_document_store()
        settings = get_settings()
        self.code_length = settings.invite_code_length
        self.ttl = timedelta(days=settings.invite_code_ttl_days)
        self._pattern = re.compile(rf"^[A-Z0-9]{{{self.code_length}}}$")

    def normalize(self, code: str) -> str:
        """Canonical form of a user-typed code.

        Raises:
            ValidationError: If the code is not made of the expected characters.
        """
        normalized = (code or "").strip().upper()
        if not self._pattern.match(normalized):
            raise ValidationError(
                f"Invite code must be {self.code_length} letters or digits",
                details=[{"field": "code", "message": "invalid format"}],
            )
        return normalized

    def _random_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.code_length))

    async def get_code(self, code: str) -> dict[str, Any] | None:
        return self.store.get(Collections.INVITE_CODES, self.normalize(code))

    async def generate(self, creator_id: str, creator_user_type: str) -> str:
        """Issue a new invite code for a user.

        Outstanding codes of the same creator are revoked once the new one
        is stored, so at most one consumable code exists per creator.

        Args:
            creator_id: The issuing user's id.
            creator_user_type: The issuing user's role.

        Returns:
            str: The new code.
        """
        for _ in range(self.MAX_GENERATE_ATTEMPTS):
            code = self._random_code()
            if self.store.get(Collections.INVITE_CODES, code) is None:
                break
        else:
            raise ServiceUnavailableError()

        now = datetime.now(timezone.utc)
        self.store.set(
            Collections.INVITE_CODES,
            code,
            {
                "code": code,
                "created_by": creator_id,
                "user_type": creator_user_type,
                "is_used": False,
                "used_by": None,
                "revoked_at": None,
                "expires_at": (now + self.ttl).isoformat(),
                "created_at": now.isoformat(),
            },
        )
        self.store.update(Collections.USERS, creator_id, {"invite_code": code})
        revoked = await self._revoke_outstanding(creator_id, keep=code)
        logger.info("Issued invite code for %s (revoked %d older)", creator_id, revoked)
        return code

    async def get_or_create(self, creator_id: str, creator_user_type: str) -> str:
        """Return the creator's outstanding code, issuing one if none is consumable."""
        profile = self.store.get(Collections.USERS, creator_id) or {}
        current = profile.get("invite_code")
        if current:
            status = await self.check_status(current)
            if status.consumable:
                return status.code
        return await self.generate(creator_id, creator_user_type)

    async def check_status(self, code: str) -> InviteCodeStatus:
        """Report whether a code exists and can still be consumed. Never mutates."""
        code = self.normalize(code)
        invite = self.store.get(Collections.INVITE_CODES, code)
        if invite is None:
            return InviteCodeStatus(code=code, exists=False)
        return InviteCodeStatus(
            code=code,
            exists=True,
            is_used=bool(invite.get("is_used")),
            is_expired=is_expired(invite),
            is_revoked=bool(invite.get("revoked_at")),
        )

    async def consume(self, code: str, consumer_id: str) -> ConsumeResult:
        """Consume a code and connect its creator with the consumer.

        Every rejection returns ``success=False`` without writing anything.
        If the connection cannot be created the code is released again.

        Args:
            code: The code as typed by the consumer.
            consumer_id: The consuming user's id.

        Returns:
            ConsumeResult: Outcome with the inviter's profile snapshot and the
            new connection id on success.

        Raises:
            ValidationError: If the code is malformed.
        """
        code = self.normalize(code)

        invite = self.store.get(Collections.INVITE_CODES, code)
        if invite is None:
            return ConsumeResult.failed(ConsumeFailure.NOT_FOUND)
        if invite.get("is_used"):
            return ConsumeResult.failed(ConsumeFailure.ALREADY_USED)
        if invite.get("revoked_at"):
            return ConsumeResult.failed(ConsumeFailure.REVOKED)
        if is_expired(invite):
            return ConsumeResult.failed(ConsumeFailure.EXPIRED)
        if invite["created_by"] == consumer_id:
            return ConsumeResult.failed(ConsumeFailure.OWN_CODE)

        inviter = self.store.get(Collections.USERS, invite["created_by"])
        consumer = self.store.get(Collections.USERS, consumer_id)
        if inviter is None or consumer is None:
            return ConsumeResult.failed(ConsumeFailure.PROFILE_MISSING)
        if inviter.get("user_type") == consumer.get("user_type"):
            return ConsumeResult.failed(ConsumeFailure.SAME_USER_TYPE)

        connections = ConnectionService()
        if await connections.find_active_connection(*_parent_first(inviter, consumer)):
            return ConsumeResult.failed(ConsumeFailure.ALREADY_CONNECTED)

        now = datetime.now(timezone.utc).isoformat()
        try:
            claimed = self.store.update_if(
                Collections.INVITE_CODES,
                code,
                {"is_used": False, "revoked_at": None},
                {"is_used": True, "used_by": consumer_id, "used_at": now},
            )
        except StoreError as e:
            logger.error("Could not mark invite %s used: %s", code, e)
            raise ServiceUnavailableError() from e
        if claimed is None:
            # Another consumer or a regeneration got there first
            current = self.store.get(Collections.INVITE_CODES, code) or {}
            if current.get("revoked_at") and not current.get("is_used"):
                return ConsumeResult.failed(ConsumeFailure.REVOKED)
            return ConsumeResult.failed(ConsumeFailure.ALREADY_USED)

        try:
            connection_id = await connections.create_connection(consumer_id, inviter["id"])
        except (APIError, StoreError) as e:
            self.store.update_if(
                Collections.INVITE_CODES,
                code,
                {"used_by": consumer_id},
                {"is_used": False, "used_by": None, "used_at": None},
            )
            logger.warning("Connection for invite %s failed, code released: %s", code, e)
            if isinstance(e, ConflictError):
                return ConsumeResult.failed(ConsumeFailure.ALREADY_CONNECTED)
            return ConsumeResult.failed(ConsumeFailure.CONNECTION_FAILED)

        logger.info("Invite %s consumed by %s", code, consumer_id)
        return ConsumeResult(
            success=True,
            inviter_profile=profile_snapshot(inviter),
            connection_id=connection_id,
        )

    async def _revoke_outstanding(self, creator_id: str, keep: str) -> int:
        now = datetime.now(timezone.utc)
        revoked = 0
        for invite in self.store.query(Collections.INVITE_CODES, eq={"created_by": creator_id, "is_used": False}):
            if invite["id"] == keep or invite.get("revoked_at") or is_expired(invite, now):
                continue
            if self.store.update_if(
                Collections.INVITE_CODES, invite["id"], {"is_used": False}, {"revoked_at": now.isoformat()}
            ):
                revoked += 1
        return revoked


def _parent_first(a: dict[str, Any], b: dict[str, Any]) -> tuple[str, str]:
    if a.get("user_type") == UserType.PARENT.value:
        return a["id"], b["id"]
    return b["id"], a["id"]
