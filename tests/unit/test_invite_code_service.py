"""Unit tests for InviteCodeService."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import patch

import pytest

from src.api.middleware.error_handler import ServiceUnavailableError, ValidationError
from src.core.store import DocumentStore, StoreError
from src.models import Collections
from src.schemas.connection import ConsumeFailure
from src.services.connection_service import ConnectionService
from src.services.invite_code_service import CODE_ALPHABET, InviteCodeService


@pytest.fixture
def service() -> InviteCodeService:
    return InviteCodeService()


def expire(store: DocumentStore, code: str) -> None:
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    store.update(Collections.INVITE_CODES, code, {"expires_at": past.isoformat()})


class TestGenerate:
    """Tests for issuing codes."""

    @pytest.mark.asyncio
    async def test_code_shape(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        """Test that codes are six characters from A-Z and 0-9."""
        parent_id = await create_user("PARENT")

        code = await service.generate(parent_id, "PARENT")

        assert len(code) == 6
        assert all(char in CODE_ALPHABET for char in code)

    @pytest.mark.asyncio
    async def test_generate_records_code_on_profile(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        parent_id = await create_user("PARENT")

        code = await service.generate(parent_id, "PARENT")

        assert store.get(Collections.USERS, parent_id)["invite_code"] == code
        invite = store.get(Collections.INVITE_CODES, code)
        assert invite["created_by"] == parent_id
        assert invite["is_used"] is False

    @pytest.mark.asyncio
    async def test_regenerate_revokes_previous_code(
        self, service: InviteCodeService, create_user: Callable[..., Any]
    ) -> None:
        """Test that only the newest code stays consumable."""
        parent_id = await create_user("PARENT")
        provider_id = await create_user("CARE_PROVIDER")

        old = await service.generate(parent_id, "PARENT")
        new = await service.generate(parent_id, "PARENT")

        assert (await service.check_status(old)).is_revoked
        result = await service.consume(old, provider_id)
        assert not result.success
        assert result.reason == ConsumeFailure.REVOKED
        assert (await service.check_status(new)).consumable

    @pytest.mark.asyncio
    async def test_get_or_create_reuses_consumable_code(
        self, service: InviteCodeService, create_user: Callable[..., Any]
    ) -> None:
        parent_id = await create_user("PARENT")

        first = await service.get_or_create(parent_id, "PARENT")
        second = await service.get_or_create(parent_id, "PARENT")

        assert first == second

    @pytest.mark.asyncio
    async def test_get_or_create_replaces_expired_code(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        parent_id = await create_user("PARENT")
        first = await service.get_or_create(parent_id, "PARENT")
        expire(store, first)

        assert await service.get_or_create(parent_id, "PARENT") != first

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        """Test that a code space collision on every attempt is a 503 and keeps the current code."""
        parent_id = await create_user("PARENT")
        taken = await service.generate(parent_id, "PARENT")

        with patch.object(service, "_random_code", return_value=taken):
            with pytest.raises(ServiceUnavailableError):
                await service.generate(parent_id, "PARENT")

        assert (await service.check_status(taken)).consumable

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_code(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that the older code is only revoked after the new one is stored."""
        parent_id = await create_user("PARENT")
        old = await service.generate(parent_id, "PARENT")

        with patch.object(store, "set", side_effect=StoreError("write failed")):
            with pytest.raises(StoreError):
                await service.generate(parent_id, "PARENT")

        assert (await service.check_status(old)).consumable
        assert store.get(Collections.USERS, parent_id)["invite_code"] == old

        with patch.object(service, "_random_code", return_value=taken):
            with pytest.raises(ServiceUnavailableError):
                await service.generate(parent_id, "PARENT")


class TestCheckStatus:
    """Tests for read-only code status."""

    @pytest.mark.asyncio
    async def test_unknown_code(self, service: InviteCodeService) -> None:
        status = await service.check_status("ZZZZ99")

        assert not status.exists
        assert not status.consumable

    @pytest.mark.asyncio
    async def test_lowercase_input_is_normalized(
        self, service: InviteCodeService, create_user: Callable[..., Any]
    ) -> None:
        parent_id = await create_user("PARENT")
        code = await service.generate(parent_id, "PARENT")

        status = await service.check_status(f"  {code.lower()} ")

        assert status.code == code
        assert status.consumable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "ABC", "ABCDEFG", "AB-123", "ÄBC123"])
    async def test_malformed_codes_are_rejected(self, service: InviteCodeService, code: str) -> None:
        with pytest.raises(ValidationError):
            await service.check_status(code)


class TestConsume:
    """Tests for consuming codes."""

    @pytest.mark.asyncio
    async def test_successful_consume_connects_both_users(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that consuming connects the pair and marks the code used."""
        parent_id = await create_user("PARENT", "Parent")
        provider_id = await create_user("CARE_PROVIDER", "Provider")
        code = await service.generate(parent_id, "PARENT")

        result = await service.consume(code, provider_id)

        assert result.success
        assert result.inviter_profile["id"] == parent_id
        assert result.inviter_profile["name"] == "Parent"
        connection = store.get(Collections.CONNECTIONS, result.connection_id)
        assert connection["parent_id"] == parent_id
        assert connection["care_provider_id"] == provider_id
        invite = store.get(Collections.INVITE_CODES, code)
        assert invite["is_used"] is True
        assert invite["used_by"] == provider_id

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        provider_id = await create_user("CARE_PROVIDER")
        code = await service.generate(provider_id, "CARE_PROVIDER")
        parent_a = await create_user("PARENT")
        parent_b = await create_user("PARENT")

        assert (await service.consume(code, parent_a)).success
        result = await service.consume(code, parent_b)

        assert not result.success
        assert result.reason == ConsumeFailure.ALREADY_USED

    @pytest.mark.asyncio
    async def test_expired_code(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        parent_id = await create_user("PARENT")
        provider_id = await create_user("CARE_PROVIDER")
        code = await service.generate(parent_id, "PARENT")
        expire(store, code)

        result = await service.consume(code, provider_id)

        assert result.reason == ConsumeFailure.EXPIRED
        assert store.get(Collections.INVITE_CODES, code)["is_used"] is False

    @pytest.mark.asyncio
    async def test_own_code(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        parent_id = await create_user("PARENT")
        code = await service.generate(parent_id, "PARENT")

        assert (await service.consume(code, parent_id)).reason == ConsumeFailure.OWN_CODE

    @pytest.mark.asyncio
    async def test_same_user_type(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        parent_id = await create_user("PARENT")
        other_parent_id = await create_user("PARENT")
        code = await service.generate(parent_id, "PARENT")

        result = await service.consume(code, other_parent_id)

        assert result.reason == ConsumeFailure.SAME_USER_TYPE

    @pytest.mark.asyncio
    async def test_unknown_code(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        provider_id = await create_user("CARE_PROVIDER")

        assert (await service.consume("ABC123", provider_id)).reason == ConsumeFailure.NOT_FOUND

    @pytest.mark.asyncio
    async def test_consumer_without_profile(self, service: InviteCodeService, create_user: Callable[..., Any]) -> None:
        parent_id = await create_user("PARENT")
        code = await service.generate(parent_id, "PARENT")

        result = await service.consume(code, "00000000-0000-0000-0000-000000000000")

        assert result.reason == ConsumeFailure.PROFILE_MISSING

    @pytest.mark.asyncio
    async def test_already_connected_pair(
        self,
        service: InviteCodeService,
        connected_pair: Callable[..., Any],
        store: DocumentStore,
    ) -> None:
        """Test that a second code between connected users does not duplicate the connection."""
        pair = await connected_pair()
        code = await service.generate(pair["parent_id"], "PARENT")

        result = await service.consume(code, pair["provider_id"])

        assert result.reason == ConsumeFailure.ALREADY_CONNECTED
        assert len(store.query(Collections.CONNECTIONS)) == 1
        assert store.get(Collections.INVITE_CODES, code)["is_used"] is False

    @pytest.mark.asyncio
    async def test_failed_connection_releases_code(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that the code is consumable again when the connection write fails."""
        parent_id = await create_user("PARENT")
        provider_id = await create_user("CARE_PROVIDER")
        code = await service.generate(parent_id, "PARENT")

        with patch.object(ConnectionService, "create_connection", side_effect=ServiceUnavailableError()):
            result = await service.consume(code, provider_id)

        assert not result.success
        assert result.reason == ConsumeFailure.CONNECTION_FAILED
        assert (await service.check_status(code)).consumable
        assert store.query(Collections.CONNECTIONS) == []

    @pytest.mark.asyncio
    async def test_concurrent_consumer_wins_the_claim(
        self, service: InviteCodeService, create_user: Callable[..., Any], store: DocumentStore
    ) -> None:
        """Test that a code claimed by someone else after our checks is not consumed twice."""
        provider_id = await create_user("CARE_PROVIDER")
        parent_a = await create_user("PARENT")
        parent_b = await create_user("PARENT")
        code = await service.generate(provider_id, "CARE_PROVIDER")

        async def claimed_elsewhere(*args: Any) -> None:
            store.update(Collections.INVITE_CODES, code, {"is_used": True, "used_by": parent_b})

        with patch.object(ConnectionService, "find_active_connection", side_effect=claimed_elsewhere):
            result = await service.consume(code, parent_a)

        assert not result.success
        assert result.reason == ConsumeFailure.ALREADY_USED
        assert store.get(Collections.INVITE_CODES, code)["used_by"] == parent_b
        assert store.query(Collections.CONNECTIONS) == []
