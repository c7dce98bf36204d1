"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("TEMPLATE_WRITE_DELAY_MS", "0")

from src.core.scheduler import get_template_scheduler  # noqa: E402
from src.core.session import get_session_registry  # noqa: E402
from src.core.store import ChangeFeed, DocumentStore, get_document_store  # noqa: E402
from src.schemas.auth import UserContext  # noqa: E402
from src.schemas.profile import ChildInfoSchema, ProfileCreate  # noqa: E402
from src.services.connection_service import ConnectionService  # noqa: E402
from src.services.profile_service import ProfileService  # noqa: E402
from src.services.record_scope import RecordScope  # noqa: E402


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_state() -> Generator[None, None, None]:
    """Start every test with an empty store, no sessions and no scheduled jobs."""
    store = get_document_store()
    registry = get_session_registry()
    scheduler = get_template_scheduler()

    registry.clear()
    store.clear()
    store.feed = ChangeFeed()
    scheduler.cancel_where(lambda key: True)
    yield
    registry.clear()
    store.clear()
    scheduler.cancel_where(lambda key: True)


@pytest.fixture
def store() -> DocumentStore:
    """The in-memory document store used by every service under test."""
    return get_document_store()


def make_identity(user_id: str | None = None, email: str | None = None) -> UserContext:
    """Build an authenticated identity as the auth middleware would."""
    user_id = user_id or str(uuid4())
    return UserContext(user_id=UUID(user_id), email=email or f"{user_id[:8]}@example.com", role="authenticated")


@pytest.fixture
def identity() -> Callable[..., UserContext]:
    """Factory for authenticated identities."""
    return make_identity


@pytest.fixture
def create_user() -> Callable[..., Any]:
    """Factory creating a profile and returning its user id.

    Parents get one child named Mina unless ``children`` is given.
    """

    async def _create(user_type: str = "PARENT", name: str = "Test User", children: list[dict] | None = None) -> str:
        user_id = str(uuid4())
        if children is None:
            children = [{"name": "Mina", "age": 4}] if user_type == "PARENT" else []
        data = ProfileCreate(
            user_type=user_type,
            name=name,
            contact="010-0000-0000",
            children=[ChildInfoSchema(**child) for child in children],
        )
        await ProfileService().create_profile(user_id, data, email=f"{user_id[:8]}@example.com")
        return user_id

    return _create


@pytest.fixture
def connected_pair(create_user: Callable[..., Any]) -> Callable[..., Any]:
    """Factory creating a parent, a care provider and a connection between them.

    Returns a dict with ``parent_id``, ``provider_id`` and ``connection_id``.
    """

    async def _create(parent_id: str | None = None) -> dict[str, str]:
        parent_id = parent_id or await create_user("PARENT", "Parent")
        provider_id = await create_user("CARE_PROVIDER", "Provider")
        connection_id = await ConnectionService().create_connection(parent_id, provider_id)
        return {"parent_id": parent_id, "provider_id": provider_id, "connection_id": connection_id}

    return _create


@pytest.fixture
def scope_for() -> Callable[..., RecordScope]:
    """Factory for the record scope of one party of a connected pair."""

    def _scope(pair: dict[str, str], role: str = "PARENT") -> RecordScope:
        user_id = pair["parent_id"] if role == "PARENT" else pair["provider_id"]
        return RecordScope(
            owner_key=pair["parent_id"],
            connection_id=pair["connection_id"],
            user_id=user_id,
            user_type=role,
        )

    return _scope


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = mock_response

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client: TestClient) -> Callable[[str], dict[str, str]]:
    """Authenticate subsequent requests as ``user_id``.

    Overrides the bearer-token dependencies, so no signing key is needed.
    Returns headers to send along.
    """
    from src.api.deps import get_access_token, get_current_user

    def _login(user_id: str) -> dict[str, str]:
        identity = make_identity(user_id)

        async def current_user() -> UserContext:
            return identity

        async def access_token() -> str:
            return "test-access-token"

        client.app.dependency_overrides[get_current_user] = current_user
        client.app.dependency_overrides[get_access_token] = access_token
        return {"Authorization": "Bearer test-access-token"}

    return _login


@pytest.fixture
def api_user(client: TestClient, login_as: Callable[[str], dict[str, str]]) -> Callable[..., str]:
    """Factory signing a new identity up through the API and returning its user id."""

    def _create(user_type: str = "PARENT", name: str = "Test User", children: list[dict] | None = None) -> str:
        user_id = str(uuid4())
        if children is None:
            children = [{"name": "Mina", "age": 4}] if user_type == "PARENT" else []
        response = client.post(
            "/api/v1/session/profile",
            json={"user_type": user_type, "name": name, "contact": "010-0000-0000", "children": children},
            headers=login_as(user_id),
        )
        assert response.status_code == 201, response.text
        return user_id

    return _create


@pytest.fixture
def api_pair(
    client: TestClient,
    login_as: Callable[[str], dict[str, str]],
    api_user: Callable[..., str],
) -> Callable[..., dict[str, str]]:
    """Factory pairing a parent and a care provider through an invite code.

    Returns a dict with ``parent_id``, ``provider_id`` and ``connection_id``.
    """

    def _create(parent_id: str | None = None) -> dict[str, str]:
        parent_id = parent_id or api_user("PARENT", "Parent")
        provider_id = api_user("CARE_PROVIDER", "Provider")

        code = client.post("/api/v1/invite-codes/regenerate", headers=login_as(parent_id)).json()["code"]
        result = client.post(f"/api/v1/invite-codes/{code}/consume", headers=login_as(provider_id)).json()
        assert result["success"], result
        return {"parent_id": parent_id, "provider_id": provider_id, "connection_id": result["connection_id"]}

    return _create
