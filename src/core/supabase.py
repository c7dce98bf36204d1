"""Supabase clients and the Supabase-backed document store."""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from functools import lru_cache
from typing import Any

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions
from supabase_auth import SyncMemoryStorage

from src.core.config import get_settings
from src.core.store import DocumentStore, QuerySpec, Row, StoreError, StorePermissionError

logger = logging.getLogger(__name__)

# Postgres insufficient_privilege, and PostgREST's JWT/RLS rejections
PERMISSION_DENIED_CODES = frozenset({"42501", "PGRST301", "PGRST302"})


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Access
    rules are enforced by the service layer before any write is attempted.

    IMPORTANT: Do NOT use this client for auth operations that call
    set_session() - use create_auth_client() instead to avoid polluting
    the singleton's Authorization header.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


def create_auth_client() -> Client:
    """Create a fresh Supabase client for auth operations.

    Use this for operations that call auth.set_session(), auth.sign_in_*(),
    or any method that modifies the client's Authorization header.

    Returns:
        Client: Fresh Supabase client instance with isolated session storage.
    """
    settings = get_settings()
    options = SyncClientOptions(
        storage=SyncMemoryStorage(),
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
        options=options,
    )


@contextmanager
def _translate_errors(action: str, collection: str) -> Iterator[None]:
    """Turn PostgREST and transport failures into store errors."""
    try:
        yield
    except PostgrestAPIError as e:
        if e.code in PERMISSION_DENIED_CODES:
            raise StorePermissionError(f"{action} on {collection} denied: {e.message}") from e
        raise StoreError(f"{action} on {collection} failed: {e.message}") from e
    except httpx.HTTPError as e:
        raise StoreError(f"{action} on {collection} failed: {e}") from e


class SupabaseDocumentStore(DocumentStore):
    """Document store over Supabase tables.

    Each collection is a table keyed by a text ``id`` column. Nested values
    (activities, profile snapshots, children) live in jsonb columns.
    """

    def __init__(self, client: Client) -> None:
        super().__init__()
        self.client = client

    def _fetch(self, collection: str, doc_id: str) -> Row | None:
        with _translate_errors("get", collection):
            response = (
                self.client.table(collection)
                .select("*")
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )
        return response.data[0] if response.data else None

    def _select(self, query: QuerySpec) -> list[Row]:
        with _translate_errors("query", query.collection):
            request = self.client.table(query.collection).select("*")
            for name, value in query.eq.items():
                request = request.is_(name, "null") if value is None else request.eq(name, value)
            for name, value in query.gte.items():
                request = request.gte(name, value)
            for name, value in query.lte.items():
                request = request.lte(name, value)
            if query.order_by:
                request = request.order(query.order_by, desc=query.desc)
            response = request.execute()
        return response.data or []

    def _upsert(self, collection: str, row: Row) -> Row:
        with _translate_errors("set", collection):
            response = self.client.table(collection).upsert(row).execute()
        return response.data[0] if response.data else row

    def _patch(
        self, collection: str, doc_id: str, fields: Row, expected: Mapping[str, Any] | None = None
    ) -> Row | None:
        with _translate_errors("update", collection):
            request = self.client.table(collection).update(fields).eq("id", doc_id)
            # Conditions go into the UPDATE's WHERE clause
            for name, value in (expected or {}).items():
                request = request.is_(name, "null") if value is None else request.eq(name, value)
            response = request.execute()
        return response.data[0] if response.data else None

    def _remove(self, collection: str, doc_id: str) -> bool:
        with _translate_errors("delete", collection):
            response = (
                self.client.table(collection)
                .delete()
                .eq("id", doc_id)
                .execute()
            )
        return bool(response.data)


async def check_database_connection() -> dict[str, Any]:
    """Check if the document store is reachable.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    from src.core.store import get_document_store

    try:
        get_document_store().query("users", eq={"id": "__healthcheck__"})
        return {"healthy": True}
    except StoreError as e:
        return {"healthy": False, "error": str(e)}
