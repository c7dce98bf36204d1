"""Document store contract shared by the Supabase and in-memory backends.

The core never talks to a database client directly. Services go through a
``DocumentStore``, which offers keyed reads and writes, equality/range
queries, partial (merge) updates, an atomic multi-document batch and
push-based ``watch`` subscriptions.

Subscriptions are served by an in-process change feed: every write that goes
through the store is published to the subscriptions whose filters match the
old or new version of the document, and each matching subscription receives
a fresh snapshot of its query.
"""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from threading import RLock
from typing import Any

logger = logging.getLogger(__name__)

Row = dict[str, Any]
SnapshotCallback = Callable[[list[Row]], None]


class StoreError(Exception):
    """A store read or write failed."""


class StorePermissionError(StoreError):
    """The store refused access to a document (row-level rule or revoked access)."""


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string, the format rows carry timestamps in."""
    return datetime.now(timezone.utc).isoformat()


def row_matches(
    row: Mapping[str, Any],
    eq: Mapping[str, Any] | None = None,
    gte: Mapping[str, Any] | None = None,
    lte: Mapping[str, Any] | None = None,
) -> bool:
    """Check a row against equality and inclusive range filters."""
    for name, expected in (eq or {}).items():
        if row.get(name) != expected:
            return False
    for name, bound in (gte or {}).items():
        value = row.get(name)
        if value is None or value < bound:
            return False
    for name, bound in (lte or {}).items():
        value = row.get(name)
        if value is None or value > bound:
            return False
    return True


@dataclass(frozen=True)
class QuerySpec:
    """An equality/range query over one collection."""

    collection: str
    eq: Mapping[str, Any] = field(default_factory=dict)
    gte: Mapping[str, Any] = field(default_factory=dict)
    lte: Mapping[str, Any] = field(default_factory=dict)
    order_by: str | None = None
    desc: bool = False

    def matches(self, row: Mapping[str, Any] | None) -> bool:
        return row is not None and row_matches(row, self.eq, self.gte, self.lte)


class Subscription:
    """Handle for a live query. Call ``cancel()`` to stop receiving snapshots."""

    def __init__(self, feed: "ChangeFeed", query: QuerySpec, callback: SnapshotCallback) -> None:
        self.id = uuid.uuid4().hex
        self.query = query
        self._feed = feed
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, rows: list[Row]) -> None:
        if not self._active:
            return
        try:
            self._callback(rows)
        except Exception:
            # Callback errors are logged, never raised into the writer
            logger.exception("Subscription %s callback failed", self.id)

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._feed.remove(self)


class ChangeFeed:
    """Registry of live subscriptions, grouped by collection."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._lock = RLock()

    def add(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions[subscription.query.collection].append(subscription)

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.query.collection, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)

    def affected(self, collection: str, before: Row | None, after: Row | None) -> list[Subscription]:
        with self._lock:
            candidates = list(self._subscriptions.get(collection, []))
        return [sub for sub in candidates if sub.query.matches(before) or sub.query.matches(after)]

    def count(self, collection: str | None = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._subscriptions.get(collection, []))
            return sum(len(subs) for subs in self._subscriptions.values())


@dataclass
class _BatchOp:
    kind: str
    collection: str
    doc_id: str
    data: Row | None = None
    merge: bool = False


class WriteBatch:
    """Multi-document write applied all-or-nothing.

    Operations are queued and applied on ``commit()``. If any operation
    fails, documents already written by the batch are restored to their
    previous contents before the error is re-raised.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._ops: list[_BatchOp] = []

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> "WriteBatch":
        self._ops.append(_BatchOp("set", collection, doc_id, dict(data), merge))
        return self

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> "WriteBatch":
        self._ops.append(_BatchOp("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(_BatchOp("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        applied: list[tuple[_BatchOp, Row | None]] = []
        try:
            for op in self._ops:
                previous = self._store.get(op.collection, op.doc_id)
                if op.kind == "set":
                    self._store.set(op.collection, op.doc_id, op.data or {}, merge=op.merge)
                elif op.kind == "update":
                    if self._store.update(op.collection, op.doc_id, op.data or {}) is None:
                        raise StoreError(f"{op.collection}/{op.doc_id} does not exist")
                else:
                    self._store.delete(op.collection, op.doc_id)
                applied.append((op, previous))
        except StoreError:
            logger.warning("Batch failed after %d of %d writes, rolling back", len(applied), len(self._ops))
            self._rollback(applied)
            raise
        finally:
            self._ops = []

    def _rollback(self, applied: list[tuple[_BatchOp, Row | None]]) -> None:
        for op, previous in reversed(applied):
            try:
                if previous is None:
                    self._store.delete(op.collection, op.doc_id)
                else:
                    self._store.set(op.collection, op.doc_id, previous)
            except StoreError:
                logger.error("Rollback of %s/%s failed", op.collection, op.doc_id)


class DocumentStore(ABC):
    """Collection-oriented store with change subscriptions.

    Backends implement the five primitives; the public API adds
    timestamps, id generation, merge semantics and change publication.
    """

    def __init__(self) -> None:
        self.feed = ChangeFeed()

    # Backend primitives

    @abstractmethod
    def _fetch(self, collection: str, doc_id: str) -> Row | None: ...

    @abstractmethod
    def _select(self, query: QuerySpec) -> list[Row]: ...

    @abstractmethod
    def _upsert(self, collection: str, row: Row) -> Row: ...

    @abstractmethod
    def _patch(
        self, collection: str, doc_id: str, fields: Row, expected: Mapping[str, Any] | None = None
    ) -> Row | None: ...

    @abstractmethod
    def _remove(self, collection: str, doc_id: str) -> bool: ...

    # Reads

    def get(self, collection: str, doc_id: str) -> Row | None:
        return self._fetch(collection, doc_id)

    def query(
        self,
        collection: str,
        eq: Mapping[str, Any] | None = None,
        gte: Mapping[str, Any] | None = None,
        lte: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
    ) -> list[Row]:
        return self._select(
            QuerySpec(collection, dict(eq or {}), dict(gte or {}), dict(lte or {}), order_by, desc)
        )

    # Writes

    def insert(self, collection: str, data: Mapping[str, Any]) -> Row:
        row = dict(data)
        row.setdefault("id", str(uuid.uuid4()))
        now = utc_now_iso()
        row.setdefault("created_at", now)
        row["updated_at"] = now
        stored = self._upsert(collection, row)
        self._publish(collection, None, stored)
        return stored

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> Row:
        """Write a whole document, or merge fields into it when ``merge`` is set."""
        before = self._fetch(collection, doc_id)
        now = utc_now_iso()
        if merge and before is not None:
            fields = {k: v for k, v in data.items() if k not in ("id", "created_at")}
            fields["updated_at"] = now
            stored = self._patch(collection, doc_id, fields) or {**before, **fields}
        else:
            row = {**data, "id": doc_id}
            row.setdefault("created_at", before.get("created_at", now) if before else now)
            row["updated_at"] = now
            stored = self._upsert(collection, row)
        self._publish(collection, before, stored)
        return stored

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> Row | None:
        """Partial update. Returns ``None`` when the document does not exist."""
        before = self._fetch(collection, doc_id)
        if before is None:
            return None
        patch = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
        patch["updated_at"] = utc_now_iso()
        stored = self._patch(collection, doc_id, patch)
        if stored is None:
            return None
        self._publish(collection, before, stored)
        return stored

    def update_if(
        self,
        collection: str,
        doc_id: str,
        expected: Mapping[str, Any],
        fields: Mapping[str, Any],
    ) -> Row | None:
        """Partial update applied only while the document still holds ``expected``.

        The condition is checked by the backend in the same write, so of two
        racing callers expecting the same values at most one succeeds.

        Returns:
            Row | None: The updated document, or ``None`` when it is missing
            or no longer matches ``expected``.
        """
        if not expected:
            raise ValueError("update_if requires at least one expected value")
        before = self._fetch(collection, doc_id)
        if before is None or not row_matches(before, expected):
            return None
        patch = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
        patch["updated_at"] = utc_now_iso()
        stored = self._patch(collection, doc_id, patch, expected)
        if stored is None:
            return None
        self._publish(collection, before, stored)
        return stored

    def delete(self, collection: str, doc_id: str) -> bool:
        before = self._fetch(collection, doc_id)
        if before is None:
            return False
        removed = self._remove(collection, doc_id)
        if removed:
            self._publish(collection, before, None)
        return removed

    def delete_where(self, collection: str, eq: Mapping[str, Any]) -> int:
        """Delete every document matching ``eq``. Returns the number deleted."""
        if not eq:
            raise ValueError("delete_where requires at least one filter")
        rows = self.query(collection, eq=eq)
        deleted = 0
        for row in rows:
            if self.delete(collection, row["id"]):
                deleted += 1
        return deleted

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    # Subscriptions

    def watch(
        self,
        collection: str,
        callback: SnapshotCallback,
        eq: Mapping[str, Any] | None = None,
        gte: Mapping[str, Any] | None = None,
        lte: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
    ) -> Subscription:
        """Subscribe to a query. The current snapshot is delivered immediately."""
        query = QuerySpec(collection, dict(eq or {}), dict(gte or {}), dict(lte or {}), order_by, desc)
        subscription = Subscription(self.feed, query, callback)
        self.feed.add(subscription)
        subscription.deliver(self._select(query))
        return subscription

    def _publish(self, collection: str, before: Row | None, after: Row | None) -> None:
        for subscription in self.feed.affected(collection, before, after):
            try:
                rows = self._select(subscription.query)
            except StoreError:
                logger.warning("Could not refresh subscription %s on %s", subscription.id, collection)
                continue
            subscription.deliver(copy.deepcopy(rows))


@lru_cache
def get_document_store() -> DocumentStore:
    """Get the cached document store for the configured backend.

    Returns:
        DocumentStore: Supabase-backed store, or the in-memory store when
        ``STORE_BACKEND=memory``.
    """
    from src.core.config import get_settings

    settings = get_settings()
    if settings.store_backend == "memory":
        from src.core.memory_store import InMemoryDocumentStore

        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()

    from src.core.supabase import SupabaseDocumentStore, get_supabase_client

    return SupabaseDocumentStore(get_supabase_client())
