"""In-memory document store for local development and tests."""

from __future__ import annotations

import copy
from collections import defaultdict
from collections.abc import Mapping
from threading import Lock
from typing import Any

from src.core.store import DocumentStore, QuerySpec, Row, row_matches


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dict-of-dicts store with the same semantics as the Supabase backend."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, Row]] = defaultdict(dict)
        self._lock = Lock()

    def _fetch(self, collection: str, doc_id: str) -> Row | None:
        with self._lock:
            row = self._collections[collection].get(doc_id)
            return copy.deepcopy(row) if row is not None else None

    def _select(self, query: QuerySpec) -> list[Row]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._collections[query.collection].values() if query.matches(row)]

        if query.order_by:
            present = [row for row in rows if row.get(query.order_by) is not None]
            missing = [row for row in rows if row.get(query.order_by) is None]
            present.sort(key=lambda row: row[query.order_by], reverse=query.desc)
            rows = present + missing
        return rows

    def _upsert(self, collection: str, row: Row) -> Row:
        with self._lock:
            self._collections[collection][row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def _patch(
        self, collection: str, doc_id: str, fields: Row, expected: Mapping[str, Any] | None = None
    ) -> Row | None:
        with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None or not row_matches(current, expected):
                return None
            current.update(copy.deepcopy(fields))
            return copy.deepcopy(current)

    def _remove(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collections[collection].pop(doc_id, None) is not None

    def clear(self) -> None:
        """Drop all documents. Subscriptions are kept."""
        with self._lock:
            self._collections.clear()
