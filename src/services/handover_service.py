"""Daily handover note business logic service."""

from collections.abc import Callable
from typing import Any

from src.api.middleware.error_handler import AuthorizationError
from src.core.dates import day_of_week, format_date, today
from src.core.store import Subscription, get_document_store
from src.models import Collections, DayOfWeek
from src.schemas.care import HandoverNoteCreate, HandoverNoteUpdate
from src.services.permissions import Capability, authorize, can_edit_handover_note
from src.services.record_scope import RecordScope, ensure_owned


def normalize_note(row: dict[str, Any]) -> dict[str, Any]:
    return {**row, "day_of_week": day_of_week(row["date"]).value}


def newest_first(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    notes = [normalize_note(row) for row in rows]
    return sorted(notes, key=lambda row: (row["date"], row.get("created_at") or "", row["id"]), reverse=True)


class HandoverService:
    """Service for notes passed between parent and care provider."""

    def __init__(self) -> None:
        """Initialize handover service with the document store."""
        self.store = get_document_store()

    async def get_note(self, scope: RecordScope, note_id: str) -> dict[str, Any]:
        return normalize_note(ensure_owned(self.store.get(Collections.HANDOVER_NOTES, note_id), scope, "Note"))

    async def create(self, scope: RecordScope, data: HandoverNoteCreate, author_name: str | None) -> dict[str, Any]:
        authorize(scope.user_type, Capability.HANDOVER_WRITE)
        date = format_date(data.date)
        row = {
            "author_id": scope.user_id,
            "author_name": author_name,
            "author_user_type": scope.user_type,
            "content": data.content,
            "date": date,
            "day_of_week": day_of_week(date).value,
        }
        return self.store.insert(Collections.HANDOVER_NOTES, scope.stamp(row))

    async def update(self, scope: RecordScope, note_id: str, data: HandoverNoteUpdate) -> dict[str, Any]:
        """Edit a note. Its author, or any parent of the connection, may edit."""
        note = await self.get_note(scope, note_id)
        if not can_edit_handover_note(note, scope.user_id, scope.user_type):
            raise AuthorizationError("Only the author or a parent can edit this note")

        fields = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        if not fields:
            return note
        if "date" in fields:
            fields["day_of_week"] = day_of_week(fields["date"]).value
        return normalize_note(self.store.update(Collections.HANDOVER_NOTES, note_id, fields))

    async def delete(self, scope: RecordScope, note_id: str) -> bool:
        note = await self.get_note(scope, note_id)
        if not can_edit_handover_note(note, scope.user_id, scope.user_type):
            raise AuthorizationError("Only the author or a parent can delete this note")
        return self.store.delete(Collections.HANDOVER_NOTES, note_id)

    async def list_notes(self, scope: RecordScope) -> list[dict[str, Any]]:
        rows = self.store.query(Collections.HANDOVER_NOTES, eq={"parent_id": scope.owner_key})
        return newest_first(rows)

    async def list_by_day_of_week(self, scope: RecordScope, day: DayOfWeek) -> list[dict[str, Any]]:
        """Notes whose date falls on ``day``, computed from the date itself."""
        return [note for note in await self.list_notes(scope) if note["day_of_week"] == day.value]

    async def list_today(self, scope: RecordScope) -> list[dict[str, Any]]:
        rows = self.store.query(
            Collections.HANDOVER_NOTES,
            eq={"parent_id": scope.owner_key, "date": format_date(today())},
        )
        return newest_first(rows)

    def watch(self, scope: RecordScope, callback: Callable[[list[dict[str, Any]]], None]) -> Subscription:
        return self.store.watch(
            Collections.HANDOVER_NOTES,
            lambda rows: callback(newest_first(rows)),
            eq={"parent_id": scope.owner_key},
        )
