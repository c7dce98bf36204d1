"""Medication log business logic service."""

import logging
from collections.abc import Callable
from typing import Any

from src.core.dates import format_date, today
from src.core.store import Subscription, get_document_store, utc_now_iso
from src.models import Collections
from src.schemas.care import MedicationCreate, MedicationUpdate
from src.services.permissions import Capability, authorize
from src.services.record_scope import RecordScope, ensure_owned

logger = logging.getLogger(__name__)


def current_medications(rows: list[dict[str, Any]], on_or_after: str | None = None) -> list[dict[str, Any]]:
    """Keep medications dated today or later, soonest first."""
    cutoff = on_or_after or format_date(today())
    current = [row for row in rows if (row.get("date") or "") >= cutoff]
    return sorted(current, key=lambda row: (row.get("date") or "", row.get("created_at") or "", row["id"]))


class MedicationService:
    """Service for medication instructions and administration records."""

    def __init__(self) -> None:
        """Initialize medication service with the document store."""
        self.store = get_document_store()

    async def list_medications(self, scope: RecordScope, include_past: bool = False) -> list[dict[str, Any]]:
        """List the owner's medications.

        The whole set is fetched and filtered to today or later unless
        ``include_past`` is set.
        """
        rows = self.store.query(Collections.MEDICATIONS, eq={"parent_id": scope.owner_key})
        if include_past:
            return sorted(rows, key=lambda row: (row.get("date") or "", row["id"]))
        return current_medications(rows)

    async def get_medication(self, scope: RecordScope, medication_id: str) -> dict[str, Any]:
        return ensure_owned(self.store.get(Collections.MEDICATIONS, medication_id), scope, "Medication")

    async def add_medication(self, scope: RecordScope, data: MedicationCreate) -> dict[str, Any]:
        """Record a medication to be given.

        Raises:
            AuthorizationError: If the caller's role may not add medications.
        """
        authorize(scope.user_type, Capability.MEDICATION_WRITE)
        row = data.model_dump(mode="json")
        row.update({"administered": False, "administered_by": None, "administered_at": None})
        created = self.store.insert(Collections.MEDICATIONS, scope.stamp(row))
        logger.info("Added medication %s for %s", created["id"], scope.owner_key)
        return created

    async def update_medication(
        self,
        scope: RecordScope,
        medication_id: str,
        data: MedicationUpdate,
    ) -> dict[str, Any]:
        authorize(scope.user_type, Capability.MEDICATION_WRITE)
        await self.get_medication(scope, medication_id)

        fields = data.model_dump(mode="json", exclude_unset=True)
        if not fields:
            return await self.get_medication(scope, medication_id)
        return self.store.update(Collections.MEDICATIONS, medication_id, fields)

    async def delete_medication(self, scope: RecordScope, medication_id: str) -> bool:
        authorize(scope.user_type, Capability.MEDICATION_WRITE)
        await self.get_medication(scope, medication_id)
        return self.store.delete(Collections.MEDICATIONS, medication_id)

    async def toggle_administered(self, scope: RecordScope, medication_id: str) -> dict[str, Any]:
        """Flip the administered flag, recording who gave it and when.

        Raises:
            AuthorizationError: If the caller's role may not administer.
            NotFoundError: If the medication does not belong to the scope.
        """
        authorize(scope.user_type, Capability.MEDICATION_ADMINISTER)
        medication = await self.get_medication(scope, medication_id)

        if medication.get("administered"):
            fields = {"administered": False, "administered_by": None, "administered_at": None}
        else:
            fields = {"administered": True, "administered_by": scope.user_id, "administered_at": utc_now_iso()}
        return self.store.update(Collections.MEDICATIONS, medication_id, fields)

    def watch_medications(
        self,
        scope: RecordScope,
        callback: Callable[[list[dict[str, Any]]], None],
    ) -> Subscription:
        return self.store.watch(
            Collections.MEDICATIONS,
            lambda rows: callback(current_medications(rows)),
            eq={"parent_id": scope.owner_key},
        )
