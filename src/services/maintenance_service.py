"""Consistency repair and migration utilities.

Used by the scripts in ``scripts/``. Every operation is idempotent and safe
to re-run.
"""

import logging
from typing import Any

from src.core.dates import day_of_week
from src.core.store import get_document_store
from src.models import Collections, UserType
from src.services.connection_service import ConnectionService
from src.services.schedule_service import schedule_id

logger = logging.getLogger(__name__)

# Collections whose rows carry a date with a derived day-of-week label
DAY_LABELLED = (Collections.DAILY_SCHEDULES, Collections.HANDOVER_NOTES)


class MaintenanceService:
    """Service for bulk repair of cached and legacy fields."""

    def __init__(self) -> None:
        """Initialize maintenance service with the document store."""
        self.store = get_document_store()
        self.connections = ConnectionService()

    async def sync_all_allowed_parent_ids(self) -> dict[str, list[str]]:
        """Recompute ``allowed_parent_ids`` for every care provider."""
        result = {}
        for profile in self.store.query(Collections.USERS, eq={"user_type": UserType.CARE_PROVIDER.value}):
            result[profile["id"]] = await self.connections.sync_allowed_parent_ids(profile["id"])
        logger.info("Synced allowed parents for %d care providers", len(result))
        return result

    async def repair_all_connection_ids(self) -> int:
        """Reconcile ``connection_ids`` for every profile. Returns profiles visited."""
        profiles = self.store.query(Collections.USERS)
        for profile in profiles:
            await self.connections.sync_user_connections(profile["id"], profile)
        logger.info("Reconciled connection membership for %d profiles", len(profiles))
        return len(profiles)

    async def backfill_parent_ids(self) -> dict[str, int]:
        """Stamp ``parent_id`` onto records that only carry a connection tag.

        Returns:
            dict[str, int]: Records updated per collection.
        """
        parents: dict[str, str | None] = {}
        updated: dict[str, int] = {}

        for collection in Collections.COLLABORATIVE:
            count = 0
            for row in self.store.query(collection, eq={"parent_id": None}):
                connection_id = row.get("connection_id")
                if not connection_id:
                    continue
                if connection_id not in parents:
                    connection = self.store.get(Collections.CONNECTIONS, connection_id)
                    parents[connection_id] = connection["parent_id"] if connection else None
                parent_id = parents[connection_id]
                if parent_id is None:
                    logger.warning("%s/%s references unknown connection %s", collection, row["id"], connection_id)
                    continue
                self.store.update(collection, row["id"], {"parent_id": parent_id})
                count += 1
            updated[collection] = count

        logger.info("Backfilled parent ids: %s", updated)
        return updated

    async def normalize_day_of_week(self) -> int:
        """Recompute stored day-of-week labels from each row's date."""
        fixed = 0
        for collection in DAY_LABELLED:
            for row in self.store.query(collection):
                if not row.get("date"):
                    continue
                label = day_of_week(row["date"]).value
                if row.get("day_of_week") != label:
                    self.store.update(collection, row["id"], {"day_of_week": label})
                    fixed += 1
        logger.info("Corrected %d day-of-week labels", fixed)
        return fixed

    async def cleanup_duplicate_activities(self, parent_id: str, child_id: str, date: str) -> int:
        """Drop repeated template activities from one day.

        Activities stamped by the same template are duplicates; the first
        one is kept. Activities without a template id are never touched.

        Returns:
            int: Activities removed.
        """
        doc_id = schedule_id(parent_id, child_id, date)
        row = self.store.get(Collections.DAILY_SCHEDULES, doc_id)
        if not row:
            return 0

        fields: dict[str, Any] = {}
        removed = 0
        for name in ("childcare_activities", "after_school_activities"):
            kept, dropped = _dedupe(row.get(name) or [])
            if dropped:
                fields[name] = kept
                removed += dropped

        if fields:
            self.store.update(Collections.DAILY_SCHEDULES, doc_id, fields)
            logger.info("Removed %d duplicate activities from %s", removed, doc_id)
        return removed


def _dedupe(activities: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], int]:
    seen: set[str] = set()
    kept = []
    for activity in activities:
        marker = activity.get("template_id")
        if marker and marker in seen:
            continue
        if marker:
            seen.add(marker)
        kept.append(activity)
    return kept, len(activities) - len(kept)
