"""Daily schedule business logic service."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any

from src.core.dates import DateRange, day_of_week, week_range
from src.core.store import Subscription, get_document_store
from src.models import Collections
from src.schemas.schedule import DailyScheduleUpdate
from src.services.permissions import Capability, authorize
from src.services.record_scope import RecordScope

logger = logging.getLogger(__name__)

ScheduleMap = dict[str, dict[str, Any]]


def schedule_id(owner_key: str, child_id: str, date: str) -> str:
    return f"{owner_key}:{child_id}:{date}"


def normalize_schedule(row: dict[str, Any]) -> dict[str, Any]:
    """Fill list defaults and recompute the stored day-of-week label."""
    row = dict(row)
    row["day_of_week"] = day_of_week(row["date"]).value
    row.setdefault("childcare_activities", [])
    row.setdefault("after_school_activities", [])
    row["childcare_activities"] = row["childcare_activities"] or []
    row["after_school_activities"] = row["after_school_activities"] or []
    return row


def by_date(rows: list[dict[str, Any]]) -> ScheduleMap:
    return {row["date"]: normalize_schedule(row) for row in rows}


class ScheduleService:
    """Service for per-child, per-date schedules."""

    def __init__(self) -> None:
        """Initialize schedule service with the document store."""
        self.store = get_document_store()

    async def get_daily_schedule(self, scope: RecordScope, child_id: str, date: str) -> dict[str, Any] | None:
        row = self.store.get(Collections.DAILY_SCHEDULES, schedule_id(scope.owner_key, child_id, date))
        return normalize_schedule(row) if row else None

    async def get_date_range_schedules(
        self,
        scope: RecordScope,
        child_id: str,
        date_range: DateRange,
    ) -> ScheduleMap:
        """Get a child's schedules keyed by date.

        Args:
            scope: Owner of the records.
            child_id: The child.
            date_range: Inclusive range of dates.

        Returns:
            dict[str, dict]: Schedules for the dates that have one.
        """
        rows = self.store.query(
            Collections.DAILY_SCHEDULES,
            eq={"parent_id": scope.owner_key, "child_id": child_id},
            gte={"date": date_range.start_date},
            lte={"date": date_range.end_date},
            order_by="date",
        )
        return by_date(rows)

    async def get_current_week_schedules(self, scope: RecordScope, child_id: str) -> ScheduleMap:
        return await self.get_date_range_schedules(scope, child_id, week_range())

    async def save_daily_schedule(
        self,
        scope: RecordScope,
        child_id: str,
        date: str,
        data: DailyScheduleUpdate,
    ) -> dict[str, Any]:
        """Merge activities into a child's day.

        Only the activity lists present in ``data`` are replaced.

        Raises:
            AuthorizationError: If the caller's role may not edit schedules.
        """
        authorize(scope.user_type, Capability.SCHEDULE_WRITE)

        fields: dict[str, Any] = {
            "child_id": child_id,
            "date": date,
            "day_of_week": day_of_week(date).value,
        }
        for name in ("childcare_activities", "after_school_activities"):
            activities = getattr(data, name)
            if activities is not None:
                fields[name] = [_activity_row(activity.model_dump(mode="json")) for activity in activities]

        row = self.store.set(
            Collections.DAILY_SCHEDULES,
            schedule_id(scope.owner_key, child_id, date),
            scope.stamp(fields),
            merge=True,
        )
        return normalize_schedule(row)

    async def load_children_schedules(
        self,
        scope: RecordScope,
        child_ids: list[str],
        date_range: DateRange,
    ) -> dict[str, ScheduleMap]:
        """Load several children's schedules in parallel.

        A child whose load fails gets an empty map; the others are unaffected.

        Returns:
            dict[str, dict]: Schedule map per child id.
        """

        async def load(child_id: str) -> ScheduleMap:
            try:
                return await self.get_date_range_schedules(scope, child_id, date_range)
            except Exception as e:
                logger.warning("Loading schedules for child %s failed: %s", child_id, e)
                return {}

        results = await asyncio.gather(*(load(child_id) for child_id in child_ids))
        return dict(zip(child_ids, results))

    def watch_date_range_schedules(
        self,
        scope: RecordScope,
        child_id: str,
        date_range: DateRange,
        callback: Callable[[ScheduleMap], None],
    ) -> Subscription:
        """Push the child's schedule map for the range whenever it changes."""
        return self.store.watch(
            Collections.DAILY_SCHEDULES,
            lambda rows: callback(by_date(rows)),
            eq={"parent_id": scope.owner_key, "child_id": child_id},
            gte={"date": date_range.start_date},
            lte={"date": date_range.end_date},
            order_by="date",
        )


def _activity_row(activity: dict[str, Any]) -> dict[str, Any]:
    if not activity.get("id"):
        activity["id"] = str(uuid.uuid4())
    return activity
