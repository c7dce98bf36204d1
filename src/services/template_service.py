"""Recurring template and schedule pattern business logic service.

Applying a template stamps one activity onto each matching day of a child's
schedule. Each stamped activity carries the template id, so a day that
already holds the template's activity for that activity type is skipped.
Weekly templates are re-applied by a deferred job keyed by
``(template_id, week_start)`` that re-arms itself for the following week.
"""

import asyncio
import logging
import uuid
from datetime import datetime, time, timezone
from typing import Any

from src.api.middleware.error_handler import NotFoundError
from src.core.config import get_settings
from src.core.dates import DateRange, day_of_week, next_week_range, parse_date
from src.core.scheduler import TemplateScheduler, get_template_scheduler
from src.core.store import get_document_store
from src.models import ActivityType, Collections, UserType
from src.schemas.schedule import SchedulePatternCreate, SchedulePatternUpdate, TemplateCreate, TemplateUpdate
from src.services.permissions import Capability, authorize
from src.services.record_scope import RecordScope, ensure_owned
from src.services.schedule_service import schedule_id

logger = logging.getLogger(__name__)


def has_template_activity(activities: list[dict[str, Any]], template_id: str) -> bool:
    return any(activity.get("template_id") == template_id for activity in activities)


def template_activity(template: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "description": template["name"],
        "start_time": template["start_time"],
        "end_time": template["end_time"],
        "institution_name": template.get("institution_name"),
        "template_id": template["id"],
    }


def week_start_at(week_start: str) -> datetime:
    return datetime.combine(parse_date(week_start), time(0, 0), tzinfo=timezone.utc)


class TemplateService:
    """Service for recurring templates and schedule patterns."""

    def __init__(self, scheduler: TemplateScheduler | None = None) -> None:
        """Initialize template service with the document store and scheduler."""
        self.store = get_document_store()
        self.scheduler = scheduler or get_template_scheduler()
        self.write_delay = get_settings().template_write_delay_ms / 1000

    # Templates

    async def list_templates(self, scope: RecordScope, child_id: str | None = None) -> list[dict[str, Any]]:
        eq = {"parent_id": scope.owner_key}
        if child_id:
            eq["child_id"] = child_id
        return self.store.query(Collections.RECURRING_TEMPLATES, eq=eq, order_by="created_at")

    async def get_template(self, scope: RecordScope, template_id: str) -> dict[str, Any]:
        return ensure_owned(self.store.get(Collections.RECURRING_TEMPLATES, template_id), scope, "Template")

    async def create_template(self, scope: RecordScope, data: TemplateCreate) -> dict[str, Any]:
        """Store a template and arm its weekly job when it recurs."""
        authorize(scope.user_type, Capability.TEMPLATE_WRITE)
        row = data.model_dump(mode="json")
        row["created_by"] = scope.user_id
        template = self.store.insert(Collections.RECURRING_TEMPLATES, scope.stamp(row))
        if template["is_active"] and template["is_weekly_recurring"]:
            self.schedule_weekly_reapplication(scope, template)
        return template

    async def update_template(self, scope: RecordScope, template_id: str, data: TemplateUpdate) -> dict[str, Any]:
        authorize(scope.user_type, Capability.TEMPLATE_WRITE)
        template = await self.get_template(scope, template_id)
        fields = data.model_dump(mode="json", exclude_unset=True)
        if fields:
            template = self.store.update(Collections.RECURRING_TEMPLATES, template_id, fields)

        self.unschedule(template_id)
        if template["is_active"] and template["is_weekly_recurring"]:
            self.schedule_weekly_reapplication(scope, template)
        return template

    async def delete_template(self, scope: RecordScope, template_id: str) -> bool:
        authorize(scope.user_type, Capability.TEMPLATE_WRITE)
        await self.get_template(scope, template_id)
        self.unschedule(template_id)
        return self.store.delete(Collections.RECURRING_TEMPLATES, template_id)

    async def apply_template(
        self,
        scope: RecordScope,
        template: dict[str, Any],
        date_range: DateRange,
    ) -> tuple[int, int]:
        """Stamp the template's activity onto every matching day in the range.

        Writes are issued one at a time with a short pause in between.

        Args:
            scope: Owner of the schedules.
            template: The template row.
            date_range: Inclusive range to fill.

        Returns:
            tuple[int, int]: Days written and days skipped as duplicates.
        """
        authorize(scope.user_type, Capability.SCHEDULE_WRITE)

        field_name = ActivityType(template["activity_type"]).field_name
        days = set(template.get("days_of_week") or [])
        child_id = template["child_id"]
        written = skipped = 0

        for date in date_range.dates():
            label = day_of_week(date).value
            if label not in days:
                continue

            doc_id = schedule_id(scope.owner_key, child_id, date)
            existing = self.store.get(Collections.DAILY_SCHEDULES, doc_id) or {}
            activities = list(existing.get(field_name) or [])
            if has_template_activity(activities, template["id"]):
                skipped += 1
                continue

            if written:
                await asyncio.sleep(self.write_delay)
            activities.append(template_activity(template))
            self.store.set(
                Collections.DAILY_SCHEDULES,
                doc_id,
                scope.stamp({"child_id": child_id, "date": date, "day_of_week": label, field_name: activities}),
                merge=True,
            )
            written += 1

        logger.info(
            "Applied template %s over %s..%s: %d written, %d skipped",
            template["id"],
            date_range.start_date,
            date_range.end_date,
            written,
            skipped,
        )
        return written, skipped

    def schedule_weekly_reapplication(
        self,
        scope: RecordScope,
        template: dict[str, Any],
        week: DateRange | None = None,
    ) -> tuple[str, str]:
        """Arm the job that applies ``template`` to ``week`` (default: next week).

        Returns:
            tuple[str, str]: The job key, ``(template_id, week_start)``.
        """
        week = week or next_week_range()
        key = (template["id"], week.start_date)

        async def run() -> None:
            await self._run_weekly(scope, template["id"], week)

        self.scheduler.schedule(key, week_start_at(week.start_date), run)
        return key

    def unschedule(self, template_id: str) -> int:
        return self.scheduler.cancel_where(lambda key: key[0] == template_id)

    async def _run_weekly(self, scope: RecordScope, template_id: str, week: DateRange) -> None:
        template = self.store.get(Collections.RECURRING_TEMPLATES, template_id)
        if not template or not template.get("is_active") or not template.get("is_weekly_recurring"):
            logger.info("Template %s no longer recurs, dropping weekly job", template_id)
            return

        await self.apply_template(scope, template, week)
        following = next_week_range(parse_date(week.start_date))
        self.schedule_weekly_reapplication(scope, template, following)

    async def restore_weekly_jobs(self) -> int:
        """Arm jobs for every active weekly template. Call at startup."""
        rows = self.store.query(
            Collections.RECURRING_TEMPLATES,
            eq={"is_active": True, "is_weekly_recurring": True},
        )
        for template in rows:
            scope = RecordScope(
                owner_key=template["parent_id"],
                connection_id=template.get("connection_id") or "",
                user_id=template.get("created_by") or template["parent_id"],
                user_type=UserType.PARENT.value,
            )
            self.schedule_weekly_reapplication(scope, template)
        if rows:
            logger.info("Restored %d weekly template jobs", len(rows))
        return len(rows)

    # Schedule patterns

    async def list_patterns(self, user_id: str) -> list[dict[str, Any]]:
        return self.store.query(Collections.SCHEDULE_PATTERNS, eq={"created_by": user_id}, order_by="created_at")

    async def get_pattern(self, user_id: str, pattern_id: str) -> dict[str, Any]:
        pattern = self.store.get(Collections.SCHEDULE_PATTERNS, pattern_id)
        if pattern is None or pattern.get("created_by") != user_id:
            raise NotFoundError("Schedule pattern not found")
        return pattern

    async def create_pattern(self, user_id: str, data: SchedulePatternCreate) -> dict[str, Any]:
        row = data.model_dump(mode="json")
        row["created_by"] = user_id
        return self.store.insert(Collections.SCHEDULE_PATTERNS, row)

    async def update_pattern(self, user_id: str, pattern_id: str, data: SchedulePatternUpdate) -> dict[str, Any]:
        pattern = await self.get_pattern(user_id, pattern_id)
        fields = data.model_dump(mode="json", exclude_unset=True)
        if not fields:
            return pattern
        return self.store.update(Collections.SCHEDULE_PATTERNS, pattern_id, fields)

    async def delete_pattern(self, user_id: str, pattern_id: str) -> bool:
        await self.get_pattern(user_id, pattern_id)
        return self.store.delete(Collections.SCHEDULE_PATTERNS, pattern_id)
