"""Unit tests for TemplateService and the template scheduler."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from pydantic import ValidationError

from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.core.dates import DateRange, next_week_range
from src.core.scheduler import TemplateScheduler
from src.core.store import DocumentStore
from src.models import Collections
from src.schemas.schedule import (
    ActivitySchema,
    DailyScheduleUpdate,
    SchedulePatternCreate,
    SchedulePatternUpdate,
    TemplateCreate,
    TemplateUpdate,
)
from src.services.schedule_service import ScheduleService
from src.services.template_service import TemplateService

MARCH_WEEK = DateRange("2024-03-04", "2024-03-10")
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


def template_data(**overrides: Any) -> TemplateCreate:
    data = {
        "child_id": "k1",
        "name": "Daycare",
        "activity_type": "childcare",
        "start_time": "09:00",
        "end_time": "15:00",
        "days_of_week": ["MON", "WED", "FRI"],
    }
    data.update(overrides)
    return TemplateCreate(**data)


@pytest.fixture
def scheduler() -> TemplateScheduler:
    return TemplateScheduler(poll_seconds=1)


@pytest.fixture
def service(scheduler: TemplateScheduler) -> TemplateService:
    return TemplateService(scheduler=scheduler)


class TestApplyTemplate:
    """Tests for stamping template activities onto days."""

    @pytest.mark.asyncio
    async def test_writes_matching_days_only(
        self, service: TemplateService, connected_pair: Callable[..., Any], scope_for: Callable[..., Any]
    ) -> None:
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data())

        written, skipped = await service.apply_template(scope, template, MARCH_WEEK)

        assert (written, skipped) == (3, 0)
        week = await ScheduleService().get_date_range_schedules(scope, "k1", MARCH_WEEK)
        assert list(week) == ["2024-03-04", "2024-03-06", "2024-03-08"]
        activity = week["2024-03-06"]["childcare_activities"][0]
        assert activity["description"] == "Daycare"
        assert activity["template_id"] == template["id"]

    @pytest.mark.asyncio
    async def test_reapplying_is_idempotent(
        self, service: TemplateService, connected_pair: Callable[..., Any], scope_for: Callable[..., Any]
    ) -> None:
        """Test that a second application skips days that already hold the activity."""
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data())
        await service.apply_template(scope, template, MARCH_WEEK)

        written, skipped = await service.apply_template(scope, template, MARCH_WEEK)

        assert (written, skipped) == (0, 3)
        day = await ScheduleService().get_daily_schedule(scope, "k1", "2024-03-04")
        assert len(day["childcare_activities"]) == 1

    @pytest.mark.asyncio
    async def test_existing_activities_are_kept(
        self,
        service: TemplateService,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        """Test that stamping appends to the day and leaves the other list alone."""
        scope = scope_for(await connected_pair())
        template = await service.create_template(
            scope, template_data(activity_type="afterSchool", name="Piano", start_time="16:00", end_time="17:00")
        )
        await ScheduleService().save_daily_schedule(
            scope,
            "k1",
            "2024-03-04",
            DailyScheduleUpdate(
                childcare_activities=[ActivitySchema(description="Daycare", start_time="09:00", end_time="15:00")],
                after_school_activities=[ActivitySchema(description="Swim", start_time="15:00", end_time="16:00")],
            ),
        )

        await service.apply_template(scope, template, DateRange("2024-03-04", "2024-03-04"))

        day = await ScheduleService().get_daily_schedule(scope, "k1", "2024-03-04")
        assert [a["description"] for a in day["after_school_activities"]] == ["Swim", "Piano"]
        assert [a["description"] for a in day["childcare_activities"]] == ["Daycare"]

    @pytest.mark.asyncio
    async def test_care_provider_cannot_apply_or_create(
        self, service: TemplateService, connected_pair: Callable[..., Any], scope_for: Callable[..., Any]
    ) -> None:
        pair = await connected_pair()
        template = await service.create_template(scope_for(pair), template_data())
        provider = scope_for(pair, role="CARE_PROVIDER")

        with pytest.raises(AuthorizationError):
            await service.create_template(provider, template_data())
        with pytest.raises(AuthorizationError):
            await service.apply_template(provider, template, MARCH_WEEK)


class TestWeeklyReapplication:
    """Tests for deferred weekly jobs."""

    @pytest.mark.asyncio
    async def test_weekly_template_arms_job_for_next_week(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        scope = scope_for(await connected_pair())

        template = await service.create_template(scope, template_data(is_weekly_recurring=True))

        job = scheduler.get((template["id"], next_week_range().start_date))
        assert job is not None
        assert job.run_at.weekday() == 0

    @pytest.mark.asyncio
    async def test_job_applies_and_rearms(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        """Test that a due job fills its week and schedules the following one."""
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data(is_weekly_recurring=True))
        scheduler.cancel_where(lambda key: True)
        service.schedule_weekly_reapplication(scope, template, MARCH_WEEK)

        ran = await scheduler.run_due(FAR_FUTURE)

        assert ran == 1
        week = await ScheduleService().get_date_range_schedules(scope, "k1", MARCH_WEEK)
        assert len(week) == 3
        assert [job.key for job in scheduler.jobs()] == [(template["id"], "2024-03-11")]

    @pytest.mark.asyncio
    async def test_same_key_replaces_job(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data())

        service.schedule_weekly_reapplication(scope, template, MARCH_WEEK)
        service.schedule_weekly_reapplication(scope, template, MARCH_WEEK)

        assert len(scheduler.jobs()) == 1

    @pytest.mark.asyncio
    async def test_deactivated_template_drops_job(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data(is_weekly_recurring=True))

        await service.update_template(scope, template["id"], TemplateUpdate(is_active=False))

        assert scheduler.jobs() == []

    @pytest.mark.asyncio
    async def test_job_for_stopped_template_writes_nothing(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
        store: DocumentStore,
    ) -> None:
        """Test that a job whose template stopped recurring neither writes nor re-arms."""
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data(is_weekly_recurring=True))
        scheduler.cancel_where(lambda key: True)
        service.schedule_weekly_reapplication(scope, template, MARCH_WEEK)
        store.update(Collections.RECURRING_TEMPLATES, template["id"], {"is_weekly_recurring": False})

        await scheduler.run_due(FAR_FUTURE)

        assert store.query(Collections.DAILY_SCHEDULES) == []
        assert scheduler.jobs() == []

    @pytest.mark.asyncio
    async def test_delete_unschedules(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        scope = scope_for(await connected_pair())
        template = await service.create_template(scope, template_data(is_weekly_recurring=True))

        assert await service.delete_template(scope, template["id"])

        assert scheduler.jobs() == []
        with pytest.raises(NotFoundError):
            await service.get_template(scope, template["id"])

    @pytest.mark.asyncio
    async def test_restore_weekly_jobs(
        self,
        service: TemplateService,
        scheduler: TemplateScheduler,
        connected_pair: Callable[..., Any],
        scope_for: Callable[..., Any],
    ) -> None:
        scope = scope_for(await connected_pair())
        await service.create_template(scope, template_data(is_weekly_recurring=True))
        await service.create_template(scope, template_data(name="Once"))
        scheduler.cancel_where(lambda key: True)

        assert await service.restore_weekly_jobs() == 1
        assert len(scheduler.jobs()) == 1


class TestTemplateScheduler:
    """Tests for the keyed deferred job runner."""

    @pytest.mark.asyncio
    async def test_runs_only_due_jobs_in_order(self, scheduler: TemplateScheduler) -> None:
        now = datetime(2024, 3, 4, tzinfo=timezone.utc)
        ran: list[str] = []

        def job(name: str) -> Any:
            async def run() -> None:
                ran.append(name)

            return run

        scheduler.schedule("late", now - timedelta(minutes=1), job("late"))
        scheduler.schedule("early", now - timedelta(hours=1), job("early"))
        scheduler.schedule("future", now + timedelta(hours=1), job("future"))

        assert await scheduler.run_due(now) == 2
        assert ran == ["early", "late"]
        assert [j.key for j in scheduler.jobs()] == ["future"]

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_others(self, scheduler: TemplateScheduler) -> None:
        now = datetime(2024, 3, 4, tzinfo=timezone.utc)
        ran: list[str] = []

        async def broken() -> None:
            raise RuntimeError("boom")

        async def fine() -> None:
            ran.append("fine")

        scheduler.schedule("a", now - timedelta(hours=2), broken)
        scheduler.schedule("b", now - timedelta(hours=1), fine)

        assert await scheduler.run_due(now) == 2
        assert ran == ["fine"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler: TemplateScheduler) -> None:
        await scheduler.start()
        await scheduler.stop()

        assert scheduler._task is None

    def test_cancel(self, scheduler: TemplateScheduler) -> None:
        async def noop() -> None:
            return None

        scheduler.schedule(("t1", "2024-03-04"), FAR_FUTURE, noop)

        assert scheduler.cancel(("t1", "2024-03-04"))
        assert not scheduler.cancel(("t1", "2024-03-04"))


class TestSchedulePatterns:
    """Tests for reusable schedule patterns."""

    @pytest.mark.asyncio
    async def test_patterns_are_private_to_their_creator(self, service: TemplateService) -> None:
        pattern = await service.create_pattern(
            "u1",
            SchedulePatternCreate(
                name="Weekdays", start_time="09:00", end_time="18:00", repeat_type="WEEKLY", repeat_days=["MON"]
            ),
        )

        assert [p["id"] for p in await service.list_patterns("u1")] == [pattern["id"]]
        assert await service.list_patterns("u2") == []
        with pytest.raises(NotFoundError):
            await service.get_pattern("u2", pattern["id"])

        updated = await service.update_pattern("u1", pattern["id"], SchedulePatternUpdate(name="Work"))
        assert updated["name"] == "Work"
        assert await service.delete_pattern("u1", pattern["id"])

    def test_weekly_pattern_needs_days(self) -> None:
        with pytest.raises(ValidationError):
            SchedulePatternCreate(name="x", start_time="09:00", end_time="10:00", repeat_type="WEEKLY")
