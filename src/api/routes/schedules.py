"""Daily schedule and meal plan API routes.

Every route is scoped to one of the caller's connections; records are
stored under that connection's owning key.
"""

import datetime as dt

from fastapi import APIRouter, Query

from src.api.deps import Scope
from src.api.middleware.error_handler import NotFoundError
from src.core.dates import DateRange, format_date, week_range
from src.schemas.schedule import DailyScheduleResponse, DailyScheduleUpdate, MealPlanResponse, MealPlanUpdate
from src.services.connection_service import ConnectionService
from src.services.meal_plan_service import MealPlanService
from src.services.schedule_service import ScheduleService

router = APIRouter(prefix="/connections/{connection_id}", tags=["schedules"])


def requested_range(start_date: dt.date | None, end_date: dt.date | None) -> DateRange:
    """The requested inclusive range, defaulting to the current week."""
    if start_date is None and end_date is None:
        return week_range()
    start = start_date or end_date
    end = end_date or start_date
    return DateRange(format_date(start), format_date(end))


@router.get(
    "/schedules",
    response_model=dict[str, dict[str, DailyScheduleResponse]],
    summary="Schedules for several children",
    description="Schedules keyed by child id then date. A child whose load fails comes back empty.",
)
async def get_children_schedules(
    scope: Scope,
    child_ids: list[str] | None = Query(default=None, description="Children to load, default all"),
    start_date: dt.date | None = Query(default=None, description="First date, default this Monday"),
    end_date: dt.date | None = Query(default=None, description="Last date, default this Sunday"),
) -> dict[str, dict[str, DailyScheduleResponse]]:
    """Load schedules for several children in parallel.

    Args:
        scope: Owning key of the connection.
        child_ids: Children to load; every child currently on the stored connection when empty.
        start_date: First date of the range.
        end_date: Last date of the range.

    Returns:
        dict: Schedule map per child id.
    """
    if not child_ids:
        connection = await ConnectionService().get_connection(scope.connection_id) or {}
        child_ids = [child["id"] for child in connection.get("children") or [] if child.get("id")]

    result = await ScheduleService().load_children_schedules(scope, child_ids, requested_range(start_date, end_date))
    return {
        child_id: {date: DailyScheduleResponse(**row) for date, row in schedules.items()}
        for child_id, schedules in result.items()
    }


@router.get(
    "/children/{child_id}/schedules",
    response_model=dict[str, DailyScheduleResponse],
    summary="A child's schedules",
    description="Schedules keyed by date for an inclusive range, default the current week.",
)
async def get_child_schedules(
    child_id: str,
    scope: Scope,
    start_date: dt.date | None = Query(default=None),
    end_date: dt.date | None = Query(default=None),
) -> dict[str, DailyScheduleResponse]:
    schedules = await ScheduleService().get_date_range_schedules(
        scope, child_id, requested_range(start_date, end_date)
    )
    return {date: DailyScheduleResponse(**row) for date, row in schedules.items()}


@router.get(
    "/children/{child_id}/schedules/{date}",
    response_model=DailyScheduleResponse,
    summary="A child's day",
)
async def get_daily_schedule(child_id: str, date: dt.date, scope: Scope) -> DailyScheduleResponse:
    """Get one child's schedule for one date.

    Raises:
        NotFoundError: 404 if nothing is scheduled that day.
    """
    row = await ScheduleService().get_daily_schedule(scope, child_id, format_date(date))
    if row is None:
        raise NotFoundError("No schedule for this date")
    return DailyScheduleResponse(**row)


@router.put(
    "/children/{child_id}/schedules/{date}",
    response_model=DailyScheduleResponse,
    summary="Save a child's day",
    description="Merge activity lists into the day. Lists left out of the body are kept.",
)
async def save_daily_schedule(
    child_id: str,
    date: dt.date,
    data: DailyScheduleUpdate,
    scope: Scope,
) -> DailyScheduleResponse:
    """Save one child's schedule for one date.

    Args:
        child_id: The child.
        date: The day.
        data: Activity lists to replace.
        scope: Owning key of the connection.

    Returns:
        DailyScheduleResponse: The merged day.

    Raises:
        AuthorizationError: 403 if the caller's role may not edit schedules.
    """
    row = await ScheduleService().save_daily_schedule(scope, child_id, format_date(date), data)
    return DailyScheduleResponse(**row)


@router.get(
    "/meal-plans",
    response_model=dict[str, MealPlanResponse],
    tags=["meal-plans"],
    summary="Meal plans for a range",
    description="Menus keyed by date, default the current week.",
)
async def get_meal_plans(
    scope: Scope,
    start_date: dt.date | None = Query(default=None),
    end_date: dt.date | None = Query(default=None),
) -> dict[str, MealPlanResponse]:
    plans = await MealPlanService().get_date_range_meal_plans(scope, requested_range(start_date, end_date))
    return {date: MealPlanResponse(**row) for date, row in plans.items()}


@router.get(
    "/meal-plans/{date}",
    response_model=MealPlanResponse,
    tags=["meal-plans"],
    summary="Meal plan for a date",
)
async def get_meal_plan(date: dt.date, scope: Scope) -> MealPlanResponse:
    row = await MealPlanService().get_date_based_meal_plan(scope, format_date(date))
    if row is None:
        raise NotFoundError("No meal plan for this date")
    return MealPlanResponse(**row)


@router.put(
    "/meal-plans/{date}",
    response_model=MealPlanResponse,
    tags=["meal-plans"],
    summary="Save meal plan",
    description="Write the menu for a date. The last writer wins.",
)
async def save_meal_plan(date: dt.date, data: MealPlanUpdate, scope: Scope) -> MealPlanResponse:
    """Save the menu for a date.

    Raises:
        AuthorizationError: 403 if the caller's role may not edit meal plans.
    """
    row = await MealPlanService().save_date_based_meal_plan(scope, format_date(date), data)
    return MealPlanResponse(**row)
