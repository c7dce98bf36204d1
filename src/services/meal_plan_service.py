"""Meal plan business logic service."""

from collections.abc import Callable
from typing import Any

from src.core.dates import DateRange
from src.core.store import Subscription, get_document_store
from src.models import Collections
from src.schemas.schedule import MealPlanUpdate
from src.services.permissions import Capability, authorize
from src.services.record_scope import RecordScope

MealPlanMap = dict[str, dict[str, Any]]


def meal_plan_id(owner_key: str, date: str) -> str:
    return f"{owner_key}:{date}"


class MealPlanService:
    """Service for one menu per owner and date."""

    def __init__(self) -> None:
        """Initialize meal plan service with the document store."""
        self.store = get_document_store()

    async def get_date_based_meal_plan(self, scope: RecordScope, date: str) -> dict[str, Any] | None:
        return self.store.get(Collections.MEAL_PLANS, meal_plan_id(scope.owner_key, date))

    async def get_date_range_meal_plans(self, scope: RecordScope, date_range: DateRange) -> MealPlanMap:
        """Get meal plans keyed by date for an inclusive range."""
        rows = self.store.query(
            Collections.MEAL_PLANS,
            eq={"parent_id": scope.owner_key},
            gte={"date": date_range.start_date},
            lte={"date": date_range.end_date},
            order_by="date",
        )
        return {row["date"]: row for row in rows}

    async def save_date_based_meal_plan(
        self,
        scope: RecordScope,
        date: str,
        data: MealPlanUpdate,
    ) -> dict[str, Any]:
        """Write the menu for a date. The last writer wins.

        Raises:
            AuthorizationError: If the caller's role may not edit meal plans.
        """
        authorize(scope.user_type, Capability.MEAL_PLAN_WRITE)
        return self.store.set(
            Collections.MEAL_PLANS,
            meal_plan_id(scope.owner_key, date),
            scope.stamp({"date": date, "menu": data.menu, "notes": data.notes}),
            merge=True,
        )

    def watch_date_range_meal_plans(
        self,
        scope: RecordScope,
        date_range: DateRange,
        callback: Callable[[MealPlanMap], None],
    ) -> Subscription:
        return self.store.watch(
            Collections.MEAL_PLANS,
            lambda rows: callback({row["date"]: row for row in rows}),
            eq={"parent_id": scope.owner_key},
            gte={"date": date_range.start_date},
            lte={"date": date_range.end_date},
            order_by="date",
        )
