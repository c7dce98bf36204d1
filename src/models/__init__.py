"""Database model type definitions."""

from src.models.connection import Connection, InviteCode
from src.models.profile import ChildInfo, Gender, InstitutionType, Profile, UserType
from src.models.records import (
    Activity,
    ActivityType,
    DailyMealPlan,
    DailySchedule,
    DayOfWeek,
    HandoverNote,
    Medication,
    RecurringTemplate,
    RequestStatus,
    SchedulePattern,
    SpecialItemType,
    SpecialScheduleItem,
)


class Collections:
    """Store collection (table) names."""

    USERS = "users"
    CONNECTIONS = "connections"
    INVITE_CODES = "invite_codes"
    DAILY_SCHEDULES = "daily_schedules"
    MEAL_PLANS = "meal_plans"
    MEDICATIONS = "medications"
    SPECIAL_SCHEDULES = "special_schedules"
    HANDOVER_NOTES = "handover_notes"
    RECURRING_TEMPLATES = "recurring_templates"
    SCHEDULE_PATTERNS = "schedule_patterns"
    WORK_SCHEDULES = "work_schedules"

    # Records scoped by a parent's owning key, removed when a connection is torn down
    COLLABORATIVE = (
        DAILY_SCHEDULES,
        MEAL_PLANS,
        MEDICATIONS,
        SPECIAL_SCHEDULES,
        HANDOVER_NOTES,
        RECURRING_TEMPLATES,
    )


__all__ = [
    "Activity",
    "ActivityType",
    "ChildInfo",
    "Collections",
    "Connection",
    "DailyMealPlan",
    "DailySchedule",
    "DayOfWeek",
    "Gender",
    "HandoverNote",
    "InstitutionType",
    "InviteCode",
    "Medication",
    "Profile",
    "RecurringTemplate",
    "RequestStatus",
    "SchedulePattern",
    "SpecialItemType",
    "SpecialScheduleItem",
    "UserType",
]
