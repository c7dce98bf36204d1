"""Collaborative record type definitions.

Every record carries ``parent_id``, the canonical owning key, and most
carry ``connection_id`` as a legacy tag naming the connection it was
written through.
"""

from enum import Enum
from typing import TypedDict


class DayOfWeek(str, Enum):
    """Day labels, Monday first. Always derived from an ISO date."""

    MONDAY = "MON"
    TUESDAY = "TUE"
    WEDNESDAY = "WED"
    THURSDAY = "THU"
    FRIDAY = "FRI"
    SATURDAY = "SAT"
    SUNDAY = "SUN"


class ActivityType(str, Enum):
    CHILDCARE = "childcare"
    AFTER_SCHOOL = "afterSchool"

    @property
    def field_name(self) -> str:
        """DailySchedule list holding activities of this type."""
        if self is ActivityType.CHILDCARE:
            return "childcare_activities"
        return "after_school_activities"


class Activity(TypedDict, total=False):
    id: str
    description: str
    start_time: str
    end_time: str
    institution_name: str
    template_id: str | None


class DailySchedule(TypedDict, total=False):
    """One child's activities on one date. Unique per (parent_id, child_id, date)."""

    id: str
    parent_id: str
    connection_id: str | None
    child_id: str
    date: str
    day_of_week: str
    childcare_activities: list[Activity]
    after_school_activities: list[Activity]
    created_at: str
    updated_at: str


class DailyMealPlan(TypedDict, total=False):
    """Menu for one date. Unique per (parent_id, date)."""

    id: str
    parent_id: str
    connection_id: str | None
    date: str
    menu: str
    notes: str
    created_at: str
    updated_at: str


class MedicationType(str, Enum):
    LIQUID = "LIQUID"
    POWDER = "POWDER"
    TABLET = "TABLET"


class MedicationStorage(str, Enum):
    ROOM_TEMP = "ROOM_TEMP"
    REFRIGERATED = "REFRIGERATED"


class Medication(TypedDict, total=False):
    id: str
    parent_id: str
    connection_id: str | None
    child_id: str | None
    symptoms: str
    medication_types: list[str]
    dosage: str
    timing: str
    storage: str
    notes: str
    administered: bool
    administered_by: str | None
    administered_at: str | None
    date: str
    created_at: str
    updated_at: str


class SpecialItemType(str, Enum):
    VACATION = "VACATION"
    OVERTIME_REQUEST = "OVERTIME_REQUEST"
    NOTICE = "NOTICE"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SpecialScheduleItem(TypedDict, total=False):
    id: str
    parent_id: str
    connection_id: str | None
    type: str
    date: str
    start_date: str | None
    end_date: str | None
    title: str
    details: str | None
    start_time: str | None
    end_time: str | None
    status: str
    target_user_type: str | None
    target_user_id: str | None
    read_by: dict[str, str]
    created_by: str
    creator_user_type: str
    created_at: str
    updated_at: str


class HandoverNote(TypedDict, total=False):
    id: str
    parent_id: str
    connection_id: str | None
    author_id: str
    author_name: str
    author_user_type: str
    content: str
    date: str
    day_of_week: str
    created_at: str
    updated_at: str


class RecurringTemplate(TypedDict, total=False):
    """Generator that stamps activities onto matching dates."""

    id: str
    parent_id: str
    child_id: str
    name: str
    activity_type: str
    start_time: str
    end_time: str
    days_of_week: list[str]
    institution_name: str | None
    is_active: bool
    is_weekly_recurring: bool
    created_at: str
    updated_at: str


class RepeatType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


class SchedulePattern(TypedDict, total=False):
    id: str
    created_by: str
    name: str
    start_time: str
    end_time: str
    repeat_type: str
    repeat_days: list[str]
    repeat_dates: list[int]
    custom_pattern: str | None
    is_active: bool
    created_at: str
    updated_at: str
