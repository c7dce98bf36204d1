"""Profile model type definitions for database operations."""

from enum import Enum
from typing import TypedDict


class UserType(str, Enum):
    """Role of an identity in a care relationship."""

    PARENT = "PARENT"
    CARE_PROVIDER = "CARE_PROVIDER"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class InstitutionType(str, Enum):
    """Where a child spends the day."""

    DAYCARE = "daycare"
    KINDERGARTEN = "kindergarten"
    NONE = "none"
    OTHER = "other"


class ChildInfo(TypedDict, total=False):
    """A parent's child. Owned by the parent, mirrored into each Connection."""

    id: str
    name: str
    age: int | None
    gender: str | None
    special_needs: str | None
    institution_type: str
    institution_name: str | None


class WorkShift(TypedDict):
    start_time: str
    end_time: str


# Keyed by DayOfWeek value; "OFF" marks a day without a shift
WorkSchedule = dict[str, WorkShift | str]


class Profile(TypedDict, total=False):
    """Users table row representation.

    One row per identity; ``id`` is the auth user id. ``connection_ids`` is
    a cached membership list kept in line with the connections table by
    reconciliation. ``connection_id`` is the deprecated single pointer.
    """

    id: str
    user_type: str
    name: str
    contact: str
    email: str | None
    connection_ids: list[str]
    connection_id: str | None
    primary_connection_id: str | None
    invite_code: str | None
    work_schedule: WorkSchedule | None
    children: list[ChildInfo]
    allowed_parent_ids: list[str]
    created_at: str
    updated_at: str


class ProfileUpdate(TypedDict, total=False):
    """Data that can be updated on a profile.

    All fields are optional for partial updates.
    """

    name: str
    contact: str
    email: str | None
    work_schedule: WorkSchedule | None
