"""Profile Pydantic schemas for API request/response models."""

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.profile import Gender, InstitutionType, UserType
from src.models.records import DayOfWeek

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_time(value: str) -> str:
    if not _TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return value


class ChildInfoSchema(BaseModel):
    """A parent's child."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str | None = Field(default=None, description="Child id, generated when omitted")
    name: str = Field(..., min_length=1, max_length=100, description="Child's name")
    age: int | None = Field(default=None, ge=0, le=18, description="Child's age in years")
    gender: Gender | None = Field(default=None, description="Child's gender")
    special_needs: str | None = Field(default=None, max_length=1000, description="Allergies, conditions, notes")
    institution_type: InstitutionType = Field(default=InstitutionType.NONE, description="Where the child spends the day")
    institution_name: str | None = Field(default=None, max_length=255, description="Daycare or kindergarten name")

    @model_validator(mode="after")
    def require_institution_name(self) -> "ChildInfoSchema":
        if self.institution_type != InstitutionType.NONE.value and not (self.institution_name or "").strip():
            raise ValueError("institution_name is required unless institution_type is 'none'")
        return self


class WorkShiftSchema(BaseModel):
    start_time: str = Field(..., description="Shift start, HH:MM")
    end_time: str = Field(..., description="Shift end, HH:MM")

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return validate_time(value)


class WorkScheduleUpdate(BaseModel):
    """Per-day shifts. Days not listed are left unchanged."""

    days: dict[DayOfWeek, WorkShiftSchema | Literal["OFF"]] = Field(
        ..., description="Shift per day of week, or OFF"
    )

    def to_row(self) -> dict:
        return {
            day.value: shift if isinstance(shift, str) else shift.model_dump()
            for day, shift in self.days.items()
        }


class ProfileCreate(BaseModel):
    """Schema for completing sign-up with a profile."""

    model_config = ConfigDict(use_enum_values=True)

    user_type: UserType = Field(..., description="PARENT or CARE_PROVIDER")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    contact: str = Field(..., min_length=1, max_length=50, description="Phone number or other contact")
    email: str | None = Field(default=None, max_length=255, description="Email address")
    children: list[ChildInfoSchema] = Field(default_factory=list, description="Children (parents only)")

    @model_validator(mode="after")
    def children_only_for_parents(self) -> "ProfileCreate":
        if self.children and self.user_type != UserType.PARENT.value:
            raise ValueError("Only parents can register children")
        return self


class ProfileUpdate(BaseModel):
    """Schema for updating a profile.

    All fields are optional for partial updates.
    """

    model_config = ConfigDict(from_attributes=True)

    name: str | None = Field(default=None, min_length=1, max_length=100, description="New display name")
    contact: str | None = Field(default=None, min_length=1, max_length=50, description="New contact")
    email: str | None = Field(default=None, max_length=255, description="New email address")


class ChildrenUpdate(BaseModel):
    children: list[ChildInfoSchema] = Field(..., description="Complete list of the parent's children")


class ProfileResponse(BaseModel):
    """Schema for profile API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Profile id (auth user id)")
    user_type: UserType = Field(description="Role in care relationships")
    name: str = Field(description="Display name")
    contact: str | None = Field(default=None, description="Contact")
    email: str | None = Field(default=None, description="Email address")
    connection_ids: list[str] = Field(default_factory=list, description="Connections this user belongs to")
    primary_connection_id: str | None = Field(default=None, description="Preferred connection")
    invite_code: str | None = Field(default=None, description="Current outstanding invite code")
    children: list[ChildInfoSchema] = Field(default_factory=list, description="Children (parents only)")
    work_schedule: dict | None = Field(default=None, description="Default work schedule")
    created_at: datetime | None = Field(default=None, description="Profile creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
