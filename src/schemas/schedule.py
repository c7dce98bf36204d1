"""Schedule, meal plan, recurring template and pattern schemas."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.records import ActivityType, DayOfWeek, RepeatType
from src.schemas.profile import validate_time


class ActivitySchema(BaseModel):
    """One block of care on a day."""

    model_config = ConfigDict(from_attributes=True)

    id: str | None = Field(default=None, description="Activity id, generated when omitted")
    description: str = Field(..., min_length=1, max_length=200, description="What happens")
    start_time: str = Field(..., description="Start, HH:MM")
    end_time: str = Field(..., description="End, HH:MM")
    institution_name: str | None = Field(default=None, max_length=255, description="Where it happens")
    template_id: str | None = Field(default=None, description="Template that stamped this activity")

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return validate_time(value)


class DailyScheduleUpdate(BaseModel):
    """Fields to merge into a child's day. Omitted lists are left untouched."""

    childcare_activities: list[ActivitySchema] | None = None
    after_school_activities: list[ActivitySchema] | None = None


class DailyScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    child_id: str
    date: dt.date
    day_of_week: DayOfWeek
    childcare_activities: list[ActivitySchema] = Field(default_factory=list)
    after_school_activities: list[ActivitySchema] = Field(default_factory=list)


class MealPlanUpdate(BaseModel):
    menu: str = Field(..., max_length=2000, description="What is served")
    notes: str | None = Field(default=None, max_length=2000, description="Allergies, substitutions")


class MealPlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    date: dt.date
    menu: str = ""
    notes: str | None = None


class TemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Shown as the activity description")
    activity_type: ActivityType = Field(..., description="childcare or afterSchool")
    start_time: str = Field(..., description="Start, HH:MM")
    end_time: str = Field(..., description="End, HH:MM")
    days_of_week: list[DayOfWeek] = Field(..., min_length=1, description="Days the template applies to")
    institution_name: str | None = Field(default=None, max_length=255)
    is_active: bool = True
    is_weekly_recurring: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return validate_time(value)

    @model_validator(mode="after")
    def check_order(self) -> "TemplateBase":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class TemplateCreate(TemplateBase):
    child_id: str = Field(..., min_length=1, description="Child the template stamps activities for")


class TemplateUpdate(BaseModel):
    """Partial template update."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    start_time: str | None = None
    end_time: str | None = None
    days_of_week: list[DayOfWeek] | None = Field(default=None, min_length=1)
    institution_name: str | None = None
    is_active: bool | None = None
    is_weekly_recurring: bool | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str | None) -> str | None:
        return validate_time(value) if value is not None else value


class TemplateResponse(TemplateBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    child_id: str


class ApplyTemplateRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date


class ApplyTemplateResponse(BaseModel):
    template_id: str
    written: int = Field(description="Days that received a new activity")
    skipped: int = Field(description="Days that already had this template's activity")


class SchedulePatternCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_time: str
    end_time: str
    repeat_type: RepeatType
    repeat_days: list[DayOfWeek] = Field(default_factory=list)
    repeat_dates: list[int] = Field(default_factory=list, description="Days of month, 1-31")
    custom_pattern: str | None = Field(default=None, max_length=500)
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str) -> str:
        return validate_time(value)

    @field_validator("repeat_dates")
    @classmethod
    def check_dates(cls, value: list[int]) -> list[int]:
        if any(day < 1 or day > 31 for day in value):
            raise ValueError("repeat_dates must be between 1 and 31")
        return value

    @model_validator(mode="after")
    def check_repeat(self) -> "SchedulePatternCreate":
        if self.repeat_type is RepeatType.WEEKLY and not self.repeat_days:
            raise ValueError("WEEKLY patterns need repeat_days")
        if self.repeat_type is RepeatType.MONTHLY and not self.repeat_dates:
            raise ValueError("MONTHLY patterns need repeat_dates")
        if self.repeat_type is RepeatType.CUSTOM and not self.custom_pattern:
            raise ValueError("CUSTOM patterns need custom_pattern")
        return self


class SchedulePatternUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    start_time: str | None = None
    end_time: str | None = None
    repeat_days: list[DayOfWeek] | None = None
    repeat_dates: list[int] | None = None
    custom_pattern: str | None = None
    is_active: bool | None = None


class SchedulePatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_by: str
    name: str
    start_time: str
    end_time: str
    repeat_type: RepeatType
    repeat_days: list[DayOfWeek] = Field(default_factory=list)
    repeat_dates: list[int] = Field(default_factory=list)
    custom_pattern: str | None = None
    is_active: bool = True
