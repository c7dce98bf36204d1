"""Medication, special schedule and handover note schemas."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.records import DayOfWeek, MedicationStorage, MedicationType, RequestStatus, SpecialItemType
from src.schemas.profile import validate_time


class MedicationCreate(BaseModel):
    child_id: str | None = Field(default=None, description="Child the medication is for")
    symptoms: str = Field(..., min_length=1, max_length=500)
    medication_types: list[MedicationType] = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1, max_length=200)
    timing: str = Field(..., min_length=1, max_length=200, description="When to give it")
    storage: MedicationStorage = MedicationStorage.ROOM_TEMP
    notes: str | None = Field(default=None, max_length=1000)
    date: dt.date


class MedicationUpdate(BaseModel):
    """Partial medication update."""

    symptoms: str | None = Field(default=None, min_length=1, max_length=500)
    medication_types: list[MedicationType] | None = Field(default=None, min_length=1)
    dosage: str | None = Field(default=None, min_length=1, max_length=200)
    timing: str | None = Field(default=None, min_length=1, max_length=200)
    storage: MedicationStorage | None = None
    notes: str | None = Field(default=None, max_length=1000)
    date: dt.date | None = None


class MedicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    child_id: str | None = None
    symptoms: str
    medication_types: list[MedicationType]
    dosage: str
    timing: str
    storage: MedicationStorage
    notes: str | None = None
    administered: bool = False
    administered_by: str | None = None
    administered_at: dt.datetime | None = None
    date: dt.date


class SpecialItemCreate(BaseModel):
    type: SpecialItemType
    date: dt.date | None = Field(default=None, description="Day the item concerns; vacations use start_date")
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    title: str = Field(..., min_length=1, max_length=200)
    details: str | None = Field(default=None, max_length=2000)
    start_time: str | None = None
    end_time: str | None = None
    target_user_id: str | None = Field(default=None, description="Single recipient, a party of the connection")

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str | None) -> str | None:
        return validate_time(value) if value is not None else value

    @model_validator(mode="after")
    def check_dates(self) -> "SpecialItemCreate":
        if self.type is SpecialItemType.VACATION:
            if not self.start_date or not self.end_date:
                raise ValueError("Vacations need start_date and end_date")
            if self.end_date < self.start_date:
                raise ValueError("end_date must not be before start_date")
        elif not self.date:
            raise ValueError("date is required")
        if self.type is SpecialItemType.OVERTIME_REQUEST and not (self.start_time and self.end_time):
            raise ValueError("Overtime requests need start_time and end_time")
        return self


class SpecialItemUpdate(BaseModel):
    """Partial update. Type, status and target cannot be changed."""

    date: dt.date | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    details: str | None = Field(default=None, max_length=2000)
    start_time: str | None = None
    end_time: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value: str | None) -> str | None:
        return validate_time(value) if value is not None else value


class SpecialItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    type: SpecialItemType
    date: dt.date
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    title: str
    details: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    status: RequestStatus
    target_user_type: str | None = None
    target_user_id: str | None = None
    read_by: dict[str, str] = Field(default_factory=dict)
    created_by: str
    creator_user_type: str


class HandoverNoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    date: dt.date


class HandoverNoteUpdate(BaseModel):
    content: str | None = Field(default=None, min_length=1, max_length=5000)
    date: dt.date | None = None


class HandoverNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    parent_id: str
    author_id: str
    author_name: str | None = None
    author_user_type: str
    content: str
    date: dt.date
    day_of_week: DayOfWeek
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None
