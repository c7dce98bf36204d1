"""Medication, special schedule and handover note API routes."""

import datetime as dt

from fastapi import APIRouter, Query, status

from src.api.deps import ReadySession, Scope
from src.api.routes.schedules import requested_range
from src.models import DayOfWeek
from src.schemas.care import (
    HandoverNoteCreate,
    HandoverNoteResponse,
    HandoverNoteUpdate,
    MedicationCreate,
    MedicationResponse,
    MedicationUpdate,
    SpecialItemCreate,
    SpecialItemResponse,
    SpecialItemUpdate,
)
from src.services.handover_service import HandoverService
from src.services.medication_service import MedicationService
from src.services.special_schedule_service import SpecialScheduleService

router = APIRouter(prefix="/connections/{connection_id}")


# Medications


@router.get(
    "/medications",
    response_model=list[MedicationResponse],
    tags=["medications"],
    summary="List medications",
    description="Medications dated today or later, unless include_past is set.",
)
async def list_medications(
    scope: Scope,
    include_past: bool = Query(default=False),
) -> list[MedicationResponse]:
    rows = await MedicationService().list_medications(scope, include_past=include_past)
    return [MedicationResponse(**row) for row in rows]


@router.post(
    "/medications",
    response_model=MedicationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["medications"],
    summary="Add medication",
)
async def add_medication(data: MedicationCreate, scope: Scope) -> MedicationResponse:
    """Record a medication to be given.

    Raises:
        AuthorizationError: 403 if the caller is not a parent.
    """
    row = await MedicationService().add_medication(scope, data)
    return MedicationResponse(**row)


@router.patch(
    "/medications/{medication_id}",
    response_model=MedicationResponse,
    tags=["medications"],
    summary="Update medication",
)
async def update_medication(medication_id: str, data: MedicationUpdate, scope: Scope) -> MedicationResponse:
    row = await MedicationService().update_medication(scope, medication_id, data)
    return MedicationResponse(**row)


@router.delete(
    "/medications/{medication_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["medications"],
    summary="Delete medication",
)
async def delete_medication(medication_id: str, scope: Scope) -> None:
    await MedicationService().delete_medication(scope, medication_id)


@router.post(
    "/medications/{medication_id}/administered",
    response_model=MedicationResponse,
    tags=["medications"],
    summary="Toggle administered",
    description="Mark a medication as given (or undo it), recording who and when.",
)
async def toggle_administered(medication_id: str, scope: Scope) -> MedicationResponse:
    row = await MedicationService().toggle_administered(scope, medication_id)
    return MedicationResponse(**row)


# Special schedules


@router.get(
    "/special-schedules",
    response_model=list[SpecialItemResponse],
    tags=["special-schedules"],
    summary="List special schedule items",
    description="Vacations, overtime requests and notices visible to the caller.",
)
async def list_special_items(
    scope: Scope,
    start_date: dt.date | None = Query(default=None),
    end_date: dt.date | None = Query(default=None),
) -> list[SpecialItemResponse]:
    date_range = requested_range(start_date, end_date) if start_date or end_date else None
    rows = await SpecialScheduleService().list_for_viewer(scope, date_range)
    return [SpecialItemResponse(**row) for row in rows]


@router.post(
    "/special-schedules",
    response_model=SpecialItemResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["special-schedules"],
    summary="Add special schedule item",
)
async def add_special_item(data: SpecialItemCreate, scope: Scope) -> SpecialItemResponse:
    """Create a vacation, overtime request or notice.

    Overtime requests, and vacations raised by a care provider, start out
    pending until the parent reviews them.

    Raises:
        AuthorizationError: 403 if the caller's role may not create this type.
        ValidationError: 422 if the recipient is not a party of the connection.
    """
    row = await SpecialScheduleService().add_special_schedule_item(scope, data)
    return SpecialItemResponse(**row)


@router.patch(
    "/special-schedules/{item_id}",
    response_model=SpecialItemResponse,
    tags=["special-schedules"],
    summary="Update special schedule item",
)
async def update_special_item(item_id: str, data: SpecialItemUpdate, scope: Scope) -> SpecialItemResponse:
    row = await SpecialScheduleService().update_special_schedule_item(scope, item_id, data)
    return SpecialItemResponse(**row)


@router.delete(
    "/special-schedules/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["special-schedules"],
    summary="Delete special schedule item",
)
async def delete_special_item(item_id: str, scope: Scope) -> None:
    await SpecialScheduleService().delete_special_schedule_item(scope, item_id)


@router.post(
    "/special-schedules/{item_id}/read",
    response_model=SpecialItemResponse,
    tags=["special-schedules"],
    summary="Mark as read",
)
async def mark_special_item_read(item_id: str, scope: Scope) -> SpecialItemResponse:
    row = await SpecialScheduleService().mark_as_read(scope, item_id)
    return SpecialItemResponse(**row)


@router.post(
    "/special-schedules/{item_id}/approve",
    response_model=SpecialItemResponse,
    tags=["special-schedules"],
    summary="Approve request",
)
async def approve_special_item(item_id: str, scope: Scope) -> SpecialItemResponse:
    """Approve a pending request.

    Raises:
        AuthorizationError: 403 if the caller may not review requests.
        ConflictError: 409 if the item is not a pending request.
    """
    row = await SpecialScheduleService().approve(scope, item_id)
    return SpecialItemResponse(**row)


@router.post(
    "/special-schedules/{item_id}/reject",
    response_model=SpecialItemResponse,
    tags=["special-schedules"],
    summary="Reject request",
)
async def reject_special_item(item_id: str, scope: Scope) -> SpecialItemResponse:
    row = await SpecialScheduleService().reject(scope, item_id)
    return SpecialItemResponse(**row)


# Handover notes


@router.get(
    "/handover-notes",
    response_model=list[HandoverNoteResponse],
    tags=["handover-notes"],
    summary="List handover notes",
    description="Notes newest first. Filter by day of week, or to today's notes only.",
)
async def list_handover_notes(
    scope: Scope,
    day_of_week: DayOfWeek | None = Query(default=None),
    today_only: bool = Query(default=False),
) -> list[HandoverNoteResponse]:
    service = HandoverService()
    if today_only:
        rows = await service.list_today(scope)
    elif day_of_week is not None:
        rows = await service.list_by_day_of_week(scope, day_of_week)
    else:
        rows = await service.list_notes(scope)
    return [HandoverNoteResponse(**row) for row in rows]


@router.post(
    "/handover-notes",
    response_model=HandoverNoteResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["handover-notes"],
    summary="Write handover note",
)
async def create_handover_note(
    data: HandoverNoteCreate,
    scope: Scope,
    session: ReadySession,
) -> HandoverNoteResponse:
    """Write a note for the other party.

    The author's display name is copied from the caller's profile.
    """
    author_name = (session.profile or {}).get("name")
    row = await HandoverService().create(scope, data, author_name)
    return HandoverNoteResponse(**row)


@router.patch(
    "/handover-notes/{note_id}",
    response_model=HandoverNoteResponse,
    tags=["handover-notes"],
    summary="Edit handover note",
)
async def update_handover_note(note_id: str, data: HandoverNoteUpdate, scope: Scope) -> HandoverNoteResponse:
    """Edit a note.

    Raises:
        AuthorizationError: 403 unless the caller wrote the note or is a parent.
    """
    row = await HandoverService().update(scope, note_id, data)
    return HandoverNoteResponse(**row)


@router.delete(
    "/handover-notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["handover-notes"],
    summary="Delete handover note",
)
async def delete_handover_note(note_id: str, scope: Scope) -> None:
    await HandoverService().delete(scope, note_id)
