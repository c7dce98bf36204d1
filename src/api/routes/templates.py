"""Recurring template and schedule pattern API routes."""

from fastapi import APIRouter, Query, status

from src.api.deps import ReadySession, Scope
from src.core.dates import DateRange, format_date
from src.schemas.schedule import (
    ApplyTemplateRequest,
    ApplyTemplateResponse,
    SchedulePatternCreate,
    SchedulePatternResponse,
    SchedulePatternUpdate,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from src.services.template_service import TemplateService

router = APIRouter()


@router.get(
    "/connections/{connection_id}/templates",
    response_model=list[TemplateResponse],
    tags=["templates"],
    summary="List templates",
)
async def list_templates(
    scope: Scope,
    child_id: str | None = Query(default=None),
) -> list[TemplateResponse]:
    rows = await TemplateService().list_templates(scope, child_id)
    return [TemplateResponse(**row) for row in rows]


@router.post(
    "/connections/{connection_id}/templates",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["templates"],
    summary="Create template",
    description="Create a template. Active weekly templates are re-applied every week.",
)
async def create_template(data: TemplateCreate, scope: Scope) -> TemplateResponse:
    """Create a recurring template.

    Raises:
        AuthorizationError: 403 if the caller is not a parent.
    """
    row = await TemplateService().create_template(scope, data)
    return TemplateResponse(**row)


@router.get(
    "/connections/{connection_id}/templates/{template_id}",
    response_model=TemplateResponse,
    tags=["templates"],
    summary="Get template",
)
async def get_template(template_id: str, scope: Scope) -> TemplateResponse:
    row = await TemplateService().get_template(scope, template_id)
    return TemplateResponse(**row)


@router.patch(
    "/connections/{connection_id}/templates/{template_id}",
    response_model=TemplateResponse,
    tags=["templates"],
    summary="Update template",
)
async def update_template(template_id: str, data: TemplateUpdate, scope: Scope) -> TemplateResponse:
    row = await TemplateService().update_template(scope, template_id, data)
    return TemplateResponse(**row)


@router.delete(
    "/connections/{connection_id}/templates/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["templates"],
    summary="Delete template",
)
async def delete_template(template_id: str, scope: Scope) -> None:
    await TemplateService().delete_template(scope, template_id)


@router.post(
    "/connections/{connection_id}/templates/{template_id}/apply",
    response_model=ApplyTemplateResponse,
    tags=["templates"],
    summary="Apply template",
    description="Stamp the template's activity onto every matching day of the range. Days that already have it are skipped.",
)
async def apply_template(
    template_id: str,
    data: ApplyTemplateRequest,
    scope: Scope,
) -> ApplyTemplateResponse:
    """Apply a template over a date range.

    Args:
        template_id: The template to apply.
        data: Inclusive range to fill.
        scope: Owning key of the connection.

    Returns:
        ApplyTemplateResponse: Days written and days skipped.

    Raises:
        ValidationError: 422 if the range ends before it starts.
    """
    service = TemplateService()
    template = await service.get_template(scope, template_id)
    date_range = DateRange(format_date(data.start_date), format_date(data.end_date))
    written, skipped = await service.apply_template(scope, template, date_range)
    return ApplyTemplateResponse(template_id=template_id, written=written, skipped=skipped)


# Schedule patterns belong to their creator, not to a connection


@router.get(
    "/schedule-patterns",
    response_model=list[SchedulePatternResponse],
    tags=["schedule-patterns"],
    summary="List my schedule patterns",
)
async def list_patterns(session: ReadySession) -> list[SchedulePatternResponse]:
    rows = await TemplateService().list_patterns(session.user_id)
    return [SchedulePatternResponse(**row) for row in rows]


@router.post(
    "/schedule-patterns",
    response_model=SchedulePatternResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["schedule-patterns"],
    summary="Create schedule pattern",
)
async def create_pattern(data: SchedulePatternCreate, session: ReadySession) -> SchedulePatternResponse:
    row = await TemplateService().create_pattern(session.user_id, data)
    return SchedulePatternResponse(**row)


@router.get(
    "/schedule-patterns/{pattern_id}",
    response_model=SchedulePatternResponse,
    tags=["schedule-patterns"],
    summary="Get schedule pattern",
)
async def get_pattern(pattern_id: str, session: ReadySession) -> SchedulePatternResponse:
    row = await TemplateService().get_pattern(session.user_id, pattern_id)
    return SchedulePatternResponse(**row)


@router.patch(
    "/schedule-patterns/{pattern_id}",
    response_model=SchedulePatternResponse,
    tags=["schedule-patterns"],
    summary="Update schedule pattern",
)
async def update_pattern(
    pattern_id: str,
    data: SchedulePatternUpdate,
    session: ReadySession,
) -> SchedulePatternResponse:
    row = await TemplateService().update_pattern(session.user_id, pattern_id, data)
    return SchedulePatternResponse(**row)


@router.delete(
    "/schedule-patterns/{pattern_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["schedule-patterns"],
    summary="Delete schedule pattern",
)
async def delete_pattern(pattern_id: str, session: ReadySession) -> None:
    await TemplateService().delete_pattern(session.user_id, pattern_id)
