"""Profile API routes."""

from typing import Any

from fastapi import APIRouter, HTTPException, status

from src.api.deps import ReadySession
from src.schemas.profile import ChildInfoSchema, ChildrenUpdate, ProfileResponse, ProfileUpdate, WorkScheduleUpdate
from src.services.profile_service import ProfileService
from src.services.session_service import SessionService

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get current user's profile",
    description="Returns the authenticated user's profile information.",
)
async def get_my_profile(session: ReadySession) -> ProfileResponse:
    """Get the authenticated user's profile.

    Args:
        session: The caller's session context.

    Returns:
        ProfileResponse: The user's profile data.

    Raises:
        HTTPException: 404 if profile not found.
    """
    service = ProfileService()
    profile = await service.get_profile(session.user_id)

    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )

    return ProfileResponse(**profile)


@router.patch(
    "/me",
    response_model=ProfileResponse,
    summary="Update current user's profile",
    description="Updates the authenticated user's profile with provided fields.",
)
async def update_my_profile(
    data: ProfileUpdate,
    session: ReadySession,
) -> ProfileResponse:
    """Update the authenticated user's profile.

    Connection snapshots of the profile are refreshed as well.

    Args:
        data: Fields to update.
        session: The caller's session context.

    Returns:
        ProfileResponse: The updated profile data.

    Raises:
        HTTPException: 404 if profile not found.
    """
    service = ProfileService()
    profile = await service.update_profile(session.user_id, data)

    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )

    await SessionService().refresh(session)
    return ProfileResponse(**profile)


@router.put(
    "/me/children",
    response_model=list[ChildInfoSchema],
    summary="Replace children",
    description="Replace the parent's children. Every connection's children snapshot follows.",
)
async def save_my_children(data: ChildrenUpdate, session: ReadySession) -> list[ChildInfoSchema]:
    """Replace the caller's children.

    Args:
        data: The complete list of children.
        session: The caller's session context.

    Returns:
        list[ChildInfoSchema]: The stored children with ids assigned.

    Raises:
        AuthorizationError: 403 if the caller is not a parent.
    """
    rows = await ProfileService().save_children(session.user_id, data.children)
    await SessionService().refresh(session)
    return [ChildInfoSchema(**row) for row in rows]


@router.get(
    "/me/work-schedule",
    summary="Get work schedule",
    description="The caller's default shift per day of week.",
)
async def get_my_work_schedule(session: ReadySession) -> dict[str, Any]:
    return await ProfileService().get_work_schedule(session.user_id)


@router.put(
    "/me/work-schedule",
    summary="Save work schedule",
    description="Merge the submitted days into the caller's work schedule.",
)
async def save_my_work_schedule(data: WorkScheduleUpdate, session: ReadySession) -> dict[str, Any]:
    """Save shifts for the submitted days.

    Args:
        data: Shift (or OFF) per day.
        session: The caller's session context.

    Returns:
        dict: The full work schedule after the merge.
    """
    return await ProfileService().save_work_schedule(session.user_id, data)
