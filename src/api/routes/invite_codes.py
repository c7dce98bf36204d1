"""Invite code API routes."""

from fastapi import APIRouter, status

from src.api.deps import ReadySession
from src.schemas.connection import ConsumeResult, InviteCodeResponse, InviteCodeStatus
from src.services.invite_code_service import InviteCodeService
from src.services.session_service import SessionService

router = APIRouter(prefix="/invite-codes", tags=["invite-codes"])


async def _code_response(service: InviteCodeService, code: str) -> InviteCodeResponse:
    invite = await service.get_code(code)
    return InviteCodeResponse(**invite)


@router.get(
    "/me",
    response_model=InviteCodeResponse,
    summary="Get my invite code",
    description="Returns the caller's outstanding invite code, issuing one when none is consumable.",
)
async def get_my_invite_code(session: ReadySession) -> InviteCodeResponse:
    """Get (or issue) the caller's invite code.

    Args:
        session: The caller's session context.

    Returns:
        InviteCodeResponse: The consumable code and its expiry.
    """
    service = InviteCodeService()
    code = await service.get_or_create(session.user_id, session.user_type)
    return await _code_response(service, code)


@router.post(
    "/regenerate",
    response_model=InviteCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Regenerate invite code",
    description="Issue a fresh code. Any outstanding code of the caller is revoked.",
)
async def regenerate_invite_code(session: ReadySession) -> InviteCodeResponse:
    """Issue a new invite code for the caller.

    Args:
        session: The caller's session context.

    Returns:
        InviteCodeResponse: The new code.
    """
    service = InviteCodeService()
    code = await service.generate(session.user_id, session.user_type)
    return await _code_response(service, code)


@router.get(
    "/{code}",
    response_model=InviteCodeStatus,
    summary="Check an invite code",
    description="Report whether a code exists and can still be consumed. Never changes the code.",
)
async def check_invite_code(code: str, session: ReadySession) -> InviteCodeStatus:
    """Check a code before consuming it.

    Args:
        code: The code as typed, case-insensitive.
        session: The caller's session context.

    Returns:
        InviteCodeStatus: Existence and usability flags.

    Raises:
        ValidationError: 422 if the code is malformed.
    """
    return await InviteCodeService().check_status(code)


@router.post(
    "/{code}/consume",
    response_model=ConsumeResult,
    summary="Consume an invite code",
    description="Connect the caller with the code's creator. Rejections come back with success=false and a reason.",
)
async def consume_invite_code(code: str, session: ReadySession) -> ConsumeResult:
    """Consume a code and create the connection.

    On success the caller's session is reloaded so the new connection is
    available immediately.

    Args:
        code: The code as typed, case-insensitive.
        session: The caller's session context.

    Returns:
        ConsumeResult: Outcome, inviter snapshot and connection id.

    Raises:
        ValidationError: 422 if the code is malformed.
    """
    result = await InviteCodeService().consume(code, session.user_id)
    if result.success:
        await SessionService().refresh(session)
    return result
