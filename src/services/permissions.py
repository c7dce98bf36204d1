"""Role capabilities and the single authorization gate for collaborative writes."""

import logging
from enum import Enum
from typing import Any, Mapping

from src.api.middleware.error_handler import AuthorizationError
from src.models.profile import UserType
from src.models.records import SpecialItemType

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Operation tags checked before any collaborative write."""

    SCHEDULE_WRITE = "SCHEDULE_WRITE"
    MEAL_PLAN_WRITE = "MEAL_PLAN_WRITE"
    MEDICATION_WRITE = "MEDICATION_WRITE"
    MEDICATION_ADMINISTER = "MEDICATION_ADMINISTER"
    SPECIAL_NOTICE_WRITE = "SPECIAL_NOTICE_WRITE"
    SPECIAL_OVERTIME_WRITE = "SPECIAL_OVERTIME_WRITE"
    SPECIAL_VACATION_WRITE = "SPECIAL_VACATION_WRITE"
    SPECIAL_REQUEST_REVIEW = "SPECIAL_REQUEST_REVIEW"
    HANDOVER_WRITE = "HANDOVER_WRITE"
    HANDOVER_MODERATE = "HANDOVER_MODERATE"
    CHILDREN_WRITE = "CHILDREN_WRITE"
    TEMPLATE_WRITE = "TEMPLATE_WRITE"


ROLE_CAPABILITIES: dict[UserType, frozenset[Capability]] = {
    UserType.PARENT: frozenset(
        {
            Capability.SCHEDULE_WRITE,
            Capability.MEAL_PLAN_WRITE,
            Capability.MEDICATION_WRITE,
            Capability.MEDICATION_ADMINISTER,
            Capability.SPECIAL_NOTICE_WRITE,
            Capability.SPECIAL_VACATION_WRITE,
            Capability.SPECIAL_REQUEST_REVIEW,
            Capability.HANDOVER_WRITE,
            Capability.HANDOVER_MODERATE,
            Capability.CHILDREN_WRITE,
            Capability.TEMPLATE_WRITE,
        }
    ),
    UserType.CARE_PROVIDER: frozenset(
        {
            Capability.MEDICATION_ADMINISTER,
            Capability.SPECIAL_OVERTIME_WRITE,
            Capability.SPECIAL_VACATION_WRITE,
            Capability.HANDOVER_WRITE,
        }
    ),
}

SPECIAL_ITEM_CAPABILITY: dict[SpecialItemType, Capability] = {
    SpecialItemType.NOTICE: Capability.SPECIAL_NOTICE_WRITE,
    SpecialItemType.OVERTIME_REQUEST: Capability.SPECIAL_OVERTIME_WRITE,
    SpecialItemType.VACATION: Capability.SPECIAL_VACATION_WRITE,
}


def capabilities_for(user_type: UserType | str) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(UserType(user_type), frozenset())


def has_capability(user_type: UserType | str, capability: Capability) -> bool:
    return capability in capabilities_for(user_type)


def authorize(user_type: UserType | str, capability: Capability) -> None:
    """Reject the operation unless the role holds ``capability``.

    Raises:
        AuthorizationError: If the role lacks the capability.
    """
    if not has_capability(user_type, capability):
        logger.info("Denied %s for role %s", capability.value, user_type)
        raise AuthorizationError(f"{UserType(user_type).value} may not perform {capability.value}")


def can_edit_handover_note(note: Mapping[str, Any], user_id: str, user_type: UserType | str) -> bool:
    """Authors may edit their own notes; parents may edit any note in their connection."""
    if note.get("author_id") == user_id:
        return True
    return has_capability(user_type, Capability.HANDOVER_MODERATE)


def can_view_special_item(item: Mapping[str, Any], user_id: str, user_type: UserType | str) -> bool:
    """Parents see everything; care providers see items aimed at them, written by them, or untargeted."""
    if UserType(user_type) is UserType.PARENT:
        return True
    target = item.get("target_user_id")
    return not target or target == user_id or item.get("created_by") == user_id
