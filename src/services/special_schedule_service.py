"""Special schedule (vacation, overtime request, notice) business logic service."""

import logging
from collections.abc import Callable
from typing import Any

from src.api.middleware.error_handler import AuthorizationError, ConflictError, NotFoundError, ValidationError
from src.core.dates import DateRange
from src.core.store import Subscription, get_document_store, utc_now_iso
from src.models import Collections, RequestStatus, SpecialItemType, UserType
from src.schemas.care import SpecialItemCreate, SpecialItemUpdate
from src.services.permissions import (
    SPECIAL_ITEM_CAPABILITY,
    Capability,
    authorize,
    can_view_special_item,
    has_capability,
)
from src.services.record_scope import RecordScope, ensure_owned

logger = logging.getLogger(__name__)

# Item types that need the other side's approval when raised by a care provider
REVIEWABLE = {SpecialItemType.OVERTIME_REQUEST.value, SpecialItemType.VACATION.value}


def initial_status(item_type: SpecialItemType, user_type: str) -> RequestStatus:
    if item_type is SpecialItemType.OVERTIME_REQUEST:
        return RequestStatus.PENDING
    if item_type is SpecialItemType.VACATION and user_type == UserType.CARE_PROVIDER.value:
        return RequestStatus.PENDING
    return RequestStatus.APPROVED


def visible_items(rows: list[dict[str, Any]], scope: RecordScope) -> list[dict[str, Any]]:
    items = [row for row in rows if can_view_special_item(row, scope.user_id, scope.user_type)]
    return sorted(items, key=lambda row: (row.get("date") or "", row.get("created_at") or "", row["id"]))


class SpecialScheduleService:
    """Service for vacations, overtime requests and notices."""

    def __init__(self) -> None:
        """Initialize special schedule service with the document store."""
        self.store = get_document_store()

    async def get_item(self, scope: RecordScope, item_id: str) -> dict[str, Any]:
        item = ensure_owned(self.store.get(Collections.SPECIAL_SCHEDULES, item_id), scope, "Special schedule item")
        if not can_view_special_item(item, scope.user_id, scope.user_type):
            raise NotFoundError("Special schedule item not found")
        return item

    async def add_special_schedule_item(self, scope: RecordScope, data: SpecialItemCreate) -> dict[str, Any]:
        """Create an item after the role and recipient checks.

        Args:
            scope: Owner and caller.
            data: Item contents; ``target_user_id`` optionally names one recipient.

        Returns:
            dict: The created item.

        Raises:
            AuthorizationError: If the caller's role may not create this type.
            ValidationError: If the recipient is not a party of the connection.
        """
        authorize(scope.user_type, SPECIAL_ITEM_CAPABILITY[data.type])

        target_user_type = None
        if data.target_user_id:
            target_user_type = self._target_user_type(scope, data.target_user_id)
            if data.target_user_id == scope.user_id:
                raise ValidationError("An item cannot be addressed to its author")

        row = data.model_dump(mode="json")
        if data.type is SpecialItemType.VACATION:
            row["date"] = row["start_date"]
        row.update(
            {
                "status": initial_status(data.type, scope.user_type).value,
                "target_user_type": target_user_type,
                "read_by": {},
                "created_by": scope.user_id,
                "creator_user_type": scope.user_type,
            }
        )
        created = self.store.insert(Collections.SPECIAL_SCHEDULES, scope.stamp(row))
        logger.info("Added %s item %s for %s", data.type.value, created["id"], scope.owner_key)
        return created

    async def update_special_schedule_item(
        self,
        scope: RecordScope,
        item_id: str,
        data: SpecialItemUpdate,
    ) -> dict[str, Any]:
        """Edit an item's contents. Only its author may do so."""
        item = await self.get_item(scope, item_id)
        authorize(scope.user_type, SPECIAL_ITEM_CAPABILITY[SpecialItemType(item["type"])])
        if item.get("created_by") != scope.user_id:
            raise AuthorizationError("Only the author can edit this item")

        fields = data.model_dump(mode="json", exclude_unset=True)
        if item["type"] == SpecialItemType.VACATION.value:
            start = fields.get("start_date", item.get("start_date"))
            end = fields.get("end_date", item.get("end_date"))
            DateRange(start, end)
            fields["date"] = start
        if not fields:
            return item
        return self.store.update(Collections.SPECIAL_SCHEDULES, item_id, fields)

    async def delete_special_schedule_item(self, scope: RecordScope, item_id: str) -> bool:
        """Delete an item. Authors and reviewers (parents) may delete."""
        item = await self.get_item(scope, item_id)
        if item.get("created_by") != scope.user_id and not has_capability(
            scope.user_type, Capability.SPECIAL_REQUEST_REVIEW
        ):
            raise AuthorizationError("Only the author can delete this item")
        return self.store.delete(Collections.SPECIAL_SCHEDULES, item_id)

    async def mark_as_read(self, scope: RecordScope, item_id: str) -> dict[str, Any]:
        item = await self.get_item(scope, item_id)
        read_by = {**(item.get("read_by") or {}), scope.user_id: utc_now_iso()}
        return self.store.update(Collections.SPECIAL_SCHEDULES, item_id, {"read_by": read_by})

    async def review(self, scope: RecordScope, item_id: str, approve: bool) -> dict[str, Any]:
        """Approve or reject a pending request.

        Raises:
            AuthorizationError: If the caller may not review requests.
            ConflictError: If the item is not a pending request.
        """
        authorize(scope.user_type, Capability.SPECIAL_REQUEST_REVIEW)
        item = await self.get_item(scope, item_id)
        if item["type"] not in REVIEWABLE or item.get("status") != RequestStatus.PENDING.value:
            raise ConflictError("Only pending requests can be reviewed")

        status = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
        logger.info("%s %s by %s", status.value, item_id, scope.user_id)
        return self.store.update(Collections.SPECIAL_SCHEDULES, item_id, {"status": status.value})

    async def approve(self, scope: RecordScope, item_id: str) -> dict[str, Any]:
        return await self.review(scope, item_id, approve=True)

    async def reject(self, scope: RecordScope, item_id: str) -> dict[str, Any]:
        return await self.review(scope, item_id, approve=False)

    async def list_for_viewer(self, scope: RecordScope, date_range: DateRange | None = None) -> list[dict[str, Any]]:
        """Items the caller may see, ordered by date."""
        rows = self.store.query(
            Collections.SPECIAL_SCHEDULES,
            eq={"parent_id": scope.owner_key},
            gte={"date": date_range.start_date} if date_range else None,
            lte={"date": date_range.end_date} if date_range else None,
        )
        return visible_items(rows, scope)

    def watch_special_schedule_items(
        self,
        scope: RecordScope,
        callback: Callable[[list[dict[str, Any]]], None],
    ) -> Subscription:
        return self.store.watch(
            Collections.SPECIAL_SCHEDULES,
            lambda rows: callback(visible_items(rows, scope)),
            eq={"parent_id": scope.owner_key},
        )

    def _target_user_type(self, scope: RecordScope, target_user_id: str) -> str:
        connection = self.store.get(Collections.CONNECTIONS, scope.connection_id)
        if not connection:
            raise NotFoundError("Connection not found")
        if target_user_id == connection["parent_id"]:
            return UserType.PARENT.value
        if target_user_id == connection["care_provider_id"]:
            return UserType.CARE_PROVIDER.value
        raise ValidationError("The recipient must be a member of this connection")
