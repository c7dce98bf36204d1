"""Profile business logic service."""

import logging
import uuid
from typing import Any

from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.core.store import Subscription, SnapshotCallback, get_document_store
from src.models import Collections, UserType
from src.schemas.profile import ChildInfoSchema, ProfileCreate, ProfileUpdate, WorkScheduleUpdate
from src.services.connection_service import ConnectionService
from src.services.permissions import Capability, authorize

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for managing user profiles, children and work schedules."""

    def __init__(self) -> None:
        """Initialize profile service with the document store."""
        self.store = get_document_store()

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """Get a profile by user ID.

        Args:
            user_id: The auth user ID.

        Returns:
            dict | None: The profile data or None if not found.
        """
        return self.store.get(Collections.USERS, user_id)

    async def create_profile(
        self,
        user_id: str,
        data: ProfileCreate,
        email: str | None = None,
    ) -> dict[str, Any]:
        """Create the profile row for a freshly signed-up identity.

        Args:
            user_id: The auth user ID.
            data: Role, name, contact and (for parents) children.
            email: Email from the identity, used when the form leaves it blank.

        Returns:
            dict: The created profile.

        Raises:
            ConflictError: If the identity already has a profile.
        """
        if self.store.get(Collections.USERS, user_id):
            raise ConflictError("Profile already exists")

        profile: dict[str, Any] = {
            "user_type": data.user_type,
            "name": data.name,
            "contact": data.contact,
            "email": data.email or email,
            "connection_ids": [],
            "connection_id": None,
            "primary_connection_id": None,
            "invite_code": None,
            "work_schedule": None,
        }
        if data.user_type == UserType.PARENT.value:
            profile["children"] = [_child_row(child) for child in data.children]
        else:
            profile["allowed_parent_ids"] = []

        created = self.store.set(Collections.USERS, user_id, profile)
        logger.info("Created %s profile for %s", data.user_type, user_id)
        return created

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> dict[str, Any] | None:
        """Update a profile.

        Only the submitted fields are written, and the profile snapshot in
        each of the user's connections is refreshed afterwards.

        Args:
            user_id: The auth user ID.
            data: The fields to update.

        Returns:
            dict | None: The updated profile data or None if not found.
        """
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        if not update_data:
            # No changes, return current profile
            return await self.get_profile(user_id)

        updated = self.store.update(Collections.USERS, user_id, update_data)
        if updated is not None:
            await ConnectionService().refresh_snapshots(user_id)
        return updated

    async def save_children(self, user_id: str, children: list[ChildInfoSchema]) -> list[dict[str, Any]]:
        """Replace a parent's children and mirror them into every connection.

        Args:
            user_id: The parent's user ID.
            children: The complete, validated list of children.

        Returns:
            list[dict]: The stored children, ids assigned.

        Raises:
            NotFoundError: If the profile does not exist.
            AuthorizationError: If the profile is not a parent.
        """
        profile = await self.get_profile(user_id)
        if not profile:
            raise NotFoundError("Profile not found")
        authorize(profile["user_type"], Capability.CHILDREN_WRITE)

        rows = [_child_row(child) for child in children]
        self.store.update(Collections.USERS, user_id, {"children": rows})
        refreshed = await ConnectionService().refresh_snapshots(user_id)
        logger.info("Saved %d children for %s, refreshed %d connections", len(rows), user_id, refreshed)
        return rows

    async def get_work_schedule(self, user_id: str) -> dict[str, Any]:
        """Get a user's default work schedule (empty when never saved)."""
        row = self.store.get(Collections.WORK_SCHEDULES, user_id)
        if not row:
            return {}
        return {k: v for k, v in row.items() if k not in ("id", "user_id", "created_at", "updated_at")}

    async def save_work_schedule(self, user_id: str, data: WorkScheduleUpdate) -> dict[str, Any]:
        """Merge the submitted days into the user's work schedule."""
        days = data.to_row()
        self.store.set(Collections.WORK_SCHEDULES, user_id, {"user_id": user_id, **days}, merge=True)
        schedule = await self.get_work_schedule(user_id)
        self.store.update(Collections.USERS, user_id, {"work_schedule": schedule})
        return schedule

    def watch_work_schedule(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        return self.store.watch(Collections.WORK_SCHEDULES, callback, eq={"id": user_id})


def _child_row(child: ChildInfoSchema) -> dict[str, Any]:
    row = child.model_dump(mode="json")
    if not row.get("id"):
        row["id"] = str(uuid.uuid4())
    if row.get("institution_type") in (None, "none"):
        row["institution_name"] = None
    return row
