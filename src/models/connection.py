"""Connection and invite code type definitions."""

from typing import TypedDict

from src.models.profile import ChildInfo, Profile


class Connection(TypedDict, total=False):
    """Connections table row representation.

    Pairs exactly one parent with one care provider. ``parent_id`` and
    ``care_provider_id`` never change after creation. The profile snapshots
    and ``children`` form a read model refreshed whenever the source
    profile or children change.
    """

    id: str
    parent_id: str
    care_provider_id: str
    parent_profile: Profile
    care_provider_profile: Profile
    children: list[ChildInfo]
    is_active: bool
    created_at: str
    updated_at: str


class InviteCode(TypedDict, total=False):
    """Invite_codes table row representation. ``id`` equals ``code``."""

    id: str
    code: str
    created_by: str
    user_type: str
    is_used: bool
    used_by: str | None
    used_at: str | None
    expires_at: str
    revoked_at: str | None
    created_at: str
