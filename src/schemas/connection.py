"""Invite code, connection and session Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.session import SessionState
from src.schemas.profile import ChildInfoSchema, ProfileResponse


class InviteCodeResponse(BaseModel):
    """The caller's outstanding invite code."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(description="Six-character pairing code")
    user_type: str = Field(description="Role of the code's creator")
    expires_at: datetime = Field(description="When the code stops being consumable")
    is_used: bool = Field(default=False, description="Whether the code has been consumed")


class InviteCodeStatus(BaseModel):
    """Read-only view of a code, used to drive the pairing screen."""

    code: str
    exists: bool
    is_used: bool = False
    is_expired: bool = False
    is_revoked: bool = False

    @property
    def consumable(self) -> bool:
        return self.exists and not (self.is_used or self.is_expired or self.is_revoked)


class ConsumeFailure(str, Enum):
    """Why an invite code could not be consumed."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    OWN_CODE = "OWN_CODE"
    SAME_USER_TYPE = "SAME_USER_TYPE"
    ALREADY_CONNECTED = "ALREADY_CONNECTED"
    PROFILE_MISSING = "PROFILE_MISSING"
    CONNECTION_FAILED = "CONNECTION_FAILED"


class ConsumeResult(BaseModel):
    """Outcome of consuming an invite code. Failures never mutate state."""

    success: bool
    inviter_profile: dict[str, Any] | None = None
    connection_id: str | None = None
    reason: ConsumeFailure | None = None

    @classmethod
    def failed(cls, reason: ConsumeFailure) -> "ConsumeResult":
        return cls(success=False, reason=reason)


class ProfileSnapshot(BaseModel):
    """A party's profile as embedded in a connection."""

    id: str
    user_type: str | None = None
    name: str | None = None
    contact: str | None = None
    email: str | None = None


class ConnectionResponse(BaseModel):
    """Schema for connection API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Connection id")
    parent_id: str = Field(description="The parent's user id, owning key for shared records")
    care_provider_id: str = Field(description="The care provider's user id")
    parent_profile: ProfileSnapshot | None = Field(default=None, description="Parent profile snapshot")
    care_provider_profile: ProfileSnapshot | None = Field(default=None, description="Care provider snapshot")
    children: list[ChildInfoSchema] = Field(default_factory=list, description="Parent's children snapshot")
    is_active: bool = Field(default=True, description="False once disconnected")
    created_at: datetime | None = Field(default=None, description="Connection creation timestamp")


class DisconnectResponse(BaseModel):
    connection_id: str
    deleted: dict[str, int] = Field(default_factory=dict, description="Records removed per collection")


class SessionResponse(BaseModel):
    """Current session: profile, connections and the active one."""

    state: SessionState
    user_id: str
    email: str | None = None
    profile: ProfileResponse | None = None
    connections: list[ConnectionResponse] = Field(default_factory=list)
    active_connection_id: str | None = None
    primary_connection_id: str | None = None


class ConnectionSelection(BaseModel):
    connection_id: str = Field(..., min_length=1, description="A connection the user belongs to")
