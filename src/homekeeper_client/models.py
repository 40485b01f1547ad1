"""Typed request and response models for the HomeKeeper API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HouseholdRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REDEEMED = "redeemed"


class HomeKeeperModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ApiMessage(HomeKeeperModel):
    success: bool | None = None
    message: str | None = None


class CsrfResponse(HomeKeeperModel):
    csrf_token: str = Field(alias="csrfToken")


class LoginRequest(HomeKeeperModel):
    email: str
    password: str


class RegisterRequest(LoginRequest):
    name: str


class NotificationPreferences(HomeKeeperModel):
    email: bool = False
    push: bool = False


class UserPreferences(HomeKeeperModel):
    theme: str | None = None
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
    default_household_id: str | None = Field(default=None, alias="defaultHouseholdId")


class SafeUser(HomeKeeperModel):
    id: str
    email: str
    name: str | None = None
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    household_roles: dict[str, HouseholdRole] = Field(default_factory=dict, alias="householdRoles")


class SerializedHousehold(HomeKeeperModel):
    id: str
    name: str
    description: str | None = None
    owner_id: str = Field(alias="ownerId")
    members: list[str] = Field(default_factory=list)


class HouseholdInput(HomeKeeperModel):
    name: str
    description: str | None = None


class HouseResponse(HomeKeeperModel):
    id: str
    name: str
    description: str | None = None
    owner_id: str | None = Field(default=None, alias="ownerId")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    member_count: int = Field(default=0, alias="memberCount")
    user_role: HouseholdRole | None = Field(default=None, alias="userRole")


class MemberDetail(HomeKeeperModel):
    id: str
    name: str | None = None
    role: HouseholdRole


class MemberResponse(HomeKeeperModel):
    member_count: int = Field(default=0, alias="memberCount")
    members: list[MemberDetail] = Field(default_factory=list)


class AddMemberRequest(HomeKeeperModel):
    user_id: str = Field(alias="userId")
    role: HouseholdRole


class CreateInvitationRequest(HomeKeeperModel):
    email: str
    name: str | None = None
    role: HouseholdRole


class InvitationResponse(HomeKeeperModel):
    id: str
    code: str
    email: str
    name: str | None = None
    role: HouseholdRole
    status: InvitationStatus
    expires_at: datetime | None = Field(default=None, alias="expiresAt")


class RedeemResponse(HomeKeeperModel):
    household_id: str = Field(alias="householdId")
    household_name: str = Field(alias="householdName")
    role: HouseholdRole
