"""Pydantic models for organizations, memberships and invitations."""

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class MemberRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


MANAGER_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


class OrganizationMetadata(BaseModel):
    """Organization settings kept in the organizations.metadata JSON column."""

    model_config = ConfigDict(extra="forbid")

    billing_tier: Literal["free", "pro", "enterprise"] | None = None
    features: list[str] | None = None


class Organization(BaseModel):
    id: UUID
    name: str
    slug: str | None = None
    metadata: OrganizationMetadata | None = None
    created_at: datetime
    updated_at: datetime


class OrganizationMember(BaseModel):
    organization_id: UUID
    user_id: UUID
    role: MemberRole
    created_at: datetime
    updated_at: datetime


class OrganizationDetails(BaseModel):
    """An organization together with the caller's membership in it."""

    organization: Organization
    membership: OrganizationMember


class UserOrganization(BaseModel):
    """One entry of "my organizations": the org plus my role in it."""

    id: UUID
    name: str
    slug: str | None
    metadata: OrganizationMetadata | None
    created_at: datetime
    updated_at: datetime
    role: MemberRole
    member_created_at: datetime


class MemberProfile(BaseModel):
    """The slice of a member's user metadata other members may see."""

    name: str | None = None
    avatar_url: str | None = None
    avatar_object_id: str | None = None


class MemberDetails(BaseModel):
    organization_id: UUID
    user_id: UUID
    role: MemberRole
    created_at: datetime
    updated_at: datetime
    email: EmailStr
    email_verified: bool
    joined_at: datetime
    metadata: MemberProfile | None = None


class OrganizationInvitation(BaseModel):
    """
    Invitation for an email address to join an organization.

    Pending means: not accepted, not rejected, not expired. At most one of
    accepted_at / rejected_at is ever set.
    """

    id: UUID
    organization_id: UUID
    email: EmailStr
    role: MemberRole
    invited_by_id: UUID
    expires_at: datetime
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime

    def is_pending(self, now: datetime) -> bool:
        return self.accepted_at is None and self.rejected_at is None and self.expires_at > now


class PendingInvitation(OrganizationInvitation):
    """Invitation as shown to the invitee."""

    organization_name: str
    invited_by_email: EmailStr


# Request bodies


class CreateOrganizationRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=50)


class SetActiveOrganizationRequest(BaseModel):
    org_id: UUID | None = Field(..., alias="orgId")

    model_config = ConfigDict(populate_by_name=True)


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role: Literal["member", "admin"] = "member"


class UpdateMemberRoleRequest(BaseModel):
    role: MemberRole
