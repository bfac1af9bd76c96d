"""Organization service - membership, roles and invitations.

Authorization rules:
- any member may view an organization and its members
- owners and admins may invite, list/revoke invitations and remove members
- only owners may change roles or delete the organization
- an organization always keeps at least one owner
"""

import logging
import re
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from auth.session import SessionManager
from clients.email_client import EmailGatewayClient
from organizations.database import OrganizationDatabase
from organizations.types import (
    MANAGER_ROLES,
    MemberDetails,
    MemberRole,
    Organization,
    OrganizationDetails,
    OrganizationInvitation,
    OrganizationMember,
    PendingInvitation,
    UserOrganization,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 50


def generate_slug(name: str) -> str:
    """Lowercase, runs of non-alphanumerics to '-', trimmed, at most 50 chars."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH]


class OrganizationService:
    """Organization management on behalf of an authenticated user."""

    def __init__(
        self,
        config: AuthConfig,
        org_db: OrganizationDatabase,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        email_client: EmailGatewayClient,
    ):
        self._config = config
        self._org_db = org_db
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._email_client = email_client

    def _require_membership(self, org_id: UUID, user_id: UUID) -> OrganizationMember:
        membership = self._org_db.get_membership(org_id, user_id)
        if membership is None:
            raise ForbiddenError("User is not a member of this organization")
        return membership

    def _require_role(
        self,
        org_id: UUID,
        user_id: UUID,
        roles: tuple[MemberRole, ...],
        message: str,
    ) -> OrganizationMember:
        membership = self._org_db.get_membership(org_id, user_id)
        if membership is None or membership.role not in roles:
            raise ForbiddenError(message)
        return membership

    def _is_sole_owner(self, org_id: UUID, user_id: UUID) -> bool:
        owners = self._org_db.get_organization_owners(org_id)
        return len(owners) == 1 and owners[0].user_id == user_id

    def _clear_active_if(
        self,
        org_id: UUID,
        session_id: str | None,
        active_org_id: UUID | None,
    ) -> None:
        if session_id and active_org_id == org_id:
            self._session_manager.update_active_organization(session_id, None)

    # Organizations

    def list_user_organizations(self, user_id: UUID) -> list[UserOrganization]:
        return self._org_db.list_user_organizations(user_id)

    def get_organization_details(self, org_id: UUID, user_id: UUID) -> OrganizationDetails:
        """
        Raises:
            ForbiddenError: Caller is not a member
            NotFoundError: Organization is gone
        """
        membership = self._require_membership(org_id, user_id)
        organization = self._org_db.get_organization_by_id(org_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return OrganizationDetails(organization=organization, membership=membership)

    def update_active_organization(
        self,
        session_id: str,
        user_id: UUID,
        org_id: UUID | None,
    ) -> None:
        """Point the session at org_id (membership required), or clear it with None."""
        if org_id is not None:
            self._require_membership(org_id, user_id)
        self._session_manager.update_active_organization(session_id, org_id)

    def create_organization(self, user_id: UUID, name: str, slug: str | None = None) -> Organization:
        """Create an organization owned by user_id.

        Raises:
            ConflictError: Slug already taken
        """
        slug = slug or generate_slug(name) or None

        if slug and self._org_db.get_organization_by_slug(slug) is not None:
            raise ConflictError("Organization slug already exists")

        organization = self._org_db.create_organization_with_owner(
            name=name,
            slug=slug,
            owner_id=user_id,
        )
        logger.info(f"User {user_id} created organization {organization.id}")
        return organization

    def delete_organization(
        self,
        org_id: UUID,
        user_id: UUID,
        session_id: str | None = None,
        active_org_id: UUID | None = None,
    ) -> None:
        """
        Raises:
            ForbiddenError: Caller is not an owner
            BadRequestError: Other owners exist
        """
        self._require_role(org_id, user_id, (MemberRole.OWNER,), "Only owners can delete organizations")

        if not self._is_sole_owner(org_id, user_id):
            raise BadRequestError(
                "Only the sole owner can delete the organization. Remove other owners."
            )

        self._org_db.delete_organization(org_id)
        self._clear_active_if(org_id, session_id, active_org_id)
        logger.info(f"User {user_id} deleted organization {org_id}")

    # Members

    def get_organization_members(self, org_id: UUID, user_id: UUID) -> list[MemberDetails]:
        self._require_membership(org_id, user_id)
        return self._org_db.get_organization_members(org_id)

    def leave_organization(
        self,
        org_id: UUID,
        user_id: UUID,
        session_id: str | None = None,
        active_org_id: UUID | None = None,
    ) -> None:
        """
        Raises:
            ForbiddenError: Caller is not a member
            BadRequestError: Caller is the sole owner
        """
        membership = self._require_membership(org_id, user_id)

        if membership.role == MemberRole.OWNER and self._is_sole_owner(org_id, user_id):
            raise BadRequestError("Cannot leave organization as the sole owner")

        if not self._org_db.remove_member(org_id, user_id):
            raise BadRequestError("Cannot leave organization as the sole owner")

        self._clear_active_if(org_id, session_id, active_org_id)

    def remove_member(self, org_id: UUID, user_id: UUID, requested_by: UUID) -> None:
        """
        Raises:
            ForbiddenError: Caller is not owner/admin, or an admin targeting an owner
            NotFoundError: Target is not a member
            BadRequestError: Self-removal, or target is the last owner
        """
        requester = self._require_role(
            org_id, requested_by, MANAGER_ROLES, "Insufficient permissions to remove members"
        )

        if user_id == requested_by:
            raise BadRequestError("Use leave endpoint to remove yourself")

        target = self._org_db.get_membership(org_id, user_id)
        if target is None:
            raise NotFoundError("Member not found")

        if target.role == MemberRole.OWNER and requester.role == MemberRole.ADMIN:
            raise ForbiddenError("Admins cannot remove owners")

        if not self._org_db.remove_member(org_id, user_id):
            raise BadRequestError("Cannot remove the last owner")

    def update_member_role(
        self,
        org_id: UUID,
        user_id: UUID,
        role: MemberRole,
        requested_by: UUID,
    ) -> None:
        """
        Raises:
            ForbiddenError: Caller is not an owner
            NotFoundError: Target is not a member
            BadRequestError: Would demote the last owner
        """
        self._require_role(org_id, requested_by, (MemberRole.OWNER,), "Only owners can change member roles")

        target = self._org_db.get_membership(org_id, user_id)
        if target is None:
            raise NotFoundError("Member not found")

        if role != MemberRole.OWNER and self._is_sole_owner(org_id, user_id):
            raise BadRequestError("Cannot demote the last owner")

        if not self._org_db.update_member_role(org_id, user_id, role):
            raise BadRequestError("Cannot demote the last owner")

    # Invitations

    def invite_member(
        self,
        org_id: UUID,
        inviter_id: UUID,
        email: str,
        role: MemberRole = MemberRole.MEMBER,
    ) -> OrganizationInvitation:
        """Invite an email address and send the invitation email.

        Raises:
            ForbiddenError: Caller is not owner/admin
            ConflictError: Already a member, or a pending invitation exists
            EmailGatewayError: Email send failed
        """
        self._require_role(
            org_id, inviter_id, MANAGER_ROLES, "Insufficient permissions to invite members"
        )

        organization = self._org_db.get_organization_by_id(org_id)
        if organization is None:
            raise NotFoundError("Organization not found")

        email = email.strip().lower()
        now = now_utc()

        existing_user = self._auth_db.get_user_by_email(email)
        if existing_user and self._org_db.get_membership(org_id, existing_user.id):
            raise ConflictError("User is already a member of this organization")

        if self._org_db.get_active_invitation_for_email(org_id, email, now):
            raise ConflictError("An active invitation already exists for this email")

        invitation = self._org_db.create_invitation(
            organization_id=org_id,
            email=email,
            role=role,
            invited_by_id=inviter_id,
            expires_at=now + timedelta(days=self._config.invitation_expiry_days),
        )

        inviter = self._auth_db.get_user_by_id(inviter_id)
        base = self._config.app_base_url.rstrip("/")
        self._email_client.send_organization_invitation(
            email=email,
            organization_name=organization.name,
            inviter_email=inviter.email if inviter else "",
            link=f"{base}/accept-invitation/{invitation.id}",
        )
        logger.info(f"User {inviter_id} invited {email} to organization {org_id}")
        return invitation

    def list_pending_invitations(self, org_id: UUID, user_id: UUID) -> list[OrganizationInvitation]:
        self._require_role(
            org_id, user_id, MANAGER_ROLES, "Insufficient permissions to view invitations"
        )
        return self._org_db.list_pending_invitations(org_id, now_utc())

    def get_pending_invitation(self, invitation_id: UUID, email: str) -> PendingInvitation:
        """The invitation, if it is pending and addressed to email."""
        invitation = self._org_db.get_pending_invitation(invitation_id, email, now_utc())
        if invitation is None:
            raise NotFoundError("Invitation not found or expired")
        return invitation

    def _invitation_for_user(self, invitation_id: UUID, user_id: UUID) -> OrganizationInvitation:
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        invitation = self._org_db.get_invitation_by_id(invitation_id)
        if invitation is None or not invitation.is_pending(now_utc()):
            raise NotFoundError("Invitation not found or expired")
        if invitation.email.lower() != user.email.lower():
            raise ForbiddenError("This invitation was sent to a different email address")
        return invitation

    def accept_invitation(self, invitation_id: UUID, user_id: UUID) -> OrganizationMember:
        """
        Raises:
            NotFoundError: Invitation not pending
            ForbiddenError: Invitation addressed to someone else
            ConflictError: Already a member
        """
        invitation = self._invitation_for_user(invitation_id, user_id)

        if self._org_db.get_membership(invitation.organization_id, user_id):
            raise ConflictError("User is already a member of this organization")

        member = self._org_db.accept_invitation(invitation_id, user_id, now_utc())
        if member is None:
            raise NotFoundError("Invitation not found or expired")

        logger.info(f"User {user_id} joined organization {member.organization_id}")
        return member

    def reject_invitation(self, invitation_id: UUID, user_id: UUID) -> None:
        self._invitation_for_user(invitation_id, user_id)
        if not self._org_db.reject_invitation(invitation_id, now_utc()):
            raise NotFoundError("Invitation not found or expired")

    def revoke_invitation(self, org_id: UUID, invitation_id: UUID, user_id: UUID) -> None:
        self._require_role(
            org_id, user_id, MANAGER_ROLES, "Insufficient permissions to revoke invitations"
        )
        if not self._org_db.revoke_invitation(org_id, invitation_id):
            raise NotFoundError("Invitation not found")
