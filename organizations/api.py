"""HTTP routes for organizations. Every route requires a logged-in user."""

from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from auth.security_middleware import current_session, current_user, require_auth
from auth.types import Session, User
from organizations.service import OrganizationService
from organizations.types import (
    CreateOrganizationRequest,
    InviteMemberRequest,
    MemberRole,
    OrganizationDetails,
    SetActiveOrganizationRequest,
    UpdateMemberRoleRequest,
)


def active_organization_dependency(
    org_service: OrganizationService,
) -> Callable[..., OrganizationDetails | None]:
    """
    Build a dependency resolving the session's active organization.

    Resolved at most once per request; the result is kept on
    request.state.active_organization.
    """

    def get_active_organization(
        request: Request,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ) -> OrganizationDetails | None:
        if session.active_organization_id is None:
            return None

        cached = getattr(request.state, "active_organization", None)
        if cached is not None:
            return cached

        details = org_service.get_organization_details(session.active_organization_id, user.id)
        request.state.active_organization = details
        return details

    return get_active_organization


def create_organizations_router(org_service: OrganizationService) -> APIRouter:
    """Create organizations router with injected service."""
    router = APIRouter(tags=["organizations"], dependencies=[Depends(require_auth)])
    get_active_organization = active_organization_dependency(org_service)

    @router.get("/")
    def list_organizations(user: User = Depends(current_user)):
        organizations = org_service.list_user_organizations(user.id)
        return {"organizations": [o.model_dump(mode="json") for o in organizations]}

    @router.post("/", status_code=201)
    def create_organization(body: CreateOrganizationRequest, user: User = Depends(current_user)):
        organization = org_service.create_organization(user.id, body.name, body.slug)
        return {"organization": organization.model_dump(mode="json")}

    @router.get("/active")
    def get_active(details: OrganizationDetails | None = Depends(get_active_organization)):
        if details is None:
            return {"organization": None, "membership": None}
        return details.model_dump(mode="json")

    @router.put("/active")
    def set_active(
        body: SetActiveOrganizationRequest,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        org_service.update_active_organization(session.id, user.id, body.org_id)
        return {"success": True}

    # Invitee side

    @router.get("/invite/{invitation_id}")
    def get_invitation(invitation_id: UUID, user: User = Depends(current_user)):
        invitation = org_service.get_pending_invitation(invitation_id, user.email)
        return {"invitation": invitation.model_dump(mode="json")}

    @router.post("/invite/{invitation_id}/accept")
    def accept_invitation(invitation_id: UUID, user: User = Depends(current_user)):
        org_service.accept_invitation(invitation_id, user.id)
        return {"success": True}

    @router.post("/invite/{invitation_id}/reject")
    def reject_invitation(invitation_id: UUID, user: User = Depends(current_user)):
        org_service.reject_invitation(invitation_id, user.id)
        return {"success": True}

    # Single organization

    @router.get("/{org_id}")
    def get_organization(org_id: UUID, user: User = Depends(current_user)):
        details = org_service.get_organization_details(org_id, user.id)
        return details.model_dump(mode="json")

    @router.delete("/{org_id}")
    def delete_organization(
        org_id: UUID,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        org_service.delete_organization(
            org_id,
            user.id,
            session_id=session.id,
            active_org_id=session.active_organization_id,
        )
        return {"success": True}

    @router.get("/{org_id}/members")
    def list_members(org_id: UUID, user: User = Depends(current_user)):
        members = org_service.get_organization_members(org_id, user.id)
        return {"members": [m.model_dump(mode="json") for m in members]}

    @router.post("/{org_id}/invite", status_code=201)
    def invite_member(org_id: UUID, body: InviteMemberRequest, user: User = Depends(current_user)):
        invitation = org_service.invite_member(org_id, user.id, body.email, MemberRole(body.role))
        return {"invitation": invitation.model_dump(mode="json")}

    @router.get("/{org_id}/invitations")
    def list_invitations(org_id: UUID, user: User = Depends(current_user)):
        invitations = org_service.list_pending_invitations(org_id, user.id)
        return {"invitations": [i.model_dump(mode="json") for i in invitations]}

    @router.delete("/{org_id}/invitations/{invitation_id}")
    def revoke_invitation(org_id: UUID, invitation_id: UUID, user: User = Depends(current_user)):
        org_service.revoke_invitation(org_id, invitation_id, user.id)
        return {"success": True}

    @router.post("/{org_id}/leave")
    def leave_organization(
        org_id: UUID,
        user: User = Depends(current_user),
        session: Session = Depends(current_session),
    ):
        org_service.leave_organization(
            org_id,
            user.id,
            session_id=session.id,
            active_org_id=session.active_organization_id,
        )
        return {"success": True}

    @router.delete("/{org_id}/members/{user_id}")
    def remove_member(org_id: UUID, user_id: UUID, user: User = Depends(current_user)):
        org_service.remove_member(org_id, user_id, requested_by=user.id)
        return {"success": True}

    @router.patch("/{org_id}/members/{user_id}/role")
    def update_member_role(
        org_id: UUID,
        user_id: UUID,
        body: UpdateMemberRoleRequest,
        user: User = Depends(current_user),
    ):
        org_service.update_member_role(org_id, user_id, body.role, requested_by=user.id)
        return {"success": True}

    return router
