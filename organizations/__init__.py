"""Organizations: membership, roles, invitations and the active organization."""

from organizations.types import (
    MemberRole,
    Organization,
    OrganizationMetadata,
    OrganizationMember,
    OrganizationInvitation,
    OrganizationDetails,
)
from organizations.database import OrganizationDatabase
from organizations.service import OrganizationService, generate_slug
from organizations.api import create_organizations_router, active_organization_dependency
