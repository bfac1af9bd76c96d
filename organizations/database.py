"""Database operations for organizations.

Tables: organizations, organization_members, organization_invitations.
"""

from datetime import datetime
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from organizations.types import (
    MemberDetails,
    MemberProfile,
    MemberRole,
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    OrganizationMetadata,
    PendingInvitation,
    UserOrganization,
)
from utils.timezone import now_utc

ORG_COLUMNS = "id, name, slug, metadata, created_at, updated_at"
MEMBER_COLUMNS = "organization_id, user_id, role, created_at, updated_at"
INVITATION_COLUMNS = (
    "id, organization_id, email, role, invited_by_id, expires_at, accepted_at, rejected_at, created_at"
)

# An owner row may only be removed or demoted while some other owner exists.
# Evaluated while the caller holds FOR UPDATE locks on the owner rows.
OTHER_OWNER_EXISTS = """EXISTS (
    SELECT 1 FROM organization_members o
    WHERE o.organization_id = m.organization_id
      AND o.role = 'owner'
      AND o.user_id <> m.user_id
)"""


def _org_metadata(value) -> OrganizationMetadata | None:
    return OrganizationMetadata.model_validate(value) if value is not None else None


def _row_to_organization(row: dict) -> Organization:
    return Organization(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        metadata=_org_metadata(row.get("metadata")),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_member(row: dict) -> OrganizationMember:
    return OrganizationMember(
        organization_id=row["organization_id"],
        user_id=row["user_id"],
        role=MemberRole(row["role"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_invitation(row: dict) -> OrganizationInvitation:
    return OrganizationInvitation(
        id=row["id"],
        organization_id=row["organization_id"],
        email=row["email"],
        role=MemberRole(row["role"]),
        invited_by_id=row["invited_by_id"],
        expires_at=row["expires_at"],
        accepted_at=row["accepted_at"],
        rejected_at=row["rejected_at"],
        created_at=row["created_at"],
    )


class OrganizationDatabase:
    """Database operations for organizations."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # Organizations

    def create_organization_with_owner(
        self,
        name: str,
        slug: str | None,
        owner_id: UUID,
        metadata: OrganizationMetadata | None = None,
    ) -> Organization:
        """Insert the organization and its first owner together."""
        with self._db.transaction() as tx:
            row = tx.execute_single(
                f"""INSERT INTO organizations (name, slug, metadata)
                    VALUES (%s, %s, %s)
                    RETURNING {ORG_COLUMNS}""",
                (
                    name,
                    slug,
                    Json(metadata.model_dump(exclude_none=True)) if metadata else None,
                ),
            )
            tx.execute(
                """INSERT INTO organization_members (organization_id, user_id, role)
                   VALUES (%s, %s, 'owner')""",
                (row["id"], str(owner_id)),
            )
        return _row_to_organization(row)

    def get_organization_by_id(self, organization_id: UUID) -> Organization | None:
        row = self._db.execute_single(
            f"SELECT {ORG_COLUMNS} FROM organizations WHERE id = %s",
            (str(organization_id),),
        )
        return _row_to_organization(row) if row else None

    def get_organization_by_slug(self, slug: str) -> Organization | None:
        row = self._db.execute_single(
            f"SELECT {ORG_COLUMNS} FROM organizations WHERE slug = %s",
            (slug,),
        )
        return _row_to_organization(row) if row else None

    def delete_organization(self, organization_id: UUID) -> bool:
        """Members and invitations go with it (ON DELETE CASCADE)."""
        rows = self._db.execute_returning(
            "DELETE FROM organizations WHERE id = %s RETURNING id",
            (str(organization_id),),
        )
        return len(rows) > 0

    def list_user_organizations(self, user_id: UUID) -> list[UserOrganization]:
        rows = self._db.execute(
            """SELECT o.id, o.name, o.slug, o.metadata, o.created_at, o.updated_at,
                      m.role, m.created_at AS member_created_at
               FROM organization_members m
               JOIN organizations o ON o.id = m.organization_id
               WHERE m.user_id = %s
               ORDER BY o.name""",
            (str(user_id),),
        )
        return [
            UserOrganization(
                id=row["id"],
                name=row["name"],
                slug=row["slug"],
                metadata=_org_metadata(row["metadata"]),
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                role=MemberRole(row["role"]),
                member_created_at=row["member_created_at"],
            )
            for row in rows
        ]

    # Members

    def get_membership(self, organization_id: UUID, user_id: UUID) -> OrganizationMember | None:
        row = self._db.execute_single(
            f"""SELECT {MEMBER_COLUMNS} FROM organization_members
                WHERE organization_id = %s AND user_id = %s""",
            (str(organization_id), str(user_id)),
        )
        return _row_to_member(row) if row else None

    def get_organization_owners(self, organization_id: UUID) -> list[OrganizationMember]:
        rows = self._db.execute(
            f"""SELECT {MEMBER_COLUMNS} FROM organization_members
                WHERE organization_id = %s AND role = 'owner'""",
            (str(organization_id),),
        )
        return [_row_to_member(row) for row in rows]

    def get_organization_members(self, organization_id: UUID) -> list[MemberDetails]:
        rows = self._db.execute(
            """SELECT m.organization_id, m.user_id, m.role, m.created_at, m.updated_at,
                      u.email, u.email_verified, u.joined_at, u.metadata
               FROM organization_members m
               JOIN users u ON u.id = m.user_id
               WHERE m.organization_id = %s
               ORDER BY m.created_at""",
            (str(organization_id),),
        )
        members = []
        for row in rows:
            meta = row.get("metadata") or {}
            members.append(MemberDetails(
                organization_id=row["organization_id"],
                user_id=row["user_id"],
                role=MemberRole(row["role"]),
                created_at=row["created_at"],
                updated_at=row["updated_at"],
                email=row["email"],
                email_verified=row["email_verified"],
                joined_at=row["joined_at"],
                metadata=MemberProfile(
                    name=meta.get("name"),
                    avatar_url=meta.get("avatar_url"),
                    avatar_object_id=meta.get("avatar_object_id"),
                ),
            ))
        return members

    def _lock_owners(self, tx, organization_id: UUID) -> None:
        """Row-lock the organization's owners so concurrent demotions serialize."""
        tx.execute(
            """SELECT user_id FROM organization_members
               WHERE organization_id = %s AND role = 'owner'
               FOR UPDATE""",
            (str(organization_id),),
        )

    def update_member_role(self, organization_id: UUID, user_id: UUID, role: MemberRole) -> bool:
        """
        Change a member's role.

        Returns False if the member doesn't exist, or if this would demote
        the organization's last owner.
        """
        with self._db.transaction() as tx:
            self._lock_owners(tx, organization_id)
            rows = tx.execute(
                f"""UPDATE organization_members m
                    SET role = %s, updated_at = %s
                    WHERE m.organization_id = %s AND m.user_id = %s
                      AND (%s = 'owner' OR m.role <> 'owner' OR {OTHER_OWNER_EXISTS})
                    RETURNING m.user_id""",
                (role.value, now_utc(), str(organization_id), str(user_id), role.value),
            )
        return len(rows) > 0

    def remove_member(self, organization_id: UUID, user_id: UUID) -> bool:
        """
        Remove a member.

        Returns False if the member doesn't exist, or if they are the
        organization's last owner.
        """
        with self._db.transaction() as tx:
            self._lock_owners(tx, organization_id)
            rows = tx.execute(
                f"""DELETE FROM organization_members m
                    WHERE m.organization_id = %s AND m.user_id = %s
                      AND (m.role <> 'owner' OR {OTHER_OWNER_EXISTS})
                    RETURNING m.user_id""",
                (str(organization_id), str(user_id)),
            )
        return len(rows) > 0

    # Invitations

    def create_invitation(
        self,
        organization_id: UUID,
        email: str,
        role: MemberRole,
        invited_by_id: UUID,
        expires_at: datetime,
    ) -> OrganizationInvitation:
        rows = self._db.execute_returning(
            f"""INSERT INTO organization_invitations
                (organization_id, email, role, invited_by_id, expires_at)
                VALUES (%s, lower(%s), %s, %s, %s)
                RETURNING {INVITATION_COLUMNS}""",
            (str(organization_id), email, role.value, str(invited_by_id), expires_at),
        )
        return _row_to_invitation(rows[0])

    def get_invitation_by_id(self, invitation_id: UUID) -> OrganizationInvitation | None:
        row = self._db.execute_single(
            f"SELECT {INVITATION_COLUMNS} FROM organization_invitations WHERE id = %s",
            (str(invitation_id),),
        )
        return _row_to_invitation(row) if row else None

    def get_active_invitation_for_email(
        self, organization_id: UUID, email: str, now: datetime
    ) -> OrganizationInvitation | None:
        row = self._db.execute_single(
            f"""SELECT {INVITATION_COLUMNS} FROM organization_invitations
                WHERE organization_id = %s AND email = lower(%s)
                  AND accepted_at IS NULL AND rejected_at IS NULL AND expires_at > %s
                ORDER BY created_at DESC
                LIMIT 1""",
            (str(organization_id), email, now),
        )
        return _row_to_invitation(row) if row else None

    def get_pending_invitation(
        self, invitation_id: UUID, email: str, now: datetime
    ) -> PendingInvitation | None:
        """Pending invitation addressed to email, with org name and inviter email."""
        row = self._db.execute_single(
            """SELECT i.id, i.organization_id, i.email, i.role, i.invited_by_id,
                      i.expires_at, i.accepted_at, i.rejected_at, i.created_at,
                      o.name AS organization_name, u.email AS invited_by_email
               FROM organization_invitations i
               JOIN organizations o ON o.id = i.organization_id
               JOIN users u ON u.id = i.invited_by_id
               WHERE i.id = %s AND i.email = lower(%s)
                 AND i.accepted_at IS NULL AND i.rejected_at IS NULL AND i.expires_at > %s""",
            (str(invitation_id), email, now),
        )
        if row is None:
            return None
        return PendingInvitation(
            **_row_to_invitation(row).model_dump(),
            organization_name=row["organization_name"],
            invited_by_email=row["invited_by_email"],
        )

    def list_pending_invitations(self, organization_id: UUID, now: datetime) -> list[OrganizationInvitation]:
        rows = self._db.execute(
            f"""SELECT {INVITATION_COLUMNS} FROM organization_invitations
                WHERE organization_id = %s
                  AND accepted_at IS NULL AND rejected_at IS NULL AND expires_at > %s
                ORDER BY created_at DESC""",
            (str(organization_id), now),
        )
        return [_row_to_invitation(row) for row in rows]

    def accept_invitation(
        self, invitation_id: UUID, user_id: UUID, now: datetime
    ) -> OrganizationMember | None:
        """
        Add the user as a member and mark the invitation accepted, atomically.

        Returns None if the invitation is not pending.
        """
        with self._db.transaction() as tx:
            invitation = tx.execute_single(
                """SELECT organization_id, role FROM organization_invitations
                   WHERE id = %s AND accepted_at IS NULL AND rejected_at IS NULL AND expires_at > %s
                   FOR UPDATE""",
                (str(invitation_id), now),
            )
            if invitation is None:
                return None

            member = tx.execute_single(
                f"""INSERT INTO organization_members (organization_id, user_id, role)
                    VALUES (%s, %s, %s)
                    RETURNING {MEMBER_COLUMNS}""",
                (invitation["organization_id"], str(user_id), invitation["role"]),
            )
            tx.execute(
                "UPDATE organization_invitations SET accepted_at = %s WHERE id = %s",
                (now, str(invitation_id)),
            )
        return _row_to_member(member)

    def reject_invitation(self, invitation_id: UUID, now: datetime) -> bool:
        rows = self._db.execute_returning(
            """UPDATE organization_invitations SET rejected_at = %s
               WHERE id = %s AND accepted_at IS NULL AND rejected_at IS NULL AND expires_at > %s
               RETURNING id""",
            (now, str(invitation_id), now),
        )
        return len(rows) > 0

    def revoke_invitation(self, organization_id: UUID, invitation_id: UUID) -> bool:
        """Delete a not-yet-answered invitation."""
        rows = self._db.execute_returning(
            """DELETE FROM organization_invitations
               WHERE id = %s AND organization_id = %s
                 AND accepted_at IS NULL AND rejected_at IS NULL
               RETURNING id""",
            (str(invitation_id), str(organization_id)),
        )
        return len(rows) > 0
