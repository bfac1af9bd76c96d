"""Database operations for authentication.

Tables: users, sessions, oauth_accounts, one_time_tokens.
"""

from datetime import datetime
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from auth.types import OAuthAccount, OneTimeToken, Session, TokenPurpose, User, UserMetadata
from utils.timezone import now_utc, to_utc

USER_COLUMNS = "id, email, email_verified, password_hash, metadata, joined_at, updated_at"
SESSION_COLUMNS = (
    "id, revoke_id, user_id, expires_at, ip_address, user_agent_hash, active_organization_id"
)


def _as_uuid(value) -> UUID | None:
    if value is None:
        return None
    return UUID(value) if isinstance(value, str) else value


def _row_to_user(row: dict) -> User:
    """Build User from a users row. Stored metadata must match UserMetadata."""
    metadata = row.get("metadata")
    return User(
        id=_as_uuid(row["id"]),
        email=row["email"],
        email_verified=row["email_verified"],
        password_hash=row["password_hash"],
        metadata=UserMetadata.model_validate(metadata) if metadata is not None else None,
        joined_at=row["joined_at"],
        updated_at=row["updated_at"],
    )


def _row_to_session(row: dict) -> Session:
    return Session(
        id=row["id"],
        revoke_id=row["revoke_id"],
        user_id=_as_uuid(row["user_id"]),
        expires_at=to_utc(row["expires_at"]),
        ip_address=str(row["ip_address"]) if row.get("ip_address") else None,
        user_agent_hash=row.get("user_agent_hash"),
        active_organization_id=_as_uuid(row.get("active_organization_id")),
    )


def _metadata_json(metadata: UserMetadata | None) -> Json | None:
    if metadata is None:
        return None
    return Json(metadata.model_dump(exclude_none=True))


class AuthDatabase:
    """Database operations for authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # Users

    def get_user_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""
        row = self._db.execute_single(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = lower(%s)",
            (email,),
        )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        row = self._db.execute_single(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = %s",
            (str(user_id),),
        )
        return _row_to_user(row) if row else None

    def create_user(
        self,
        email: str,
        password_hash: str,
        metadata: UserMetadata | None = None,
        email_verified: bool = False,
    ) -> User:
        """Create new user with email (lowercased)."""
        rows = self._db.execute_returning(
            f"""INSERT INTO users (email, password_hash, metadata, email_verified)
                VALUES (lower(%s), %s, %s, %s)
                RETURNING {USER_COLUMNS}""",
            (email, password_hash, _metadata_json(metadata), email_verified),
        )
        return _row_to_user(rows[0])

    def update_password(self, user_id: UUID, password_hash: str) -> bool:
        rows = self._db.execute_returning(
            """UPDATE users SET password_hash = %s, updated_at = %s
               WHERE id = %s RETURNING id""",
            (password_hash, now_utc(), str(user_id)),
        )
        return len(rows) > 0

    def mark_email_verified(self, user_id: UUID) -> bool:
        rows = self._db.execute_returning(
            """UPDATE users SET email_verified = true, updated_at = %s
               WHERE id = %s RETURNING id""",
            (now_utc(), str(user_id)),
        )
        return len(rows) > 0

    def update_metadata(self, user_id: UUID, metadata: UserMetadata) -> User | None:
        """Replace the metadata document. Callers merge before writing."""
        rows = self._db.execute_returning(
            f"""UPDATE users SET metadata = %s, updated_at = %s
                WHERE id = %s RETURNING {USER_COLUMNS}""",
            (_metadata_json(metadata), now_utc(), str(user_id)),
        )
        return _row_to_user(rows[0]) if rows else None

    # Sessions

    def insert_session(self, session: Session) -> Session | None:
        rows = self._db.execute_returning(
            f"""INSERT INTO sessions
                (id, revoke_id, user_id, expires_at, ip_address, user_agent_hash)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {SESSION_COLUMNS}""",
            (
                session.id,
                session.revoke_id,
                str(session.user_id),
                session.expires_at,
                session.ip_address,
                session.user_agent_hash,
            ),
        )
        return _row_to_session(rows[0]) if rows else None

    def get_session(self, session_id: str) -> Session | None:
        row = self._db.execute_single(
            f"SELECT {SESSION_COLUMNS} FROM sessions WHERE id = %s",
            (session_id,),
        )
        return _row_to_session(row) if row else None

    def list_sessions_for_user(self, user_id: UUID, now: datetime) -> list[Session]:
        """Unexpired sessions, soonest expiry last."""
        rows = self._db.execute(
            f"""SELECT {SESSION_COLUMNS} FROM sessions
                WHERE user_id = %s AND expires_at > %s
                ORDER BY expires_at DESC""",
            (str(user_id), now),
        )
        return [_row_to_session(row) for row in rows]

    def update_session_expiry(self, session_id: str, expires_at: datetime) -> bool:
        rows = self._db.execute_returning(
            "UPDATE sessions SET expires_at = %s WHERE id = %s RETURNING id",
            (expires_at, session_id),
        )
        return len(rows) > 0

    def update_session_active_organization(
        self, session_id: str, organization_id: UUID | None
    ) -> bool:
        rows = self._db.execute_returning(
            "UPDATE sessions SET active_organization_id = %s WHERE id = %s RETURNING id",
            (str(organization_id) if organization_id else None, session_id),
        )
        return len(rows) > 0

    def update_session_metadata(
        self, session_id: str, ip_address: str | None, user_agent_hash: str | None
    ) -> bool:
        rows = self._db.execute_returning(
            """UPDATE sessions SET ip_address = %s, user_agent_hash = %s
               WHERE id = %s RETURNING id""",
            (ip_address, user_agent_hash, session_id),
        )
        return len(rows) > 0

    def delete_session(self, session_id: str) -> bool:
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE id = %s RETURNING id",
            (session_id,),
        )
        return len(rows) > 0

    def delete_sessions_for_user(self, user_id: UUID) -> int:
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE user_id = %s RETURNING id",
            (str(user_id),),
        )
        return len(rows)

    def delete_session_by_revoke_id(self, user_id: UUID, revoke_id: str) -> bool:
        """Only deletes if the session belongs to user_id."""
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE revoke_id = %s AND user_id = %s RETURNING id",
            (revoke_id, str(user_id)),
        )
        return len(rows) > 0

    # OAuth accounts

    def get_oauth_account(self, provider_id: str, provider_user_id: str) -> OAuthAccount | None:
        row = self._db.execute_single(
            """SELECT provider_id, provider_user_id, user_id FROM oauth_accounts
               WHERE provider_id = %s AND provider_user_id = %s""",
            (provider_id, provider_user_id),
        )
        if row is None:
            return None
        return OAuthAccount(
            provider_id=row["provider_id"],
            provider_user_id=row["provider_user_id"],
            user_id=_as_uuid(row["user_id"]),
        )

    def list_oauth_accounts(self, user_id: UUID) -> list[OAuthAccount]:
        rows = self._db.execute(
            """SELECT provider_id, provider_user_id, user_id FROM oauth_accounts
               WHERE user_id = %s ORDER BY provider_id""",
            (str(user_id),),
        )
        return [
            OAuthAccount(
                provider_id=row["provider_id"],
                provider_user_id=row["provider_user_id"],
                user_id=_as_uuid(row["user_id"]),
            )
            for row in rows
        ]

    def link_oauth_account(self, provider_id: str, provider_user_id: str, user_id: UUID) -> None:
        self._db.execute_returning(
            """INSERT INTO oauth_accounts (provider_id, provider_user_id, user_id)
               VALUES (%s, %s, %s)
               ON CONFLICT (provider_id, provider_user_id) DO NOTHING
               RETURNING user_id""",
            (provider_id, provider_user_id, str(user_id)),
        )

    def create_user_from_oauth(
        self,
        provider_id: str,
        provider_user_id: str,
        email: str,
        password_hash: str,
        metadata: UserMetadata | None = None,
    ) -> User:
        """Create a verified user and its OAuth link together."""
        with self._db.transaction() as tx:
            row = tx.execute_single(
                f"""INSERT INTO users (email, password_hash, metadata, email_verified)
                    VALUES (lower(%s), %s, %s, true)
                    RETURNING {USER_COLUMNS}""",
                (email, password_hash, _metadata_json(metadata)),
            )
            tx.execute(
                """INSERT INTO oauth_accounts (provider_id, provider_user_id, user_id)
                   VALUES (%s, %s, %s)""",
                (provider_id, provider_user_id, row["id"]),
            )
        return _row_to_user(row)

    # One-time tokens

    def insert_one_time_token(self, token: OneTimeToken) -> None:
        self._db.execute_returning(
            """INSERT INTO one_time_tokens (token, code, expires_at, user_id, purpose)
               VALUES (%s, %s, %s, %s, %s)
               RETURNING token""",
            (
                token.token,
                token.code,
                token.expires_at,
                str(token.user_id),
                token.purpose.value,
            ),
        )

    def consume_one_time_token(
        self,
        now: datetime,
        token: str | None = None,
        code: str | None = None,
        user_id: UUID | None = None,
        purpose: TokenPurpose | None = None,
    ) -> UUID | None:
        """Delete a live matching token and return its user_id.

        Lookup is by token, or by code scoped to user_id. A token lookup is
        also scoped to user_id when one is given. The delete is the check:
        two concurrent callers cannot both get a row back.
        """
        conditions = ["expires_at > %s"]
        params: list = [now]

        if token:
            conditions.append("token = %s")
            params.append(token)
            if user_id:
                conditions.append("user_id = %s")
                params.append(str(user_id))
        elif code and user_id:
            conditions.append("code = %s AND user_id = %s")
            params.extend([code, str(user_id)])
        else:
            return None

        if purpose:
            conditions.append("purpose = %s")
            params.append(purpose.value)

        rows = self._db.execute_returning(
            f"""DELETE FROM one_time_tokens
                WHERE {" AND ".join(conditions)}
                RETURNING user_id""",
            tuple(params),
        )
        if not rows:
            return None
        return _as_uuid(rows[0]["user_id"])

    def one_time_token_exists(self, token: str, purpose: TokenPurpose, now: datetime) -> bool:
        result = self._db.execute_scalar(
            """SELECT 1 FROM one_time_tokens
               WHERE token = %s AND purpose = %s AND expires_at > %s""",
            (token, purpose.value, now),
        )
        return result is not None

    def delete_expired_tokens(self, now: datetime) -> int:
        """Delete expired tokens. Returns count deleted."""
        rows = self._db.execute_returning(
            "DELETE FROM one_time_tokens WHERE expires_at <= %s RETURNING token",
            (now,),
        )
        return len(rows)
