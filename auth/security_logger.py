"""Security event logging for the auth audit trail.

Rows in security_events are never updated. Old rows leave the table only
through rotate_logs, which appends them to a JSON-lines archive first.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

from psycopg2.extras import Json
from pydantic import BaseModel

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    USER_CREATED = "user_created"
    OTP_SENT = "otp_sent"
    MAGIC_LINK_SENT = "magic_link_sent"
    TOKEN_LOGIN_SUCCEEDED = "token_login_succeeded"
    TOKEN_LOGIN_FAILED = "token_login_failed"
    OAUTH_LOGIN_SUCCEEDED = "oauth_login_succeeded"
    OAUTH_LOGIN_FAILED = "oauth_login_failed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    PASSWORD_RESET_FAILED = "password_reset_failed"
    EMAIL_VERIFICATION_SENT = "email_verification_sent"
    EMAIL_VERIFIED = "email_verified"
    EMAIL_VERIFICATION_FAILED = "email_verification_failed"
    SESSION_CREATED = "session_created"
    SESSION_REVOKED = "session_revoked"
    ALL_SESSIONS_REVOKED = "all_sessions_revoked"
    PROFILE_UPDATED = "profile_updated"
    RATE_LIMITED = "rate_limited"


class SecurityEventRecord(BaseModel):
    """One stored security event."""

    id: UUID
    event_type: str
    email: str | None = None
    user_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


EVENT_COLUMNS = "id, event_type, email, user_id, ip_address, user_agent, details, created_at"


def _row_to_record(row: dict) -> SecurityEventRecord:
    # inet comes back as a string or an ipaddress object depending on adapters
    ip_address = row.get("ip_address")
    return SecurityEventRecord(
        id=row["id"],
        event_type=row["event_type"],
        email=row.get("email"),
        user_id=row.get("user_id"),
        ip_address=str(ip_address) if ip_address else None,
        user_agent=row.get("user_agent"),
        details=row.get("details"),
        created_at=row["created_at"],
    )


class SecurityLogger:
    """Writes auth events to security_events and archives old ones."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, email, user_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                email,
                str(user_id) if user_id else None,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )

    def events_for_user(
        self,
        user_id: UUID,
        event_type: SecurityEvent | None = None,
        limit: int = 50,
    ) -> list[SecurityEventRecord]:
        """Newest events first, optionally of one type."""
        type_clause = "AND event_type = %s" if event_type else ""
        params: list = [str(user_id)]
        if event_type:
            params.append(event_type.value)
        params.append(limit)

        rows = self._db.execute(
            f"""SELECT {EVENT_COLUMNS} FROM security_events
                WHERE user_id = %s {type_clause}
                ORDER BY created_at DESC
                LIMIT %s""",
            tuple(params),
        )
        return [_row_to_record(row) for row in rows]

    def rotate_logs(self, older_than_days: int, output_path: Path) -> int:
        """Move events older than the cutoff into a JSON-lines archive.

        Rows are locked, written, then deleted inside one transaction; a
        failed write leaves them in the table.

        Returns:
            Number of events archived
        """
        cutoff = now_utc() - timedelta(days=older_than_days)

        with self._db.transaction() as tx:
            rows = tx.execute(
                f"""SELECT {EVENT_COLUMNS} FROM security_events
                    WHERE created_at < %s
                    ORDER BY created_at
                    FOR UPDATE""",
                (cutoff,),
            )
            if not rows:
                return 0

            with open(output_path, "a") as f:
                for row in rows:
                    f.write(_row_to_record(row).model_dump_json() + "\n")

            tx.execute(
                "DELETE FROM security_events WHERE id = ANY(%s::uuid[])",
                ([str(row["id"]) for row in rows],),
            )

        logger.info(f"Archived {len(rows)} security events to {output_path}")
        return len(rows)
