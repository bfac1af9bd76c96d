"""Session lifecycle management.

Sessions are rows in the sessions table. The session id is a
cryptographically random token (secrets.token_urlsafe) that only ever
travels in the http-only cookie; revoke_id is a second random value that can
be shown to the user and used to revoke the session from another device.
"""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import InternalServerError
from auth.types import Session, SessionValidation
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SessionManager:
    """Session lifecycle management.

    Sliding expiry: a session validated inside the renewal window is pushed
    out to a full lifetime from now. Outside the window the expiry is left
    alone so most requests don't write.
    """

    def __init__(self, auth_db: AuthDatabase, config: AuthConfig):
        self._auth_db = auth_db
        self._config = config

    @property
    def lifetime(self) -> timedelta:
        return timedelta(days=self._config.session_expires_in_days)

    @property
    def renew_window(self) -> timedelta:
        return timedelta(days=self._config.session_renew_within_days)

    def create(
        self,
        user_id: UUID,
        ip_address: str | None = None,
        user_agent_hash: str | None = None,
    ) -> Session:
        """Create new session for user.

        Raises:
            InternalServerError: If the insert returned no row.
        """
        session = Session(
            id=secrets.token_urlsafe(32),
            revoke_id=secrets.token_urlsafe(16),
            user_id=user_id,
            expires_at=now_utc() + self.lifetime,
            ip_address=ip_address,
            user_agent_hash=user_agent_hash,
        )
        stored = self._auth_db.insert_session(session)
        if stored is None:
            raise InternalServerError(
                "Something went wrong, no session was created. Try refreshing or logging in again."
            )
        return stored

    def validate(self, session_id: str | None) -> SessionValidation:
        """Resolve a session id to its session and user.

        Returns an empty SessionValidation when there is no usable session.
        Expired sessions are deleted on sight.
        """
        if not session_id:
            return SessionValidation()

        session = self._auth_db.get_session(session_id)
        if session is None:
            return SessionValidation()

        now = now_utc()

        if now >= session.expires_at:
            self._auth_db.delete_session(session.id)
            logger.info(f"Deleted expired session for user {session.user_id}")
            return SessionValidation()

        user = self._auth_db.get_user_by_id(session.user_id)
        if user is None:
            logger.warning(f"Session {session.revoke_id} references missing user {session.user_id}")
            return SessionValidation()

        renewed = False
        if now >= session.expires_at - self.renew_window:
            new_expires = now + self.lifetime
            self._auth_db.update_session_expiry(session.id, new_expires)
            session = session.model_copy(update={"expires_at": new_expires})
            renewed = True

        return SessionValidation(session=session, user=user, renewed=renewed)

    def invalidate(self, session_id: str) -> bool:
        """Delete one session (logout). Safe to call with a nonexistent id."""
        return self._auth_db.delete_session(session_id)

    def invalidate_all_for_user(self, user_id: UUID) -> int:
        count = self._auth_db.delete_sessions_for_user(user_id)
        logger.info(f"Invalidated {count} sessions for user {user_id}")
        return count

    def revoke_by_revoke_id(self, user_id: UUID, revoke_id: str) -> bool:
        """Delete the user's session carrying revoke_id. False if none matched."""
        return self._auth_db.delete_session_by_revoke_id(user_id, revoke_id)

    def update_active_organization(self, session_id: str, organization_id: UUID | None) -> bool:
        return self._auth_db.update_session_active_organization(session_id, organization_id)

    def update_metadata(
        self,
        session_id: str,
        ip_address: str | None,
        user_agent_hash: str | None,
    ) -> bool:
        return self._auth_db.update_session_metadata(session_id, ip_address, user_agent_hash)

    def list_active_for_user(self, user_id: UUID) -> list[Session]:
        return self._auth_db.list_sessions_for_user(user_id, now_utc())
