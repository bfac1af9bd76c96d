"""Detached updates of a session's last-seen IP and user agent."""

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from auth.request_info import get_user_agent_hash
from auth.session import SessionManager
from auth.types import Session

logger = logging.getLogger(__name__)


class SessionMetadataUpdater:
    """
    Write session IP / user-agent changes off the request path.

    Jobs run on a small thread pool. Callers get the Future back but the
    middleware never waits on it; failures are logged and dropped.
    """

    def __init__(self, session_manager: SessionManager, max_workers: int = 2):
        self._session_manager = session_manager
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="session-metadata",
        )

    @staticmethod
    def needs_update(session: Session, ip_address: str | None, user_agent_hash: str) -> bool:
        if ip_address and ip_address != session.ip_address:
            return True
        return user_agent_hash != session.user_agent_hash

    def schedule(
        self,
        session: Session,
        ip_address: str | None,
        user_agent: str | None,
    ) -> Future | None:
        """Submit an update if anything changed. Returns None when nothing to do."""
        user_agent_hash = get_user_agent_hash(user_agent)
        if not self.needs_update(session, ip_address, user_agent_hash):
            return None

        future = self._executor.submit(
            self._session_manager.update_metadata,
            session.id,
            ip_address or session.ip_address,
            user_agent_hash,
        )
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(f"Session metadata update failed: {exc}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
