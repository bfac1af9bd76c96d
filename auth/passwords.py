"""Password hashing and verification (argon2id)."""

import logging
import secrets

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from auth.config import AuthConfig

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Hash and verify user passwords.

    Hashes are self-describing PHC strings, so changing the cost parameters
    in config only affects new hashes; old ones still verify.
    """

    def __init__(self, config: AuthConfig):
        self._hasher = Argon2Hasher(
            time_cost=config.password_time_cost,
            memory_cost=config.password_memory_cost_kib,
            parallelism=config.password_parallelism,
            hash_len=32,
            type=Type.ID,
        )

    def hash_password(self, password: str) -> str:
        """Hash plaintext password."""
        return self._hasher.hash(password)

    def verify_password(self, password_hash: str, password: str) -> bool:
        """Check plaintext against stored hash.

        Returns False on mismatch and on a malformed stored hash; never raises.
        """
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHash, VerificationError) as e:
            logger.warning(f"Password verification failed on stored hash: {e}")
            return False

    def random_password_hash(self) -> str:
        """Hash of an unguessable value, for users who sign in without a password."""
        return self.hash_password(secrets.token_urlsafe(32))
