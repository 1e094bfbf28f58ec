"""Password hashing with bcrypt."""

import asyncio

import bcrypt
import structlog

from taskauth.services.errors import MalformedHashError

logger = structlog.get_logger(__name__)

DEFAULT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way hash and verify for user passwords.

    bcrypt is CPU-bound and slow by design, so both operations run on a
    worker thread to keep the event loop responsive.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds

    def hash_sync(self, password: str) -> str:
        """Hash a password with a fresh per-call salt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify_sync(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise

        Raises:
            MalformedHashError: If password_hash is not a bcrypt hash
        """
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error("password_hash_malformed", error=str(e))
            raise MalformedHashError("Stored password hash is malformed") from e

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, password, password_hash)
