"""
Password hashing service.

Bcrypt hashing with a configurable cost factor, constant-time checks,
and detection of hashes created with an older cost factor so they can be
upgraded at the next successful login.
"""

import logging
import secrets

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


class BcryptPasswordHasher:
    """Bcrypt password hashing utility."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize with bcrypt rounds (cost factor)."""
        self.rounds = rounds
        self._dummy_hash = self.hash(secrets.token_urlsafe(16))

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(self._encode(password), salt)
        return hashed.decode("utf-8")

    def check(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(self._encode(password), password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification failed: {e}")
            return False

    def dummy_check(self, password: str) -> None:
        """Spend the same time as a real check when there is no user to check against."""
        self.check(password, self._dummy_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if password needs rehashing with updated rounds."""
        hash_parts = password_hash.split("$")
        if len(hash_parts) >= 3 and hash_parts[2].isdigit():
            return int(hash_parts[2]) < self.rounds
        return False
