"""One-way hashing of passwords and refresh tokens."""
import asyncio

import bcrypt
from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from .exceptions import HashIntegrityError

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


class SecretHasher:
    """Memory-hard salted hashing (Argon2id).

    Digests produced by earlier bcrypt-based deployments still verify, and
    ``needs_rehash`` reports them so callers can upgrade on next login.
    """

    def __init__(self, hasher: PasswordHasher = None):
        self._hasher = hasher or PasswordHasher(type=Type.ID)

    def hash(self, plaintext: str) -> str:
        """Hash a secret. Output differs on every call."""
        return self._hasher.hash(plaintext)

    def verify(self, digest: str, candidate: str) -> bool:
        """Check ``candidate`` against ``digest``.

        Returns False on mismatch; raises ``HashIntegrityError`` only when the
        stored digest itself is malformed.
        """
        if not digest:
            raise HashIntegrityError("No digest stored")

        if digest.startswith(BCRYPT_PREFIXES):
            try:
                return bcrypt.checkpw(candidate.encode("utf-8"), digest.encode("utf-8"))
            except ValueError as exc:
                raise HashIntegrityError("Malformed bcrypt digest") from exc

        try:
            return self._hasher.verify(digest, candidate)
        except VerifyMismatchError:
            return False
        except InvalidHash as exc:
            raise HashIntegrityError("Malformed argon2 digest") from exc
        except VerificationError:
            return False

    def needs_rehash(self, digest: str) -> bool:
        if digest.startswith(BCRYPT_PREFIXES):
            return True
        try:
            return self._hasher.check_needs_rehash(digest)
        except InvalidHash:
            return True

    async def hash_async(self, plaintext: str) -> str:
        """Hash off the event loop."""
        return await asyncio.to_thread(self.hash, plaintext)

    async def verify_async(self, digest: str, candidate: str) -> bool:
        """Verify off the event loop."""
        return await asyncio.to_thread(self.verify, digest, candidate)


# Global hasher instance
secret_hasher = SecretHasher()
