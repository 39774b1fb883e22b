"""
Cadastro API — Password Hashing Service
=========================================

What:  One-way hashing of passwords with bcrypt, and verification.
Why:   The digest is the only representation of a password that is ever
       persisted. bcrypt is salted and adaptive (cost factor in the digest).
How:   bcrypt is CPU-bound (~50-100ms at cost 10), so both calls run in a
       worker thread via asyncio.to_thread to keep the event loop free.

bcrypt only looks at the first 72 bytes of a password, and recent bcrypt
releases raise ValueError on longer input. Passwords are truncated to 72
UTF-8 bytes before hashing and before verifying so both sides agree.
"""

import asyncio
import logging

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """
    bcrypt wrapper with a fixed work factor.

    Attributes:
        rounds: bcrypt cost factor (log2 of iterations). 10 in production,
                4 in tests.
    """

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    def hash_sync(self, password: str) -> str:
        return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify_sync(self, password: str, digest: str) -> bool:
        """
        Constant-time comparison provided by bcrypt.checkpw.

        A stored value that is not a valid bcrypt digest counts as a
        mismatch rather than an error.
        """
        try:
            return bcrypt.checkpw(_encode(password), digest.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password digest is not a valid bcrypt hash")
            return False

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, digest: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, password, digest)
