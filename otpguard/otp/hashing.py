"""
OTP Hashing
===========
Code generation and salted, memory-hard hashing of codes.

Plaintext codes are never stored or compared directly; verification goes
through Argon2's constant-time check.
"""

import asyncio
import secrets
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .hasher import get_cached_hasher

# Fixed decoy input hashed once per hasher; see CodeHasher.verify_dummy
_DUMMY_CODE = "000000-decoy"


def generate_otp(length: int = 6) -> str:
    """
    Generate a secure random numeric OTP.

    ``secrets.randbelow`` draws uniformly from [0, 10**length), so every
    code is equally likely.

    Args:
        length: Number of digits

    Returns:
        Zero-padded OTP string
    """
    return str(secrets.randbelow(10 ** length)).zfill(length)


class CodeHasher:
    """
    Async-safe Argon2id hashing and verification of OTP codes.

    Hashing work runs in the default thread pool executor so the event
    loop keeps serving other requests while a hash is computed.
    """

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self.hasher = hasher or get_cached_hasher()
        self._dummy_hash: Optional[str] = None

    def hash_sync(self, code: str) -> str:
        """Hash a code (blocking)."""
        if not code:
            raise ValueError("Code cannot be empty")
        return self.hasher.hash(code)

    def verify_sync(self, code: str, code_hash: str) -> bool:
        """Verify a code against its hash (blocking)."""
        if not code or not code_hash:
            return False
        try:
            return self.hasher.verify(code_hash, code)
        except (VerificationError, InvalidHashError):
            return False

    async def hash(self, code: str) -> str:
        """
        Hash a code using Argon2id.

        Returns:
            Encoded hash string (algorithm, parameters, salt and hash)
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_sync, code)

    async def verify(self, code: str, code_hash: str) -> bool:
        """
        Verify a code against a stored hash.

        Returns:
            True if the code matches, False on mismatch or malformed hash
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.verify_sync, code, code_hash)

    async def verify_dummy(self, code: str) -> None:
        """Spend one verification's worth of work against a decoy hash."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash(_DUMMY_CODE)
        await self.verify(code, self._dummy_hash)
