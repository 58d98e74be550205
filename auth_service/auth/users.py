"""
User credential verification.

This module provides functionality for:
- Looking up users in the user directory
- Checking passwords against stored bcrypt hashes
- Mapping users to authenticated principals
"""
import asyncio
import logging
from functools import lru_cache
from typing import Optional

import bcrypt

from auth_service.auth.errors import AuthError, InvalidCredentials, UpstreamUnavailable
from auth_service.auth.models import AuthenticatedPrincipal, Credentials, UserRecord
from auth_service.clients import COLLABORATOR_TIMEOUT_SECONDS, call_collaborator
from auth_service.clients.authorization import UserDirectory

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72

logger = logging.getLogger(__name__)


def get_password_hash(password: str) -> str:
    """Generate password hash using bcrypt."""
    return bcrypt.hashpw(
        password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES],
        bcrypt.gensalt()
    ).decode("utf-8")


@lru_cache(maxsize=1)
def _dummy_hash() -> bytes:
    return get_password_hash("not-a-real-password").encode("utf-8")


def check_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Check if provided password matches the stored hash.

    A hash that is missing or not in bcrypt format never matches.
    """
    candidate = password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
    if not password_hash:
        bcrypt.checkpw(candidate, _dummy_hash())
        return False
    try:
        return bcrypt.checkpw(candidate, password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


async def lookup_user(
    directory: UserDirectory,
    username: str,
    timeout: Optional[float] = COLLABORATOR_TIMEOUT_SECONDS,
) -> Optional[UserRecord]:
    """
    Fetch a user record, bounding the call with ``timeout``.

    Raises:
        UpstreamUnavailable: If the directory fails or times out
    """
    try:
        return await call_collaborator(
            directory.get_user_by_username(username),
            timeout,
            "User directory",
        )
    except AuthError:
        raise
    except Exception as e:
        raise UpstreamUnavailable(f"User directory lookup failed: {e}") from e


class CredentialVerifier:
    """
    Confirms username/password pairs against the user directory.

    Unknown users, inactive users and wrong passwords all fail with the same
    InvalidCredentials error so callers cannot enumerate usernames.
    """
    def __init__(self, directory: UserDirectory, timeout: Optional[float] = COLLABORATOR_TIMEOUT_SECONDS):
        self.directory = directory
        self.timeout = timeout

    async def verify(self, credentials: Credentials) -> AuthenticatedPrincipal:
        """
        Verify credentials.

        Args:
            credentials: Username and plaintext password

        Returns:
            Principal carrying the user's role names

        Raises:
            InvalidCredentials: If the credentials do not identify an active user
            UpstreamUnavailable: If the user directory fails or times out
        """
        user = await lookup_user(self.directory, credentials.username, self.timeout)
        password_hash = user.password_hash if user is not None else None

        loop = asyncio.get_running_loop()
        matches = await loop.run_in_executor(None, check_password, credentials.password, password_hash)

        if user is None:
            raise InvalidCredentials(f"Unknown user '{credentials.username}'")
        if not matches:
            raise InvalidCredentials(f"Wrong password for '{credentials.username}'")
        if not user.is_active:
            raise InvalidCredentials(f"User '{credentials.username}' is not active")

        return AuthenticatedPrincipal.from_user(user)
