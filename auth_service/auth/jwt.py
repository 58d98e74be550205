"""
JWT token handling for authentication.

This module provides functionality for:
- Issuing HS512-signed session tokens with role claims
- Validating token signature and expiry
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.exceptions import PyJWTError

from auth_service.auth.errors import ExpiredToken, InternalError, MalformedToken
from auth_service.auth.keystore import KeyStore
from auth_service.auth.models import AuthenticatedPrincipal, Session, TokenClaims

ALGORITHM = "HS512"
ROLES_CLAIM = "roles"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the epoch, truncated."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


def _numeric_date(ms: int) -> float:
    # NumericDate in seconds with millisecond fraction
    return ms / 1000


def _claim_ms(payload: dict, name: str) -> int:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedToken(f"Claim '{name}' is not a NumericDate")
    return round(value * 1000)


def _join_roles(roles) -> str:
    return ",".join(roles)


def _split_roles(value) -> tuple:
    if not value:
        return ()
    if not isinstance(value, str):
        raise MalformedToken("Roles claim is not a string")
    return tuple(role for role in value.split(",") if role)


class TokenService:
    """
    Issues and validates signed session tokens.

    Token lifetime comes from the key store, so both operations first make
    sure the key store is ready.
    """
    def __init__(self, key_store: KeyStore):
        self.key_store = key_store

    async def issue(self, principal: AuthenticatedPrincipal, now: Optional[datetime] = None) -> Session:
        """
        Create a signed token for a principal.

        Args:
            principal: Authenticated principal; its authorities become the roles claim
            now: Issue instant, defaults to the current time

        Returns:
            Session with the compact token and its expiry

        Raises:
            InternalError: If signing fails
        """
        material = await self.key_store.ensure_ready()
        issued_ms = epoch_ms(now or utcnow())
        expires_ms = issued_ms + material.expiration_ms

        payload = {
            "sub": principal.subject,
            ROLES_CLAIM: _join_roles(principal.authorities),
            "iat": _numeric_date(issued_ms),
            "exp": _numeric_date(expires_ms),
        }
        try:
            token = jwt.encode(payload, material.key, algorithm=ALGORITHM)
        except (PyJWTError, TypeError, ValueError) as e:
            raise InternalError(f"Token signing failed: {e}") from e

        return Session(subject=principal.subject, token=token, expires_at=from_epoch_ms(expires_ms))

    async def validate(self, token: str, now: Optional[datetime] = None) -> TokenClaims:
        """
        Verify a token's signature and expiry.

        Args:
            token: Compact token string
            now: Validation instant, defaults to the current time

        Returns:
            The token's claims

        Raises:
            MalformedToken: Unparseable token, bad signature or missing claims
            ExpiredToken: Valid signature but ``now`` is at or past expiry
        """
        material = await self.key_store.ensure_ready()
        try:
            payload = jwt.decode(
                token,
                material.key,
                algorithms=[ALGORITHM],
                # Expiry is checked below against the injected clock
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["sub", "iat", "exp"],
                },
            )
        except PyJWTError as e:
            raise MalformedToken(f"Token rejected: {e.__class__.__name__}") from e

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise MalformedToken("Token has no subject")
        issued_ms = _claim_ms(payload, "iat")
        expires_ms = _claim_ms(payload, "exp")

        if epoch_ms(now or utcnow()) >= expires_ms:
            raise ExpiredToken(f"Token for '{subject}' expired")

        return TokenClaims(
            subject=subject,
            roles=_split_roles(payload.get(ROLES_CLAIM)),
            issued_at=from_epoch_ms(issued_ms),
            expires_at=from_epoch_ms(expires_ms),
        )
