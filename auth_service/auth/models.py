"""
Authentication models.

This module defines:
- Core value types shared by the key store, token service and verifier
- Pydantic request/response models for the HTTP layer
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class Credentials:
    """Username/password pair for one login attempt. Never persisted."""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class UserRecord:
    """User as returned by the user directory. Read-only."""
    id: str
    username: str
    password_hash: str = field(repr=False)
    roles: Tuple[str, ...] = ()
    status: Optional[str] = "ACTIVE"
    deleted: bool = False

    @property
    def is_active(self) -> bool:
        if self.deleted:
            return False
        return self.status is None or self.status.upper() == "ACTIVE"


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """Authenticated identity plus granted authorities."""
    subject: str
    authorities: Tuple[str, ...] = ()

    @classmethod
    def from_user(cls, user: UserRecord) -> "AuthenticatedPrincipal":
        # Both login and introspection build principals here
        return cls(subject=user.username, authorities=tuple(user.roles))


@dataclass(frozen=True)
class TokenClaims:
    """Claims carried by a signed token."""
    subject: str
    roles: Tuple[str, ...]
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class Session:
    """Result of a successful login."""
    subject: str
    token: str = field(repr=False)
    expires_at: datetime


# --- HTTP models ---

class LoginRequest(BaseModel):
    """Model for user login."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    def to_credentials(self) -> Credentials:
        return Credentials(username=self.username, password=self.password)


class LoginResponse(BaseModel):
    """Model for a successful login returned to clients."""
    username: str
    token: str
    expiresAt: datetime

    @classmethod
    def from_session(cls, session: Session) -> "LoginResponse":
        return cls(username=session.subject, token=session.token, expiresAt=session.expires_at)


class PrincipalOut(BaseModel):
    """Model for a resolved principal returned to clients."""
    username: str
    roles: list[str] = []

    @classmethod
    def from_principal(cls, principal: AuthenticatedPrincipal) -> "PrincipalOut":
        return cls(username=principal.subject, roles=list(principal.authorities))
