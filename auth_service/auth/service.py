"""
Authentication orchestration.

Ties credential verification to token issuance (login) and token validation
to live user resolution (introspection).
"""
import logging
from datetime import datetime
from typing import Optional

from auth_service.auth.errors import AuthError, InternalError, InvalidCredentials, TokenInvalid
from auth_service.auth.jwt import TokenService
from auth_service.auth.models import AuthenticatedPrincipal, Credentials, Session
from auth_service.auth.users import CredentialVerifier, lookup_user
from auth_service.base_microservice import BaseMicroservice
from auth_service.clients.authorization import UserDirectory


class AuthOrchestrator:
    """
    Implements the two user-facing operations of the authentication core.

    Neither operation retries; each request runs its steps once, in order.
    """
    def __init__(
        self,
        verifier: CredentialVerifier,
        token_service: TokenService,
        directory: UserDirectory,
    ):
        self.verifier = verifier
        self.token_service = token_service
        self.directory = directory
        self.service = BaseMicroservice("auth_service.auth")

    async def authenticate(self, credentials: Credentials, now: Optional[datetime] = None) -> Session:
        """
        Authenticate a user and issue a session token.

        Args:
            credentials: Username and password
            now: Issue instant, defaults to the current time

        Returns:
            Session with the signed token and its expiry

        Raises:
            InvalidCredentials: If the credentials are rejected
            UpstreamUnavailable: If the user directory is unavailable
            InternalError: If the token could not be issued
        """
        try:
            principal = await self.verifier.verify(credentials)
        except InvalidCredentials as e:
            self.service.log_event("user.login.failed", {
                "username": credentials.username,
                "reason": e.detail,
            }, level=logging.WARNING)
            raise

        try:
            session = await self.token_service.issue(principal, now)
        except AuthError as e:
            self.service.log_error(e, context=f"Token issuance for '{principal.subject}'")
            if isinstance(e, InternalError):
                raise
            raise InternalError(f"Token issuance failed: {e.detail}") from e
        except Exception as e:
            self.service.log_error(e, context=f"Token issuance for '{principal.subject}'")
            raise InternalError("Token issuance failed") from e

        self.service.log_event("user.login", {
            "username": session.subject,
            "roles": list(principal.authorities),
            "expires_at": session.expires_at.isoformat(),
        })
        return session

    async def introspect(self, token: str, now: Optional[datetime] = None) -> AuthenticatedPrincipal:
        """
        Resolve a bearer token to the current principal.

        The token's roles claim is not trusted; authorities come from the
        user directory at the time of the call.

        Raises:
            TokenInvalid: If the signature is bad or the token expired
            InvalidCredentials: If the subject no longer resolves to an active user
            UpstreamUnavailable: If a collaborator is unavailable
            ConfigurationError: If the signing key could not be loaded
        """
        try:
            claims = await self.token_service.validate(token, now)
        except TokenInvalid as e:
            self.service.log_event("token.rejected", {
                "reason": e.reason,
                "detail": e.detail,
            }, level=logging.WARNING)
            raise

        user = await lookup_user(self.directory, claims.subject, self.verifier.timeout)
        if user is None or not user.is_active:
            self.service.log_event("token.rejected", {
                "reason": "unresolved_subject",
                "username": claims.subject,
            }, level=logging.WARNING)
            raise InvalidCredentials(f"Token subject '{claims.subject}' no longer resolves to an active user")

        principal = AuthenticatedPrincipal.from_user(user)
        self.service.log_event("user.introspect", {"username": principal.subject})
        return principal
