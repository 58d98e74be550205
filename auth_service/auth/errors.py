"""
Error taxonomy for the authentication core.

Every error carries the HTTP status it maps to and a generic public message.
``str(error)`` is always the public message. The detail passed to the
constructor is for server-side logs only and must never reach a response body.
"""
from fastapi import status


class AuthError(Exception):
    """Base class for all authentication core failures."""
    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Unauthorized"

    def __init__(self, detail: str = ""):
        super().__init__(self.public_message)
        self.detail = detail or self.public_message


class InvalidCredentials(AuthError):
    """Unknown username, wrong password, inactive user or unresolvable subject."""
    public_message = "Invalid credentials"


class TokenInvalid(AuthError):
    """Token rejected. Subclasses record why, for logging only."""
    public_message = "Invalid or expired token"
    reason = "invalid"


class MalformedToken(TokenInvalid):
    reason = "malformed"


class ExpiredToken(TokenInvalid):
    reason = "expired"


class ConfigurationError(AuthError):
    """Persisted key material could not be parsed."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"


class InternalError(AuthError):
    """Key persistence or token signing failed."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = "Internal server error"


class UpstreamUnavailable(AuthError):
    """A collaborator call failed or timed out."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    public_message = "Service temporarily unavailable"
