"""
Authentication dependencies.

This module provides FastAPI dependencies for:
- Resolving the AuthOrchestrator wired at startup
- Turning a bearer token into an authenticated principal
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from auth_service.auth.errors import AuthError, InvalidCredentials, TokenInvalid
from auth_service.auth.models import AuthenticatedPrincipal
from auth_service.auth.service import AuthOrchestrator
from auth_service.base_microservice import BaseMicroservice

# OAuth2 scheme for bearer tokens; missing headers are handled below
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

base_service = BaseMicroservice("auth_service.http")


def bearer_exception(detail: str = TokenInvalid.public_message) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_auth_orchestrator(request: Request) -> AuthOrchestrator:
    """Dependency returning the orchestrator stored on the application."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        )
    return orchestrator


async def get_current_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> AuthenticatedPrincipal:
    """
    FastAPI dependency to get the current principal from a bearer token.

    Raises:
        HTTPException: 401 for missing, invalid or expired tokens and for
            subjects that no longer resolve; 500/503 for server-side failures
    """
    if not token:
        raise bearer_exception("Not authenticated")

    try:
        return await orchestrator.introspect(token)
    except (TokenInvalid, InvalidCredentials):
        raise bearer_exception()
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.public_message)
    except Exception as e:
        base_service.log_error(e, context="Token introspection")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )
