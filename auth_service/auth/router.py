"""
Authentication router.

This module provides the FastAPI router for authentication endpoints:
- Login with username and password
- Bearer token validation
- Liveness ping
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from auth_service.auth.errors import InternalError, InvalidCredentials, UpstreamUnavailable
from auth_service.auth.middleware import base_service, get_auth_orchestrator, get_current_principal
from auth_service.auth.models import AuthenticatedPrincipal, LoginRequest, LoginResponse, PrincipalOut
from auth_service.auth.service import AuthOrchestrator

# Create router
router = APIRouter(tags=["auth"])


def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=InvalidCredentials.public_message,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.get("/ping")
async def ping():
    """Liveness check for the auth service."""
    return base_service.service_response(
        message="Auth service is alive",
        data={"timestamp": datetime.now(timezone.utc).isoformat()},
    )


@router.post("/login", response_model=Dict[str, Any])
async def login(
    login_data: LoginRequest,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
):
    """
    Authenticate a user and return a session token.

    Args:
        login_data: Username and password

    Returns:
        Dict with username, token and expiry
    """
    try:
        session = await orchestrator.authenticate(login_data.to_credentials())
    except InvalidCredentials:
        raise credentials_exception()
    except UpstreamUnavailable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UpstreamUnavailable.public_message,
        )
    except InternalError:
        # Already logged; a correct password must look like a wrong one
        raise credentials_exception()
    except Exception as e:
        base_service.log_error(e, context="User login")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    return {
        "status": "ok",
        "message": "Login successful",
        "data": LoginResponse.from_session(session).model_dump(mode="json"),
    }


@router.get("/validate", response_model=Dict[str, Any])
async def validate_token(principal: AuthenticatedPrincipal = Depends(get_current_principal)):
    """
    Validate a bearer token and return the current principal.

    Returns:
        Dict with username and roles
    """
    return {
        "status": "ok",
        "message": "Token is valid",
        "data": PrincipalOut.from_principal(principal).model_dump(),
    }
