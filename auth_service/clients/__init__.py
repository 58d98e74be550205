"""
Clients for the sibling services the authentication core depends on:
- Configuration service (parameters, including the signing key)
- Authorization service (user records and roles)
"""
import os
import asyncio
from typing import Awaitable, Optional, TypeVar

from auth_service.auth.errors import UpstreamUnavailable

COLLABORATOR_TIMEOUT_SECONDS = float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", 5))

T = TypeVar("T")


async def call_collaborator(call: Awaitable[T], timeout: Optional[float], collaborator: str) -> T:
    """
    Await a collaborator call bounded by ``timeout`` seconds.

    Raises:
        UpstreamUnavailable: If the call does not finish in time
    """
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailable(f"{collaborator} timed out after {timeout}s") from e
