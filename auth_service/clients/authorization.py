"""
UserDirectory implementations.

The authorization microservice owns user records and role assignments.
This module only reads them.
"""
import os
from typing import Any, List, Optional, Protocol, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from auth_service.auth.errors import UpstreamUnavailable
from auth_service.auth.models import UserRecord

AUTHORIZATION_SERVICE_URL = os.getenv("AUTHORIZATION_SERVICE_URL", "http://localhost:8003")


class RoleOut(BaseModel):
    id: Optional[str] = None
    role: str
    status: Optional[str] = None


class UserDetails(BaseModel):
    """User payload returned by the authorization service."""
    id: Any = None
    username: str
    password: str
    status: Optional[str] = "ACTIVE"
    deleted: bool = False
    roles: List[Union[str, RoleOut]] = []

    def to_record(self) -> UserRecord:
        role_names = tuple(r if isinstance(r, str) else r.role for r in self.roles)
        return UserRecord(
            id=str(self.id) if self.id is not None else self.username,
            username=self.username,
            password_hash=self.password,
            roles=role_names,
            status=self.status,
            deleted=self.deleted,
        )


class UserDirectory(Protocol):
    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...


class HttpUserDirectory:
    """
    Client for the authorization microservice.
    """
    def __init__(self, client: httpx.AsyncClient, base_url: str = AUTHORIZATION_SERVICE_URL):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        """
        Fetch a user by username.

        Args:
            username: Username to look up

        Returns:
            UserRecord, or None if the user does not exist

        Raises:
            UpstreamUnavailable: On transport failure or unexpected response
        """
        try:
            response = await self.client.get(f"{self.base_url}/api/user/{quote(username, safe='')}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Authorization service unreachable: {e}") from e

        if response.status_code == 404 or (response.status_code == 200 and not response.content):
            return None
        if response.status_code != 200:
            raise UpstreamUnavailable(f"Authorization service returned {response.status_code}")

        try:
            return UserDetails.model_validate(response.json()).to_record()
        except (ValueError, ValidationError) as e:
            raise UpstreamUnavailable(f"Authorization service returned an unreadable user: {e}") from e
