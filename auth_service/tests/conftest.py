"""
Shared fixtures and collaborator fakes for the authentication service tests.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

import bcrypt
import pytest

from auth_service.auth.models import UserRecord
from auth_service.clients.configuration import Parameter
from auth_service.main import build_orchestrator

# Millisecond-aligned reference instant
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def fast_hash(password: str) -> str:
    """bcrypt hash with the minimum cost factor to keep tests quick."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


class FakeConfigStore:
    """In-memory ConfigStore that records calls."""
    def __init__(self, parameters: Optional[Dict[str, Parameter]] = None):
        self.parameters = dict(parameters or {})
        self.get_calls = 0
        self.save_calls = 0
        self.get_delay = 0.0
        self.save_error: Optional[Exception] = None
        self.get_error: Optional[Exception] = None

    async def get_parameter(self, name: str) -> Optional[Parameter]:
        self.get_calls += 1
        if self.get_delay:
            await asyncio.sleep(self.get_delay)
        if self.get_error is not None:
            raise self.get_error
        return self.parameters.get(name)

    async def save_parameter(self, parameter: Parameter) -> None:
        self.save_calls += 1
        # Yield so concurrent callers get a chance to interleave
        await asyncio.sleep(0)
        if self.save_error is not None:
            raise self.save_error
        self.parameters[parameter.name] = parameter


class FakeUserDirectory:
    """In-memory UserDirectory."""
    def __init__(self, *users: UserRecord):
        self.users = {user.username: user for user in users}
        self.lookups = []
        self.delay = 0.0
        self.error: Optional[Exception] = None

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        self.lookups.append(username)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.users.get(username)


@pytest.fixture(scope="session")
def alice_hash():
    return fast_hash("correct-pw")


@pytest.fixture
def alice(alice_hash):
    return UserRecord(id="u1", username="alice", password_hash=alice_hash, roles=("ADMIN",))


@pytest.fixture
def config_store():
    return FakeConfigStore()


@pytest.fixture
def directory(alice):
    return FakeUserDirectory(alice)


@pytest.fixture
def orchestrator(config_store, directory):
    return build_orchestrator(config_store, directory)
