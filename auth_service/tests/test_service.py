"""
Test cases for login and token introspection orchestration.
"""
import logging
from dataclasses import replace
from datetime import timedelta

import pytest

from auth_service.auth.errors import (
    ConfigurationError, ExpiredToken, InternalError, InvalidCredentials, TokenInvalid, UpstreamUnavailable
)
from auth_service.auth.models import Credentials
from auth_service.clients.configuration import Parameter
from conftest import NOW


@pytest.mark.asyncio
async def test_login_scenario(orchestrator):
    session = await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)

    assert session.subject == "alice"
    assert session.token
    assert session.expires_at == NOW + timedelta(milliseconds=3_600_000)


@pytest.mark.asyncio
async def test_login_does_not_write_back_to_directory(orchestrator, directory, config_store):
    await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)

    # Only the key parameter is persisted; nothing is written for the user
    assert list(config_store.parameters) == ["jwtSecretKey"]
    assert directory.lookups == ["alice"]


@pytest.mark.asyncio
async def test_failed_logins_are_indistinguishable(orchestrator):
    with pytest.raises(InvalidCredentials) as unknown:
        await orchestrator.authenticate(Credentials("mallory", "correct-pw"), NOW)
    with pytest.raises(InvalidCredentials) as wrong:
        await orchestrator.authenticate(Credentials("alice", "nope"), NOW)

    assert type(unknown.value) is type(wrong.value)
    assert str(unknown.value) == str(wrong.value)


@pytest.mark.asyncio
async def test_bad_password_is_logged_as_warning(orchestrator, caplog):
    with caplog.at_level(logging.INFO):
        with pytest.raises(InvalidCredentials):
            await orchestrator.authenticate(Credentials("alice", "nope"), NOW)

    failures = [r for r in caplog.records if "user.login.failed" in r.getMessage()]
    assert failures and all(r.levelno == logging.WARNING for r in failures)
    assert "nope" not in caplog.text


@pytest.mark.asyncio
async def test_issuance_failure_is_internal_error(orchestrator, config_store, caplog):
    config_store.save_error = RuntimeError("disk full")

    with caplog.at_level(logging.INFO):
        with pytest.raises(InternalError) as excinfo:
            await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)

    assert not isinstance(excinfo.value, InvalidCredentials)
    assert any(r.levelno == logging.ERROR for r in caplog.records)
    assert "correct-pw" not in caplog.text


@pytest.mark.asyncio
async def test_malformed_key_during_login_is_internal_error(orchestrator, config_store):
    config_store.parameters["jwtSecretKey"] = Parameter(name="jwtSecretKey", value="garbage")

    with pytest.raises(InternalError) as excinfo:
        await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)

    assert isinstance(excinfo.value.__cause__, ConfigurationError)


@pytest.mark.asyncio
async def test_directory_outage_during_login(orchestrator, directory):
    directory.error = ConnectionError("down")

    with pytest.raises(UpstreamUnavailable):
        await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)


@pytest.mark.asyncio
async def test_introspect_matches_login_principal(orchestrator):
    credentials = Credentials("alice", "correct-pw")
    login_principal = await orchestrator.verifier.verify(credentials)
    session = await orchestrator.authenticate(credentials, NOW)

    principal = await orchestrator.introspect(session.token, NOW + timedelta(minutes=5))

    assert principal == login_principal


@pytest.mark.asyncio
async def test_introspect_uses_live_roles(orchestrator, directory, alice):
    session = await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)
    directory.users["alice"] = replace(alice, roles=("USER",))

    principal = await orchestrator.introspect(session.token, NOW)

    assert principal.authorities == ("USER",)


@pytest.mark.asyncio
async def test_introspect_rejects_removed_user(orchestrator, directory):
    session = await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)
    del directory.users["alice"]

    with pytest.raises(InvalidCredentials):
        await orchestrator.introspect(session.token, NOW)


@pytest.mark.asyncio
async def test_introspect_rejects_deactivated_user(orchestrator, directory, alice):
    session = await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)
    directory.users["alice"] = replace(alice, status="INACTIVE")

    with pytest.raises(InvalidCredentials):
        await orchestrator.introspect(session.token, NOW)


@pytest.mark.asyncio
async def test_introspect_expired_token(orchestrator, directory):
    session = await orchestrator.authenticate(Credentials("alice", "correct-pw"), NOW)

    with pytest.raises(ExpiredToken) as excinfo:
        await orchestrator.introspect(session.token, session.expires_at)

    assert str(excinfo.value) == "Invalid or expired token"
    # Rejected before the directory is consulted again
    assert directory.lookups == ["alice"]


@pytest.mark.asyncio
async def test_introspect_garbage_token(orchestrator):
    with pytest.raises(TokenInvalid):
        await orchestrator.introspect("invalid.token.here", NOW)
