"""
Signing key management.

This module provides functionality for:
- Loading the token signing key from the configuration store
- Generating and persisting a new key when none exists
- Sharing one bootstrap attempt between concurrent callers
"""
import os
import json
import base64
import asyncio
import logging
import binascii
import secrets
from dataclasses import dataclass, field
from typing import Optional

from auth_service.auth.errors import AuthError, ConfigurationError, InternalError, UpstreamUnavailable
from auth_service.base_microservice import BaseMicroservice
from auth_service.clients import COLLABORATOR_TIMEOUT_SECONDS, call_collaborator
from auth_service.clients.configuration import ConfigStore, Parameter

# Key configuration
JWT_SECRET_PARAMETER = os.getenv("JWT_SECRET_PARAMETER", "jwtSecretKey")
JWT_SECRET_DESCRIPTION = "JWT secret key and expiration time for signing tokens"
DEFAULT_EXPIRATION_MS = 3_600_000
KEY_SIZE_BYTES = 64  # HMAC-SHA-512 block size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretKeyMaterial:
    """Signing key bytes and token lifetime."""
    key: bytes = field(repr=False)
    expiration_ms: int

    @classmethod
    def generate(cls, expiration_ms: int = DEFAULT_EXPIRATION_MS) -> "SecretKeyMaterial":
        return cls(key=secrets.token_bytes(KEY_SIZE_BYTES), expiration_ms=expiration_ms)

    @property
    def encoded(self) -> str:
        """Base64 storage representation of the key."""
        return base64.b64encode(self.key).decode("ascii")

    def to_parameter_value(self) -> str:
        return json.dumps({
            "keyApplication": self.encoded,
            "timeExpire": str(self.expiration_ms),
        })

    @classmethod
    def from_parameter_value(cls, value: Optional[str]) -> "SecretKeyMaterial":
        """
        Parse a persisted parameter value.

        Raises:
            ConfigurationError: If the value does not have the expected shape
        """
        if not value:
            raise ConfigurationError("Key parameter has no value")
        try:
            values = json.loads(value)
        except ValueError as e:
            raise ConfigurationError("Key parameter is not valid JSON") from e
        if not isinstance(values, dict):
            raise ConfigurationError("Key parameter is not a JSON object")

        encoded = values.get("keyApplication")
        expire = values.get("timeExpire")
        if not isinstance(encoded, str) or expire is None:
            raise ConfigurationError("Key parameter is missing keyApplication or timeExpire")

        try:
            key = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError("keyApplication is not valid base64") from e
        if len(key) < KEY_SIZE_BYTES:
            raise ConfigurationError(f"keyApplication must be at least {KEY_SIZE_BYTES * 8} bits")

        # bool is an int subclass
        if isinstance(expire, bool) or not isinstance(expire, (str, int)):
            raise ConfigurationError("timeExpire is not an integer")
        try:
            expiration_ms = int(expire)
        except ValueError as e:
            raise ConfigurationError("timeExpire is not an integer") from e
        if expiration_ms <= 0:
            raise ConfigurationError("timeExpire must be positive")

        return cls(key=key, expiration_ms=expiration_ms)


class KeyStore:
    """
    Holds the process-wide signing key.

    The key is loaded or generated once. Concurrent callers of ``ensure_ready``
    share the single in-flight bootstrap; a failed bootstrap is forgotten so
    the next call starts a fresh attempt.
    """
    def __init__(
        self,
        config_store: ConfigStore,
        parameter_name: str = JWT_SECRET_PARAMETER,
        timeout: Optional[float] = COLLABORATOR_TIMEOUT_SECONDS,
    ):
        self.config_store = config_store
        self.parameter_name = parameter_name
        self.timeout = timeout
        self.service = BaseMicroservice("auth_service.keystore")
        self._material: Optional[SecretKeyMaterial] = None
        self._bootstrap: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self._material is not None

    @property
    def signing_key(self) -> SecretKeyMaterial:
        if self._material is None:
            raise InternalError("Signing key requested before key store bootstrap")
        return self._material

    async def ensure_ready(self, timeout: Optional[float] = None) -> SecretKeyMaterial:
        """
        Return the live key, bootstrapping it if needed.

        Args:
            timeout: Bound on this caller's wait. Expiry abandons the wait
                but leaves the shared bootstrap running.

        Raises:
            ConfigurationError: Persisted key material is malformed
            UpstreamUnavailable: The configuration store failed or timed out
            InternalError: A newly generated key could not be persisted
        """
        if self._material is not None:
            return self._material

        # No await between the check and the assignment
        if self._bootstrap is None:
            self._bootstrap = asyncio.ensure_future(self._run_bootstrap())
            self._bootstrap.add_done_callback(self._bootstrap_done)

        try:
            return await asyncio.wait_for(asyncio.shield(self._bootstrap), timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(f"Timed out after {timeout}s waiting for key store bootstrap") from e

    async def _run_bootstrap(self) -> SecretKeyMaterial:
        try:
            material = await self._load_or_generate()
        except BaseException:
            self._bootstrap = None
            raise
        self._material = material
        return material

    def _bootstrap_done(self, task: asyncio.Task):
        if task.cancelled():
            self._bootstrap = None
            logger.warning("Key store bootstrap was cancelled")
            return
        error = task.exception()
        if error is not None:
            self.service.log_error(error, context="Key store bootstrap")

    async def _load_or_generate(self) -> SecretKeyMaterial:
        try:
            parameter = await call_collaborator(
                self.config_store.get_parameter(self.parameter_name),
                self.timeout,
                "Configuration store",
            )
        except AuthError:
            raise
        except Exception as e:
            raise UpstreamUnavailable(f"Configuration store lookup failed: {e}") from e

        if parameter is not None:
            material = SecretKeyMaterial.from_parameter_value(parameter.value)
            self.service.log_event("keystore.loaded", {
                "parameter": self.parameter_name,
                "expiration_ms": material.expiration_ms,
            })
            return material

        material = SecretKeyMaterial.generate()
        new_parameter = Parameter(
            name=self.parameter_name,
            value=material.to_parameter_value(),
            description=JWT_SECRET_DESCRIPTION,
        )
        try:
            await call_collaborator(
                self.config_store.save_parameter(new_parameter),
                self.timeout,
                "Configuration store",
            )
        except AuthError as e:
            raise InternalError(f"Generated signing key could not be persisted: {e.detail}") from e
        except Exception as e:
            raise InternalError(f"Generated signing key could not be persisted: {e}") from e

        self.service.log_event("keystore.generated", {
            "parameter": self.parameter_name,
            "expiration_ms": material.expiration_ms,
        })
        return material
