"""
ConfigStore implementations.

This module provides:
- The ConfigStore protocol consumed by the key store
- An HTTP client for the configuration microservice
- A database-backed store using the service's async SQLAlchemy setup
"""
import os
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from auth_service.auth.errors import UpstreamUnavailable
from auth_service.base_microservice import Base, create_session_factory

CONFIGURATION_SERVICE_URL = os.getenv("CONFIGURATION_SERVICE_URL", "http://localhost:8005")

logger = logging.getLogger(__name__)


class Parameter(BaseModel):
    """Named configuration parameter."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="parameterName")
    value: Optional[str] = None
    description: Optional[str] = None


class ConfigStore(Protocol):
    async def get_parameter(self, name: str) -> Optional[Parameter]:
        ...

    async def save_parameter(self, parameter: Parameter) -> None:
        ...


class HttpConfigStore:
    """
    Client for the configuration microservice.
    """
    def __init__(self, client: httpx.AsyncClient, base_url: str = CONFIGURATION_SERVICE_URL):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_parameter(self, name: str) -> Optional[Parameter]:
        """
        Fetch a parameter by name.

        Returns:
            The parameter, or None if the service does not know it

        Raises:
            UpstreamUnavailable: On transport failure or unexpected response
        """
        url = f"{self.base_url}/api/parameters/getParameterName/{quote(name, safe='')}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Configuration service unreachable: {e}") from e

        if response.status_code == 404 or (response.status_code == 200 and not response.content):
            return None
        if response.status_code != 200:
            raise UpstreamUnavailable(f"Configuration service returned {response.status_code}")

        try:
            return Parameter.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamUnavailable(f"Configuration service returned an unreadable parameter: {e}") from e

    async def save_parameter(self, parameter: Parameter) -> None:
        """Create or update a parameter."""
        try:
            response = await self.client.post(
                f"{self.base_url}/api/parameters",
                json=parameter.model_dump(by_alias=True),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Configuration service rejected parameter save: {e}") from e


class ParameterRecord(Base):
    """Parameter row for the database-backed store."""
    __tablename__ = "parameters"

    name = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
    description = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class SqlConfigStore:
    """
    ConfigStore backed by a local ``parameters`` table.
    """
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=[ParameterRecord.__table__])

    async def get_parameter(self, name: str) -> Optional[Parameter]:
        try:
            async with self.session_factory() as session:
                record = await session.get(ParameterRecord, name)
        except SQLAlchemyError as e:
            raise UpstreamUnavailable(f"Parameter lookup failed: {e}") from e
        if record is None:
            return None
        return Parameter(name=record.name, value=record.value, description=record.description)

    async def save_parameter(self, parameter: Parameter) -> None:
        try:
            async with self.session_factory() as session:
                record = await session.get(ParameterRecord, parameter.name)
                if record is None:
                    record = ParameterRecord(name=parameter.name)
                    session.add(record)
                record.value = parameter.value
                record.description = parameter.description
                record.updated_at = datetime.now(timezone.utc)
                await session.commit()
        except SQLAlchemyError as e:
            raise UpstreamUnavailable(f"Parameter save failed: {e}") from e
        logger.info(f"Saved parameter: {parameter.name}")
