import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from auth_service.auth.errors import AuthError
from auth_service.auth.jwt import TokenService
from auth_service.auth.keystore import KeyStore
from auth_service.auth.router import router as auth_router
from auth_service.auth.service import AuthOrchestrator
from auth_service.auth.users import CredentialVerifier
from auth_service.base_microservice import BaseMicroservice, create_engine
from auth_service.clients import COLLABORATOR_TIMEOUT_SECONDS
from auth_service.clients.authorization import HttpUserDirectory
from auth_service.clients.configuration import HttpConfigStore, SqlConfigStore

CONFIG_STORE_BACKEND = os.getenv("CONFIG_STORE_BACKEND", "http").lower()
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

# Create shared base microservice instance
base_service = BaseMicroservice()


def build_orchestrator(config_store, directory) -> AuthOrchestrator:
    """Wire the authentication core around its two collaborators."""
    key_store = KeyStore(config_store, timeout=COLLABORATOR_TIMEOUT_SECONDS)
    return AuthOrchestrator(
        verifier=CredentialVerifier(directory, timeout=COLLABORATOR_TIMEOUT_SECONDS),
        token_service=TokenService(key_store),
        directory=directory,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Builds collaborators, wires the orchestrator and bootstraps the signing key.
    """
    base_service.log_event("service.startup", {"service": "auth", "config_store": CONFIG_STORE_BACKEND})

    client = httpx.AsyncClient(timeout=COLLABORATOR_TIMEOUT_SECONDS)
    engine = None
    if CONFIG_STORE_BACKEND == "database":
        engine = create_engine()
        config_store = SqlConfigStore(engine)
        await config_store.create_tables()
    else:
        config_store = HttpConfigStore(client)

    orchestrator = build_orchestrator(config_store, HttpUserDirectory(client))
    app.state.orchestrator = orchestrator

    # A failed bootstrap is retried lazily on first use
    try:
        await orchestrator.token_service.key_store.ensure_ready()
    except AuthError as e:
        base_service.log_error(e, context="Startup key bootstrap")

    try:
        yield
    finally:
        base_service.log_event("service.shutdown", {"service": "auth"})
        await client.aclose()
        if engine is not None:
            await engine.dispose()


# Create main FastAPI app with lifespan
app = FastAPI(
    title="Authentication Service",
    description="Credential verification and session token issuance",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with prefixes
app.include_router(auth_router, prefix="/auth", tags=["auth"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint returning API information."""
    return {
        "name": "Authentication Service",
        "version": "0.1.0",
        "services": ["auth"],
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Overall system health check."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    key_ready = orchestrator is not None and orchestrator.token_service.key_store.is_ready
    return {
        "status": "ok" if key_ready else "degraded",
        "services": {
            "auth": "online",
            "signing_key": "ready" if key_ready else "pending",
        }
    }


# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("auth_service.main:app", host="0.0.0.0", port=8000, reload=True)
