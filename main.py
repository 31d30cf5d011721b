"""
Bilo auth service
FastAPI application entry point.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.action_handler import ActionHandler
from auth.api import create_auth_router
from auth.audit_log import AuditLog
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.rate_limiter import RateLimiter
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager
from auth.tokens import ActionTokenService
from clients.document_store import DocumentStore
from clients.email_client import MailgunClient
from clients.identity_client import IdentityClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_database_url,
    get_email_config,
    get_identity_api_key,
    get_valkey_url,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def build_app(
    auth_service: AuthService,
    action_handler: ActionHandler,
    session_manager: SessionManager,
    secure_cookies: bool = True,
    lifespan=None,
) -> FastAPI:
    """Assemble routes, middleware and error handlers around ready services."""
    app = FastAPI(title="Bilo Auth", lifespan=lifespan)

    register_error_handlers(app)

    # Last added runs first: request id wraps the session middleware
    app.add_middleware(AuthMiddleware, session_manager=session_manager, secure_cookies=secure_cookies)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(create_auth_router(auth_service, action_handler), prefix="/auth")

    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "healthy"}

    return app


def create_app(config: AuthConfig | None = None) -> FastAPI:
    """Application factory. Reads secrets from Vault and wires every client."""
    config = config or AuthConfig()

    postgres = PostgresClient(get_database_url())
    store = DocumentStore(postgres)
    store.ensure_schema()

    valkey = ValkeyClient(get_valkey_url())

    email_config = get_email_config()
    email_client = MailgunClient(
        api_key=email_config["api_key"],
        domain=email_config["domain"],
        sender=email_config["sender"],
        app_name=config.app_name,
    )
    identity = IdentityClient(get_identity_api_key())

    auth_db = AuthDatabase(store)
    audit = AuditLog(auth_db)
    tokens = ActionTokenService(auth_db, config)
    rate_limiter = RateLimiter(valkey, config)
    session_manager = SessionManager(valkey, config)

    auth_service = AuthService(
        config=config,
        auth_db=auth_db,
        identity=identity,
        tokens=tokens,
        email_client=email_client,
        audit=audit,
        rate_limiter=rate_limiter,
    )
    action_handler = ActionHandler(
        tokens=tokens,
        auth_db=auth_db,
        identity=identity,
        audit=audit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Bilo auth service starting")
        yield
        valkey.close()
        postgres.close()
        logger.info("Bilo auth service stopped")

    return build_app(auth_service, action_handler, session_manager, lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
