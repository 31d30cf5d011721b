"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from api.base import error_json, ErrorCodes
from auth.exceptions import NotAuthenticatedError, RateLimitedError
from auth.messages import NOT_LOGGED_IN, TOO_MANY_REQUESTS, provider_error_message
from clients.document_store import DocumentStoreError
from clients.identity_client import CredentialStoreError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(CredentialStoreError)
    async def credential_store_error_handler(request: Request, exc: CredentialStoreError):
        # Provider code passes through; message is localized
        status = 503 if exc.code == "NETWORK_ERROR" else 400
        return error_json(status, exc.code, provider_error_message(exc.code))

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
        return error_json(401, ErrorCodes.NOT_AUTHENTICATED, NOT_LOGGED_IN)

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return error_json(
            429,
            ErrorCodes.RATE_LIMITED,
            TOO_MANY_REQUESTS,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(DocumentStoreError)
    async def document_store_error_handler(request: Request, exc: DocumentStoreError):
        logger.error(f"Document store failure: {exc}")
        return error_json(503, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return error_json(404, ErrorCodes.NOT_FOUND, message)
        return error_json(400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_json(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return error_json(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
