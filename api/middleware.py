"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID to every request.

    An ID forwarded by the proxy in X-Request-ID is kept so log lines can be
    joined across hops; otherwise a fresh UUID is generated.
    """

    async def dispatch(self, request: Request, call_next):
        forwarded = request.headers.get(REQUEST_ID_HEADER, "").strip()
        if forwarded and len(forwarded) <= _MAX_REQUEST_ID_LENGTH:
            request_id = forwarded
        else:
            request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def request_id_of(request: Request) -> str | None:
    """Request ID assigned by RequestIDMiddleware, if it ran."""
    return getattr(request.state, "request_id", None)
