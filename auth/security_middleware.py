"""Security middleware for FastAPI - session loading and cookie upkeep."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.messages import NOT_LOGGED_IN
from auth.session import SessionManager
from api.base import error_json, ErrorCodes

SESSION_COOKIE = "session_token"


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that attaches a SessionContext to every request.

    1. Opens the context for the 'session_token' cookie (anonymous if absent
       or unknown) and stores it in request.state.session
    2. Rejects anonymous requests to protected paths with 401
    3. After the route runs, sets or clears the cookie when sign-in or
       sign-out changed the session token
    """

    PROTECTED_PATHS = [
        "/auth/me",
        "/auth/resend-verification",
        "/auth/change-password",
        "/auth/audit-log",
    ]

    def __init__(self, app, session_manager: SessionManager, secure_cookies: bool = True):
        super().__init__(app)
        self._session_manager = session_manager
        self._secure_cookies = secure_cookies

    def _is_protected_path(self, path: str) -> bool:
        return any(path == protected or path.startswith(protected + "/") for protected in self.PROTECTED_PATHS)

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        incoming_token = request.cookies.get(SESSION_COOKIE)
        session = self._session_manager.open(incoming_token)
        request.state.session = session

        if self._is_protected_path(request.url.path) and not session.is_authenticated:
            if not incoming_token:
                return error_json(401, ErrorCodes.NOT_AUTHENTICATED, NOT_LOGGED_IN)
            # Cookie pointed at an expired or revoked session
            response = error_json(401, ErrorCodes.SESSION_EXPIRED, NOT_LOGGED_IN)
            response.delete_cookie(key=SESSION_COOKIE)
            return response

        response = await call_next(request)

        outgoing_token = session.session_token
        if outgoing_token and outgoing_token != incoming_token:
            response.set_cookie(
                key=SESSION_COOKIE,
                value=outgoing_token,
                httponly=True,
                secure=self._secure_cookies,
                samesite="lax",
                max_age=self._session_manager.expire_seconds,
            )
        elif incoming_token and not outgoing_token:
            response.delete_cookie(key=SESSION_COOKIE)

        return response
