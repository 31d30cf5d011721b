"""HTTP routes for authentication."""

import ipaddress
import logging

from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import JSONResponse

from auth.action_handler import ActionHandler, ActionLink, ActionOutcome, ActionStatus
from auth.exceptions import PasswordResetError
from auth.service import AuthService
from auth.session import SessionContext
from auth.types import (
    ChangePasswordRequest,
    DeviceInfo,
    LoginRequest,
    NewPasswordRequest,
    PasswordResetRequest,
    SignedInAccount,
    SignupRequest,
    VerifyEmailRequest,
)
from api.base import success_response, error_response, error_json, ErrorCodes
from api.middleware import request_id_of
from clients.email_client import DeliveryOutcome

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = (
    "Jos sähköpostiosoitteelle löytyy tili, lähetimme ohjeet salasanan palauttamiseen."
)
EMAIL_NOT_SENT_MESSAGE = "Sähköpostin lähettäminen epäonnistui. Yritä myöhemmin uudelleen."


def _get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _get_device_info(request: Request) -> DeviceInfo:
    """Diagnostic snapshot of the calling client from its request headers."""
    headers = request.headers
    return DeviceInfo(
        user_agent=headers.get("User-Agent"),
        screen_size=headers.get("X-Screen-Size"),
        language=headers.get("Accept-Language"),
        referrer=headers.get("Referer"),
        platform=headers.get("Sec-CH-UA-Platform"),
    )


def _session(request: Request) -> SessionContext:
    return request.state.session


def _account_view(account: SignedInAccount) -> dict:
    return {
        "id": account.uid,
        "email": account.email,
        "emailVerified": account.email_verified,
    }


def _outcome_view(outcome: ActionOutcome) -> dict:
    return {
        "status": outcome.status.value,
        "mode": outcome.mode.value if outcome.mode else None,
        "email": outcome.email,
        "redirectUrl": outcome.redirect_url,
        "viaCustomToken": outcome.via_custom_token,
    }


def _ok(request: Request, data: dict):
    return success_response(data, request_id=request_id_of(request))


def _outcome_response(request: Request, outcome: ActionOutcome):
    if outcome.status is not ActionStatus.ERROR:
        return _ok(request, _outcome_view(outcome))
    body = error_response(ErrorCodes.INVALID_TOKEN, outcome.error or "", request_id=request_id_of(request))
    body = body.model_copy(update={"data": _outcome_view(outcome)})
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


def _delivery_response(request: Request, outcome: DeliveryOutcome):
    if not outcome.sent:
        return error_json(502, ErrorCodes.EMAIL_NOT_SENT, EMAIL_NOT_SENT_MESSAGE)
    return _ok(request, {"sent": True})


def create_auth_router(auth_service: AuthService, action_handler: ActionHandler) -> APIRouter:
    """Create auth router with injected services.

    Every route reads the SessionContext that AuthMiddleware attached to the
    request. Session cookies are written by the middleware, not here.
    """
    router = APIRouter(tags=["auth"])

    def _send_reset_in_background(email: str, device_info: DeviceInfo) -> None:
        try:
            auth_service.reset_password(email, device_info=device_info)
        except PasswordResetError:
            # Details already logged by the service
            logger.warning(f"Background password reset failed for request from {device_info.user_agent}")

    @router.post("/signup")
    async def signup(request: Request, body: SignupRequest):
        """Create an account and send the verification email."""
        account = auth_service.signup(
            _session(request),
            email=body.email,
            password=body.password,
            is_vendor=body.is_vendor,
            device_info=_get_device_info(request),
        )
        return _ok(request, {"user": _account_view(account)})

    @router.post("/login")
    async def login(request: Request, body: LoginRequest):
        account = auth_service.login(
            _session(request),
            email=body.email,
            password=body.password,
            ip_address=_get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        return _ok(request, {"user": _account_view(account)})

    @router.post("/logout")
    async def logout(request: Request):
        """Logout - audit, end the session, clear cookie."""
        auth_service.logout(_session(request))
        return _ok(request, {"message": "Logged out successfully"})

    @router.get("/me")
    async def get_current_user(request: Request):
        account = _session(request).account
        return _ok(request, {"user": _account_view(account)})

    @router.post("/resend-verification")
    async def resend_verification(request: Request):
        outcome = auth_service.resend_verification_email(
            _session(request),
            device_info=_get_device_info(request),
        )
        return _delivery_response(request, outcome)

    @router.post("/reset-password")
    async def reset_password(
        request: Request,
        body: PasswordResetRequest,
        background_tasks: BackgroundTasks,
    ):
        """Request a password reset email.

        The answer is the same for every address and is sent before any
        lookup happens, so neither content nor timing tells whether the
        email belongs to an account.
        """
        background_tasks.add_task(
            _send_reset_in_background,
            body.email,
            _get_device_info(request),
        )
        return _ok(request, {"message": RESET_REQUESTED_MESSAGE})

    @router.post("/change-password")
    async def change_password(request: Request, body: ChangePasswordRequest):
        auth_service.update_user_password(
            _session(request),
            current_password=body.current_password,
            new_password=body.new_password,
        )
        return _ok(request, {"message": "Password changed"})

    @router.post("/verify-email")
    async def verify_email(request: Request, body: VerifyEmailRequest):
        """Apply a provider-issued verification code."""
        session = _session(request)
        auth_service.verify_email(session, body.action_code)
        return _ok(request, {"emailVerified": True})

    @router.get("/action")
    async def handle_action(
        request: Request,
        mode: str | None = Query(None),
        oob_code: str | None = Query(None, alias="oobCode"),
        continue_url: str | None = Query(None, alias="continueUrl"),
    ):
        """Landing point of emailed action links."""
        link = ActionLink(mode=mode, oob_code=oob_code, continue_url=continue_url)
        return _outcome_response(request, action_handler.handle(link))

    @router.post("/action/reset-password")
    async def submit_new_password(request: Request, body: NewPasswordRequest):
        outcome = action_handler.submit_new_password(body.oob_code, body.new_password)
        return _outcome_response(request, outcome)

    @router.get("/audit-log")
    async def audit_log(request: Request, limit: int = Query(50, ge=1, le=200)):
        entries = auth_service.account_activity(_session(request), limit=limit)
        return _ok(request, {"entries": [entry.to_document() for entry in entries]})

    return router
