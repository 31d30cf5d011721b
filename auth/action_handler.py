"""Completes actions arriving through emailed links.

A link carries `mode` and `oobCode`. The code is either one of our own action
tokens or a credential store code; resolve() decides which, and handle()
completes the action exactly once. Password resets are two-step: handle()
returns PASSWORD_FORM, submit_new_password() finishes.

Any failure produces an ERROR outcome with a generic message and a way back
to login. A half-finished action is never reported as success.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlparse

from auth.audit_log import AuditAction, AuditLog
from auth.database import AuthDatabase
from auth.messages import (
    GENERIC_ACTION_ERROR,
    INVALID_ACTION_CODE,
    LINK_NO_LONGER_VALID,
    PASSWORD_CHANGE_FAILED,
    UNKNOWN_ACTION,
)
from auth.tokens import ActionTokenService
from auth.types import ActionMode, TokenType
from clients.identity_client import IdentityClient

logger = logging.getLogger(__name__)

LOGIN_URL = "/login"
HOME_URL = "/"


@dataclass(frozen=True)
class ActionLink:
    """Parameters of an inbound action link."""

    mode: str | None
    oob_code: str | None
    continue_url: str | None = None

    @classmethod
    def from_url(cls, url: str) -> "ActionLink":
        query = parse_qs(urlparse(url).query)

        def first(name: str) -> str | None:
            values = query.get(name)
            return values[0] if values else None

        return cls(
            mode=first("mode"),
            oob_code=first("oobCode"),
            continue_url=first("continueUrl"),
        )


# Resolution of a code: exactly one of these three.


@dataclass(frozen=True)
class CustomToken:
    """Code is a valid action token issued by this service."""

    user_id: str
    email: str


@dataclass(frozen=True)
class NativeFallback:
    """Code should be handed to the credential store."""


@dataclass(frozen=True)
class InvalidAction:
    """Link can't be acted on at all."""

    reason: str


ActionResolution = CustomToken | NativeFallback | InvalidAction


class ActionStatus(Enum):
    EMAIL_VERIFIED = "email_verified"
    EMAIL_RECOVERED = "email_recovered"
    PASSWORD_FORM = "password_form"
    PASSWORD_CHANGED = "password_changed"
    ERROR = "error"


@dataclass(frozen=True)
class ActionOutcome:
    """What the client should show next."""

    status: ActionStatus
    mode: ActionMode | None = None
    email: str | None = None
    redirect_url: str | None = None
    via_custom_token: bool = False
    error: str | None = None

    @classmethod
    def failed(cls, message: str, mode: ActionMode | None = None) -> "ActionOutcome":
        return cls(status=ActionStatus.ERROR, mode=mode, redirect_url=LOGIN_URL, error=message)


def _parse_mode(mode: str | None) -> ActionMode | None:
    try:
        return ActionMode(mode)
    except ValueError:
        return None


class ActionHandler:
    """Dual-path completion of email action links."""

    def __init__(
        self,
        tokens: ActionTokenService,
        auth_db: AuthDatabase,
        identity: IdentityClient,
        audit: AuditLog,
    ):
        self._tokens = tokens
        self._auth_db = auth_db
        self._identity = identity
        self._audit = audit

    def resolve(self, mode: str | None, oob_code: str | None) -> ActionResolution:
        """Decide which system owns the code. Does not consume anything."""
        if not oob_code:
            return InvalidAction(INVALID_ACTION_CODE)

        action_mode = _parse_mode(mode)
        if action_mode is None:
            return InvalidAction(UNKNOWN_ACTION)

        token_type = action_mode.token_type
        if token_type is None:
            return NativeFallback()

        validation = self._tokens.validate(oob_code, token_type)
        if validation.valid and validation.user_id and validation.email:
            return CustomToken(user_id=validation.user_id, email=validation.email)

        logger.info(f"Action code not a live custom token ({validation.error}), using provider")
        return NativeFallback()

    def handle(self, link: ActionLink) -> ActionOutcome:
        """First step for any action link."""
        try:
            return self._handle(link)
        except Exception:
            logger.exception("Action handling error")
            return ActionOutcome.failed(GENERIC_ACTION_ERROR, mode=_parse_mode(link.mode))

    def _handle(self, link: ActionLink) -> ActionOutcome:
        resolution = self.resolve(link.mode, link.oob_code)

        if isinstance(resolution, InvalidAction):
            return ActionOutcome.failed(resolution.reason, mode=_parse_mode(link.mode))

        mode = ActionMode(link.mode)

        if isinstance(resolution, CustomToken):
            return self._complete_custom(mode, link, resolution)

        return self._complete_native(mode, link)

    def _complete_custom(
        self, mode: ActionMode, link: ActionLink, token: CustomToken
    ) -> ActionOutcome:
        if mode is ActionMode.RESET_PASSWORD:
            # Consumed only when the new password is submitted
            return ActionOutcome(
                status=ActionStatus.PASSWORD_FORM,
                mode=mode,
                email=token.email,
                via_custom_token=True,
            )

        if not self._auth_db.mark_email_verified(token.user_id):
            # Token stays unused so the link works once the profile exists
            logger.error(f"No profile for {token.user_id}, email verification not recorded")
            return ActionOutcome.failed(GENERIC_ACTION_ERROR, mode=mode)
        self._tokens.mark_used(link.oob_code)
        self._audit.record(
            AuditAction.EMAIL_VERIFIED,
            user_id=token.user_id,
            user_email=token.email,
        )
        return ActionOutcome(
            status=ActionStatus.EMAIL_VERIFIED,
            mode=mode,
            email=token.email,
            redirect_url=link.continue_url or HOME_URL,
            via_custom_token=True,
        )

    def _complete_native(self, mode: ActionMode, link: ActionLink) -> ActionOutcome:
        if mode is ActionMode.RESET_PASSWORD:
            email = self._identity.verify_password_reset_code(link.oob_code)
            return ActionOutcome(status=ActionStatus.PASSWORD_FORM, mode=mode, email=email)

        if mode is ActionMode.VERIFY_EMAIL:
            email = self._identity.apply_action_code(link.oob_code)
            return ActionOutcome(
                status=ActionStatus.EMAIL_VERIFIED,
                mode=mode,
                email=email,
                redirect_url=link.continue_url or HOME_URL,
            )

        email = self._identity.apply_action_code(link.oob_code)
        return ActionOutcome(
            status=ActionStatus.EMAIL_RECOVERED,
            mode=mode,
            email=email,
            redirect_url=LOGIN_URL,
        )

    def submit_new_password(self, oob_code: str, new_password: str) -> ActionOutcome:
        """Second step of a password reset.

        A code that was issued here must still validate at submit time. The
        password itself is always set through the credential store.
        """
        mode = ActionMode.RESET_PASSWORD
        try:
            via_custom = self._tokens.is_custom_token(oob_code, TokenType.PASSWORD_RESET)
            if via_custom:
                validation = self._tokens.validate(oob_code, TokenType.PASSWORD_RESET)
                if not validation.valid:
                    logger.info(f"Password reset token rejected at submit: {validation.error}")
                    return ActionOutcome.failed(LINK_NO_LONGER_VALID, mode=mode)

            email = self._identity.confirm_password_reset(oob_code, new_password)

            if via_custom:
                self._tokens.mark_used(oob_code)
        except Exception:
            logger.exception("Password reset error")
            return ActionOutcome.failed(PASSWORD_CHANGE_FAILED, mode=mode)

        return ActionOutcome(
            status=ActionStatus.PASSWORD_CHANGED,
            mode=mode,
            email=email,
            redirect_url=LOGIN_URL,
            via_custom_token=via_custom,
        )
