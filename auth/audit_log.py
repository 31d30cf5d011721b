"""Audit trail for account events.

Append-only entries in the audit_logs collection. Writing an entry is
best-effort: a failed write is logged and reported as False, never raised,
so an audit outage can't block signup, login or logout.
"""

import logging
from enum import Enum
from typing import Any, Callable

from auth.database import AuthDatabase
from auth.types import AuditLogEntry
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Account events that are recorded."""

    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    PASSWORD_CHANGED = "password_changed"
    EMAIL_VERIFIED = "email_verified"
    RESEND_VERIFICATION_EMAIL = "resend_verification_email"
    PASSWORD_RESET_REQUEST = "password_reset_request"


class AuditLog:
    """Append-only audit logger over the auth database."""

    def __init__(self, auth_db: AuthDatabase, clock: Callable = now_utc):
        self._auth_db = auth_db
        self._clock = clock

    def record(
        self,
        action: AuditAction,
        user_id: str,
        user_email: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Append an entry about a user. Returns False if the write failed."""
        entry = AuditLogEntry(
            user_id=user_id,
            user_email=user_email,
            action=action.value,
            entity="user",
            entity_id=user_id,
            details=details,
            timestamp=self._clock(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            self._auth_db.append_audit_entry(entry)
        except Exception:
            logger.exception(f"Failed to write audit entry {action.value} for {user_id}")
            return False
        return True

    def recent_entries(self, user_id: str, limit: int = 50) -> list[AuditLogEntry]:
        """Entries for one user, newest first."""
        return self._auth_db.get_audit_entries(user_id, limit=limit)
