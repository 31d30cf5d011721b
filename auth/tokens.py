"""Single-use action tokens for email verification and password reset.

Tokens are opaque capabilities stored in auth_tokens. Lifecycle:

    issue -> validate (any number of times) -> mark_used    (consumed)
    issue -> invalidate                                     (superseded)

validate() never consumes. Callers run validate -> act -> mark_used so a
failed action doesn't burn the link. mark_used() is a compare-and-set on
used=false, so when two redemptions race only one of them gets True back.

invalidate() followed by issue() is two independent round trips; callers
that need "at most one live token" serialize them per (user, type).
"""

import logging
import secrets
from datetime import datetime
from typing import Callable
from urllib.parse import urlencode

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.types import ActionMode, AuthToken, DeviceInfo, TokenType, TokenValidation
from utils.timezone import hours_after, now_utc

logger = logging.getLogger(__name__)

TOKEN_NOT_FOUND = "Token not found"
TOKEN_ALREADY_USED = "Token already used"
TOKEN_EXPIRED = "Token expired"

REPLACED_WITH_NEW_TOKEN = "replaced_with_new_token"


class ActionTokenService:
    """Issues and adjudicates action tokens."""

    def __init__(
        self,
        auth_db: AuthDatabase,
        config: AuthConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._auth_db = auth_db
        self._config = config
        self._clock = clock

    def issue(
        self,
        email: str,
        user_id: str,
        token_type: TokenType,
        ttl_hours: float | None = None,
        device_info: DeviceInfo | None = None,
    ) -> str:
        """Create and store a new unused token.

        Does not touch existing tokens; call invalidate() first to replace.

        Args:
            ttl_hours: Lifetime; defaults to the configured value for the type.

        Returns:
            The token string, to be embedded in an action link.
        """
        if ttl_hours is None:
            ttl_hours = self._config.ttl_hours_for(token_type)
        if ttl_hours <= 0:
            raise ValueError("ttl_hours must be positive")

        now = self._clock()
        token_value = secrets.token_urlsafe(32)
        token = AuthToken(
            token=token_value,
            user_id=user_id,
            email=email,
            type=token_type,
            created_at=now,
            expires_at=hours_after(now, ttl_hours),
            used=False,
            device_info=device_info or DeviceInfo(),
        )
        self._auth_db.store_token(token)
        logger.info(f"Issued {token_type.value} token for user {user_id}")
        return token_value

    def invalidate(self, user_id: str, token_type: TokenType) -> int:
        """Mark every unused token of this type for this user as used.

        Each token is updated on its own; an interruption can leave some
        invalidated and some not. Tokens consumed concurrently are skipped.

        Returns:
            Number of tokens this call invalidated (0 when none were live).
        """
        now = self._clock()
        count = 0
        for doc_id, _token in self._auth_db.find_unused_tokens(user_id, token_type):
            if self._auth_db.claim_token(doc_id, now, invalidated_reason=REPLACED_WITH_NEW_TOKEN):
                count += 1

        if count:
            logger.info(f"Invalidated {count} {token_type.value} token(s) for user {user_id}")
        return count

    def validate(self, token: str, token_type: TokenType) -> TokenValidation:
        """Check a token without consuming it.

        Order: exists (with this type), unused, not expired. First failure wins.
        A token expiring exactly now is still valid.
        """
        if not token:
            return TokenValidation(valid=False, error=TOKEN_NOT_FOUND)

        found = self._auth_db.find_token(token, token_type)
        if found is None:
            return TokenValidation(valid=False, error=TOKEN_NOT_FOUND)

        _doc_id, auth_token = found
        if auth_token.used:
            return TokenValidation(valid=False, error=TOKEN_ALREADY_USED)

        if auth_token.expires_at < self._clock():
            return TokenValidation(valid=False, error=TOKEN_EXPIRED)

        return TokenValidation(
            valid=True,
            user_id=auth_token.user_id,
            email=auth_token.email,
        )

    def mark_used(self, token: str) -> bool:
        """Consume a token of any type.

        Returns:
            True if this call consumed it. False if it doesn't exist or was
            already used, including by a concurrent caller.
        """
        found = self._auth_db.find_token(token)
        if found is None:
            return False

        doc_id, auth_token = found
        claimed = self._auth_db.claim_token(doc_id, self._clock())
        if not claimed:
            logger.warning(
                f"{auth_token.type.value} token for user {auth_token.user_id} was already consumed"
            )
        return claimed

    def is_custom_token(self, token: str, token_type: TokenType) -> bool:
        """Whether this code was issued here (in any state), as opposed to the provider."""
        return bool(token) and self._auth_db.find_token(token, token_type) is not None

    def build_action_link(
        self, mode: ActionMode, token: str, continue_url: str | None = None
    ) -> str:
        """Link that delivers a token to the action handler."""
        params = {"mode": mode.value, "oobCode": token}
        if continue_url:
            params["continueUrl"] = continue_url
        return f"{self._config.action_base_url}?{urlencode(params)}"
