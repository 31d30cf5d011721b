"""Throttling for token re-issue flows.

Two mechanisms, both in Valkey:
- Sliding-window attempt counter (check_rate_limit): each attempt resets the
  expiry, so hammering extends the lockout.
- Cooldown lock (acquire_cooldown): SET NX EX. Only the first caller inside
  the window proceeds, which serializes invalidate-then-issue for one
  (account, token type) and absorbs double-clicks.
"""

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from auth.types import TokenType


class RateLimiter:
    """Rate limiting and cooldowns for auth emails using Valkey."""

    RESET_KEY_PREFIX = "ratelimit:password_reset:"
    COOLDOWN_KEY_PREFIX = "cooldown:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.reset_rate_limit_window_minutes * 60

    def _reset_key(self, email: str) -> str:
        """Rate limit key for email (normalized to lowercase)."""
        return f"{self.RESET_KEY_PREFIX}{email.lower().strip()}"

    def _cooldown_key(self, subject: str, token_type: TokenType) -> str:
        return f"{self.COOLDOWN_KEY_PREFIX}{token_type.value}:{subject}"

    def check_rate_limit(self, email: str) -> None:
        """Count a password reset attempt for this email.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._reset_key(email)
        count = self._valkey.incr(key)

        # Reset TTL on every attempt (sliding window)
        self._valkey.expire(key, self._window_seconds)

        if count > self._config.reset_rate_limit_attempts:
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

    def reset_rate_limit(self, email: str) -> None:
        """Clear the attempt counter (after a successful password change)."""
        self._valkey.delete(self._reset_key(email))

    def acquire_cooldown(self, subject: str, token_type: TokenType) -> None:
        """Claim the re-issue slot for subject + token type.

        Raises:
            RateLimitedError: If another request holds the slot.
        """
        key = self._cooldown_key(subject, token_type)
        if not self._valkey.set_if_absent(key, "1", self._config.resend_cooldown_seconds):
            ttl = self._valkey.ttl(key)
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))
