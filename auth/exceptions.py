"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class NotAuthenticatedError(AuthError):
    """Operation needs a signed-in account and the session has none."""

    def __init__(self, message: str = "No user logged in"):
        super().__init__(message)


class PasswordResetError(AuthError):
    """
    Password reset request failed.

    Carries only a generic user-facing message. Never reveals whether the
    email belongs to an account or what went wrong internally.
    """
