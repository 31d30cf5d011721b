"""Authentication configuration."""

from pydantic import BaseModel, Field

from auth.types import TokenType


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Token lifetimes are in hours, throttling windows in seconds or minutes,
    whichever reads more naturally for the setting.
    """

    # Action tokens
    email_verification_ttl_hours: int = Field(
        default=24,
        description="How long email verification links remain valid",
        ge=1,
        le=168,
    )
    password_reset_ttl_hours: int = Field(
        default=1,
        description="How long password reset links remain valid",
        ge=1,
        le=24,
    )
    use_custom_email_provider: bool = Field(
        default=True,
        description="Issue own tokens and send via Mailgun instead of provider emails",
    )

    # Session settings
    session_expiry_hours: int = Field(
        default=720,  # 30 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )

    # Throttling
    resend_cooldown_seconds: int = Field(
        default=60,
        description="Minimum gap between token re-issues for one account and token type",
        ge=1,
        le=3600,
    )
    reset_rate_limit_attempts: int = Field(
        default=5,
        description="Max password reset requests per email per window",
        ge=1,
        le=20,
    )
    reset_rate_limit_window_minutes: int = Field(
        default=15,
        description="Password reset rate limit window",
        ge=5,
        le=60,
    )

    # Application
    action_base_url: str = Field(
        default="https://bilo.fi/auth/action",
        description="Base URL of the action link handler",
    )
    app_name: str = Field(
        default="Bilo",
        description="Application name for emails",
    )

    def ttl_hours_for(self, token_type: TokenType) -> int:
        """Default lifetime for a token type."""
        if token_type is TokenType.PASSWORD_RESET:
            return self.password_reset_ttl_hours
        return self.email_verification_ttl_hours
