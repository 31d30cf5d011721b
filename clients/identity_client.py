"""
Credential store client for the Identity Toolkit REST API (Firebase Auth).

Owns password hashing, account records and ID token issuance. This client
never retries and never rewrites provider error codes: a rejected call raises
CredentialStoreError carrying the provider's own code so callers can map it
to a user-facing message.
"""

import logging
from typing import Any

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# ID tokens live one hour; these codes mean "refresh and try again"
EXPIRED_ID_TOKEN_CODES = frozenset({"TOKEN_EXPIRED", "INVALID_ID_TOKEN"})


class CredentialStoreError(Exception):
    """Provider rejected a request. `code` is the provider's error code."""

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        self.message = message or code
        super().__init__(f"{code}: {self.message}" if message else code)


class SignedInAccount(BaseModel):
    """Credentials for an authenticated account."""

    uid: str
    email: str
    email_verified: bool = False
    id_token: str
    refresh_token: str


class RefreshedTokens(BaseModel):
    """Fresh credentials from exchanging a refresh token."""

    uid: str
    id_token: str
    refresh_token: str


class AccountInfo(BaseModel):
    """Account state as reported by the provider."""

    uid: str
    email: str
    email_verified: bool


class IdentityClient:
    """Identity Toolkit REST operations used by the auth service."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout: int = 10,
    ):
        """
        Args:
            api_key: Web API key of the identity project
            base_url: API root (override for the local emulator)
            token_url: Secure Token endpoint for refreshing ID tokens
            timeout: Request timeout in seconds

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.timeout = timeout

    def _post(self, operation: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST JSON to accounts:<operation> and return the decoded body."""
        return self._send(f"{self.base_url}/accounts:{operation}", operation, json=payload)

    def _send(self, url: str, operation: str, **request_kwargs: Any) -> dict[str, Any]:
        """
        POST to a provider endpoint and return the decoded body.

        Raises:
            CredentialStoreError: Provider error, or NETWORK_ERROR when the
                provider couldn't be reached.
        """
        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                timeout=self.timeout,
                **request_kwargs,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Identity provider unreachable ({operation}): {e}")
            raise CredentialStoreError("NETWORK_ERROR", str(e))

        try:
            body = response.json()
        except ValueError:
            logger.error(f"Identity provider returned invalid JSON ({operation})")
            raise CredentialStoreError("INVALID_RESPONSE", response.text[:200])

        if not response.ok:
            error = body.get("error") if isinstance(body, dict) else None
            raw = error.get("message") if isinstance(error, dict) else None
            if not isinstance(raw, str):
                raw = "UNKNOWN_ERROR"
            code, _, detail = raw.partition(" : ")
            logger.info(f"Identity provider rejected {operation}: {code}")
            raise CredentialStoreError(code.strip(), detail.strip() or None)

        return body

    @staticmethod
    def _account(body: dict[str, Any], email_verified: bool = False) -> SignedInAccount:
        return SignedInAccount(
            uid=body["localId"],
            email=body["email"],
            email_verified=email_verified,
            id_token=body["idToken"],
            refresh_token=body["refreshToken"],
        )

    def create_account(self, email: str, password: str) -> SignedInAccount:
        """Create an email/password account and sign it in."""
        body = self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._account(body)

    def sign_in(self, email: str, password: str) -> SignedInAccount:
        """Sign in with email and password."""
        body = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        info = self.lookup(body["idToken"])
        return self._account(body, email_verified=info.email_verified)

    def reauthenticate(self, email: str, password: str) -> SignedInAccount:
        """Prove knowledge of the current password before a sensitive change."""
        return self.sign_in(email, password)

    def lookup(self, id_token: str) -> AccountInfo:
        """Fetch current account state for a signed-in user."""
        body = self._post("lookup", {"idToken": id_token})
        users = body.get("users") or []
        if not users:
            raise CredentialStoreError("USER_NOT_FOUND")
        user = users[0]
        return AccountInfo(
            uid=user["localId"],
            email=user.get("email", ""),
            email_verified=bool(user.get("emailVerified", False)),
        )

    def refresh(self, refresh_token: str) -> RefreshedTokens:
        """Exchange a refresh token for a new ID token."""
        body = self._send(
            self.token_url,
            "token",
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return RefreshedTokens(
            uid=body["user_id"],
            id_token=body["id_token"],
            refresh_token=body["refresh_token"],
        )

    def send_email_verification(self, id_token: str, continue_url: str | None = None) -> None:
        """Ask the provider to send its own verification email."""
        payload: dict[str, Any] = {"requestType": "VERIFY_EMAIL", "idToken": id_token}
        if continue_url:
            payload["continueUrl"] = continue_url
        self._post("sendOobCode", payload)

    def send_password_reset(self, email: str, continue_url: str | None = None) -> None:
        """Ask the provider to send its own password reset email."""
        payload: dict[str, Any] = {"requestType": "PASSWORD_RESET", "email": email}
        if continue_url:
            payload["continueUrl"] = continue_url
        self._post("sendOobCode", payload)

    def apply_action_code(self, oob_code: str) -> str:
        """Apply a verify-email or recover-email code. Returns the account email."""
        body = self._post("update", {"oobCode": oob_code})
        return body.get("email", "")

    def verify_password_reset_code(self, oob_code: str) -> str:
        """Check a reset code without consuming it. Returns the account email."""
        body = self._post("resetPassword", {"oobCode": oob_code})
        return body.get("email", "")

    def confirm_password_reset(self, oob_code: str, new_password: str) -> str:
        """Set a new password using a reset code. Returns the account email."""
        body = self._post("resetPassword", {"oobCode": oob_code, "newPassword": new_password})
        return body.get("email", "")

    def change_password(self, id_token: str, new_password: str) -> SignedInAccount:
        """Change the password of a signed-in account. Returns fresh credentials."""
        body = self._post(
            "update",
            {"idToken": id_token, "password": new_password, "returnSecureToken": True},
        )
        info = self.lookup(body["idToken"])
        return self._account(body, email_verified=info.email_verified)

    def delete_account(self, id_token: str) -> None:
        """Delete the signed-in account."""
        self._post("delete", {"idToken": id_token})
