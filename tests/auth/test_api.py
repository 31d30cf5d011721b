"""Tests for auth API routes.

Full app (middleware, error handlers, router) around the real services over
the in-memory stores; only the credential store and Mailgun are mocked.
"""

import pytest
from starlette.testclient import TestClient

from auth.database import AUTH_TOKENS
from auth.exceptions import PasswordResetError
from auth.messages import provider_error_message
from auth.types import TokenType, UserProfile
from clients.identity_client import CredentialStoreError
from main import build_app
from tests.fakes import TEST_PASSWORD, TEST_USER_EMAIL, TEST_USER_ID


@pytest.fixture
def app(auth_service, action_handler, session_manager):
    return build_app(auth_service, action_handler, session_manager, secure_cookies=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def logged_in_client(client):
    response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def profile(auth_db, clock):
    profile = UserProfile(id=TEST_USER_ID, email=TEST_USER_EMAIL, created_at=clock())
    auth_db.create_profile(profile)
    return profile


def live_tokens(store, token_type: TokenType) -> list[dict]:
    return [
        doc for doc in store.all(AUTH_TOKENS)
        if doc["type"] == token_type.value and not doc["used"]
    ]


class TestSignup:
    def test_signup_sets_session_cookie(self, client, store):
        response = client.post(
            "/auth/signup",
            json={"email": TEST_USER_EMAIL, "password": TEST_PASSWORD, "is_vendor": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"] == {
            "id": TEST_USER_ID,
            "email": TEST_USER_EMAIL,
            "emailVerified": False,
        }
        assert "session_token" in response.cookies
        assert len(live_tokens(store, TokenType.EMAIL_VERIFICATION)) == 1

    def test_device_headers_recorded_on_token(self, client, store):
        client.post(
            "/auth/signup",
            json={"email": TEST_USER_EMAIL, "password": TEST_PASSWORD},
            headers={
                "User-Agent": "Mozilla/5.0",
                "Accept-Language": "fi-FI",
                "X-Screen-Size": "390x844",
            },
        )

        [token] = live_tokens(store, TokenType.EMAIL_VERIFICATION)
        assert token["deviceInfo"]["userAgent"] == "Mozilla/5.0"
        assert token["deviceInfo"]["language"] == "fi-FI"
        assert token["deviceInfo"]["screenSize"] == "390x844"

    def test_existing_email_maps_provider_code(self, client, mock_identity):
        mock_identity.create_account.side_effect = CredentialStoreError("EMAIL_EXISTS")

        response = client.post("/auth/signup", json={"email": TEST_USER_EMAIL, "password": TEST_PASSWORD})

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "EMAIL_EXISTS",
            "message": provider_error_message("EMAIL_EXISTS"),
        }
        assert "session_token" not in response.cookies

    def test_short_password_rejected(self, client, mock_identity):
        response = client.post("/auth/signup", json={"email": TEST_USER_EMAIL, "password": "123"})

        assert response.status_code == 422
        mock_identity.create_account.assert_not_called()


class TestLoginLogout:
    def test_login_then_me(self, logged_in_client):
        response = logged_in_client.get("/auth/me")

        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == TEST_USER_ID

    def test_wrong_credentials(self, client, mock_identity):
        mock_identity.sign_in.side_effect = CredentialStoreError("INVALID_LOGIN_CREDENTIALS")

        response = client.post("/auth/login", json={"email": TEST_USER_EMAIL, "password": "wrong"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_LOGIN_CREDENTIALS"

    def test_logout_ends_session(self, logged_in_client):
        response = logged_in_client.post("/auth/logout")

        assert response.status_code == 200
        assert logged_in_client.get("/auth/me").status_code == 401

    def test_logout_without_session(self, client):
        assert client.post("/auth/logout").status_code == 200

    def test_response_meta_carries_request_id(self, logged_in_client):
        response = logged_in_client.get("/auth/me")

        assert response.json()["meta"]["request_id"] == response.headers["X-Request-ID"]


class TestProtectedRoutes:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("get", "/auth/me"),
            ("post", "/auth/resend-verification"),
            ("get", "/auth/audit-log"),
        ],
    )
    def test_anonymous_rejected(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_stale_cookie_reports_expired_session(self, client):
        client.cookies.set("session_token", "long-gone")

        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "SESSION_EXPIRED"

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestResendVerification:
    def test_resend(self, logged_in_client, store, mock_email_client):
        response = logged_in_client.post("/auth/resend-verification")

        assert response.status_code == 200
        assert response.json()["data"] == {"sent": True}
        assert len(live_tokens(store, TokenType.EMAIL_VERIFICATION)) == 1
        mock_email_client.send_verification_email.assert_called_once()

    def test_double_click_throttled(self, logged_in_client):
        logged_in_client.post("/auth/resend-verification")

        response = logged_in_client.post("/auth/resend-verification")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0


class TestResetPassword:
    def test_known_and_unknown_email_answer_alike(self, client, store, profile):
        known = client.post("/auth/reset-password", json={"email": TEST_USER_EMAIL})
        unknown = client.post("/auth/reset-password", json={"email": "tuntematon@bilo.fi"})

        assert known.status_code == unknown.status_code == 200
        assert known.json()["data"] == unknown.json()["data"]
        assert len(live_tokens(store, TokenType.PASSWORD_RESET)) == 1

    def test_background_failure_does_not_reach_client(self, client, auth_service, monkeypatch):
        def failing_reset(email, device_info=None):
            raise PasswordResetError("failed")

        monkeypatch.setattr(auth_service, "reset_password", failing_reset)

        response = client.post("/auth/reset-password", json={"email": TEST_USER_EMAIL})

        assert response.status_code == 200


class TestChangePassword:
    def test_change_password(self, logged_in_client, mock_identity):
        response = logged_in_client.post(
            "/auth/change-password",
            json={"current_password": TEST_PASSWORD, "new_password": "uusi-salasana"},
        )

        assert response.status_code == 200
        mock_identity.change_password.assert_called_once_with("id-token-1", "uusi-salasana")

    def test_wrong_current_password(self, logged_in_client, mock_identity):
        mock_identity.reauthenticate.side_effect = CredentialStoreError("INVALID_LOGIN_CREDENTIALS")

        response = logged_in_client.post(
            "/auth/change-password",
            json={"current_password": "wrong", "new_password": "uusi-salasana"},
        )

        assert response.status_code == 400


class TestActionLinks:
    def test_custom_verification_link(self, client, tokens, profile):
        token = tokens.issue(TEST_USER_EMAIL, TEST_USER_ID, TokenType.EMAIL_VERIFICATION)

        response = client.get("/auth/action", params={"mode": "verifyEmail", "oobCode": token})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "email_verified"
        assert data["viaCustomToken"] is True
        assert data["redirectUrl"] == "/"

    def test_invalid_link(self, client):
        response = client.get("/auth/action", params={"mode": "verifyEmail"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "INVALID_TOKEN"
        assert body["data"]["status"] == "error"
        assert body["data"]["redirectUrl"] == "/login"

    def test_reset_flow(self, client, tokens, mock_identity):
        token = tokens.issue(TEST_USER_EMAIL, TEST_USER_ID, TokenType.PASSWORD_RESET)

        form = client.get("/auth/action", params={"mode": "resetPassword", "oobCode": token})
        assert form.json()["data"]["status"] == "password_form"

        done = client.post(
            "/auth/action/reset-password",
            json={"oob_code": token, "new_password": "uusi-salasana"},
        )
        assert done.json()["data"]["status"] == "password_changed"

        again = client.post(
            "/auth/action/reset-password",
            json={"oob_code": token, "new_password": "toinen-salasana"},
        )
        assert again.status_code == 400
        mock_identity.confirm_password_reset.assert_called_once()


class TestVerifyEmailAndAuditLog:
    def test_verify_email_then_audit_log(self, logged_in_client, profile):
        verify = logged_in_client.post("/auth/verify-email", json={"action_code": "provider-code"})
        assert verify.status_code == 200

        response = logged_in_client.get("/auth/audit-log")

        actions = [entry["action"] for entry in response.json()["data"]["entries"]]
        assert set(actions) == {"user_login", "email_verified"}
