"""Shared test fixtures for the auth test suite.

Postgres is replaced by the in-memory store in tests/fakes.py and Valkey by
fakeredis; the credential store and Mailgun are Mocks.
"""

from unittest.mock import Mock

import fakeredis
import pytest

from auth.action_handler import ActionHandler
from auth.audit_log import AuditLog
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.rate_limiter import RateLimiter
from auth.service import AuthService
from auth.session import SessionContext, SessionManager
from auth.tokens import ActionTokenService
from clients.email_client import DeliveryOutcome, MailgunClient
from clients.identity_client import AccountInfo, IdentityClient
from clients.valkey_client import ValkeyClient
from tests.fakes import (
    TEST_USER_EMAIL,
    TEST_USER_ID,
    FakeClock,
    InMemoryDocumentStore,
    make_account,
)


# =============================================================================
# INFRASTRUCTURE FAKES
# =============================================================================


@pytest.fixture
def clock():
    """Manually advanced UTC clock."""
    return FakeClock()


@pytest.fixture
def config():
    """Test auth config (custom email path, defaults otherwise)."""
    return AuthConfig(action_base_url="https://test.bilo.fi/auth/action")


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def valkey(fake_redis):
    return ValkeyClient(client=fake_redis)


# =============================================================================
# EXTERNAL SERVICE MOCKS
# =============================================================================


@pytest.fixture
def mock_identity():
    """Credential store mock with happy-path return values."""
    mock = Mock(spec=IdentityClient)
    account = make_account()
    mock.create_account.return_value = account
    mock.sign_in.return_value = account
    mock.reauthenticate.return_value = account
    mock.change_password.return_value = make_account(id_token="id-token-2")
    mock.lookup.return_value = AccountInfo(
        uid=TEST_USER_ID, email=TEST_USER_EMAIL, email_verified=True
    )
    mock.apply_action_code.return_value = TEST_USER_EMAIL
    mock.verify_password_reset_code.return_value = TEST_USER_EMAIL
    mock.confirm_password_reset.return_value = TEST_USER_EMAIL
    return mock


@pytest.fixture
def mock_email_client():
    mock = Mock(spec=MailgunClient)
    mock.send_verification_email.return_value = DeliveryOutcome(sent=True)
    mock.send_password_reset_email.return_value = DeliveryOutcome(sent=True)
    return mock


# =============================================================================
# REAL AUTH COMPONENTS
# =============================================================================


@pytest.fixture
def auth_db(store):
    return AuthDatabase(store)


@pytest.fixture
def tokens(auth_db, config, clock):
    return ActionTokenService(auth_db, config, clock=clock)


@pytest.fixture
def audit(auth_db, clock):
    return AuditLog(auth_db, clock=clock)


@pytest.fixture
def rate_limiter(valkey, config):
    return RateLimiter(valkey, config)


@pytest.fixture
def session_manager(valkey, config):
    return SessionManager(valkey, config)


@pytest.fixture
def auth_service(config, auth_db, mock_identity, tokens, mock_email_client, audit, rate_limiter, clock):
    return AuthService(
        config=config,
        auth_db=auth_db,
        identity=mock_identity,
        tokens=tokens,
        email_client=mock_email_client,
        audit=audit,
        rate_limiter=rate_limiter,
        clock=clock,
    )


@pytest.fixture
def action_handler(tokens, auth_db, mock_identity, audit):
    return ActionHandler(tokens=tokens, auth_db=auth_db, identity=mock_identity, audit=audit)


@pytest.fixture
def session():
    """Anonymous, unbound session context."""
    return SessionContext()


@pytest.fixture
def signed_in_session():
    return SessionContext(account=make_account(), session_token="existing-session")
