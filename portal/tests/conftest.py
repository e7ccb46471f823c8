"""
Shared fixtures for portal tests.

Environment variables are set before any portal module is imported because
``portal.main`` builds its module-level app from the environment.
"""

import asyncio
import os
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient
from itsdangerous import TimestampSigner

TEST_TENANT_ID = "contoso.onmicrosoft.com"
TEST_CLIENT_ID = "11111111-2222-3333-4444-555555555555"
TEST_SESSION_SECRET = "test-session-secret-0123456789abcdef"

os.environ.update({
    "AZURE_TENANT_ID": TEST_TENANT_ID,
    "AZURE_CLIENT_ID": TEST_CLIENT_ID,
    "AZURE_CLIENT_SECRET": "test-client-secret",
    "REDIRECT_URL": "http://portal.test",
    "SESSION_SECRET": TEST_SESSION_SECRET,
    "ENVIRONMENT": "development",
})

from portal.auth.provider import IdentityProviderClient  # noqa: E402
from portal.config import Settings  # noqa: E402
from portal.main import create_app  # noqa: E402
from portal.models import AuthCodeRequest, AuthCodeUrlRequest, TokenExchangeResult  # noqa: E402
from portal.sessions import MemorySessionStore  # noqa: E402


GRANT_URL = "https://n143.network-auth.com/splash/grant"
CONTINUE_URL = "https://www.example.com/"
FAKE_AUTHORIZE_ENDPOINT = "https://login.example.com/authorize"
FAKE_LOGOUT_ENDPOINT = "https://login.example.com/logout"


class FakeIdentityProvider(IdentityProviderClient):
    """Records calls and returns canned provider responses."""

    def __init__(self):
        self.authorization_requests: List[AuthCodeUrlRequest] = []
        self.exchange_requests: List[Tuple[AuthCodeRequest, Optional[str]]] = []
        self.authorization_error: Optional[Exception] = None
        self.exchange_error: Optional[Exception] = None

    async def build_authorization_url(self, request: AuthCodeUrlRequest) -> str:
        self.authorization_requests.append(request)
        if self.authorization_error:
            raise self.authorization_error
        return f"{FAKE_AUTHORIZE_ENDPOINT}?{urlencode({'state': request.state})}"

    async def exchange_code(self, request: AuthCodeRequest, token_cache: Optional[str] = None) -> TokenExchangeResult:
        self.exchange_requests.append((request, token_cache))
        if self.exchange_error:
            raise self.exchange_error
        return TokenExchangeResult(
            id_token="header.payload.signature",
            id_token_claims={"preferred_username": "guest@contoso.com", "name": "Guest User"},
            account={"username": "guest@contoso.com", "name": "Guest User", "home_account_id": "oid.tid"},
            token_cache='{"AccessToken": {}}',
        )

    def end_session_url(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        return f"{FAKE_LOGOUT_ENDPOINT}?{urlencode({'post_logout_redirect_uri': post_logout_redirect_uri})}"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def mock_settings():
    """Settings for tests, independent of any .env file"""
    return Settings(
        AZURE_TENANT_ID=TEST_TENANT_ID,
        AZURE_CLIENT_ID=TEST_CLIENT_ID,
        AZURE_CLIENT_SECRET="test-client-secret",
        REDIRECT_URL="http://portal.test",
        SESSION_SECRET=TEST_SESSION_SECRET,
        ENVIRONMENT="development",
        PORTAL_TITLE="Guest Wi-Fi",
        SSID="Contoso-Guest",
        _env_file=None,
    )


@pytest.fixture
def fake_provider():
    return FakeIdentityProvider()


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def app(mock_settings, fake_provider, session_store):
    """Create test FastAPI application"""
    return create_app(
        settings=mock_settings,
        identity_provider=fake_provider,
        session_store=session_store,
    )


@pytest.fixture
def client(app):
    """Create test client"""
    return TestClient(app)


def read_session(client: TestClient, store: MemorySessionStore, cookie_name: str = "portal_session"):
    """Load the stored data for the client's session cookie, or None."""
    cookie = client.cookies.get(cookie_name)
    if not cookie:
        return None
    session_id = TimestampSigner(TEST_SESSION_SECRET).unsign(cookie).decode("utf-8")
    return asyncio.run(store.load(session_id))
