"""
Shared fixtures for AuthBridge tests.

Provides an in-memory provider adapter, a recording SSE sink, request
builders and test key material for identity token verification.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from fastapi import Request, Response
from fastapi.testclient import TestClient

from authbridge.app.auth.errors import TokenExchangeError
from authbridge.app.auth.providers.base import ProviderAdapter
from authbridge.app.config import Settings
from authbridge.app.main import create_app
from authbridge.app.models import CallbackParams, TokenSet
from authbridge.app.realtime.sessions import EventSink, SessionRegistry

DEFAULT_PROFILE = {"id": "42", "name": "Ada Lovelace", "given_name": "Ada"}
AUTHORIZE_URI = "https://provider.example/authorize?client_id=test-client"


# ============================================================================
# Test doubles
# ============================================================================

class FakeAdapter(ProviderAdapter):
    """Provider adapter that never leaves the process."""

    name = "fake"
    profile_field = "basicInfo"
    callback_methods = ["GET", "POST"]

    _UNSET = object()

    def __init__(
        self,
        profile: Any = _UNSET,
        exchange_error: Optional[Exception] = None,
        identity_error: Optional[Exception] = None,
        authorize_error: Optional[Exception] = None,
    ):
        self.profile = dict(DEFAULT_PROFILE) if profile is self._UNSET else profile
        self.exchange_error = exchange_error
        self.identity_error = identity_error
        self.authorize_error = authorize_error
        self.exchange_calls: List[CallbackParams] = []
        self.identity_calls: List[TokenSet] = []

    async def generate_authorization_uri(self, request: Request, response: Response) -> str:
        if self.authorize_error:
            raise self.authorize_error
        return AUTHORIZE_URI

    async def exchange_code(self, params: CallbackParams, request: Request) -> TokenSet:
        self.exchange_calls.append(params)
        if self.exchange_error:
            raise self.exchange_error
        return TokenSet(access_token=f"token-for-{params.code}")

    async def fetch_identity(self, token: TokenSet) -> Optional[Dict[str, Any]]:
        self.identity_calls.append(token)
        if self.identity_error:
            raise self.identity_error
        return self.profile


class RecordingSink(EventSink):
    """EventSink that also keeps every written chunk for assertions."""

    def __init__(self):
        super().__init__()
        self.chunks: List[str] = []

    def write(self, chunk: str) -> bool:
        accepted = super().write(chunk)
        if accepted:
            self.chunks.append(chunk)
        return accepted


def make_request(
    method: str = "GET",
    path: str = "/oauth2/fake/callback",
    query: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Request:
    """Build a bare Starlette request for calling handlers directly."""
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    if cookies:
        cookie_header = "; ".join(f"{k}={v}" for k, v in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode()))
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode(),
        "query_string": urlencode(query or {}).encode(),
        "headers": raw_headers,
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
        "root_path": "",
        "http_version": "1.1",
    }
    return Request(scope)


# ============================================================================
# Key material
# ============================================================================

def generate_rsa_keys():
    """Generate an RSA key pair (PEM strings) for signing id tokens"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return private_pem.decode(), public_pem.decode()


def generate_ec_private_key() -> str:
    """Generate a P-256 private key (PEM) like the one Apple issues"""
    private_key = ec.generate_private_key(ec.SECP256R1(), default_backend())
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode()


TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_rsa_keys()
TEST_KID = "test-key-id-2024"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings with no real providers configured"""
    return Settings(
        APPLICATION_URL="http://testserver",
        SSE_CORS_ORIGIN="*",
        ADD_FEEDBACK_ROUTES=True,
        _env_file=None,
    )


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def app(settings, registry, adapter):
    return create_app(settings, providers=[adapter], registry=registry)


@pytest.fixture
def client(app):
    return TestClient(app)
