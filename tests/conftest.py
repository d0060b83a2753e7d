"""
Shared fixtures for the Business Profile integration tests.

No test talks to the network: FakeSession stands in for requests.Session
and replays a queue of scripted responses (or raises scripted exceptions).
"""

import json
from typing import Any, List

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from brandhub.infrastructure.config import (
    ApiSettings,
    OAuthSettings,
    ServiceAccountSettings,
    Settings,
    WebSettings,
)
from brandhub.infrastructure.config.settings import DEFAULT_TOKEN_URI


# =============================================================================
# FAKE HTTP
# =============================================================================

class FakeResponse:
    """The subset of requests.Response the integration reads."""

    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        if payload is None:
            self.text = ""
        elif isinstance(payload, str):
            self.text = payload
        else:
            self.text = json.dumps(payload)

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """
    Replays scripted responses in order, for request() and post() alike.

    Each scripted item is a FakeResponse, an (status, payload) tuple, or an
    exception instance to raise.
    """

    def __init__(self, *script):
        self.script: List[Any] = list(script)
        self.calls: List[dict] = []

    def queue(self, *script):
        self.script.extend(script)
        return self

    def _next(self):
        if not self.script:
            raise AssertionError("unexpected HTTP call, script is exhausted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, tuple):
            return FakeResponse(*item)
        return item

    def request(self, method, url, headers=None, params=None, json=None, timeout=None):
        self.calls.append({
            "method": method,
            "url": url,
            "headers": headers or {},
            "params": params or {},
            "json": json,
            "timeout": timeout,
        })
        return self._next()

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({
            "method": "POST",
            "url": url,
            "data": data or {},
            "headers": headers or {},
            "timeout": timeout,
        })
        return self._next()

    @property
    def urls(self) -> List[str]:
        return [call["url"] for call in self.calls]


class Clock:
    """Settable clock for expiry tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def rsa_private_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def rsa_public_key(rsa_private_key) -> str:
    key = serialization.load_pem_private_key(rsa_private_key.encode(), password=None)
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


def make_settings(service_account: ServiceAccountSettings = None, oauth: OAuthSettings = None) -> Settings:
    """Settings independent of the process environment."""
    return Settings(
        oauth=oauth or OAuthSettings(
            client_id="client-id.apps.googleusercontent.com",
            client_secret="client-secret",
            redirect_uri="http://localhost:8000/api/google-business/auth/callback",
        ),
        service_account=service_account or ServiceAccountSettings(
            client_email="",
            private_key="",
            private_key_id="",
            token_uri=DEFAULT_TOKEN_URI,
            subject=None,
        ),
        api=ApiSettings(request_timeout_seconds=5.0, token_expiry_skew_seconds=60.0),
        web=WebSettings(app_url="http://localhost:8000", environment="development"),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()
