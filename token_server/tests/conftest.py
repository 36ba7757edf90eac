"""
Pytest configuration for token_server. Keys are generated per session; nothing touches the filesystem
except tests that use tmp_path explicitly.
"""
import os

# Keep module-level config away from real deployment settings during tests
os.environ.pop("OAUTH_CLIENTS", None)
os.environ["OAUTH_REFRESH_TOKEN_SWEEP_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient

from token_server import rate_limit
from token_server.access_tokens import AccessTokenIssuer
from token_server.client_registry import StaticClientRegistry
from token_server.grants import TokenService
from token_server.keys import generate_private_key
from token_server.main import create_app
from token_server.models import Client
from token_server.refresh_tokens import InMemoryRefreshTokenStore

TEST_ISSUER = "https://issuer.test"
TEST_AUDIENCE = "https://api.test"


@pytest.fixture(scope="session")
def private_key():
    return generate_private_key()


@pytest.fixture(scope="session")
def other_private_key():
    return generate_private_key()


@pytest.fixture
def issuer(private_key):
    return AccessTokenIssuer(
        private_key,
        private_key.public_key(),
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        expires_in=3600,
        kid="test-key",
    )


@pytest.fixture
def registry():
    return StaticClientRegistry(
        [
            Client("c1", "s1", ("read", "write")),
            Client("c2", "s2", ("read", "write", "admin")),
        ]
    )


@pytest.fixture
def store():
    return InMemoryRefreshTokenStore()


@pytest.fixture
def service(registry, issuer, store):
    return TokenService(registry, issuer, store)


@pytest.fixture
def app(service):
    return create_app(service, rate_limit_per_minute=100, enable_client_generator=False, sweep_interval=0)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture(autouse=True)
def _reset_rate_limit():
    rate_limit.reset()
    yield
    rate_limit.reset()
