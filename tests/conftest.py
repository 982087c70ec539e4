# Assumptions:
# - Using pytest with pytest-asyncio for async tests
# - RSA key pairs are generated once per session
# - HTTP traffic is served by httpx.MockTransport handlers

import json
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from authkit.credential.models import Certificate
from authkit.http.client import HttpClient

PROJECT_ID = "project-id"
CLIENT_EMAIL = "svc@project-id.iam.gserviceaccount.com"
KID = "key-id-1"


def _private_pem(key: rsa.RSAPrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def _public_pem(key: rsa.RSAPrivateKey) -> str:
    return (
        key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture(scope="session")
def rsa_private_key():
    """Generate test RSA private key"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key():
    """Generate a second, unrelated RSA private key"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key):
    return _private_pem(rsa_private_key)


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key):
    return _public_pem(rsa_private_key)


@pytest.fixture(scope="session")
def other_public_key_pem(other_private_key):
    return _public_pem(other_private_key)


@pytest.fixture
def certificate(private_key_pem):
    return Certificate(project_id=PROJECT_ID, client_email=CLIENT_EMAIL, private_key=private_key_pem)


@pytest.fixture
def service_account_json(private_key_pem):
    return {
        "type": "service_account",
        "project_id": PROJECT_ID,
        "private_key": private_key_pem,
        "client_email": CLIENT_EMAIL,
    }


@pytest.fixture
def make_id_token(rsa_private_key):
    """Factory for ID tokens signed with the session key"""

    def factory(
        issuer_prefix: str = "https://securetoken.google.com/",
        kid: str | None = KID,
        key=None,
        **overrides,
    ) -> str:
        now = int(time.time())
        payload = {
            "aud": PROJECT_ID,
            "iss": f"{issuer_prefix}{PROJECT_ID}",
            "sub": "user-123",
            "iat": now - 10,
            "exp": now + 3600,
            "auth_time": now - 10,
        }
        payload.update(overrides)
        payload = {key_: value for key_, value in payload.items() if value is not None}
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, key or rsa_private_key, algorithm="RS256", headers=headers)

    return factory


def _json_response(payload, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode(),
        headers={"content-type": "application/json", **(headers or {})},
    )


@pytest.fixture
def json_response():
    """Factory for JSON httpx responses"""
    return _json_response


@pytest.fixture
def mock_transport():
    """Build an HttpClient whose requests are answered by handler and recorded"""

    def factory(handler):
        requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return HttpClient(transport=httpx.MockTransport(record)), requests

    return factory
