"""Test configuration and shared fixtures."""

import json
import os
import time
import urllib.parse

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwcrypto import jwe, jwk
from jwt.algorithms import ECAlgorithm


def _pem(private_key, fmt) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=fmt,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


SIGNING_PRIVATE_KEY = ec.generate_private_key(ec.SECP256R1())
ENCRYPTION_PRIVATE_KEY = ec.generate_private_key(ec.SECP256R1())

# SEC1 for signing, PKCS8 for encryption; both as single-line env values.
SIGNING_PEM = _pem(SIGNING_PRIVATE_KEY, serialization.PrivateFormat.TraditionalOpenSSL)
ENCRYPTION_PEM = _pem(ENCRYPTION_PRIVATE_KEY, serialization.PrivateFormat.PKCS8)

TEST_CLIENT_ID = "test-client"
TEST_REDIRECT_URI = "http://localhost:3000/redirect"
TEST_JWKS_URI = "https://myinfo.test/jwks"
TEST_SITE_URL = "http://localhost:3000"
TEST_ACCESS_TOKEN = "test-access-token"

TEST_ENV = {
    "MYINFO_ENV": "staging",
    "MYINFO_CLIENT_ID": TEST_CLIENT_ID,
    "MYINFO_REDIRECT_URI": TEST_REDIRECT_URI,
    "MYINFO_JWKS_URI": TEST_JWKS_URI,
    "MYINFO_SIGNING_PRIVATE_KEY": SIGNING_PEM.replace("\n", "\\n"),
    "MYINFO_ENCRYPTION_PRIVATE_KEY": ENCRYPTION_PEM.replace("\n", "\\n"),
    "SITE_URL": TEST_SITE_URL,
    "LOG_LEVEL": "INFO",
}

# The app module resolves settings at import time.
os.environ.update(TEST_ENV)
for _name in ("SECRET_NAME", "METRICS_USER", "METRICS_PASS"):
    os.environ.pop(_name, None)

from myinfo_connect.auth.models import AuthSession  # noqa: E402
from myinfo_connect.auth.crypto import generate_ephemeral_key_pair  # noqa: E402
from myinfo_connect.utils.config import get_settings, load_settings  # noqa: E402


class FakeMyInfo:
    """In-process stand-in for the MyInfo token, userinfo and JWKS endpoints."""

    kid = "myinfo-sig-1"

    def __init__(self, settings, encryption_public_key):
        self.settings = settings
        self.encryption_public_key = encryption_public_key
        self.signing_key = ec.generate_private_key(ec.SECP256R1())
        self.requests = []
        self.token_status = 200
        self.token_body = {"access_token": TEST_ACCESS_TOKEN, "token_type": "DPoP", "expires_in": 600}
        self.userinfo_status = 200
        self.jwks_status = 200
        self.payload = None

    def claims(self, **overrides):
        now = int(time.time())
        claims = {
            "sub": "S1234567A",
            "iss": "https://stg-id.singpass.gov.sg",
            "aud": TEST_CLIENT_ID,
            "iat": now,
            "exp": now + 600,
            "person_info": {
                "name": {"value": "TAN AH KOW"},
                "uinfin": {"value": "S1234567A"},
            },
        }
        claims.update(overrides)
        return claims

    def jwks(self):
        public_jwk = ECAlgorithm.to_jwk(self.signing_key.public_key(), as_dict=True)
        return {"keys": [dict(public_jwk, kid=self.kid, use="sig", alg="ES256")]}

    def person_payload(self, claims=None, signing_key=None):
        """Sign claims as MyInfo would, then encrypt them to the client's encryption key."""
        jws = jwt.encode(
            claims if claims is not None else self.claims(),
            signing_key or self.signing_key,
            algorithm="ES256",
            headers={"kid": self.kid},
        )
        token = jwe.JWE(
            jws.encode("utf-8"),
            protected=json.dumps({"alg": "ECDH-ES+A256KW", "enc": "A256GCM", "kid": "enc-key-1"}),
        )
        token.add_recipient(jwk.JWK.from_pyca(self.encryption_public_key))
        return token.serialize(compact=True)

    def requests_to(self, path):
        return [request for request in self.requests if request.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_body)
        if path == "/userinfo":
            if self.userinfo_status != 200:
                return httpx.Response(self.userinfo_status, json={"error": "invalid_token"})
            return httpx.Response(200, text=self.payload or self.person_payload())
        if path == "/jwks":
            return httpx.Response(self.jwks_status, json=self.jwks())
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def form_fields(request: httpx.Request) -> dict:
    """Decode a form-encoded request body into single values."""
    parsed = urllib.parse.parse_qs(request.content.decode("utf-8"))
    return {key: values[0] for key, values in parsed.items()}


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Validated settings for the test environment."""
    return load_settings()


@pytest.fixture
def fake_myinfo(settings):
    """Fake MyInfo upstream bound to the test encryption key."""
    return FakeMyInfo(settings, ENCRYPTION_PRIVATE_KEY.public_key())


@pytest.fixture
def auth_session():
    """A pending session with a fresh ephemeral key pair."""
    return AuthSession(
        state="test-state",
        code_verifier="test-verifier",
        ephemeral_key_pair=generate_ephemeral_key_pair(),
        nonce="test-nonce",
    )
