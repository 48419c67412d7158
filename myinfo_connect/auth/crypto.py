"""
Cryptographic building blocks for the MyInfo flow.

Covers base64url helpers, RFC 7638 JWK thumbprints, ephemeral DPoP key
generation, access token hashing, and the two signed JWTs the flow sends:
the client assertion and the DPoP proof. Every JWT is built fresh with a
random ``jti`` and is meant for exactly one HTTP call.
"""
import base64
import hashlib
import json
import secrets
import time
from typing import Any, Dict, Optional, Union

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from myinfo_connect.auth.keys import SIGNING_ALGORITHM, ImportedKey, key_to_jwk
from myinfo_connect.auth.models import EphemeralKeyPair

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
CLIENT_ASSERTION_TTL_SECONDS = 300
DPOP_PROOF_TTL_SECONDS = 120
DPOP_JWT_TYPE = "dpop+jwt"

THUMBPRINT_MEMBERS = ("crv", "kty", "x", "y")


def b64url_encode(data: bytes) -> str:
    """Base64url encode without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """Base64url decode, restoring any stripped padding."""
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _new_jti() -> str:
    return secrets.token_hex(20)


def compute_jwk_thumbprint(jwk: Dict[str, Any]) -> str:
    """RFC 7638 SHA-256 thumbprint over the required EC members."""
    canonical = {member: jwk[member] for member in THUMBPRINT_MEMBERS}
    data = json.dumps(canonical, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return b64url_encode(hashlib.sha256(data).digest())


def generate_ephemeral_key_pair() -> EphemeralKeyPair:
    """Generate a fresh P-256 key pair for one authorization session."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    public_jwk = key_to_jwk(public_key)

    return EphemeralKeyPair(
        private_key=private_key,
        public_key=public_key,
        public_jwk=public_jwk,
        thumbprint=compute_jwk_thumbprint(public_jwk),
    )


def compute_ath(access_token: str) -> str:
    """Access token hash binding a DPoP proof to one token."""
    return b64url_encode(hashlib.sha256(access_token.encode("utf-8")).digest())


def generate_client_assertion(
    client_id: str,
    audience_url: str,
    key_thumbprint: str,
    signing_key: Union[ImportedKey, ec.EllipticCurvePrivateKey],
) -> str:
    """
    Build the private_key_jwt client assertion for the token endpoint.

    Args:
        client_id: Registered client ID, used as both ``iss`` and ``sub``
        audience_url: Token endpoint URL
        key_thumbprint: Thumbprint of the session's ephemeral DPoP key (``cnf.jkt``)
        signing_key: The client's ES256 private key

    Returns:
        str: Compact ES256 JWT valid for five minutes
    """
    if isinstance(signing_key, ImportedKey):
        signing_key = signing_key.key

    now = int(time.time())
    payload = {
        "sub": client_id,
        "iss": client_id,
        "aud": audience_url,
        "iat": now,
        "exp": now + CLIENT_ASSERTION_TTL_SECONDS,
        "jti": _new_jti(),
        "cnf": {"jkt": key_thumbprint},
    }
    return jwt.encode(payload, signing_key, algorithm=SIGNING_ALGORITHM)


def generate_dpop_proof(
    url: str,
    method: str,
    key_pair: EphemeralKeyPair,
    access_token: Optional[str] = None,
) -> str:
    """
    Build a DPoP proof for a single HTTP request.

    Args:
        url: Target URL (``htu``)
        method: HTTP method (``htm``), uppercased
        key_pair: Session key pair; the public half is embedded in the header
        access_token: When given, adds ``ath`` to bind the proof to this token

    Returns:
        str: Compact ES256 JWT valid for two minutes
    """
    now = int(time.time())
    payload: Dict[str, Any] = {
        "jti": _new_jti(),
        "htu": url,
        "htm": method.upper(),
        "iat": now,
        "exp": now + DPOP_PROOF_TTL_SECONDS,
    }
    if access_token:
        payload["ath"] = compute_ath(access_token)

    header_jwk = dict(key_pair.public_jwk, alg=SIGNING_ALGORITHM, use="sig")
    return jwt.encode(
        payload,
        key_pair.private_key,
        algorithm=SIGNING_ALGORITHM,
        headers={"typ": DPOP_JWT_TYPE, "jwk": header_jwk},
    )
