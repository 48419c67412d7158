"""
OAuth2 PKCE (Proof Key for Code Exchange) implementation.

This module provides functions for generating cryptographically secure
code verifiers and S256 code challenges for the MyInfo authorization
code flow.
"""
import hashlib
import os

from myinfo_connect.auth.crypto import b64url_encode

CODE_CHALLENGE_METHOD = "S256"
VERIFIER_ENTROPY_BYTES = 32


def generate_code_verifier() -> str:
    """
    Generate a cryptographically secure code verifier for PKCE.

    32 random bytes encoded as base64url without padding, which gives a
    43 character verifier using only [A-Z], [a-z], [0-9], "-" and "_".

    Returns:
        A random code verifier string.
    """
    return b64url_encode(os.urandom(VERIFIER_ENTROPY_BYTES))


def generate_code_challenge(code_verifier: str) -> str:
    """
    Generate a code challenge from the code verifier using the S256 method.

    Args:
        code_verifier: The code verifier string to hash.

    Returns:
        The base64url (unpadded) SHA-256 digest of the verifier.
    """
    return b64url_encode(hashlib.sha256(code_verifier.encode("ascii")).digest())


def generate_pkce_pair() -> tuple[str, str]:
    """
    Generate a code verifier and code challenge pair for PKCE.

    Returns:
        A tuple of (code_verifier, code_challenge).
    """
    code_verifier = generate_code_verifier()
    code_challenge = generate_code_challenge(code_verifier)

    return code_verifier, code_challenge
