"""Tests for the OAuth2 PKCE module."""
import base64
import hashlib
import re

from myinfo_connect.auth.pkce import (
    CODE_CHALLENGE_METHOD,
    generate_code_challenge,
    generate_code_verifier,
    generate_pkce_pair,
)


class TestPkce:
    """Tests for the PKCE implementation."""

    def test_code_verifier_length(self):
        """Test the code verifier encodes 32 random bytes."""
        assert len(generate_code_verifier()) == 43

    def test_code_verifier_format(self):
        """Test the code verifier only uses the base64url alphabet."""
        verifier = generate_code_verifier()
        assert re.match(r'^[A-Za-z0-9\-_]{43}$', verifier) is not None

    def test_code_verifier_randomness(self):
        """Test the code verifier is different each time."""
        assert generate_code_verifier() != generate_code_verifier()

    def test_code_challenge_is_s256(self):
        """Test the challenge is the unpadded base64url SHA-256 of the verifier."""
        verifier = generate_code_verifier()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")

        assert generate_code_challenge(verifier) == expected
        assert CODE_CHALLENGE_METHOD == "S256"

    def test_code_challenge_known_vector(self):
        """Test against the RFC 7636 appendix B example."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_code_challenge_format(self):
        challenge = generate_code_challenge(generate_code_verifier())
        assert re.match(r'^[A-Za-z0-9\-_]+$', challenge) is not None
        assert '=' not in challenge

    def test_pkce_pair(self):
        """Test the pair generator returns a matching verifier and challenge."""
        verifier, challenge = generate_pkce_pair()
        assert challenge == generate_code_challenge(verifier)
