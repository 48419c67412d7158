"""Tests for PEM key import and JWK export."""
import base64

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from myinfo_connect.auth.keys import (
    ENCRYPTION_ALGORITHM,
    SIGNING_ALGORITHM,
    export_public_jwk,
    import_private_key,
    import_public_key,
    normalize_pem,
)
from myinfo_connect.utils.errors import KeyImportError


def _private_pem(key, fmt=serialization.PrivateFormat.PKCS8) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=fmt,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def p256_key():
    return ec.generate_private_key(ec.SECP256R1())


class TestNormalizePem:
    def test_escaped_newlines_become_real(self):
        assert normalize_pem("a\\nb\\n") == "a\nb"

    def test_real_newlines_untouched(self):
        assert normalize_pem("  a\nb  ") == "a\nb"


class TestImportPrivateKey:
    """Tests for private key import."""

    def test_sec1_pem(self, p256_key):
        """Test that SEC1 ("EC PRIVATE KEY") input is accepted."""
        pem = _private_pem(p256_key, serialization.PrivateFormat.TraditionalOpenSSL)
        imported = import_private_key(pem)

        assert imported.is_private
        assert imported.algorithm == SIGNING_ALGORITHM
        assert imported.key.private_numbers() == p256_key.private_numbers()

    def test_pkcs8_pem(self, p256_key):
        imported = import_private_key(_private_pem(p256_key), ENCRYPTION_ALGORITHM)

        assert imported.algorithm == ENCRYPTION_ALGORITHM
        assert imported.public_key().public_numbers() == p256_key.public_key().public_numbers()

    def test_escaped_newlines(self, p256_key):
        """Test a PEM pasted into a single-line environment variable."""
        pem = _private_pem(p256_key).replace("\n", "\\n")
        imported = import_private_key(pem)

        assert imported.key.private_numbers() == p256_key.private_numbers()

    def test_garbage_lists_every_strategy(self):
        """Test that the error names each strategy tried and why it failed."""
        with pytest.raises(KeyImportError) as exc_info:
            import_private_key("not a key")

        message = str(exc_info.value)
        assert "decode-and-reencode to PKCS8" in message
        assert "direct PKCS8 import" in message
        assert "Errors:" in message

    def test_wrong_curve_rejected(self):
        key = ec.generate_private_key(ec.SECP384R1())
        with pytest.raises(KeyImportError, match="P-256"):
            import_private_key(_private_pem(key))

    def test_rsa_rejected(self):
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(KeyImportError):
            import_private_key(_private_pem(key))

    def test_unknown_algorithm(self, p256_key):
        with pytest.raises(KeyImportError, match="Unsupported"):
            import_private_key(_private_pem(p256_key), "RS256")


class TestImportPublicKey:
    """Tests for public key import."""

    def test_spki_pem(self, p256_key):
        pem = p256_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")
        imported = import_public_key(pem)

        assert not imported.is_private
        assert imported.key.public_numbers() == p256_key.public_key().public_numbers()

    def test_bare_point_falls_back_to_direct_import(self, p256_key):
        """Test an uncompressed point wrapped in PEM armour without SPKI."""
        point = p256_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )
        body = base64.b64encode(point).decode("ascii")
        pem = f"-----BEGIN PUBLIC KEY-----\n{body}\n-----END PUBLIC KEY-----\n"

        imported = import_public_key(pem)
        assert imported.key.public_numbers() == p256_key.public_key().public_numbers()

    def test_garbage_lists_every_strategy(self):
        with pytest.raises(KeyImportError) as exc_info:
            import_public_key("-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----")

        message = str(exc_info.value)
        assert "decode-and-reencode to SPKI" in message
        assert "direct SPKI import" in message


class TestExportPublicJwk:
    """Tests for public JWK export."""

    def test_private_material_never_exported(self, p256_key):
        exported = export_public_jwk(import_private_key(_private_pem(p256_key)), kid="sig-key-1", use="sig", alg="ES256")

        assert "d" not in exported
        assert set(exported) == {"kty", "crv", "x", "y", "kid", "use", "alg"}
        assert exported["kty"] == "EC"
        assert exported["crv"] == "P-256"
        assert exported["kid"] == "sig-key-1"

    def test_same_key_same_coordinates(self, p256_key):
        from_private = export_public_jwk(p256_key, kid="a", use="sig", alg="ES256")
        from_public = export_public_jwk(p256_key.public_key(), kid="a", use="sig", alg="ES256")

        assert from_private == from_public
