"""
PEM key import and public JWK export.

Keys arrive as configuration strings, often with literal ``\\n`` escapes from
an environment file. Each import walks an ordered list of decode strategies;
the first one that yields a key wins and the failures of all strategies are
reported together when none does.
"""
import base64
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from myinfo_connect.utils.errors import KeyImportError

SIGNING_ALGORITHM = "ES256"
ENCRYPTION_ALGORITHM = "ECDH-ES+A256KW"

# Curve each supported algorithm label is bound to.
ALGORITHM_CURVES = {
    SIGNING_ALGORITHM: ec.SECP256R1,
    ENCRYPTION_ALGORITHM: ec.SECP256R1,
}

PUBLIC_JWK_MEMBERS = ("kty", "crv", "x", "y")

_PEM_ARMOUR = re.compile(r"-----(BEGIN|END) [A-Z0-9 ]+-----")

PrivateKey = ec.EllipticCurvePrivateKey
PublicKey = ec.EllipticCurvePublicKey
Strategy = Tuple[str, Callable[[bytes], Any]]


@dataclass(frozen=True)
class ImportedKey:
    """A decoded key bound to the algorithm it will be used with."""

    key: Union[PrivateKey, PublicKey]
    algorithm: str

    @property
    def is_private(self) -> bool:
        return isinstance(self.key, ec.EllipticCurvePrivateKey)

    def public_key(self) -> PublicKey:
        return self.key.public_key() if self.is_private else self.key


def normalize_pem(pem: str) -> str:
    """Turn literal escaped newlines into real ones."""
    return pem.replace("\\n", "\n").strip()


def _pem_body(pem: bytes) -> bytes:
    body = _PEM_ARMOUR.sub("", pem.decode("ascii"))
    return base64.b64decode("".join(body.split()), validate=True)


def _reencode_private(pem: bytes) -> PrivateKey:
    # Accepts SEC1 ("EC PRIVATE KEY") as well as PKCS8 and normalises to PKCS8.
    loaded = serialization.load_pem_private_key(pem, password=None)
    pkcs8 = loaded.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return serialization.load_pem_private_key(pkcs8, password=None)


def _direct_pkcs8(pem: bytes) -> PrivateKey:
    return serialization.load_der_private_key(_pem_body(pem), password=None)


def _reencode_public(pem: bytes) -> PublicKey:
    loaded = serialization.load_pem_public_key(pem)
    spki = loaded.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return serialization.load_pem_public_key(spki)


def _direct_spki(pem: bytes) -> PublicKey:
    der = _pem_body(pem)
    try:
        return serialization.load_der_public_key(der)
    except ValueError:
        # Bare SEC1 point without the SPKI wrapper.
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), der)


PRIVATE_KEY_STRATEGIES: Sequence[Strategy] = (
    ("decode-and-reencode to PKCS8", _reencode_private),
    ("direct PKCS8 import", _direct_pkcs8),
)

PUBLIC_KEY_STRATEGIES: Sequence[Strategy] = (
    ("decode-and-reencode to SPKI", _reencode_public),
    ("direct SPKI import", _direct_spki),
)


def _import(pem: str, algorithm: str, kind: str, strategies: Sequence[Strategy]) -> ImportedKey:
    if algorithm not in ALGORITHM_CURVES:
        raise KeyImportError(f"Unsupported key algorithm {algorithm!r}")

    data = normalize_pem(pem).encode("ascii", errors="replace")
    failures: List[str] = []
    for name, strategy in strategies:
        try:
            key = strategy(data)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            failures.append(f"{name}: {e}")
            continue
        curve = getattr(key, "curve", None)
        if not isinstance(curve, ALGORITHM_CURVES[algorithm]):
            failures.append(f"{name}: key is not a P-256 EC key usable for {algorithm}")
            continue
        return ImportedKey(key=key, algorithm=algorithm)

    raise KeyImportError(
        f"Failed to import {kind} key for {algorithm}. "
        f"Tried {', '.join(name for name, _ in strategies)}. Errors: {'; '.join(failures)}"
    )


def import_private_key(pem: str, algorithm: str = SIGNING_ALGORITHM) -> ImportedKey:
    """
    Import a PEM private key (SEC1 or PKCS8) for the given algorithm.

    Raises:
        KeyImportError: If no decode strategy produced a P-256 key
    """
    return _import(pem, algorithm, "private", PRIVATE_KEY_STRATEGIES)


def import_public_key(pem: str, algorithm: str = SIGNING_ALGORITHM) -> ImportedKey:
    """
    Import a PEM public key (SPKI or bare SEC1 point) for the given algorithm.

    Raises:
        KeyImportError: If no decode strategy produced a P-256 key
    """
    return _import(pem, algorithm, "public", PUBLIC_KEY_STRATEGIES)


def key_to_jwk(key: Union[PrivateKey, PublicKey]) -> Dict[str, Any]:
    """Export a key as a JWK dict. Private keys include ``d``."""
    return ECAlgorithm.to_jwk(key, as_dict=True)


def export_public_jwk(key: Union[ImportedKey, PrivateKey, PublicKey], kid: str, use: str, alg: str) -> Dict[str, Any]:
    """
    Export the public half of a key as a distribution-ready JWK.

    Only ``kty, crv, x, y`` survive from the exported key, so private
    material never leaks, then the fixed ``kid``, ``use`` and ``alg`` are
    overlaid.
    """
    if isinstance(key, ImportedKey):
        key = key.key
    full = key_to_jwk(key)
    public = {member: full[member] for member in PUBLIC_JWK_MEMBERS}
    public.update({"kid": kid, "use": use, "alg": alg})
    return public
