"""Public JWKS for this client: the keys MyInfo verifies assertions with and encrypts to."""
from typing import Any, Dict

from myinfo_connect.auth.keys import ENCRYPTION_ALGORITHM, SIGNING_ALGORITHM, export_public_jwk, import_private_key
from myinfo_connect.utils.config import Settings

SIGNING_KEY_ID = "sig-key-1"
ENCRYPTION_KEY_ID = "enc-key-1"


def build_jwks(settings: Settings) -> Dict[str, Any]:
    """
    Build the public JWKS document from the configured private keys.

    Raises:
        KeyImportError: If either configured key cannot be imported
    """
    signing_key = import_private_key(settings.myinfo_signing_private_key.get_secret_value(), SIGNING_ALGORITHM)
    encryption_key = import_private_key(
        settings.myinfo_encryption_private_key.get_secret_value(), ENCRYPTION_ALGORITHM
    )

    return {
        "keys": [
            export_public_jwk(signing_key, kid=SIGNING_KEY_ID, use="sig", alg=SIGNING_ALGORITHM),
            export_public_jwk(encryption_key, kid=ENCRYPTION_KEY_ID, use="enc", alg=ENCRYPTION_ALGORITHM),
        ]
    }
