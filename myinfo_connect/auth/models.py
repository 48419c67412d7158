"""Models for the MyInfo authorization flow."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class EphemeralKeyPair:
    """Per-session P-256 key pair used for DPoP proofs."""

    private_key: ec.EllipticCurvePrivateKey
    public_key: ec.EllipticCurvePublicKey
    public_jwk: Dict[str, str]
    thumbprint: str


@dataclass(frozen=True)
class AuthSession:
    """State kept between login initiation and the callback."""

    state: str
    code_verifier: str
    ephemeral_key_pair: EphemeralKeyPair
    nonce: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AuthorizationRequest:
    """Result of login initiation: where to send the user and the state it is bound to."""

    authorization_url: str
    state: str


class TokenResponse(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "DPoP"
    id_token: Optional[str] = None
    expires_in: Optional[int] = None


class PersonName(BaseModel):
    value: Optional[str] = None


class PersonInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Union[PersonName, str, None] = None
    uinfin: Optional[Any] = None


class PersonData(BaseModel):
    """Decrypted and signature-verified person data claims."""

    model_config = ConfigDict(extra="allow")

    sub: str
    iss: Optional[str] = None
    iat: Optional[int] = None
    exp: Optional[int] = None
    person_info: Optional[PersonInfo] = Field(None, description="Requested MyInfo attributes")

    @property
    def display_name(self) -> str:
        """First of person_info.name(.value), name.value or name; 'Unknown' otherwise."""
        person_name = self.person_info.name if self.person_info else None
        if isinstance(person_name, PersonName) and person_name.value:
            return person_name.value
        if isinstance(person_name, str) and person_name:
            return person_name
        name = (self.model_extra or {}).get("name")
        if isinstance(name, dict) and name.get("value"):
            return str(name["value"])
        if isinstance(name, str) and name:
            return name
        return "Unknown"
