"""Configuration utilities for the MyInfo Connect service."""

import json
import logging
import os
from functools import lru_cache
from typing import Any, Dict, Literal, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from myinfo_connect.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

STAGING_BASE_URL = "https://stg-id.singpass.gov.sg"
PRODUCTION_BASE_URL = "https://id.singpass.gov.sg"


class Endpoints(BaseModel):
    """Fixed upstream endpoints for one MyInfo environment."""

    auth: str
    token: str
    userinfo: str
    jwks: str

    @classmethod
    def for_base_url(cls, base_url: str) -> "Endpoints":
        return cls(
            auth=f"{base_url}/auth",
            token=f"{base_url}/token",
            userinfo=f"{base_url}/userinfo",
            jwks=f"{base_url}/.well-known/keys",
        )


ENDPOINTS: Dict[str, Endpoints] = {
    "staging": Endpoints.for_base_url(STAGING_BASE_URL),
    "production": Endpoints.for_base_url(PRODUCTION_BASE_URL),
}

REQUIRED_FIELDS = (
    "myinfo_client_id",
    "myinfo_redirect_uri",
    "myinfo_jwks_uri",
    "myinfo_signing_private_key",
    "myinfo_encryption_private_key",
)


class AwsSecretsManager:
    """Utility class for retrieving secrets from AWS Secrets Manager."""

    def __init__(self, region_name: Optional[str] = None):
        """
        Initialize AWS Secrets Manager client.

        Args:
            region_name: AWS region name
        """
        self.region_name = region_name or os.environ.get("AWS_REGION", "ap-southeast-1")
        self.client = boto3.client(
            service_name="secretsmanager",
            region_name=self.region_name,
            endpoint_url=os.environ.get("AWS_SECRETSMANAGER_ENDPOINT"),
        )

    def get_secret(self, secret_name: str) -> Dict[str, Any]:
        """
        Retrieve a secret from AWS Secrets Manager.

        Args:
            secret_name: Name or ARN of the secret

        Returns:
            Dict[str, Any]: Secret values as a dictionary

        Raises:
            ClientError: If the secret cannot be retrieved
            ValueError: If the secret is binary
        """
        response = self.client.get_secret_value(SecretId=secret_name)
        if "SecretString" not in response:
            raise ValueError("Binary secrets are not supported")
        return json.loads(response["SecretString"])


class Settings(BaseSettings):
    """Application settings loaded from environment variables and secrets."""

    # Service configuration
    myinfo_env: Literal["staging", "production"] = Field("staging", description="MyInfo environment selector")
    log_level: str = Field("INFO", description="Logging level")
    site_url: str = Field("http://localhost:3000", description="Site root the callback redirects back to")
    secret_name: Optional[str] = Field(None, description="AWS Secrets Manager secret holding MyInfo credentials")
    aws_region: Optional[str] = Field(None, description="AWS region for Secrets Manager")

    # MyInfo client registration
    myinfo_client_id: Optional[str] = Field(None, description="Client ID registered with MyInfo")
    myinfo_redirect_uri: Optional[str] = Field(None, description="Registered OAuth redirect URI")
    myinfo_scopes: str = Field("openid name", description="Space separated scopes to request")
    myinfo_jwks_uri: Optional[str] = Field(None, description="Remote JWKS used to verify person data signatures")

    # Key material (PEM, literal \n escapes allowed)
    myinfo_signing_private_key: Optional[SecretStr] = Field(None, description="ES256 client assertion signing key")
    myinfo_encryption_private_key: Optional[SecretStr] = Field(None, description="ECDH-ES+A256KW decryption key")

    # Flow tuning
    request_timeout_seconds: float = Field(30.0, description="Per-call timeout for upstream HTTP requests")
    session_ttl_seconds: int = Field(600, description="Lifetime of a pending authorization session")

    # Metrics endpoint credentials
    metrics_user: Optional[str] = Field(None, description="Basic auth user for /metrics")
    metrics_pass: Optional[SecretStr] = Field(None, description="Basic auth password for /metrics")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",
        extra="ignore",
    )

    def __init__(self, *args, **kwargs):
        """Initialize settings, pull secrets, then enforce required fields."""
        super().__init__(*args, **kwargs)
        self._load_secrets()
        self._check_required_fields()

    @property
    def endpoints(self) -> Endpoints:
        """Upstream endpoints for the selected environment."""
        return ENDPOINTS[self.myinfo_env]

    def _load_secrets(self) -> None:
        """Load secrets from AWS Secrets Manager if configured."""
        if not self.secret_name:
            return

        try:
            secrets = AwsSecretsManager(self.aws_region).get_secret(self.secret_name)
        except (BotoCoreError, ClientError, ValueError) as e:
            raise ConfigurationError(f"could not load secret {self.secret_name}: {e}", field="secret_name") from e

        applied = []
        for key, value in secrets.items():
            key_lower = key.lower()
            field_info = self.__class__.model_fields.get(key_lower)
            if field_info is None:
                continue
            if field_info.annotation == Optional[SecretStr] and isinstance(value, str):
                value = SecretStr(value)
            setattr(self, key_lower, value)
            applied.append(key_lower)
        logger.info("Applied settings from secrets manager", extra={"secret_name": self.secret_name, "fields": applied})

    def _check_required_fields(self) -> None:
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if not value:
                raise ConfigurationError(f"{name.upper()} environment variable is required", field=name)


def load_settings(**overrides: Any) -> Settings:
    """
    Build and validate a Settings instance.

    Pydantic validation failures are reported as ConfigurationError naming
    the first offending field.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(first.get("msg", str(e)), field=field) from e


@lru_cache()
def get_settings() -> Settings:
    """
    Create and cache settings instance.

    Returns:
        Settings: Application settings
    """
    return load_settings()
