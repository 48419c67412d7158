"""Error taxonomy for the MyInfo authorization flow.

Every error carries a short machine-readable ``error_code``. Diagnostic
detail (upstream status, body) stays on the exception for logging and is
never forwarded to the end user.
"""
from typing import Optional


class MyInfoError(Exception):
    """Base class for MyInfo flow errors."""

    error_code = "callback_processing_failed"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(MyInfoError):
    """A required setting is missing or invalid."""

    error_code = "configuration_error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(f"{field + ': ' if field else ''}{message}")


class KeyImportError(MyInfoError):
    """PEM key material could not be decoded by any strategy."""

    error_code = "key_import_failed"


class InvalidSession(MyInfoError):
    """Unknown, expired or already consumed state value."""

    error_code = "invalid_session"


class MissingParameters(MyInfoError):
    """Callback invoked without code or state."""

    error_code = "missing_parameters"


class UpstreamError(MyInfoError):
    """Non-success answer (or no answer) from a MyInfo endpoint."""

    error_code = "token_exchange_failed"

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class TokenExchangeFailed(UpstreamError):
    """The token endpoint rejected the authorization code exchange."""


class UserinfoFailed(UpstreamError):
    """The userinfo endpoint rejected the person data request."""


class PersonDataVerificationFailed(MyInfoError):
    """Person data could not be decrypted or its signature did not verify."""

    error_code = "token_exchange_failed"
