"""MyInfo token and person data client.

Runs the callback half of the flow: authorization code exchange with a
client assertion and DPoP proof, person data retrieval, then JWE
decryption and JWS verification against MyInfo's published keys.
Every stage raises a typed error and the pending session is removed
whatever the outcome.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
import jwt
from jwcrypto import jwe, jwk
from jwcrypto.common import JWException

from myinfo_connect.auth.crypto import (
    CLIENT_ASSERTION_TYPE,
    generate_client_assertion,
    generate_dpop_proof,
)
from myinfo_connect.auth.keys import ENCRYPTION_ALGORITHM, SIGNING_ALGORITHM, import_private_key
from myinfo_connect.auth.models import AuthSession, EphemeralKeyPair, PersonData, TokenResponse
from myinfo_connect.data.session_store import SessionStore
from myinfo_connect.metrics import myinfo_upstream_call_latency_seconds, myinfo_upstream_call_total
from myinfo_connect.utils.config import Settings
from myinfo_connect.utils.errors import (
    InvalidSession,
    PersonDataVerificationFailed,
    TokenExchangeFailed,
    UpstreamError,
    UserinfoFailed,
)
from myinfo_connect.utils.logging_utils import redact_sensitive_data

logger = logging.getLogger(__name__)

__all__ = ["MyInfoClient"]

# Key management and content encryption algorithms accepted for person data.
ALLOWED_JWE_ALGORITHMS = [
    ENCRYPTION_ALGORITHM,
    "A128GCM",
    "A192GCM",
    "A256GCM",
    "A128CBC-HS256",
    "A192CBC-HS384",
    "A256CBC-HS512",
]

# Asymmetric signature algorithms accepted on the inner JWS.
ALLOWED_JWS_ALGORITHMS = {"ES256", "ES384", "ES512", "RS256", "PS256"}

# Tolerated clock difference with MyInfo for iat, nbf and exp.
CLOCK_SKEW_LEEWAY_SECONDS = 60


def _describe_response(response: httpx.Response) -> Dict[str, Any]:
    try:
        body: Any = redact_sensitive_data(response.json())
    except ValueError:
        body = response.text
    return {
        "status_code": response.status_code,
        "reason": response.reason_phrase,
        "headers": redact_sensitive_data(dict(response.headers)),
        "body": body,
    }


class MyInfoClient:
    """Async client for the MyInfo token, userinfo and JWKS endpoints."""

    def __init__(
        self,
        settings: Settings,
        session_store: SessionStore,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.session_store = session_store
        self.endpoints = settings.endpoints
        self.http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds),
            transport=transport,
        )

    # ---------------------- async context manager helpers ------------------
    async def __aenter__(self) -> "MyInfoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        """Close underlying HTTPX client."""
        await self.http_client.aclose()

    # ---------------------- HTTP request helper ----------------------------
    async def _send(
        self,
        endpoint: str,
        method: str,
        url: str,
        error_cls: type[UpstreamError],
        **kwargs: Any,
    ) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = await self.http_client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            myinfo_upstream_call_total.labels(endpoint=endpoint, status="error").inc()
            logger.error(
                f"{endpoint} request failed: {exc!r}",
                extra={"endpoint": endpoint, "url": url, "method": method},
            )
            raise error_cls(f"{endpoint} request failed: {exc}") from exc
        finally:
            myinfo_upstream_call_latency_seconds.labels(endpoint=endpoint).observe(time.perf_counter() - started)

        if not response.is_success:
            myinfo_upstream_call_total.labels(endpoint=endpoint, status="error").inc()
            logger.error(
                f"{endpoint} request returned {response.status_code}",
                extra={"endpoint": endpoint, "url": url, "method": method, "response": _describe_response(response)},
            )
            raise error_cls(
                f"{endpoint} request returned {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        myinfo_upstream_call_total.labels(endpoint=endpoint, status="success").inc()
        return response

    # ---------------------- flow stages -----------------------------------
    async def exchange_token(self, code: str, session: AuthSession) -> TokenResponse:
        """
        Exchange an authorization code for a DPoP-bound access token.

        Args:
            code: Authorization code from the callback
            session: The pending session the code was issued for

        Returns:
            TokenResponse: Parsed token endpoint response

        Raises:
            KeyImportError: If the configured signing key cannot be imported
            TokenExchangeFailed: On a non-2xx answer, network error, timeout or unparseable body
        """
        token_url = self.endpoints.token
        signing_key = import_private_key(
            self.settings.myinfo_signing_private_key.get_secret_value(), SIGNING_ALGORITHM
        )

        # cnf.jkt binds the assertion to the session's DPoP key, not the signing key.
        client_assertion = generate_client_assertion(
            self.settings.myinfo_client_id,
            token_url,
            session.ephemeral_key_pair.thumbprint,
            signing_key,
        )
        dpop_proof = generate_dpop_proof(token_url, "POST", session.ephemeral_key_pair)

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.myinfo_redirect_uri,
            "client_id": self.settings.myinfo_client_id,
            "code_verifier": session.code_verifier,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": client_assertion,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "DPoP": dpop_proof,
        }

        response = await self._send("token", "POST", token_url, TokenExchangeFailed, data=data, headers=headers)
        try:
            token_response = TokenResponse.model_validate(response.json())
        except ValueError as exc:
            logger.error(f"Failed to parse token response: {exc}")
            raise TokenExchangeFailed(
                "Token response could not be parsed",
                status_code=response.status_code,
                response_body=response.text,
            ) from exc

        logger.info(
            "Token exchange succeeded",
            extra={"token_type": token_response.token_type, "expires_in": token_response.expires_in},
        )
        return token_response

    async def get_person_data(
        self,
        access_token: str,
        key_pair: EphemeralKeyPair,
        token_type: str = "DPoP",
    ) -> str:
        """
        Fetch the encrypted person data from the userinfo endpoint.

        A ``DPoP`` token type is sent with the DPoP scheme and a proof bound
        to the token; any other type falls back to a Bearer header.

        Returns:
            str: The raw compact JWE body

        Raises:
            UserinfoFailed: On a non-2xx answer, network error or timeout
        """
        userinfo_url = self.endpoints.userinfo
        headers = {"Accept": "application/json"}

        if token_type.lower() == "dpop":
            headers["Authorization"] = f"DPoP {access_token}"
            headers["DPoP"] = generate_dpop_proof(userinfo_url, "GET", key_pair, access_token)
        else:
            logger.warning(
                "Token endpoint issued a non-DPoP token, using Bearer authorization",
                extra={"token_type": token_type, "environment": self.settings.myinfo_env},
            )
            headers["Authorization"] = f"Bearer {access_token}"

        response = await self._send("userinfo", "GET", userinfo_url, UserinfoFailed, headers=headers)
        return response.text

    async def fetch_remote_jwks(self, url: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch MyInfo's public key set.

        Not cached here; each verification fetches again and relies on
        ordinary HTTP caching upstream.

        Raises:
            UpstreamError: If the key set cannot be fetched or parsed
        """
        url = url or self.settings.myinfo_jwks_uri
        response = await self._send("jwks", "GET", url, UpstreamError, headers={"Accept": "application/json"})
        try:
            document = response.json()
        except ValueError as exc:
            raise UpstreamError("JWKS response is not JSON", response.status_code, response.text) from exc
        if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
            raise UpstreamError("JWKS response has no keys", response.status_code, response.text)
        return document

    def decrypt_person_data(self, payload: str) -> str:
        """
        Decrypt the compact JWE person data payload into the inner compact JWS.

        Raises:
            KeyImportError: If the configured encryption key cannot be imported
            PersonDataVerificationFailed: If decryption fails
        """
        encryption_key = import_private_key(
            self.settings.myinfo_encryption_private_key.get_secret_value(), ENCRYPTION_ALGORITHM
        )
        token = jwe.JWE()
        token.allowed_algs = ALLOWED_JWE_ALGORITHMS
        try:
            token.deserialize(payload.strip(), key=jwk.JWK.from_pyca(encryption_key.key))
            return token.payload.decode("utf-8")
        except (JWException, ValueError) as exc:
            logger.error(f"Person data decryption failed: {exc!r}")
            raise PersonDataVerificationFailed(f"Person data decryption failed: {exc}") from exc

    def verify_person_data(self, jws: str, key_set: Dict[str, Any]) -> PersonData:
        """
        Verify the inner JWS against a JWKS document and decode its claims.

        The key is picked by the JWS ``kid``; without one every signing key
        in the set is tried. Time claims are checked with a small clock-skew
        leeway, and an ``aud`` claim must name this client when present.

        Raises:
            PersonDataVerificationFailed: If no key verifies the signature or a claim check fails
        """
        try:
            header = jwt.get_unverified_header(jws)
            jwk_set = jwt.PyJWKSet.from_dict(key_set)
        except (jwt.PyJWTError, ValueError) as exc:
            raise PersonDataVerificationFailed(f"Person data signature could not be checked: {exc}") from exc

        algorithm = header.get("alg")
        if algorithm not in ALLOWED_JWS_ALGORITHMS:
            raise PersonDataVerificationFailed(f"Person data signed with disallowed algorithm {algorithm!r}")

        kid = header.get("kid")
        candidates = [
            key for key in jwk_set.keys
            if (kid is None or key.key_id == kid) and key.public_key_use in ("sig", None)
        ]
        if not candidates:
            raise PersonDataVerificationFailed(f"No MyInfo signing key matches kid {kid!r}")

        errors: List[str] = []
        for key in candidates:
            try:
                claims = jwt.decode(
                    jws,
                    key.key,
                    algorithms=[algorithm],
                    leeway=CLOCK_SKEW_LEEWAY_SECONDS,
                    options={"verify_aud": False, "require": ["sub"]},
                )
            except jwt.PyJWTError as exc:
                errors.append(f"{key.key_id}: {exc}")
                continue
            self._check_audience(claims)
            try:
                return PersonData.model_validate(claims)
            except ValueError as exc:
                raise PersonDataVerificationFailed(f"Person data claims are malformed: {exc}") from exc

        logger.error("Person data signature verification failed", extra={"kid": kid, "errors": errors})
        raise PersonDataVerificationFailed(f"Person data signature verification failed: {'; '.join(errors)}")

    def _check_audience(self, claims: Dict[str, Any]) -> None:
        audience = claims.get("aud")
        if audience is None:
            return
        audiences = [audience] if isinstance(audience, str) else list(audience)
        if self.settings.myinfo_client_id not in audiences:
            raise PersonDataVerificationFailed(f"Person data audience {audience!r} does not name this client")

    async def decrypt_and_verify_person_data(self, payload: str) -> PersonData:
        """
        Decrypt the person data JWE and verify the JWS it wraps.

        Raises:
            PersonDataVerificationFailed: On any decryption, key fetch or signature failure
        """
        jws = self.decrypt_person_data(payload)
        try:
            key_set = await self.fetch_remote_jwks()
        except UpstreamError as exc:
            raise PersonDataVerificationFailed(f"MyInfo signing keys unavailable: {exc}") from exc
        return self.verify_person_data(jws, key_set)

    async def handle_callback(self, code: str, state: str) -> PersonData:
        """
        Run the whole callback sequence for one state value.

        The session is deleted before this returns or raises, so a state
        can never be replayed.

        Raises:
            InvalidSession: If the state is unknown, expired or already used
            TokenExchangeFailed, UserinfoFailed, PersonDataVerificationFailed: From the stages
        """
        session = self.session_store.get(state)
        if session is None:
            raise InvalidSession("No pending authorization session for this state")

        try:
            token_response = await self.exchange_token(code, session)
            payload = await self.get_person_data(
                token_response.access_token,
                session.ephemeral_key_pair,
                token_response.token_type,
            )
            return await self.decrypt_and_verify_person_data(payload)
        finally:
            self.session_store.delete(state)
