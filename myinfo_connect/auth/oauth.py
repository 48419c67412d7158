"""
OAuth2 authorization request construction for MyInfo.

This module builds the authorization URL the user is redirected to and
creates the pending session the callback later consumes.
"""
import logging
import secrets
import urllib.parse
from typing import Dict, List, Optional, Union

from myinfo_connect.auth.crypto import generate_ephemeral_key_pair
from myinfo_connect.auth.models import AuthorizationRequest, AuthSession
from myinfo_connect.auth.pkce import CODE_CHALLENGE_METHOD, generate_pkce_pair
from myinfo_connect.data.session_store import SessionStore
from myinfo_connect.utils.config import Settings

logger = logging.getLogger(__name__)

STATE_BYTES = 32
NONCE_BYTES = 16


def build_authorization_url(
    authorization_endpoint: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    nonce: str,
    scope: Optional[Union[str, List[str]]] = None,
) -> str:
    """
    Build an OAuth2 authorization URL for MyInfo with PKCE.

    Args:
        authorization_endpoint: The environment's authorization endpoint
        client_id: The OAuth2 client ID
        redirect_uri: The redirect URI after authorization
        state: A random state parameter for CSRF protection
        code_challenge: PKCE code challenge derived from code verifier
        nonce: Random value echoed back in the ID token
        scope: Scope(s) to request, defaults to 'openid name'

    Returns:
        str: The complete authorization URL
    """
    if scope is None:
        scope = ["openid", "name"]
    elif isinstance(scope, str):
        scope = scope.split()

    params: Dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "scope": " ".join(scope),
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "state": state,
        "nonce": nonce,
    }

    return f"{authorization_endpoint}?{urllib.parse.urlencode(params)}"


def initiate_authorization(settings: Settings, session_store: SessionStore) -> AuthorizationRequest:
    """
    Start a MyInfo login.

    Generates the state, nonce, PKCE pair and ephemeral DPoP key pair,
    stores the pending session under the state and returns the URL to
    redirect the user to. Makes no network calls.
    """
    state = secrets.token_hex(STATE_BYTES)
    nonce = secrets.token_hex(NONCE_BYTES)
    code_verifier, code_challenge = generate_pkce_pair()

    session = AuthSession(
        state=state,
        code_verifier=code_verifier,
        ephemeral_key_pair=generate_ephemeral_key_pair(),
        nonce=nonce,
    )
    session_store.store(state, session)

    authorization_url = build_authorization_url(
        authorization_endpoint=settings.endpoints.auth,
        client_id=settings.myinfo_client_id,
        redirect_uri=settings.myinfo_redirect_uri,
        state=state,
        code_challenge=code_challenge,
        nonce=nonce,
        scope=settings.myinfo_scopes,
    )
    logger.info(
        "Initiated MyInfo authorization",
        extra={"environment": settings.myinfo_env, "key_thumbprint": session.ephemeral_key_pair.thumbprint},
    )
    return AuthorizationRequest(authorization_url=authorization_url, state=state)
