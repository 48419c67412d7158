"""MyInfo login initiation and callback endpoints."""
import logging
import urllib.parse
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from myinfo_connect.api.dependencies import (
    MyInfoClientFactory,
    get_app_settings,
    get_myinfo_client_factory,
    get_session_store,
)
from myinfo_connect.auth.oauth import initiate_authorization
from myinfo_connect.data.session_store import SessionStore
from myinfo_connect.metrics import myinfo_callback_total
from myinfo_connect.utils.config import Settings
from myinfo_connect.utils.errors import (
    ConfigurationError,
    InvalidSession,
    MissingParameters,
    MyInfoError,
    TokenExchangeFailed,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["myinfo"])

CALLBACK_PROCESSING_FAILED = "callback_processing_failed"

# Where the callback sends the user when the configured site URL is unavailable.
DEFAULT_SITE_URL = Settings.model_fields["site_url"].default


def site_redirect(site_url: str, **params: str) -> RedirectResponse:
    """
    Redirect to the site root with the given query parameters.

    Args:
        site_url: Configured site base URL
        params: Query parameters to attach

    Returns:
        RedirectResponse: 307 redirect the UI decides how to present
    """
    target = urllib.parse.urljoin(site_url, "/")
    if params:
        target = f"{target}?{urllib.parse.urlencode(params)}"
    return RedirectResponse(target, status_code=307)


@router.get("/api/auth/myinfo")
async def myinfo_login(request: Request) -> Response:
    """
    Start a MyInfo login and redirect the user to Singpass.

    Returns:
        Response: Redirect to the authorization endpoint, or a 500 JSON error
    """
    try:
        auth_request = initiate_authorization(get_app_settings(request), get_session_store(request))
    except MyInfoError as exc:
        logger.error(f"Error initiating login: {exc}", exc_info=True)
        return JSONResponse({"error": "Failed to initiate login"}, status_code=500)

    return RedirectResponse(auth_request.authorization_url, status_code=307)


@router.get("/redirect")
async def myinfo_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    session_store: SessionStore = Depends(get_session_store),
    client_factory: MyInfoClientFactory = Depends(get_myinfo_client_factory),
) -> RedirectResponse:
    """
    Handle the OAuth callback from Singpass.

    Always answers with a redirect to the site root carrying either
    ``name`` or a short ``error`` code. Whatever the outcome, the session
    for ``state`` is gone afterwards.
    """
    try:
        settings = get_app_settings(request)
    except ConfigurationError as exc:
        logger.error(f"Cannot process callback without valid configuration: {exc}")
        return _failed(session_store, state, DEFAULT_SITE_URL, CALLBACK_PROCESSING_FAILED)

    if error:
        error_description = error_description or "Unknown error"
        logger.warning("MyInfo returned an authorization error", extra={"error": error, "error_description": error_description})
        _discard(session_store, state)
        myinfo_callback_total.labels(outcome="upstream_error").inc()
        return site_redirect(settings.site_url, error=error, error_description=error_description)

    try:
        if not code or not state:
            raise MissingParameters("Callback requires code and state")
        async with client_factory(settings, session_store) as client:
            person_data = await client.handle_callback(code, state)
    except (MissingParameters, InvalidSession) as exc:
        logger.warning(f"Rejected callback: {exc}")
        error_code = exc.error_code
    except MyInfoError as exc:
        logger.error(f"Token exchange error: {exc}", exc_info=True)
        error_code = TokenExchangeFailed.error_code
    except Exception:
        logger.exception("Error processing callback")
        error_code = CALLBACK_PROCESSING_FAILED
    else:
        myinfo_callback_total.labels(outcome="success").inc()
        logger.info("MyInfo login completed", extra={"subject_present": bool(person_data.sub)})
        return site_redirect(settings.site_url, name=person_data.display_name)

    return _failed(session_store, state, settings.site_url, error_code)


def _discard(session_store: SessionStore, state: Optional[str]) -> None:
    if state:
        session_store.delete(state)


def _failed(session_store: SessionStore, state: Optional[str], site_url: str, error_code: str) -> RedirectResponse:
    _discard(session_store, state)
    myinfo_callback_total.labels(outcome=error_code).inc()
    return site_redirect(site_url, error=error_code)
