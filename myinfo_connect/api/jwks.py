"""JWKS endpoint serving this client's public signing and encryption keys."""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from myinfo_connect.api.dependencies import get_app_settings
from myinfo_connect.auth.jwks import build_jwks
from myinfo_connect.utils.errors import ConfigurationError, KeyImportError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jwks"])

JWKS_CACHE_CONTROL = "public, max-age=3600"


@router.get("/.well-known/jwks.json")
async def get_jwks(request: Request) -> JSONResponse:
    """
    Serve the public JWKS MyInfo uses to verify client assertions and encrypt person data.

    Returns:
        JSONResponse: The key set, or a 500 diagnostic that is never cached
    """
    try:
        document = build_jwks(get_app_settings(request))
    except (ConfigurationError, KeyImportError) as exc:
        logger.error(f"Error generating JWKS: {exc}", exc_info=True)
        return JSONResponse(
            {"error": "Failed to generate JWKS", "details": str(exc)},
            status_code=500,
            headers={"Cache-Control": "no-store"},
        )

    return JSONResponse(document, headers={"Cache-Control": JWKS_CACHE_CONTROL})
