"""Main entry point for the MyInfo Connect service."""

import base64
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import make_asgi_app
from starlette.status import HTTP_401_UNAUTHORIZED

from myinfo_connect.api.auth import router as auth_router
from myinfo_connect.api.jwks import router as jwks_router
from myinfo_connect.api.middleware import CacheControl, RequestIDMiddleware
from myinfo_connect.data.session_store import DEFAULT_SESSION_TTL_SECONDS, InMemorySessionStore, SessionStore
from myinfo_connect.utils.config import Settings, get_settings
from myinfo_connect.utils.errors import ConfigurationError
from myinfo_connect.utils.logging_utils import redact_sensitive_data, setup_json_logging


def _resolve_settings() -> Optional[Settings]:
    # Configuration problems fail the operations that need it, not the import.
    try:
        return get_settings()
    except ConfigurationError as e:
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return None


settings = _resolve_settings()
log_level = settings.log_level.upper() if settings and hasattr(logging, settings.log_level.upper()) else "INFO"
setup_json_logging(log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """
    Application startup and shutdown events.

    Args:
        app: The FastAPI application instance

    Yields:
        None
    """
    logger.info("Starting MyInfo Connect service...")
    if app.state.settings is None:
        logger.warning("Starting without valid configuration; MyInfo endpoints will fail until it is fixed")
    else:
        logger.info("MyInfo environment selected", extra={"environment": app.state.settings.myinfo_env})

    yield

    logger.info("Shutting down MyInfo Connect service...")


class MetricsAuthMiddleware:
    def __init__(self, app, username, password):
        self.app = app
        self.username = username
        self.password = password

    async def _reject(self, scope, receive, send):
        response = Response(
            status_code=HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Basic"},
        )
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            headers = dict(scope.get("headers") or [])
            auth_header = headers.get(b"authorization")
            if not auth_header or not auth_header.startswith(b"Basic "):
                await self._reject(scope, receive, send)
                return
            try:
                decoded = base64.b64decode(auth_header.split(b" ", 1)[1]).decode()
                username, password = decoded.split(":", 1)
            except ValueError:
                await self._reject(scope, receive, send)
                return
            if username != self.username or password != self.password:
                await self._reject(scope, receive, send)
                return
        await self.app(scope, receive, send)


def create_app(
    app_settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Validated settings; resolved lazily from the environment when omitted
        session_store: Pending session store; a process-local store when omitted

    Returns:
        FastAPI: The configured FastAPI application
    """
    app = FastAPI(
        title="MyInfo Connect",
        description="MyInfo v5 (Singpass) login with PKCE, DPoP and encrypted person data",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = app_settings
    ttl = app_settings.session_ttl_seconds if app_settings else DEFAULT_SESSION_TTL_SECONDS
    app.state.session_store = session_store if session_store is not None else InMemorySessionStore(ttl_seconds=ttl)

    app.add_middleware(CacheControl)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(auth_router)
    app.include_router(jwks_router)

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """
        Health check endpoint.

        Returns:
            dict: Health status
        """
        return {"status": "healthy", "service": "myinfo-connect"}

    if app_settings and app_settings.metrics_user and app_settings.metrics_pass:
        app.mount(
            "/metrics",
            MetricsAuthMiddleware(
                make_asgi_app(),
                app_settings.metrics_user,
                app_settings.metrics_pass.get_secret_value(),
            ),
        )

    # Global exception handler to prevent leaking sensitive data
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        detail = str(exc)
        if isinstance(exc, HTTPException):
            detail = exc.detail
        safe_detail = redact_sensitive_data(detail) if isinstance(detail, (dict, list)) else detail
        logger.error(f"Unhandled error on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=getattr(exc, 'status_code', 500),
            content={
                "status": "error",
                "message": safe_detail,
            },
        )

    return app


app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "myinfo_connect.main:app",
        host="0.0.0.0",
        port=3000,
        reload=True,
        log_level=log_level.lower(),
    )
