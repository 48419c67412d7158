"""Middleware for request tracing and cache headers."""

import uuid
from typing import Awaitable, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track and propagate a unique request ID for each request.
    Adds X-Request-ID to response headers and attaches to request.state.
    """
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class CacheControl(BaseHTTPMiddleware):
    """Middleware for adding cache control headers to responses."""

    def __init__(
        self,
        app,
        cache_paths: Optional[Dict[str, Optional[int]]] = None
    ):
        """
        Initialize the cache control middleware.

        Args:
            app: The FastAPI application
            cache_paths: Dict mapping path prefixes to cache max-age in seconds;
                None marks a prefix as never cacheable
        """
        super().__init__(app)
        self.cache_paths = cache_paths if cache_paths is not None else {
            "/api/auth/": None,  # login redirects carry fresh state
            "/redirect": None,  # callback redirects carry person data
            "/health": 60,
        }

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """
        Process a request to add cache headers.

        Responses that already set Cache-Control keep their own value.
        """
        response = await call_next(request)

        path = request.url.path
        matched, max_age = self._get_cache_policy(path)
        if not matched or "Cache-Control" in response.headers:
            return response

        if max_age is None:
            response.headers["Cache-Control"] = "no-store"
        elif 200 <= response.status_code < 300:
            response.headers["Cache-Control"] = f"public, max-age={max_age}"

        return response

    def _get_cache_policy(self, path: str) -> tuple[bool, Optional[int]]:
        for prefix, max_age in self.cache_paths.items():
            if path.startswith(prefix):
                return True, max_age
        return False, None
