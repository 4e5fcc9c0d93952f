"""Security headers middleware."""
from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add OWASP-recommended headers to all responses."""

    # Redirects and analytics must never be served from a cache
    _NO_CACHE_PREFIXES = ("/go", "/api/", "/resolve")

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        # Affiliate networks need the origin for attribution, not the full URL
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )

        path = request.url.path
        if any(path.startswith(p) for p in self._NO_CACHE_PREFIXES):
            response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate")
            response.headers["Pragma"] = "no-cache"

        return response
