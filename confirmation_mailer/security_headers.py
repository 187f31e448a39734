"""
Security Headers Middleware for FastAPI

Adds security headers to all responses of the JSON relay:
- X-Frame-Options: Prevents clickjacking attacks
- X-Content-Type-Options: Prevents MIME type sniffing
- Referrer-Policy: Controls referrer information leakage
- Content-Security-Policy: Restricts resource loading
- Strict-Transport-Security: Enforces HTTPS (production only)
- Cache-Control: Prevents caching of delivery results
"""

import logging
import os
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"


def get_csp_policy() -> str:
    """
    Generate Content-Security-Policy header value.

    The service only returns JSON, so nothing needs to load from it.
    """
    directives = [
        "default-src 'none'",
        "base-uri 'none'",
        "form-action 'none'",
        "frame-ancestors 'none'",
        "object-src 'none'",
    ]
    return "; ".join(directives)


def get_security_headers_dict(is_production: bool = IS_PRODUCTION) -> dict:
    """
    Get security headers as a dictionary.
    Shared by the middleware and by tests.
    """
    headers = {
        "X-Frame-Options": "SAMEORIGIN",
        "X-Content-Type-Options": "nosniff",
        # Legacy XSS auditors are disabled; they introduce their own leaks
        "X-XSS-Protection": "0",
        "Referrer-Policy": "no-referrer",
        "Content-Security-Policy": get_csp_policy(),
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-Download-Options": "noopen",
        "X-DNS-Prefetch-Control": "off",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Origin-Agent-Cluster": "?1",
    }

    if is_production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    # Note: Cross-Origin-Resource-Policy is NOT set here so CORS keeps working
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds security headers to all responses."""

    def __init__(
        self, app, exclude_paths: Optional[list[str]] = None, is_production: bool = IS_PRODUCTION
    ):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []
        self.headers = get_security_headers_dict(is_production)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Skip security headers for excluded paths (e.g., health checks)
        path = request.url.path
        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            return response

        for name, value in self.headers.items():
            response.headers[name] = value

        # Delivery results must never be cached by intermediaries
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response
