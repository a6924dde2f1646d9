"""Security response headers middleware."""

from typing import Callable

from fastapi import Request, Response

from portal.core.config import get_settings

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

NO_STORE_PREFIXES = ("/api/auth", "/api/admin", "/api/orders", "/api/payments")


async def security_headers_middleware(
    request: Request,
    call_next: Callable[[Request], Response],
) -> Response:
    """Add standard security headers to every response.

    Authenticated API areas are also marked as not cacheable, and HSTS is
    sent in production.
    """
    response = await call_next(request)

    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)

    if request.url.path.startswith(NO_STORE_PREFIXES):
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"

    if get_settings().is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    return response
