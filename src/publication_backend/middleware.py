
import logging
import time
from datetime import datetime, timezone

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

access_logger = logging.getLogger("publication_backend.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
}


def client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Writes one combined-log-format line per request.

    The Authorization header is never logged; requests that carry one are
    marked with ``[REDACTED]`` at the end of the line.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        authorization = "[REDACTED]" if request.headers.get("authorization") else ""
        timestamp = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")

        access_logger.info(
            f'{client_ip(request) or "-"} - - [{timestamp}] '
            f'"{request.method} {path} HTTP/{request.scope.get("http_version", "1.1")}" '
            f'{response.status_code} {response.headers.get("content-length", "-")} '
            f'"{request.headers.get("referer", "")}" "{request.headers.get("user-agent", "")}" '
            f'{authorization} {duration_ms}ms'
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds conservative browser security headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
