"""
Bearer-token check for the upload and introspection endpoints.

Used as a route dependency so that the public ``/publications`` links and
``/healthz`` stay open.
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def require_token(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    """
    Reject the request unless it carries ``Authorization: Bearer <token>``.

    Raises:
        HTTPException: 401 if the header is missing or not a bearer header,
            403 if the token does not match the configured one
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization[len(BEARER_PREFIX):].strip()
    expected = request.app.state.settings.auth.token
    if not expected:
        logger.warning("auth.token is not configured; rejecting authenticated request")
        raise HTTPException(status_code=403, detail="Forbidden")

    if not token or not secrets.compare_digest(token.encode(), str(expected).encode()):
        raise HTTPException(status_code=403, detail="Forbidden")
