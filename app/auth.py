"""
Service key guard for the editing API.

Job submission and cancellation change state and are called by the VidCraft
backend, not by browsers. Those routes depend on `require_editor_key`; reads
and the progress stream stay open.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from app.config import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Editor-API-Key"


def _reject(request: Request, reason: str) -> HTTPException:
    logger.warning(f"Rejected {request.method} {request.url.path}: {reason}")
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=reason,
        headers={"WWW-Authenticate": API_KEY_HEADER},
    )


async def require_editor_key(
    request: Request,
    api_key: Optional[str] = Header(None, alias=API_KEY_HEADER),
) -> None:
    """
    Dependency for state-changing editing routes.

    Without EDITOR_API_KEY configured every caller is accepted (local
    development). Otherwise the header must match; the comparison is
    constant-time.

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    expected_key = get_settings().editor_api_key
    if not expected_key:
        return

    if not api_key:
        raise _reject(request, "Missing API key")

    if not hmac.compare_digest(api_key.encode(), expected_key.encode()):
        raise _reject(request, "Invalid API key")
