"""
FastAPI Authentication Dependencies

The identity gateway terminates authentication and forwards the verified
user id in the ``X-User-ID`` header.  Endpoints that act on behalf of a user
depend on ``require_user_id``.
"""
from __future__ import annotations

import logging

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)


async def require_user_id(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> str:
    """
    FastAPI dependency: require the gateway-supplied ``X-User-ID`` header.

    Returns:
        The user id string (stripped).

    Raises:
        HTTPException 401: If X-User-ID is missing or empty.
        HTTPException 400: If X-User-ID is longer than a user id can be.
    """
    if not x_user_id or not x_user_id.strip():
        logger.warning("Request without X-User-ID")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header required",
        )
    value = x_user_id.strip()
    if len(value) > 36:
        logger.warning("Invalid X-User-ID format: %s", value[:36])
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )
    return value
