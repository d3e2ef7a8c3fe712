"""Translate review engine exceptions into HTTP errors."""
from __future__ import annotations

from fastapi import HTTPException, status

from stemhub.errors import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    PromotionFailedError,
    ReviewEngineError,
)


def http_error(exc: ReviewEngineError) -> HTTPException:
    """Map an engine error onto the status code callers expect.

    NotFound → 404, Conflict → 409, failed promotion → 500 with the generic
    "finalization failed" detail (the cause stays in the server log).
    """
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PromotionFailedError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="finalization failed"
        )
    if isinstance(exc, InvariantViolationError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
