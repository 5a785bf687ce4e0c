"""Centralized error transformation for API routes.

Maps searchsync errors (domain and infrastructure) to HTTPException responses.
"""

from typing import Any

from fastapi import HTTPException

from searchsync.domain.shared.error import (
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ReindexInProgressError,
    SearchSyncError,
    ValidationError,
)

ERROR_STATUS_MAP: dict[type[SearchSyncError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    ConflictError: 409,
    ConfigurationError: 503,
    ExternalServiceError: 502,
}


def map_error(error: SearchSyncError) -> HTTPException:
    """Map a searchsync error to an HTTPException.

    The most specific registered base class decides the status; anything
    unregistered is a 500.
    """
    detail: dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }

    status_code = 500
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_MAP:
            status_code = ERROR_STATUS_MAP[cls]
            break

    if isinstance(error, ValidationError) and error.field is not None:
        detail["field"] = error.field
    if isinstance(error, ReindexInProgressError):
        detail["lock"] = error.status.to_payload()

    return HTTPException(status_code=status_code, detail=detail)
