"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from agenda_engine.core import errors

_STATUS_BY_ERROR: tuple[tuple[type[errors.SchedulingError], int], ...] = (
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.ForbiddenError, status.HTTP_403_FORBIDDEN),
    (errors.ConflictError, status.HTTP_409_CONFLICT),
    (errors.UnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(exc: errors.SchedulingError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            headers = {"Retry-After": "1"} if isinstance(exc, errors.SlotBusyError) else None
            return HTTPException(status_code, detail=exc.message, headers=headers)
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
