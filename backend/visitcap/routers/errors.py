from typing import Any

from fastapi import HTTPException, status

from ..domain.errors import (
    BookingValidationError,
    CapacityEngineError,
    CapacityExceededError,
    CollaboratorError,
    DuplicateBookingError,
    InvalidStateError,
    NotFoundError,
)

_STATUS_BY_ERROR: list[tuple[type[CapacityEngineError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (CapacityExceededError, status.HTTP_400_BAD_REQUEST),
    (DuplicateBookingError, status.HTTP_400_BAD_REQUEST),
    (CollaboratorError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def to_http_exception(exc: CapacityEngineError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            status_code = code
            break

    detail: Any = str(exc)
    if isinstance(exc, CapacityExceededError):
        detail = {"message": str(exc), **exc.as_dict()}
    elif isinstance(exc, BookingValidationError):
        detail = {"message": str(exc), "errors": exc.errors}
    return HTTPException(status_code=status_code, detail=detail)
