from fastapi import HTTPException, status

from ..domain.errors import (
    ActivityUnavailableError,
    AuthorizationFailed,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ReservationError,
    UnauthorizedError,
    UpstreamServiceError,
    ValidationFailed,
)

_STATUS_BY_KIND: list[tuple[type[ReservationError], int]] = [
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (AuthorizationFailed, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ActivityUnavailableError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (UpstreamServiceError, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(exc: ReservationError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for kind, code in _STATUS_BY_KIND:
        if isinstance(exc, kind):
            status_code = code
            break
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": str(exc)},
        headers=headers,
    )
