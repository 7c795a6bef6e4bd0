"""
Translation of engine errors into HTTP responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.services.errors import (
    AlreadyVerifiedError,
    CodeNotFoundError,
    CouldNotVerifyError,
    DutyWatchError,
    ExternalIdentityNotFoundError,
    ExternalServiceUnavailableError,
    NoActiveSessionError,
    NoPendingAttemptError,
    NotVerifiedError,
    StorageUnavailableError,
)

logger = get_logger(__name__)

STATUS_BY_ERROR: dict[type[DutyWatchError], int] = {
    NoActiveSessionError: status.HTTP_404_NOT_FOUND,
    NoPendingAttemptError: status.HTTP_404_NOT_FOUND,
    ExternalIdentityNotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyVerifiedError: status.HTTP_409_CONFLICT,
    NotVerifiedError: status.HTTP_409_CONFLICT,
    CodeNotFoundError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExternalServiceUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    CouldNotVerifyError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: DutyWatchError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def dutywatch_error_handler(request: Request, exc: DutyWatchError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Request failed",
        path=request.url.path,
        error_code=exc.code,
        subject_id=exc.subject_id,
        status_code=status_code,
        error=str(exc),
    )

    body = {"error": exc.code, "detail": str(exc), "recoverable": exc.recoverable}
    if isinstance(exc, CodeNotFoundError):
        body["guidance"] = exc.guidance
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DutyWatchError, dutywatch_error_handler)
