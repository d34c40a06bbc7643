"""Translate core failures into HTTP errors."""

from typing import TypeVar

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from staydesk.domain.results import ErrorCode, Failure, Ok, Result

T = TypeVar("T")

STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 422,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ROOM_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.STALE_VERSION: status.HTTP_409_CONFLICT,
    ErrorCode.EDIT_NOT_ALLOWED: status.HTTP_403_FORBIDDEN,
    ErrorCode.PERSISTENCE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class FailureHTTPException(HTTPException):
    """An ``HTTPException`` that also carries the failure code and context."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(status_code=STATUS_BY_CODE[failure.code], detail=failure.message)
        self.error = failure.code
        self.context = failure.context


def unwrap(result: Result[T]) -> T:
    """Return the value of ``result`` or raise the matching HTTP error."""
    if isinstance(result, Ok):
        return result.value
    raise FailureHTTPException(result)


async def failure_exception_handler(request: Request, exc: FailureHTTPException) -> JSONResponse:
    body = {"detail": exc.detail, "error": exc.error.value}
    if exc.context:
        body["context"] = jsonable_encoder(exc.context)
    return JSONResponse(status_code=exc.status_code, content=body)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors()), "error": ErrorCode.INVALID_INPUT.value},
    )
