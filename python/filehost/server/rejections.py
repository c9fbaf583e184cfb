"""Translation of request-handling failures into the fixed HTTP status/message table.

Every exception that reaches the application boundary is classified into exactly one
`Rejection`. Classification is total: anything unrecognized becomes INTERNAL_SERVER_ERROR.
The client only ever sees the short message, never the underlying error.
"""

from enum import Enum

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import (
    AuthorizationError,
    ConfigurationError,
    FileHostError,
    MissingHeaderError,
    StorageError,
    ValidationError,
)

logger = structlog.get_logger("filehost.server.rejections")


class Rejection(Enum):
    NOT_FOUND = (404, "NOT_FOUND")
    BAD_REQUEST = (400, "BAD_REQUEST")
    UNAUTHORIZED = (401, "Unauthorized")
    METHOD_NOT_ALLOWED = (405, "Invalid Request Method")
    SYS_ERROR = (500, "SYS_ERROR")
    INTERNAL_SERVER_ERROR = (500, "INTERNAL_SERVER_ERROR")

    @property
    def status_code(self) -> int:
        return self.value[0]

    @property
    def message(self) -> str:
        return self.value[1]


def classify(exc: BaseException) -> Rejection:
    """Map a failure to its rejection."""
    # Order matters: MissingHeaderError is an AuthorizationError but is a 400.
    if isinstance(exc, MissingHeaderError | ValidationError | RequestValidationError):
        return Rejection.BAD_REQUEST
    if isinstance(exc, AuthorizationError):
        return Rejection.UNAUTHORIZED
    if isinstance(exc, ConfigurationError | StorageError):
        return Rejection.SYS_ERROR
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code == 404:
            return Rejection.NOT_FOUND
        if exc.status_code == 405:
            return Rejection.METHOD_NOT_ALLOWED
        if 400 <= exc.status_code < 500:
            return Rejection.BAD_REQUEST
    return Rejection.INTERNAL_SERVER_ERROR


def reject(exc: BaseException) -> PlainTextResponse:
    """Build the wire response for a failure, logging it where the table requires."""
    rejection = classify(exc)

    if rejection is Rejection.SYS_ERROR:
        logger.warning("upload_rejected", error=str(exc))
    elif rejection is Rejection.INTERNAL_SERVER_ERROR:
        logger.error("unhandled_rejection", error=repr(exc))

    headers = None
    if rejection is Rejection.METHOD_NOT_ALLOWED and isinstance(exc, StarletteHTTPException):
        headers = exc.headers

    return PlainTextResponse(rejection.message, status_code=rejection.status_code, headers=headers)


def install_rejection_handlers(app: FastAPI) -> None:
    """Route every failure raised while handling a request through `reject`."""

    async def handle(_request: Request, exc: Exception) -> PlainTextResponse:
        return reject(exc)

    for exc_class in (FileHostError, StarletteHTTPException, RequestValidationError, Exception):
        app.add_exception_handler(exc_class, handle)
