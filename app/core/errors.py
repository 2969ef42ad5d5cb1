"""Error taxonomy and FastAPI exception handlers.

Services raise `MarketplaceError` subclasses; handlers translate them into a
stable `{"error": kind, "detail": message}` body. Stack traces never leave
the process.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette import status
import logging

logger = logging.getLogger("app.errors")


class MarketplaceError(Exception):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(MarketplaceError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(MarketplaceError):
    kind = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class Forbidden(MarketplaceError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailed(MarketplaceError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class ServiceUnavailable(MarketplaceError):
    kind = "unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def marketplace_error_handler(request: Request, exc: MarketplaceError):  # type: ignore
    logger.info("%s: %s", exc.kind, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "detail": exc.message},
    )


def http_error_handler(request: Request, exc):  # type: ignore
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "not_found",
                "detail": f"No route for {request.method} {request.url.path}",
            },
        )
    error = {
        status.HTTP_401_UNAUTHORIZED: "unauthorized",
        status.HTTP_403_FORBIDDEN: "forbidden",
        status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
    }.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "detail": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic v2 may put exception instances under "ctx"
    cleaned = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        cleaned.append(err)
    return cleaned


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": "An unexpected error occurred.",
        },
    )
