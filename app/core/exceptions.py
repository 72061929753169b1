import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as RowValidationError


logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error for the messaging core. `detail` is safe to show to users."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(AppError):
    status_code = 400


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """A uniqueness rule or a state precondition rejected the write."""

    status_code = 409


class StoreError(AppError):
    """The backing store failed for a reason other than a constraint."""

    status_code = 500


# Read paths degrade on these: store failures and rows that fail to parse.
READ_ERRORS = (AppError, RowValidationError)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"app_error path={request.url.path} detail={exc.detail}")
    else:
        logger.info(
            f"app_error path={request.url.path} status={exc.status_code} detail={exc.detail}"
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
