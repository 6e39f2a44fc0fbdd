from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from checkin.exceptions import CheckinError
from checkin.utils.logger import logger

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


async def checkin_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, CheckinError) else CheckinError(str(exc))
    if error.informational:
        logger.info(f"{request.method} {request.url.path}: {error.code} - {error.message}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {error.code} - {error.message}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def value_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc), "code": "bad_request"})


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, RequestValidationError) else RequestValidationError([])
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(error.errors()), "code": "validation_error"},
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    CheckinError: checkin_error_handler,
    RequestValidationError: validation_error_handler,
    ValueError: value_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
