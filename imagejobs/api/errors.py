"""Uniform `{error, status}` error responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException

from imagejobs.errors import ImageJobsError


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "status": status_code})


async def _handle_app_error(request: Request, exc: ImageJobsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.opt(exception=exc).error(f"{request.method} {request.url.path}: {exc.message}")
    return _error(exc.status_code, exc.message)


async def _handle_http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p not in ("body", "query", "path"))
        message = f"Invalid request field '{loc}': {errors[0].get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return _error(400, message)


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Error in request handler {request.method} {request.url.path}")
    return _error(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ImageJobsError, _handle_app_error)
    app.add_exception_handler(HTTPException, _handle_http_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)
