"""JSON envelope helpers and the exception handlers that produce the error
envelope for every failure path."""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging_config import get_logger

logger = get_logger(__name__)


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return {"success": True, "data": data, "message": message}


def error_body(error: str, details: Optional[list] = None) -> dict:
    body = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return body


def _describe(err: dict) -> dict:
    field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
    message = err.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return {"field": field, "message": message}


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [_describe(err) for err in exc.errors()]
    summary = "; ".join(f"{d['field']}: {d['message']}" if d["field"] else d["message"] for d in details)
    logger.warning("request validation failed", url=str(request.url), errors=details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(summary or "Invalid request", details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error", url=str(request.url))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
