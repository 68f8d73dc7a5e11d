"""structlog setup with a stdlib bridge, plus the request-logging middleware.

configure_logging() is idempotent; get_logger() returns a logger bound to a
component name.
"""

import logging
import sys
import time
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from .config import get_settings

_CONFIGURED = False

SLOW_REQUEST_MS = 2000


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    renderer = _select_renderer()
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route logging.getLogger() output (uvicorn, sqlalchemy, celery) through structlog
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    # Lazy proxy; configuration is resolved on first log call
    return structlog.get_logger(component=component)


def _select_renderer() -> Any:
    settings = get_settings()
    log_format = (settings.log_format or "").lower()
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)

    if settings.env.lower() in ("qa", "staging", "prod", "production"):
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


logger = get_logger("http")


class RequestLogMiddleware:
    """ASGI middleware: binds a request id to the log context and logs each
    request with its status code and duration."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        clear_contextvars()
        request_id = _header(scope, b"x-request-id") or str(uuid4())
        bind_contextvars(
            request_id=request_id,
            method=scope.get("method", "UNKNOWN"),
            path=scope.get("path", "/"),
        )

        status_code = 500
        start = time.perf_counter()

        async def send_wrapper(message: dict) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                headers.append((b"x-request-id", request_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            _log_response(status_code, (time.perf_counter() - start) * 1000)


def _log_response(status_code: int, duration_ms: float) -> None:
    fields = {"status_code": status_code, "duration_ms": round(duration_ms, 2)}
    if status_code >= 500:
        logger.error("request failed", **fields)
    elif status_code >= 400:
        logger.warning("request rejected", **fields)
    elif duration_ms > SLOW_REQUEST_MS:
        logger.warning("slow request", **fields)
    else:
        logger.info("request completed", **fields)


def _header(scope: dict, name: bytes) -> Optional[str]:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return None
