"""
Structured Logging Middleware

JSON access logs and a request id that follows every log line emitted while
a request is being handled, so a view or like can be traced end to end.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import datetime, timezone

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from churchsite.services.identity_service import get_client_ip

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})
EXTRA_FIELDS = ("user_id", "method", "path", "status_code", "duration_ms", "client_ip", "errors")


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access logging for every request.

    Assigns (or propagates) X-Request-ID, times the request and logs
    method, path, status, client IP and the authenticated user when known.
    """

    def __init__(self, app: ASGIApp, logger_name: str = "churchsite.access"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        start_time = time.perf_counter()
        client_ip = get_client_ip(request.headers)

        try:
            response = await call_next(request)
        except Exception as e:
            self._log_request(request, 500, start_time, client_ip, error=str(e))
            raise

        response.headers["X-Request-ID"] = request_id
        self._log_request(request, response.status_code, start_time, client_ip)
        return response

    def _log_request(
        self,
        request: Request,
        status_code: int,
        start_time: float,
        client_ip: str,
        error: str | None = None,
    ) -> None:
        if request.url.path in QUIET_PATHS:
            return

        duration_ms = (time.perf_counter() - start_time) * 1000

        if status_code >= 500:
            log_level = logging.ERROR
        elif status_code >= 400 and status_code != 429:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": client_ip,
        }
        user = getattr(request.state, "user", None)
        if user is not None:
            extra["user_id"] = user.id

        message = f"{request.method} {request.url.path} - {status_code} ({duration_ms:.2f}ms)"
        if error:
            message += f" - Error: {error}"

        self.logger.log(log_level, message, extra=extra)


def setup_structured_logging(log_level: str = "INFO", json_format: bool = True, log_file: str | None = None) -> None:
    """
    Configure root logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use the JSON formatter (production) or a plain one (development)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"))
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    for logger_name, level in {
        "churchsite": log_level,
        "churchsite.access": log_level,
        "uvicorn.access": "WARNING",
        "sqlalchemy.engine": "WARNING",
        "apscheduler": "WARNING",
    }.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))


def get_request_id() -> str:
    """Current request id, or an empty string outside a request."""
    return request_id_var.get("")
