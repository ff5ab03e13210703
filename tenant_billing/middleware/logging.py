"""
Request logging for the billing API.

Every request gets an ID (taken from X-Request-ID or generated) that is echoed
back on the response and attached to every log record emitted while the
request is handled, together with the tenant or invoice the URL targets.
Service-level lines such as "Tenant 3: TRIAL -> OVERDUE" can then be joined
to the HTTP call that caused them.
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
from starlette.routing import Match
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health"})
# Path parameters copied onto log records
BILLING_PATH_PARAMS = ("tenant_id", "invoice_id", "tier_id")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
billing_target_var: ContextVar[dict] = ContextVar("billing_target", default={})


class RequestContextFilter(logging.Filter):
    """Stamp request ID and billing target ids onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        for key, value in billing_target_var.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    FIELDS = ("method", "path", "status_code", "duration_ms", "error_details") + BILLING_PATH_PARAMS

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }
        entry.update({key: getattr(record, key) for key in self.FIELDS if hasattr(record, key)})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _billing_target(request: Request) -> dict:
    """Resolve the matching route early so path ids are known before the handler runs."""
    for route in request.app.router.routes:
        match, child_scope = route.matches(request.scope)
        if match == Match.FULL:
            params = child_scope.get("path_params", {})
            return {key: params[key] for key in BILLING_PATH_PARAMS if key in params}
    return {}


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, logger_name: str = "tenant_billing.access"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        target = _billing_target(request)
        request_token = request_id_var.set(request_id)
        target_token = billing_target_var.set(target)
        started = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                self._log(request, 500, started)
                raise
            response.headers[REQUEST_ID_HEADER] = request_id
            self._log(request, response.status_code, started)
            return response
        finally:
            billing_target_var.reset(target_token)
            request_id_var.reset(request_token)

    def _log(self, request: Request, status_code: int, started: float) -> None:
        if request.url.path in QUIET_PATHS:
            return
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        level = logging.ERROR if status_code >= 500 else logging.WARNING if status_code >= 400 else logging.INFO
        self.logger.log(
            level,
            "%s %s - %d (%.2fms)",
            request.method,
            request.url.path,
            status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )


def setup_structured_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure root logging for the application.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, plain text otherwise
    """
    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"))
    handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # SQL statements only when debugging; main.py raises this in debug mode
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
