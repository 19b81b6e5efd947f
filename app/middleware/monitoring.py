"""
Performance monitoring middleware for the platform backend.

Provides request timing, request ID propagation, database query counting,
slow query logging and the structured JSON log formatter.
"""

import time
import uuid
import logging
import json
from typing import Callable, Optional
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import settings
from app.services.metrics_service import metrics_collector

logger = logging.getLogger(__name__)

# Context variables for request-scoped data
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
db_metrics_ctx: ContextVar[Optional["DatabaseMetrics"]] = ContextVar("db_metrics", default=None)
# Set once the bearer token has been resolved into a session scope
session_ctx: ContextVar[Optional[dict]] = ContextVar("session", default=None)


@dataclass
class DatabaseMetrics:
    """Tracks database query metrics for a single request."""
    query_count: int = 0
    total_duration_ms: float = 0.0
    slow_queries: list = field(default_factory=list)

    def add_query(self, duration_ms: float, statement: str = ""):
        """Record a database query execution."""
        self.query_count += 1
        self.total_duration_ms += duration_ms

        if duration_ms > settings.SLOW_QUERY_THRESHOLD_MS:
            self.slow_queries.append({
                "duration_ms": round(duration_ms, 2),
                "statement": statement[:500] if statement else "",  # Truncate long statements
                "timestamp": datetime.utcnow().isoformat()
            })


# Query start times keyed by connection
_query_started: dict = {}


def setup_db_event_listeners(engine: AsyncEngine):
    """
    Set up SQLAlchemy event listeners for query timing.

    Called once during application startup after the engine is created.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        _query_started[id(conn)] = time.perf_counter()

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        started = _query_started.pop(id(conn), None)
        if started is None:
            return
        duration_ms = (time.perf_counter() - started) * 1000

        db_metrics = db_metrics_ctx.get()
        if db_metrics:
            db_metrics.add_query(duration_ms, statement)

        if duration_ms > settings.SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "Slow query detected",
                extra={
                    "request_id": request_id_ctx.get() or "no-request",
                    "duration_ms": round(duration_ms, 2),
                    "statement": statement[:500],
                    "event_type": "slow_query"
                }
            )

    logger.info("Database query timing listeners registered")


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_ctx.get()


def bind_session_context(request: Request, tenant_id: Optional[str], actor: str, impersonating: bool = False):
    """
    Attach the acting tenant and user to log lines for the rest of the request.

    The context variable covers logs emitted while handling the request; the
    copy on request.state lets the middleware include it in the request log.
    """
    context = {"tenant_id": tenant_id, "actor": actor}
    if impersonating:
        context["impersonating"] = True
    session_ctx.set(context)
    request.state.session_context = context


def get_session_context() -> dict:
    return session_ctx.get() or {}


class MonitoringMiddleware(BaseHTTPMiddleware):
    """
    Performance monitoring middleware.

    Features:
    - Request timing (total duration)
    - Request ID tracking
    - Database query counting
    - Slow request logging
    - Prometheus request metrics
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_ctx.set(request_id)

        db_metrics = DatabaseMetrics()
        db_metrics_ctx.set(db_metrics)

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed with exception",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                    "event_type": "request_error"
                }
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        log_context = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "db_query_count": db_metrics.query_count,
            "db_query_duration_ms": round(db_metrics.total_duration_ms, 2),
            "event_type": "request_complete",
            **getattr(request.state, "session_context", {})
        }

        if duration_ms > settings.SLOW_REQUEST_THRESHOLD_MS:
            log_context["slow_queries"] = db_metrics.slow_queries
            log_context["event_type"] = "slow_request"
            logger.warning(
                f"Slow request: {method} {path} took {duration_ms:.2f}ms",
                extra=log_context
            )
        elif settings.DEBUG or path.startswith("/api/"):
            logger.info(
                f"Request: {method} {path} - {response.status_code} - {duration_ms:.2f}ms",
                extra=log_context
            )

        # Label by route template to keep tenant/branch ids out of metric labels
        route = request.scope.get("route")
        endpoint = getattr(route, "path", path)
        metrics_collector.record_request(
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
            duration_seconds=duration_ms / 1000,
            db_query_count=db_metrics.query_count
        )

        return response


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format for easy parsing by log aggregation systems.
    """

    RESERVED_ATTRS = (
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "message", "taskName"
    )

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id
        log_data.update(get_session_context())

        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application-wide structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatting; otherwise use standard format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if json_format:
        console_handler.setFormatter(StructuredJsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.DEBUG else logging.WARNING
    )

    logger.info("Structured logging configured", extra={"json_format": json_format})
