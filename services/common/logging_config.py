"""
Centralized logging configuration for all Huddle services.

This module provides consistent logging setup across all services including:
- Structured logging with JSON format
- Request ID tracking for HTTP requests
- User context extraction
- Performance timing

Usage:
    from services.common.logging_config import setup_service_logging

    # In your service main.py
    setup_service_logging(
        service_name="scheduler",
        log_level="INFO",
        log_format="json"
    )
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable

import structlog
from fastapi import Request, Response

# Context variables for request-specific data
request_id_var: ContextVar[str] = ContextVar("request_id", default="uninitialized")
user_id_var: ContextVar[str] = ContextVar("user_id", default="anonymous")

_CONTEXT_KEYS = ("timestamp", "level", "logger", "event", "service", "request_id", "user_id")


class RequestContextFilter(logging.Filter):
    """Add request context from contextvars to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.user_id = user_id_var.get()
        if not hasattr(record, "service_name"):
            record.service_name = getattr(record, "service", "unknown")
        return True


def add_request_context(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Add request and user ID to all log entries."""
    request_id = request_id_var.get()
    user_id = user_id_var.get()
    if request_id and request_id != "uninitialized":
        event_dict["request_id"] = request_id
    if user_id and user_id != "anonymous":
        event_dict["user_id"] = user_id
    return event_dict


def add_service_context(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Add service name to all log entries."""
    logger_name = event_dict.get("logger", "")
    if logger_name.startswith("services."):
        # "services.scheduler.engine.slots" -> "scheduler"
        service_parts = logger_name.split(".")
        if len(service_parts) >= 2:
            event_dict["service"] = service_parts[1]
    return event_dict


class EnhancedTextRenderer:
    """Human-readable renderer used when LOG_FORMAT=text."""

    def __init__(self, service_name: str):
        self.service_name = service_name

    def __call__(
        self,
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> str:
        timestamp = event_dict.get("timestamp", "")
        level = event_dict.get("level", "INFO").upper()
        logger_name = event_dict.get("logger", "")
        message = event_dict.get("event", "")
        service = event_dict.get("service", self.service_name)

        # Last 4 chars are enough to follow a request through the log
        request_id = event_dict.get("request_id", "")
        if request_id and request_id != "uninitialized":
            request_id_suffix = f"[{request_id[-4:]}]"
        else:
            request_id_suffix = ""

        user_info = ""
        user_id = event_dict.get("user_id", "")
        if user_id and user_id != "anonymous":
            user_info = f" | User: {user_id}"

        clean_logger_name = logger_name
        if logger_name.startswith("services."):
            clean_logger_name = logger_name[len("services.") :]

        parts = [
            timestamp,
            f"[{service}]",
            f"[{level}]",
            request_id_suffix,
            clean_logger_name,
            f"- {message}{user_info}",
        ]

        extra_context = []
        for key, value in event_dict.items():
            if key in _CONTEXT_KEYS:
                continue
            if isinstance(value, (str, int, float, bool)):
                extra_context.append(f"{key}={value}")
            else:
                extra_context.append(f"{key}={str(value)[:150]}")

        if extra_context:
            parts.append(f"| {', '.join(extra_context)}")

        return " ".join(filter(None, parts))


def setup_service_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """
    Set up logging configuration for a service.

    Args:
        service_name: Name of the service (e.g., "scheduler")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format type ("json" or "text")
    """
    processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_request_context,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(EnhancedTextRenderer(service_name))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # structlog renders the final line, stdlib only passes it through
    formatter = logging.Formatter("%(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    old_factory = logging.getLogRecordFactory()

    def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = old_factory(*args, **kwargs)
        record.service_name = service_name
        return record

    logging.setLogRecordFactory(record_factory)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
        force=True,
    )

    # Silence verbose third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    get_logger(__name__).info(
        f"Logging configured for {service_name}",
        log_level=log_level,
        log_format=log_format,
    )


def create_request_logging_middleware() -> Callable:
    """
    Create HTTP request logging middleware for FastAPI.

    Returns:
        Async middleware function for FastAPI
    """

    async def log_requests(request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        request_id_var.set(request_id)
        user_id_var.set(request.headers.get("X-User-Id") or "anonymous")

        start_time = time.time()
        logger = get_logger("http.requests")

        logger.info(
            f"-> {request.method} {request.url.path}",
            method=request.method,
            query_params=str(request.query_params) if request.query_params else None,
            client_ip=getattr(request.client, "host", "unknown")
            if request.client
            else "unknown",
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        log_method = logger.error if response.status_code >= 500 else logger.info
        log_method(
            f"<- {request.method} {request.url.path} {response.status_code} "
            f"({process_time:.3f}s)",
            status_code=response.status_code,
            process_time=process_time,
            method=request.method,
        )
        response.headers["X-Request-Id"] = request_id
        return response

    return log_requests


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_service_startup(service_name: str, **kwargs: Any) -> None:
    """Log service startup with configuration details."""
    logger = get_logger("startup")
    logger.info(f"Starting {service_name}", service=service_name, **kwargs)


def log_service_shutdown(service_name: str) -> None:
    """Log service shutdown event."""
    logger = get_logger(__name__)
    logger.info(f"Service {service_name} shutting down")
