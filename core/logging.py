"""
Structured JSON logging for photoledger.

Every log line is a single JSON object so the accounting trail (gate
decisions, ledger increments, billing reports) can be searched by request id
and caller in whatever aggregator the deployment ships logs to.

Example usage:
    >>> from core.logging import get_logger, setup_logging
    >>> setup_logging()
    >>> logger = get_logger(__name__)
    >>> logger.info("Ledger incremented", extra={"account_id": "acc_123"})
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'exc_info', 'exc_text',
    'stack_info', 'taskName', 'message',
})


class JSONFormatter(logging.Formatter):
    """
    Render log records as one-line JSON documents.

    The fixed keys are ``time``, ``level``, ``logger`` and ``msg``. Fields
    passed through ``extra=`` (request_id, client_ip, account_id, ...) are
    copied to the top level of the document.

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(JSONFormatter())
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as a JSON string.

        Args:
            record: Python logging record to format

        Returns:
            JSON encoded log line
        """
        log_entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with its outcome, duration and a correlation id.

    The id is stored on ``request.state.request_id`` so route handlers can
    attach it to their own log lines, and echoed back in ``X-Request-ID``.

    Example:
        >>> app = FastAPI()
        >>> app.add_middleware(RequestLoggingMiddleware)
    """

    def __init__(self, app, logger_name: str = "photoledger.requests"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        client_ip = get_client_ip(request)
        start_time = time.perf_counter()

        self.logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": client_ip,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": 500,
                    "duration_ms": int((time.perf_counter() - start_time) * 1000),
                    "client_ip": client_ip,
                    "error": str(e),
                },
                exc_info=True
            )
            raise

        self.logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": int((time.perf_counter() - start_time) * 1000),
                "client_ip": client_ip,
            }
        )
        response.headers["X-Request-ID"] = request_id
        return response


def get_client_ip(request: Request) -> str:
    """
    Extract the caller's network address, honouring proxy headers.

    Anonymous leads are keyed by this value, so the leftmost
    ``X-Forwarded-For`` hop is preferred over the socket peer.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address, or ``"unknown"`` when none can be determined
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    logger_name: Optional[str] = None
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: ``"json"`` for structured output, anything else for text
        logger_name: Logger to configure, ``None`` for the root logger

    Example:
        >>> setup_logging(level="DEBUG", format_type="text")
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_type.lower() == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric_level)
    if logger_name:
        logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    request: Optional[Request] = None,
    **kwargs
) -> None:
    """
    Log a message enriched with the request id and caller address.

    Args:
        logger: Logger instance to use
        level: Log level name (info, warning, error, ...)
        message: Log message
        request: FastAPI request the message relates to
        **kwargs: Additional structured fields

    Example:
        >>> log_with_context(logger, "info", "Gate refused", request=request, decision="LIMIT_REACHED")
    """
    extra_fields = dict(kwargs)

    if request is not None:
        request_id = getattr(request.state, 'request_id', None)
        if request_id:
            extra_fields['request_id'] = request_id
        extra_fields['path'] = request.url.path
        extra_fields['method'] = request.method
        extra_fields['client_ip'] = get_client_ip(request)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(message, extra=extra_fields)
