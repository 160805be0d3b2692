"""Structured logging helpers.

Log calls take their fields as keyword arguments. Every record carries the
request's correlation id when one is active, user ids are shortened before
they are logged, and chat text only reaches the logs when
``LOG_MESSAGE_CONTENT`` is on, with contact details and credentials redacted.
"""

import inspect
import logging
import time
import uuid
import re
import hashlib
from contextvars import ContextVar
from typing import Any, Optional, Dict, Callable
from contextlib import contextmanager
from functools import wraps

from src.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Incoming header values are echoed into every log line
_CORRELATION_ID_RE = re.compile(r'^[A-Za-z0-9._:-]{1,64}$')

# Applied in order; JWTs first so the generic secret rule cannot split them
_REDACTIONS = (
    (re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+'), '[REDACTED_JWT]'),
    (re.compile(r'(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*'), 'Bearer [REDACTED]'),
    (re.compile(r'(?i)\b(api[_-]?key|token|secret|password)[\s:=]+[A-Za-z0-9_-]{16,}'), r'\1=[REDACTED]'),
    (re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE), '[REDACTED_EMAIL]'),
    (re.compile(r'\b\+?\d[\d\s().-]{7,}\d\b'), '[REDACTED_PHONE]'),
)

_RESERVED_RECORD_KEYS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def generate_correlation_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """
    Bind a correlation id for the duration of a request.

    A missing or malformed id (e.g. from a client header) is replaced with a
    fresh one. The previous id is restored on exit.
    """
    if not correlation_id or not _CORRELATION_ID_RE.match(correlation_id):
        correlation_id = generate_correlation_id()

    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)


def mask_sensitive_data(text: str) -> str:
    """Redact access tokens, credentials, emails and phone numbers."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text

    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def mask_user_id(user_id: str) -> str:
    """Shorten a user id to a stable, non-reversible tag."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not user_id:
        return user_id

    if len(user_id) > 12:
        digest = hashlib.sha256(user_id.encode()).hexdigest()[:8]
        return f"{user_id[:4]}...{digest}"
    return user_id


def sanitize_message_text(text: str, max_length: int = 500) -> Optional[str]:
    """Chat text fit for a log line, or None when content logging is off."""
    if not LoggingConfig.LOG_MESSAGE_CONTENT or not text:
        return None

    if len(text) > max_length:
        text = text[:max_length] + "..."
    return mask_sensitive_data(text)


class StructuredLogger:
    """Logger wrapper that takes structured fields as keyword arguments."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        extra = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        for key, value in fields.items():
            # LogRecord refuses extras that shadow its own attributes
            extra[f"field_{key}" if key in _RESERVED_RECORD_KEYS else key] = value
        return extra

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._fields(fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """
    Time a block and log its duration.

    Durations above ``LOG_SLOW_OPERATION_THRESHOLD_MS`` also log a warning.
    """
    log = logger or get_structured_logger(__name__)
    started = time.perf_counter()
    log.debug(f"Starting {operation_name}", operation=operation_name, **context)

    try:
        yield
    finally:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log.info(f"Completed {operation_name}", operation=operation_name, duration_ms=duration_ms, **context)

        threshold = LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS
        if duration_ms > threshold:
            log.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                duration_ms=duration_ms,
                threshold_ms=threshold,
                **context
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator form of ``log_timing`` for sync and async callables."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"
        log = logger or get_structured_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_timing(name, logger=log):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with log_timing(name, logger=log):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


def setup_logging() -> logging.Logger:
    """Configure the root logger from the environment."""
    LoggingConfig.setup_logging()
    return get_logger("src")
