"""Logging configuration read from the environment."""

import os
import logging
import sys
from pythonjsonlogger import jsonlogger

# Chatty client libraries under the supabase stack
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "realtime", "supabase", "postgrest", "gotrue", "storage3")


class LoggingConfig:
    """Logging settings, fixed at import time."""

    SERVICE_NAME = os.environ.get("SERVICE_NAME", "marketplace-match-backend")
    ENVIRONMENT = os.environ.get("ENVIRONMENT", "production")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "false").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    @classmethod
    def level(cls) -> int:
        return getattr(logging, cls.LOG_LEVEL, logging.INFO)

    @classmethod
    def setup_logging(cls) -> None:
        """Install a single stdout handler on the root logger."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level())
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(cls.level())
        handler.addFilter(ServiceContextFilter(cls.SERVICE_NAME, cls.ENVIRONMENT))
        handler.setFormatter(_build_formatter(cls.LOG_FORMAT))
        root_logger.addHandler(handler)

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class ServiceContextFilter(logging.Filter):
    """Stamp every record with the service name and deployment environment."""

    def __init__(self, service: str, environment: str):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment
        return True


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return jsonlogger.JsonFormatter(
            "%(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level"},
            timestamp=True
        )
    return logging.Formatter(
        '%(asctime)s [%(service)s] %(name)s %(levelname)s %(message)s'
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
