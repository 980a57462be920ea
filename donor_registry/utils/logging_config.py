import logging
import os
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

# Context variables for request tracking
request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LOG_DIR = "logs"
SERVICE_NAME = "donor-registry-api"

_configured = False


class ContextualJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that includes request context"""

    def __init__(self, *args, environment: str = "development", **kwargs):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["environment"] = self.environment
        log_record["service"] = SERVICE_NAME

        if request_id.get():
            log_record["request_id"] = request_id.get()

        if record.exc_info:
            log_record["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_record.update(record.extra_fields)


def setup_logging(
    level: str = "INFO", environment: str = "development", log_to_file: bool = False
) -> logging.Logger:
    """
    Configure the root logger once.

    Args:
        level: Root log level name
        environment: Environment name stamped on every record
        log_to_file: Also write rotating files under LOG_DIR

    Returns:
        The root logger
    """
    global _configured
    root_logger = logging.getLogger()
    if _configured:
        return root_logger

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = ContextualJsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(funcName)s:%(lineno)d %(message)s",
        environment=environment,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if log_to_file:
        _setup_file_handlers(formatter)

    # Reduce sqlalchemy noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    _configured = True
    return root_logger


def _setup_file_handlers(formatter: logging.Formatter) -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    root_logger = logging.getLogger()

    app_handler = RotatingFileHandler(
        f"{LOG_DIR}/app.log", maxBytes=10_000_000, backupCount=10  # 10MB
    )
    app_handler.setFormatter(formatter)
    app_handler.setLevel(logging.INFO)
    root_logger.addHandler(app_handler)

    error_handler = TimedRotatingFileHandler(
        f"{LOG_DIR}/error.log", when="midnight", interval=1, backupCount=30
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.ERROR)
    root_logger.addHandler(error_handler)

    for name, backups in (("security", 90), ("access", 30)):
        handler = TimedRotatingFileHandler(
            f"{LOG_DIR}/{name}.log", when="midnight", interval=1, backupCount=backups
        )
        handler.setFormatter(formatter)
        named_logger = logging.getLogger(name)
        named_logger.addHandler(handler)
        named_logger.setLevel(logging.INFO)

    perf_handler = RotatingFileHandler(
        f"{LOG_DIR}/performance.log", maxBytes=5_000_000, backupCount=5
    )
    perf_handler.setFormatter(formatter)
    perf_logger = logging.getLogger("performance")
    perf_logger.addHandler(perf_handler)
    perf_logger.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance. Use __name__ as the name parameter."""
    return logging.getLogger(name)


def log_security_event(
    event_type: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
):
    """Log security-related events"""
    security_logger = logging.getLogger("security")

    log_data = {
        "event_type": event_type,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "severity": "high"
        if event_type in ["failed_login_attempt", "invalid_token"]
        else "medium",
    }
    if details:
        log_data.update(details)

    security_logger.info(
        f"Security event: {event_type}", extra={"extra_fields": log_data}
    )


def log_performance_metric(
    operation: str,
    duration_seconds: float,
    additional_metrics: Optional[Dict[str, Any]] = None,
):
    """Log performance metrics"""
    perf_logger = logging.getLogger("performance")

    log_data = {
        "operation": operation,
        "duration_seconds": round(duration_seconds, 4),
        "performance_category": "slow" if duration_seconds > 1.0 else "normal",
    }
    if additional_metrics:
        log_data.update(additional_metrics)

    perf_logger.info(
        f"Performance metric: {operation}", extra={"extra_fields": log_data}
    )


def log_api_access(
    method: str,
    path: str,
    status_code: int,
    response_time: float,
    ip_address: Optional[str] = None,
):
    """Log API access"""
    access_logger = logging.getLogger("access")

    log_data = {
        "http_method": method,
        "path": path,
        "status_code": status_code,
        "response_time_seconds": round(response_time, 4),
        "ip_address": ip_address,
    }

    access_logger.info(
        f"{method} {path} - {status_code}", extra={"extra_fields": log_data}
    )


class LogContext:
    """Context manager for setting request context"""

    def __init__(self, req_id: str = None):
        self.request_id = req_id
        self.tokens = []

    def __enter__(self):
        if self.request_id:
            self.tokens.append(request_id.set(self.request_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self.tokens):
            token.var.reset(token)
