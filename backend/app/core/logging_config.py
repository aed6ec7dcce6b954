"""
KonnectSphere - Logging Configuration

Plain text logs with request context in development, JSON lines in production.
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from app.core.config import settings


request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')

_RESERVED_RECORD_KEYS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'exc_info', 'exc_text',
    'thread', 'threadName', 'message', 'taskName', 'request_id', 'user_id',
})


def get_request_id() -> str:
    return request_id_var.get() or ''


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str:
    return user_id_var.get() or ''


def set_user_id(user_id: str) -> None:
    user_id_var.set(user_id)


def clear_context() -> None:
    """Reset per-request context once a request finishes"""
    request_id_var.set('')
    user_id_var.set('')


def generate_request_id() -> str:
    """Short request id, enough to correlate lines of one request"""
    return uuid.uuid4().hex[:8]


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shippers"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if get_request_id():
            payload["request_id"] = get_request_id()
        if get_user_id():
            payload["user_id"] = get_user_id()

        if record.exc_info and record.exc_info[0]:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key.startswith('_'):
                continue
            payload[key] = value

        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Human readable formatter that fills request/user placeholders"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return super().format(record)


class KonnectSphereLogger(logging.Logger):
    """Logger with structured helpers for the marketplace's main events"""

    def log_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, **kwargs) -> None:
        self.info(
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_auth_event(self, event: str, success: bool, user_email: str = None,
                       reason: str = None, **kwargs) -> None:
        """Log login, registration, verification and password events"""
        parts = [f"[Auth] {event}: {'success' if success else 'failed'}"]
        if user_email:
            parts.append(user_email)
        if reason:
            parts.append(reason)
        self.log(
            logging.INFO if success else logging.WARNING,
            " - ".join(parts),
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "user_email": user_email,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_payment_event(self, event: str, user_id: Optional[str] = None,
                          amount: Optional[float] = None,
                          stripe_id: Optional[str] = None, **kwargs) -> None:
        """Log subscription and invoice lifecycle events"""
        message = f"[Billing] {event}"
        if user_id:
            message += f" user={user_id}"
        if amount is not None:
            message += f" amount={amount:.2f}"
        if stripe_id:
            message += f" stripe={stripe_id}"
        self.info(
            message,
            extra={
                "event_type": "payment",
                "payment_event": event,
                "payment_user": user_id,
                "payment_amount": amount,
                "stripe_id": stripe_id,
                **kwargs
            }
        )

    def log_chat_event(self, event: str, conversation_id: Optional[str] = None,
                       user_id: Optional[str] = None, **kwargs) -> None:
        self.debug(
            f"[Chat] {event} conversation={conversation_id or '-'} user={user_id or '-'}",
            extra={
                "event_type": "chat",
                "chat_event": event,
                "conversation_id": conversation_id,
                "chat_user": user_id,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        self.error(
            f"Error in {context}: {type(error).__name__}: {error}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )

    def log_performance(self, operation: str, duration_ms: float,
                        threshold_ms: float = 1000, **kwargs) -> None:
        """Warn when an operation is slower than its threshold"""
        slow = duration_ms > threshold_ms
        self.log(
            logging.WARNING if slow else logging.DEBUG,
            f"Performance: {operation} took {duration_ms:.2f}ms"
            + (f" (threshold: {threshold_ms}ms)" if slow else ""),
            extra={
                "event_type": "performance",
                "operation": operation,
                "duration_ms": duration_ms,
                "threshold_ms": threshold_ms,
                "exceeded_threshold": slow,
                **kwargs
            }
        )


def _file_handler(formatter: logging.Formatter, backups: int) -> Optional[logging.Handler]:
    if not settings.LOG_FILE:
        return None
    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=10485760, backupCount=backups)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> KonnectSphereLogger:
    """Configure the application logger for the current environment"""
    logging.setLoggerClass(KonnectSphereLogger)

    logger = logging.getLogger("konnectsphere")
    logger.__class__ = KonnectSphereLogger
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    is_production = settings.ENVIRONMENT == "production"

    if is_production:
        console_formatter = file_formatter = JSONFormatter()
        backups = 10
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | [%(request_id)s] %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )
        backups = 5

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    file_handler = _file_handler(file_formatter, backups)
    if file_handler:
        logger.addHandler(file_handler)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={"environment": settings.ENVIRONMENT, "json_logging": is_production}
    )
    return logger


logger: KonnectSphereLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_id',
    'clear_context',
    'generate_request_id',
    'KonnectSphereLogger',
]
