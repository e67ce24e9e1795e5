"""
Logging configuration for DocAuth.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from .util import mask_sensitive

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    Provides methods for logging challenge issuance, login decisions,
    document registrations and security-relevant actions.
    """

    def __init__(self, name: str = "docauth.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        """Internal logging method with extra fields."""
        if not self._logger.isEnabledFor(level):
            return

        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def challenge_issued(self, identity: str, superseded: bool) -> None:
        """Log a challenge issuance. The challenge value itself is never logged."""
        self._log(
            logging.INFO,
            "CHALLENGE_ISSUED",
            identity=identity,
            superseded=superseded,
            message=f"Challenge issued for {identity}"
        )

    def assertion_verified(self, identity: str) -> None:
        """Log a successful login."""
        self._log(
            logging.INFO,
            "ASSERTION_VERIFIED",
            identity=identity,
            message=f"Assertion verified for {identity}"
        )

    def assertion_rejected(self, identity: Optional[str], reason: str) -> None:
        """Log a rejected login attempt."""
        self._log(
            logging.WARNING,
            "ASSERTION_REJECTED",
            identity=identity,
            reason=reason,
            message=f"Assertion rejected: {reason}"
        )

    def document_registered(self, digest: str, version: int, owner: str) -> None:
        """Log a new document version."""
        self._log(
            logging.INFO,
            "DOCUMENT_REGISTERED",
            digest=digest,
            version=version,
            owner=owner,
            message=f"Stored document {digest}_v{version} by {owner}"
        )

    def anchor_failed(self, digest: str, version: int, sink: str, error: str) -> None:
        """Log a failed downstream anchor write."""
        self._log(
            logging.ERROR,
            "ANCHOR_FAILED",
            digest=digest,
            version=version,
            sink=sink,
            error=error,
            message=f"Anchoring {digest}_v{version} to {sink} failed"
        )

    def session_rejected(self, token: Optional[str]) -> None:
        """Log a request carrying a missing or invalid session token."""
        self._log(
            logging.WARNING,
            "SESSION_REJECTED",
            token=mask_sensitive(token) if token else None,
            message="Session token rejected"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )

    def rate_limit_exceeded(
        self,
        client_id: str,
        endpoint: str
    ) -> None:
        """Log rate limit exceeded."""
        self._log(
            logging.WARNING,
            "RATE_LIMIT_EXCEEDED",
            client_id=client_id,
            endpoint=endpoint,
            message=f"Rate limit exceeded for {client_id} on {endpoint}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
