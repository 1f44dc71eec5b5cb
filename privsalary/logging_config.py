"""
Logging configuration for privsalary.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems.
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

    Mirrors every published lifecycle record and every rejected call.
    Nothing here is load-bearing for correctness; the EventLog is the
    system of record.
    """

    def __init__(self, name: str = "privsalary.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
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

    def lifecycle_event(self, kind: str, seq: int, payload: Dict[str, Any]) -> None:
        """Log a published lifecycle record."""
        self._log(
            logging.INFO,
            kind,
            seq=seq,
            payload=payload,
            message=f"Published {kind} #{seq}"
        )

    def operation_rejected(self, operation: str, caller: Optional[str], code: str, reason: str = "") -> None:
        """Log a rejected call."""
        self._log(
            logging.WARNING,
            "OPERATION_REJECTED",
            operation=operation,
            caller=caller,
            code=code,
            reason=reason,
            message=f"{operation} rejected: {code}"
        )

    def decryption_requested(self, request_id: int, batch_id: int, state_hash: str) -> None:
        self._log(
            logging.INFO,
            "DECRYPTION_REQUESTED",
            oracle_request_id=request_id,
            batch_id=batch_id,
            state_hash=state_hash,
            message=f"Decryption requested for batch {batch_id}"
        )

    def decryption_completed(self, request_id: int, batch_id: int) -> None:
        # averages are published through the event log, not repeated here
        self._log(
            logging.INFO,
            "DECRYPTION_COMPLETED",
            oracle_request_id=request_id,
            batch_id=batch_id,
            message=f"Decryption completed for batch {batch_id}"
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
        address: str,
        kind: str,
        retry_after: float
    ) -> None:
        self._log(
            logging.WARNING,
            "RATE_LIMIT_EXCEEDED",
            address=address,
            kind=kind,
            retry_after=retry_after,
            message=f"Cooldown active for {address} on {kind}"
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


# Global audit logger instance
audit_log = AuditLogger()
