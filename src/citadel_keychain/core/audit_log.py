# Keychain - Audit Logging
#
# Append-only audit trail for keychain security events.
# Every create/load/export and every entry access is recorded with a
# timestamp and user context. Secrets never reach the log: entries are
# identified only by a fingerprint of their blinded id.

import hashlib
import logging
import os
import socket
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of keychain events that can be logged."""
    # Lifecycle
    KEYCHAIN_CREATED = "keychain.created"
    KEYCHAIN_LOADED = "keychain.loaded"
    KEYCHAIN_EXPORTED = "keychain.exported"
    KEYCHAIN_SAVED = "keychain.saved"

    # Entries
    ENTRY_SET = "keychain.entry.set"
    ENTRY_ACCESSED = "keychain.entry.accessed"
    ENTRY_REMOVED = "keychain.entry.removed"

    # Failed checks
    ROLLBACK_DETECTED = "keychain.rollback.detected"
    CHECKSUM_MISMATCH = "keychain.checksum.mismatch"
    AUTH_FAILED = "keychain.auth.failed"
    DECRYPT_FAILED = "keychain.decrypt.failed"

    # System Events
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for keychain events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual, e.g. a missing checksum anchor
    - ALERT: A check rejected the caller (wrong password, bad checksum)
    - CRITICAL: The store itself was tampered with
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


def entry_fingerprint(blinded_id: str) -> str:
    """Short fingerprint of a blinded id (first 8 hex chars of SHA-256).

    Safe for logging. The blinded id is already opaque; hashing it again
    keeps log lines short and unlinkable to the persisted record at a glance.
    """
    return hashlib.sha256(blinded_id.encode("utf-8")).hexdigest()[:8]


class AuditLogger:
    """
    Append-only audit logger for keychain events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - User and system context capture
    - Daily log files in ``log_dir``
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: from settings)
        """
        if log_dir is None:
            from .config import get_settings
            log_dir = get_settings().audit_log_dir

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Setup structured logging
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self.log_file = self._setup_file_handler()

        self.logger = structlog.get_logger("citadel_keychain.audit")

    def _setup_file_handler(self) -> Path:
        """Attach a file handler for today's log (once per file)."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        root_logger = logging.getLogger()
        for handler in root_logger.handlers:
            if (
                isinstance(handler, logging.FileHandler)
                and handler.baseFilename == os.path.abspath(log_file)
            ):
                return log_file

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        formatter = logging.Formatter('%(message)s')  # structlog handles formatting
        file_handler.setFormatter(formatter)

        root_logger.addHandler(file_handler)
        root_logger.setLevel(logging.INFO)
        return log_file

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a keychain event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never keys or plaintext!)
            user_context: User context (defaults to OS user/hostname)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info(
            "keychain_event",
            **event_data
        )

        return event_id

    def log_keychain_event(
        self,
        event_type: EventType,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """Log a routine (INFO) keychain event."""
        return self.log_event(
            event_type=event_type,
            severity=EventSeverity.INFO,
            message=f"Keychain: {message}",
            details=details
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging keychain events.

    Usage:
        log_security_event(
            EventType.ROLLBACK_DETECTED,
            EventSeverity.CRITICAL,
            "Stored entries changed outside the keychain",
            details={"entries": 3}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
