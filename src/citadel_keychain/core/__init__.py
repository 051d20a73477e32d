# Core Module - Shared Utilities
#
# Core module provides shared functionality across Citadel Keychain:
# - Audit logging
# - Configuration

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    entry_fingerprint,
    get_audit_logger,
    log_security_event,
)
from .config import (
    KeychainSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "entry_fingerprint",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "KeychainSettings",
    "get_settings",
    "reset_settings",
]
