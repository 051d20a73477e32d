# Citadel Keychain - Password-derived encrypted keychain
#
# Per-service credentials under a single master password, with
# blinded service names, authenticated encryption and tamper detection.

__version__ = "1.0.0"
__author__ = "Citadel Keychain Team"
__description__ = "Local password-derived encrypted keychain"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .vault import (
    AuthenticationError,
    ChecksumMismatch,
    DecryptionError,
    Keychain,
    KeychainError,
    KeychainFile,
    NotInitialized,
    RecordFormatError,
    RollbackDetected,
)

__all__ = [
    "__version__",
    "Keychain",
    "KeychainFile",
    "KeychainError",
    "NotInitialized",
    "RollbackDetected",
    "DecryptionError",
    "ChecksumMismatch",
    "AuthenticationError",
    "RecordFormatError",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
