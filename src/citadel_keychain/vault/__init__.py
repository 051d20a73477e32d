# Vault Module - Encrypted Keychain
#
# Per-service credentials under one master password:
# PBKDF2 key derivation, HMAC-blinded service names,
# padded AES-256-GCM values, rollback detection, checksummed export.

from .exceptions import (
    AuthenticationError,
    ChecksumMismatch,
    DecryptionError,
    KeychainError,
    NotInitialized,
    RecordFormatError,
    RollbackDetected,
)
from .keychain import Keychain
from .serializer import PersistedRecord, RECORD_VERSION
from .storage import KeychainFile

__all__ = [
    "Keychain",
    "KeychainFile",
    "PersistedRecord",
    "RECORD_VERSION",
    "KeychainError",
    "NotInitialized",
    "RollbackDetected",
    "DecryptionError",
    "ChecksumMismatch",
    "AuthenticationError",
    "RecordFormatError",
]
