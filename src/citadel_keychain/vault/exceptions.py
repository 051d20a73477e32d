"""
Keychain Exception Classes
"""


class KeychainError(Exception):
    """Base exception for keychain operations"""
    pass


class NotInitialized(KeychainError):
    """Raised when an operation runs before a successful init() or load()"""
    pass


class RollbackDetected(KeychainError):
    """Raised when the stored entries no longer match the cached digest"""
    pass


class DecryptionError(KeychainError):
    """Raised when authenticated decryption of an entry fails"""
    pass


class ChecksumMismatch(KeychainError):
    """Raised when a serialized record does not match its trusted checksum"""
    pass


class AuthenticationError(KeychainError):
    """Raised when the master password does not match the record"""
    pass


class RecordFormatError(KeychainError, ValueError):
    """Raised when a serialized record fails strict schema validation"""
    pass
