# Keychain - Encrypted Key-Value Store
#
# Per-service credentials under one master password.
# Service names are stored only as HMAC-blinded ids, values only as
# AES-256-GCM ciphertexts, and a cached digest of the entry map catches
# any change made to it outside this API.

import hmac
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..core import AuditLogger, EventSeverity, EventType, entry_fingerprint, get_audit_logger
from .encryption import (
    blind_domain,
    decrypt_value,
    derive_keys,
    encrypt_value,
    generate_salt,
    sign_password,
)
from .exceptions import (
    AuthenticationError,
    ChecksumMismatch,
    DecryptionError,
    NotInitialized,
    RollbackDetected,
)
from .integrity import kvs_digest, verify_kvs
from .serializer import (
    PersistedRecord,
    parse_record,
    record_checksum,
    serialize_record,
    verify_checksum,
)

logger = logging.getLogger(__name__)


@dataclass
class _Secrets:
    """Key material that never leaves memory."""
    mac_key: bytes = field(repr=False)
    aes_key: bytes = field(repr=False)
    kvs_hash: bytes = field(repr=False)


class Keychain:
    """
    Password-protected store of service → credential pairs.

    Build one with ``Keychain.init(password)`` or
    ``Keychain.load(password, record, checksum)``. A bare ``Keychain()`` is
    uninitialized and rejects every operation with NotInitialized.

    Security:
    - MAC and AES keys derived from the master password (PBKDF2, 100k)
    - Service names blinded with HMAC-SHA256, so the record does not
      reveal which services are stored
    - Values padded to 64 bytes and encrypted with AES-256-GCM, bound to
      their service name as associated data
    - Cached SHA-256 of the entry map, checked before every get/set
      (rollback detection)

    Thread safety: one lock per instance; every public operation runs its
    verify → compute → commit sequence while holding it.
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self.data: Optional[PersistedRecord] = None
        self._secrets: Optional[_Secrets] = None
        self._lock = threading.Lock()
        self.logger = audit_logger or get_audit_logger()

    # ── Construction ────────────────────────────────────────────────

    @classmethod
    def init(cls, password: str, audit_logger: Optional[AuditLogger] = None) -> "Keychain":
        """
        Create an empty keychain protected by ``password``.

        Fresh salts are generated for both keys (plus the reserved master
        key salt), and the password signature is stored so a later load()
        can recognise the password.
        """
        salt_master_key = generate_salt()
        salt_mac = generate_salt()
        salt_aes = generate_salt()
        mac_key, aes_key = derive_keys(password, salt_mac, salt_aes)

        record = PersistedRecord(
            salt_master_key=salt_master_key,
            salt_mac=salt_mac,
            salt_aes=salt_aes,
            password_sig=sign_password(mac_key, password),
        )

        keychain = cls(audit_logger=audit_logger)
        keychain._activate(record, mac_key, aes_key)

        keychain.logger.log_keychain_event(
            EventType.KEYCHAIN_CREATED,
            "New keychain initialized with master password"
        )
        return keychain

    @classmethod
    def load(
        cls,
        password: str,
        serialized: str,
        checksum: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None
    ) -> "Keychain":
        """
        Restore a keychain from the output of dump().

        Args:
            password: Master password the keychain was created with
            serialized: Serialized record
            checksum: Trusted checksum from dump(). When given, the record
                must match it before anything else happens.

        Raises:
            ChecksumMismatch: ``checksum`` does not match ``serialized``
            RecordFormatError: ``serialized`` is not a valid record
            AuthenticationError: Wrong master password
        """
        audit = audit_logger or get_audit_logger()

        if checksum is not None:
            try:
                verify_checksum(serialized, checksum)
            except ChecksumMismatch:
                audit.log_event(
                    event_type=EventType.CHECKSUM_MISMATCH,
                    severity=EventSeverity.ALERT,
                    message="Keychain load rejected: record does not match trusted checksum"
                )
                raise

        record = parse_record(serialized)
        mac_key, aes_key = derive_keys(password, record.salt_mac, record.salt_aes)

        if not hmac.compare_digest(sign_password(mac_key, password), record.password_sig):
            audit.log_event(
                event_type=EventType.AUTH_FAILED,
                severity=EventSeverity.ALERT,
                message="Keychain load rejected: incorrect master password"
            )
            raise AuthenticationError("Invalid master password for this keychain")

        keychain = cls(audit_logger=audit)
        keychain._activate(record, mac_key, aes_key)

        audit.log_keychain_event(
            EventType.KEYCHAIN_LOADED,
            "Keychain loaded",
            details={"entries": len(record.kvs), "checksum_verified": checksum is not None}
        )
        return keychain

    def _activate(self, record: PersistedRecord, mac_key: bytes, aes_key: bytes) -> None:
        self.data = record
        self._secrets = _Secrets(
            mac_key=mac_key,
            aes_key=aes_key,
            kvs_hash=kvs_digest(record.kvs),
        )

    # ── State ───────────────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        """True once init() or load() has produced this instance."""
        return self._secrets is not None

    @property
    def entry_count(self) -> int:
        self._require_ready()
        return len(self.data.kvs)

    def _require_ready(self) -> None:
        if self._secrets is None:
            raise NotInitialized("Keychain not initialized. Use Keychain.init() or Keychain.load().")

    def _verify_integrity(self) -> None:
        try:
            verify_kvs(self.data.kvs, self._secrets.kvs_hash)
        except RollbackDetected:
            self.logger.log_event(
                event_type=EventType.ROLLBACK_DETECTED,
                severity=EventSeverity.CRITICAL,
                message="Keychain entries changed outside the keychain (possible rollback)",
                details={"entries": len(self.data.kvs)}
            )
            raise

    # ── Entry operations ────────────────────────────────────────────

    def get(self, name: str) -> Optional[str]:
        """
        Return the credential stored for ``name``, or None if there is none.

        Raises:
            NotInitialized: Keychain not initialized
            RollbackDetected: Entry map no longer matches the cached digest
            DecryptionError: Stored entry failed authentication
        """
        with self._lock:
            self._require_ready()
            self._verify_integrity()

            blinded = blind_domain(self._secrets.mac_key, name)
            ciphertext = self.data.kvs.get(blinded)
            if ciphertext is None:
                return None

            fingerprint = entry_fingerprint(blinded)
            try:
                nonce = self.data.kvs_salts.get(blinded)
                if nonce is None:
                    raise DecryptionError("Entry has no nonce")
                value = decrypt_value(
                    self._secrets.aes_key, name.encode("utf-8"), nonce, ciphertext
                )
            except DecryptionError:
                self.logger.log_event(
                    event_type=EventType.DECRYPT_FAILED,
                    severity=EventSeverity.CRITICAL,
                    message="Keychain entry failed authenticated decryption",
                    details={"entry": fingerprint}
                )
                raise

            self.logger.log_keychain_event(
                EventType.ENTRY_ACCESSED,
                "Entry accessed",
                details={"entry": fingerprint}
            )
            return value

    def set(self, name: str, value: str) -> None:
        """
        Store ``value`` for ``name``, replacing any previous value.

        Raises:
            NotInitialized: Keychain not initialized
            RollbackDetected: Entry map no longer matches the cached digest
        """
        with self._lock:
            self._require_ready()
            self._verify_integrity()

            blinded = blind_domain(self._secrets.mac_key, name)
            nonce, ciphertext = encrypt_value(
                self._secrets.aes_key, name.encode("utf-8"), value
            )

            # Commit only after encryption succeeded
            self.data.kvs[blinded] = ciphertext
            self.data.kvs_salts[blinded] = nonce
            self._secrets.kvs_hash = kvs_digest(self.data.kvs)

            self.logger.log_keychain_event(
                EventType.ENTRY_SET,
                "Entry stored",
                details={"entry": entry_fingerprint(blinded)}
            )

    def remove(self, name: str) -> bool:
        """
        Delete the entry for ``name``.

        Returns:
            True if an entry was removed, False if there was none

        Raises:
            NotInitialized: Keychain not initialized
        """
        with self._lock:
            self._require_ready()

            blinded = blind_domain(self._secrets.mac_key, name)
            if blinded not in self.data.kvs:
                return False

            del self.data.kvs[blinded]
            self.data.kvs_salts.pop(blinded, None)
            self._secrets.kvs_hash = kvs_digest(self.data.kvs)

            self.logger.log_keychain_event(
                EventType.ENTRY_REMOVED,
                "Entry removed",
                details={"entry": entry_fingerprint(blinded)}
            )
            return True

    def __contains__(self, name: str) -> bool:
        with self._lock:
            self._require_ready()
            self._verify_integrity()
            return blind_domain(self._secrets.mac_key, name) in self.data.kvs

    # ── Export ──────────────────────────────────────────────────────

    def dump(self) -> Tuple[str, str]:
        """
        Serialize the keychain.

        Returns:
            (serialized record, checksum). Keep the checksum somewhere the
            record's storage cannot overwrite and pass it back to load().
        """
        with self._lock:
            self._require_ready()
            serialized = serialize_record(self.data)
            checksum = record_checksum(serialized)
            entries = len(self.data.kvs)

        logger.debug("Keychain dumped (%d entries)", entries)
        self.logger.log_keychain_event(
            EventType.KEYCHAIN_EXPORTED,
            "Keychain exported",
            details={"entries": entries}
        )
        return serialized, checksum
