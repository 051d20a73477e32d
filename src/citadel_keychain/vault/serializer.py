# Keychain - Record Serialization
#
# PersistedRecord <-> canonical JSON text, plus the SHA-256 checksum the
# caller pins next to an export. Parsing is strict: every field, type and
# byte length is checked before any key is derived.

import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .encryption import (
    MAC_LENGTH,
    MIN_CIPHERTEXT_LENGTH,
    NONCE_LENGTH,
    SALT_LENGTH,
    decode_from_storage,
    encode_for_storage,
)
from .exceptions import ChecksumMismatch, RecordFormatError
from .integrity import canonical_json, encode_byte_map

RECORD_VERSION = "Citadel Keychain v1.0"

RECORD_FIELDS = frozenset({
    "version",
    "salt_master_key",
    "salt_mac",
    "salt_aes",
    "password_sig",
    "kvs",
    "kvs_salts",
})


@dataclass
class PersistedRecord:
    """Everything about a keychain that is written to disk.

    ``salt_master_key`` is generated and carried but not used by key
    derivation; it is reserved for a future master-key wrapping scheme.
    """
    salt_master_key: bytes
    salt_mac: bytes
    salt_aes: bytes
    password_sig: bytes
    kvs: Dict[str, bytes] = field(default_factory=dict)
    kvs_salts: Dict[str, bytes] = field(default_factory=dict)
    version: str = RECORD_VERSION

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form (bytes as base64)."""
        return {
            "version": self.version,
            "salt_master_key": encode_for_storage(self.salt_master_key),
            "salt_mac": encode_for_storage(self.salt_mac),
            "salt_aes": encode_for_storage(self.salt_aes),
            "password_sig": encode_for_storage(self.password_sig),
            "kvs": encode_byte_map(self.kvs),
            "kvs_salts": encode_byte_map(self.kvs_salts),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PersistedRecord":
        """Strictly decode a parsed JSON object.

        Raises:
            RecordFormatError: On any missing/extra field, wrong type,
                invalid base64 or wrong byte length.
        """
        if not isinstance(data, dict):
            raise RecordFormatError("Record must be a JSON object")

        keys = set(data)
        missing = RECORD_FIELDS - keys
        if missing:
            raise RecordFormatError(f"Record is missing fields: {sorted(missing)}")
        extra = keys - RECORD_FIELDS
        if extra:
            raise RecordFormatError(f"Record has unexpected fields: {sorted(extra)}")

        if data["version"] != RECORD_VERSION:
            raise RecordFormatError(f"Unsupported record version: {data['version']!r}")

        kvs = _decode_map(data["kvs"], "kvs", min_length=MIN_CIPHERTEXT_LENGTH)
        kvs_salts = _decode_map(data["kvs_salts"], "kvs_salts", exact_length=NONCE_LENGTH)
        if set(kvs) != set(kvs_salts):
            raise RecordFormatError("kvs and kvs_salts must have the same entries")

        return cls(
            salt_master_key=_decode_bytes(data["salt_master_key"], "salt_master_key", SALT_LENGTH),
            salt_mac=_decode_bytes(data["salt_mac"], "salt_mac", SALT_LENGTH),
            salt_aes=_decode_bytes(data["salt_aes"], "salt_aes", SALT_LENGTH),
            password_sig=_decode_bytes(data["password_sig"], "password_sig", MAC_LENGTH),
            kvs=kvs,
            kvs_salts=kvs_salts,
            version=data["version"],
        )


def _decode_bytes(value: Any, name: str, exact_length: Optional[int] = None, min_length: Optional[int] = None) -> bytes:
    if not isinstance(value, str):
        raise RecordFormatError(f"{name} must be a base64 string")
    try:
        raw = decode_from_storage(value)
    except (binascii.Error, ValueError):
        raise RecordFormatError(f"{name} is not valid base64") from None
    if encode_for_storage(raw) != value:
        # Unused trailing bits set: a second spelling of the same bytes
        raise RecordFormatError(f"{name} is not canonical base64")
    if exact_length is not None and len(raw) != exact_length:
        raise RecordFormatError(f"{name} must be {exact_length} bytes; got {len(raw)}")
    if min_length is not None and len(raw) < min_length:
        raise RecordFormatError(f"{name} must be at least {min_length} bytes; got {len(raw)}")
    return raw


def _decode_map(value: Any, name: str, **length) -> Dict[str, bytes]:
    if not isinstance(value, dict):
        raise RecordFormatError(f"{name} must be a JSON object")
    decoded = {}
    for key, item in value.items():
        # Keys are blinded ids: base64 of an HMAC-SHA256
        _decode_bytes(key, f"{name} key", exact_length=MAC_LENGTH)
        decoded[key] = _decode_bytes(item, f"{name} entry", **length)
    return decoded


def serialize_record(record: PersistedRecord) -> str:
    """Canonical JSON text of a record."""
    return canonical_json(record.to_dict())


def parse_record(serialized: str) -> PersistedRecord:
    """Parse and validate a serialized record."""
    try:
        data = json.loads(serialized)
    except (TypeError, ValueError):
        raise RecordFormatError("Record is not valid JSON") from None
    return PersistedRecord.from_dict(data)


def record_checksum(serialized: str) -> str:
    """Base64 SHA-256 of the serialized record."""
    return encode_for_storage(hashlib.sha256(serialized.encode("utf-8")).digest())


def verify_checksum(serialized: str, expected: str) -> None:
    """Raise ChecksumMismatch unless ``expected`` is the record's checksum."""
    actual = record_checksum(serialized)
    if not hmac.compare_digest(actual.encode("utf-8"), str(expected).encode("utf-8")):
        raise ChecksumMismatch("Record does not match its trusted checksum")
