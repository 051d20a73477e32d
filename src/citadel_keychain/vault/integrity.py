"""Rollback detection for the encrypted entry map.

The keychain caches a SHA-256 digest of its ``kvs`` map after every
committed change and checks it before every read or write. Any change
made to the map outside the keychain API (e.g. an older ``kvs`` swapped in
from disk) changes the digest and is reported as ``RollbackDetected``.

The digest is taken over the canonical JSON form of the map: base64 values,
keys sorted, no whitespace. The serializer uses the same encoder for the
persisted record, so the two can never disagree about ordering.
"""

import hashlib
import hmac
import json
from typing import Any, Dict, Mapping

from .encryption import encode_for_storage
from .exceptions import RollbackDetected


def canonical_json(obj: Any) -> str:
    """Deterministic JSON: sorted keys, compact separators."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def encode_byte_map(mapping: Mapping[str, bytes]) -> Dict[str, str]:
    """Base64-encode every value of a blinded-id → bytes map."""
    return {key: encode_for_storage(value) for key, value in mapping.items()}


def canonical_kvs(kvs: Mapping[str, bytes]) -> bytes:
    """Canonical serialization of the entry map."""
    return canonical_json(encode_byte_map(kvs)).encode("utf-8")


def kvs_digest(kvs: Mapping[str, bytes]) -> bytes:
    """Digest to cache after a committed mutation."""
    return hashlib.sha256(canonical_kvs(kvs)).digest()


def verify_kvs(kvs: Mapping[str, bytes], cached_hash: bytes) -> None:
    """Raise RollbackDetected if ``kvs`` no longer matches ``cached_hash``."""
    try:
        current = kvs_digest(kvs)
    except (AttributeError, TypeError, ValueError):
        # Not a map of bytes: only possible if replaced by hand
        raise RollbackDetected("Keychain entries were modified outside the keychain") from None
    if not hmac.compare_digest(current, cached_hash):
        raise RollbackDetected("Keychain entries were modified outside the keychain")
