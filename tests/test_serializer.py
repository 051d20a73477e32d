"""Tests for record serialization, strict decoding and checksums."""

import json
import os

import pytest

from citadel_keychain.vault.encryption import encode_for_storage
from citadel_keychain.vault.exceptions import ChecksumMismatch, RecordFormatError
from citadel_keychain.vault.serializer import (
    RECORD_FIELDS,
    RECORD_VERSION,
    PersistedRecord,
    parse_record,
    record_checksum,
    serialize_record,
    verify_checksum,
)


_B64_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _b64(n: int) -> str:
    return encode_for_storage(os.urandom(n))


def _valid_dict(entries: int = 2) -> dict:
    ids = [_b64(32) for _ in range(entries)]
    return {
        "version": RECORD_VERSION,
        "salt_master_key": _b64(16),
        "salt_mac": _b64(16),
        "salt_aes": _b64(16),
        "password_sig": _b64(32),
        "kvs": {i: _b64(80) for i in ids},
        "kvs_salts": {i: _b64(12) for i in ids},
    }


class TestPersistedRecord:
    def test_roundtrip(self):
        data = _valid_dict()
        record = parse_record(json.dumps(data))
        assert isinstance(record, PersistedRecord)
        assert len(record.salt_mac) == 16
        assert set(record.kvs) == set(data["kvs"])
        assert record.to_dict() == data

    def test_serialization_is_canonical(self):
        data = _valid_dict()
        record = parse_record(json.dumps(data))
        serialized = serialize_record(record)
        assert serialized == json.dumps(data, sort_keys=True, separators=(",", ":"))
        assert serialize_record(parse_record(serialized)) == serialized

    def test_exact_fields(self):
        assert set(_valid_dict()) == RECORD_FIELDS


class TestStrictDecode:
    def test_not_json(self):
        with pytest.raises(RecordFormatError):
            parse_record("{not json")

    def test_not_an_object(self):
        with pytest.raises(RecordFormatError):
            parse_record("[1, 2, 3]")

    @pytest.mark.parametrize("field", sorted(RECORD_FIELDS))
    def test_missing_field(self, field):
        data = _valid_dict()
        del data[field]
        with pytest.raises(RecordFormatError, match="missing"):
            parse_record(json.dumps(data))

    def test_extra_field(self):
        data = _valid_dict()
        data["plaintext"] = "oops"
        with pytest.raises(RecordFormatError, match="unexpected"):
            parse_record(json.dumps(data))

    def test_wrong_version(self):
        data = _valid_dict()
        data["version"] = "Some Other Manager v9"
        with pytest.raises(RecordFormatError, match="version"):
            parse_record(json.dumps(data))

    def test_wrong_salt_length(self):
        data = _valid_dict()
        data["salt_aes"] = _b64(15)
        with pytest.raises(RecordFormatError, match="salt_aes"):
            parse_record(json.dumps(data))

    def test_wrong_signature_length(self):
        data = _valid_dict()
        data["password_sig"] = _b64(20)
        with pytest.raises(RecordFormatError, match="password_sig"):
            parse_record(json.dumps(data))

    def test_invalid_base64(self):
        data = _valid_dict()
        data["salt_mac"] = "***"
        with pytest.raises(RecordFormatError, match="base64"):
            parse_record(json.dumps(data))

    def test_non_canonical_base64_key_rejected(self):
        data = _valid_dict(1)
        key = next(iter(data["kvs"]))
        # Same 32 bytes, spelled with the unused low bits of the last char set
        alias = key[:42] + _B64_ALPHABET[_B64_ALPHABET.index(key[42]) + 1] + key[43:]
        data["kvs"][alias] = data["kvs"][key]
        data["kvs_salts"][alias] = data["kvs_salts"][key]
        with pytest.raises(RecordFormatError, match="canonical"):
            parse_record(json.dumps(data))

    def test_non_canonical_base64_field_rejected(self):
        data = _valid_dict()
        salt = data["salt_mac"]
        # 16 bytes leave four unused bits before the "==" padding
        data["salt_mac"] = salt[:21] + _B64_ALPHABET[_B64_ALPHABET.index(salt[21]) + 1] + salt[22:]
        with pytest.raises(RecordFormatError, match="salt_mac"):
            parse_record(json.dumps(data))

    def test_byte_array_instead_of_string(self):
        data = _valid_dict()
        data["salt_mac"] = list(range(16))
        with pytest.raises(RecordFormatError):
            parse_record(json.dumps(data))

    def test_wrong_nonce_length(self):
        data = _valid_dict(1)
        key = next(iter(data["kvs_salts"]))
        data["kvs_salts"][key] = _b64(16)
        with pytest.raises(RecordFormatError, match="kvs_salts"):
            parse_record(json.dumps(data))

    def test_short_ciphertext(self):
        data = _valid_dict(1)
        key = next(iter(data["kvs"]))
        data["kvs"][key] = _b64(10)
        with pytest.raises(RecordFormatError, match="kvs"):
            parse_record(json.dumps(data))

    def test_plaintext_key_rejected(self):
        data = _valid_dict(0)
        data["kvs"]["www.example.com"] = _b64(80)
        data["kvs_salts"]["www.example.com"] = _b64(12)
        with pytest.raises(RecordFormatError):
            parse_record(json.dumps(data))

    def test_mismatched_entry_sets(self):
        data = _valid_dict(2)
        key = next(iter(data["kvs_salts"]))
        del data["kvs_salts"][key]
        with pytest.raises(RecordFormatError, match="same entries"):
            parse_record(json.dumps(data))

    def test_kvs_must_be_object(self):
        data = _valid_dict()
        data["kvs"] = []
        with pytest.raises(RecordFormatError):
            parse_record(json.dumps(data))

    def test_format_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_record("")


class TestChecksum:
    def test_matches(self):
        serialized = serialize_record(parse_record(json.dumps(_valid_dict())))
        verify_checksum(serialized, record_checksum(serialized))

    def test_any_change_detected(self):
        serialized = serialize_record(parse_record(json.dumps(_valid_dict())))
        checksum = record_checksum(serialized)
        with pytest.raises(ChecksumMismatch):
            verify_checksum(serialized + " ", checksum)

    @pytest.mark.parametrize("forged", [
        "",
        "3GB6WSm+j+jl8pm4Vo9b9CkO2tZJzChu34VeitrwxXM=",
        "not even base64",
        "ünïcödé",
    ])
    def test_forged_checksums(self, forged):
        serialized = serialize_record(parse_record(json.dumps(_valid_dict())))
        with pytest.raises(ChecksumMismatch):
            verify_checksum(serialized, forged)
