# Keychain - Encryption Service
#
# Master password → MAC key + AES key (PBKDF2, one salt each)
# Service name → blinded id (HMAC-SHA256 under the MAC key)
# Credential value → padded AES-256-GCM ciphertext bound to its service name

import base64
import hashlib
import hmac
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.backends import default_backend

from .exceptions import DecryptionError

# PBKDF2 parameters. Fixed: the record does not store them.
PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32  # 256 bits for HMAC-SHA256 and AES-256
SALT_LENGTH = 16  # 128-bit salts
NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
TAG_LENGTH = 16  # GCM authentication tag appended by AESGCM
MAC_LENGTH = 32  # HMAC-SHA256 output

# Padding: value + sentinel + zero bytes up to PAD_BLOCK_SIZE
PAD_BLOCK_SIZE = 64
PAD_SENTINEL = b"\x80"

# Shortest ciphertext a valid entry can have
MIN_CIPHERTEXT_LENGTH = PAD_BLOCK_SIZE + TAG_LENGTH


def generate_salt() -> bytes:
    """Generate a cryptographically random salt."""
    return os.urandom(SALT_LENGTH)


def _pbkdf2(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
        backend=default_backend()
    )
    return kdf.derive(password.encode('utf-8'))


def derive_keys(password: str, salt_mac: bytes, salt_aes: bytes) -> Tuple[bytes, bytes]:
    """
    Derive the MAC key and the AES key from the master password.

    Both keys come from independent PBKDF2-HMAC-SHA256 runs over the same
    password with different salts. A wrong password is not detected here;
    it simply yields different keys.

    Args:
        password: User's master password
        salt_mac: Salt for the MAC key
        salt_aes: Salt for the AES key

    Returns:
        (mac_key, aes_key), 32 bytes each
    """
    return _pbkdf2(password, salt_mac), _pbkdf2(password, salt_aes)


def sign_password(mac_key: bytes, password: str) -> bytes:
    """HMAC-SHA256 of the master password, used to recognise it on load."""
    return hmac.new(mac_key, password.encode('utf-8'), hashlib.sha256).digest()


def blind_domain(mac_key: bytes, name: str) -> str:
    """
    Map a service name to its opaque lookup key.

    HMAC-SHA256 of the UTF-8 name under the MAC key, base64-encoded so it
    can be a JSON object key. Deterministic for a given key.
    """
    mac = hmac.new(mac_key, name.encode('utf-8'), hashlib.sha256).digest()
    return encode_for_storage(mac)


def pad_value(data: bytes) -> bytes:
    """
    Append the sentinel byte, then zero bytes up to PAD_BLOCK_SIZE.

    Values that are already longer only receive the sentinel; nothing is
    ever truncated.
    """
    padded = data + PAD_SENTINEL
    if len(padded) < PAD_BLOCK_SIZE:
        padded += b"\x00" * (PAD_BLOCK_SIZE - len(padded))
    return padded


def unpad_value(padded: bytes) -> bytes:
    """Strip trailing zero bytes and the sentinel byte."""
    stripped = padded.rstrip(b"\x00")
    if not stripped.endswith(PAD_SENTINEL):
        raise DecryptionError("Decrypted entry has invalid padding")
    return stripped[:-len(PAD_SENTINEL)]


def encrypt_value(aes_key: bytes, name_bytes: bytes, plaintext: str) -> Tuple[bytes, bytes]:
    """
    Encrypt a credential value using AES-256-GCM.

    The service name is passed as associated data, so a ciphertext moved
    under another entry fails to authenticate.

    Args:
        aes_key: 256-bit encryption key
        name_bytes: UTF-8 service name (associated data)
        plaintext: Credential value

    Returns:
        Tuple of (nonce, ciphertext)
        Both needed for decryption
    """
    # Generate random nonce (must be unique per encryption)
    nonce = os.urandom(NONCE_LENGTH)

    padded = pad_value(plaintext.encode('utf-8'))
    ciphertext = AESGCM(aes_key).encrypt(nonce, padded, name_bytes)

    return nonce, ciphertext


def decrypt_value(aes_key: bytes, name_bytes: bytes, nonce: bytes, ciphertext: bytes) -> str:
    """
    Decrypt and unpad a credential value.

    Raises:
        DecryptionError: Wrong key, corrupted ciphertext, wrong nonce or
            associated data mismatch
    """
    try:
        padded = AESGCM(aes_key).decrypt(nonce, ciphertext, name_bytes)
    except InvalidTag:
        raise DecryptionError("Entry failed authentication") from None

    try:
        return unpad_value(padded).decode('utf-8')
    except UnicodeDecodeError:
        raise DecryptionError("Decrypted entry is not valid UTF-8") from None


def encode_for_storage(data: bytes) -> str:
    """Encode binary data as base64 text for the JSON record."""
    return base64.b64encode(data).decode('ascii')


def decode_from_storage(data: str) -> bytes:
    """
    Decode base64 text from the JSON record.

    Raises:
        binascii.Error: If the input is not strict base64.
    """
    return base64.b64decode(data.encode('ascii'), validate=True)
