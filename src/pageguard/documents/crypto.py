"""Encryption at rest and password hashing.

Stored files use AES-256-GCM laid out as ``[iv (12)][tag (16)][ciphertext]``.
Passwords are scrypt hashes stored as ``salt_hex:hash_hex``.
"""

import hashlib
import hmac
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16

SCRYPT_SALT_LENGTH = 16
SCRYPT_KEY_LENGTH = 64
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


def generate_master_key() -> str:
    """Return a fresh 32-byte key, hex encoded."""
    return os.urandom(32).hex()


def encrypt_buffer(plain: bytes, key: bytes) -> bytes:
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plain, None)
    # AESGCM appends the tag; the on-disk layout keeps it in front
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return iv + tag + ciphertext


def decrypt_buffer(data: bytes, key: bytes) -> bytes:
    """Decrypt a buffer produced by :func:`encrypt_buffer`.

    Raises ValueError for truncated input and
    ``cryptography.exceptions.InvalidTag`` when authentication fails.
    """
    if len(data) < IV_LENGTH + AUTH_TAG_LENGTH:
        raise ValueError("Invalid encrypted data: too short")
    iv = data[:IV_LENGTH]
    tag = data[IV_LENGTH:IV_LENGTH + AUTH_TAG_LENGTH]
    ciphertext = data[IV_LENGTH + AUTH_TAG_LENGTH:]
    return AESGCM(key).decrypt(iv, ciphertext + tag, None)


def _scrypt(password: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt,
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_KEY_LENGTH,
    )


def hash_password(password: str) -> str:
    salt = os.urandom(SCRYPT_SALT_LENGTH)
    return f"{salt.hex()}:{_scrypt(password, salt).hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Constant-time check of ``password`` against a ``salt:hash`` string."""
    salt_hex, sep, hash_hex = stored_hash.partition(":")
    if not sep or not salt_hex or not hash_hex:
        return False
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    return hmac.compare_digest(_scrypt(password, salt), expected)
