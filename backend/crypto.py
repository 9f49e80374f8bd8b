"""Field-level encryption for task descriptions and checklist text.

Values are encrypted with AES-256-CBC under a key derived from the user's
email address, in the OpenSSL "Salted__" passphrase format:

    base64( b"Salted__" || salt[8] || AES-256-CBC(PKCS7(utf8(text))) )

Key and IV come from EVP_BytesToKey (MD5, one iteration) over the passphrase
and a fresh random salt, so ciphertexts written by CryptoJS
``AES.encrypt(text, email)`` decrypt here and vice versa.

The passphrase is not a secret in any strong sense; this protects display
text at rest in the record store and nothing more.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

SALT_HEADER = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE = 16


class FieldCodecError(Exception):
    """Base class for every failure raised by this module."""


class EncryptionError(FieldCodecError):
    pass


class DecryptionError(FieldCodecError):
    pass


class SerializationError(FieldCodecError):
    pass


class ParseError(FieldCodecError):
    pass


def _derive_key_and_iv(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < KEY_SIZE + IV_SIZE:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:KEY_SIZE], derived[KEY_SIZE:KEY_SIZE + IV_SIZE]


# ─── String field encryption ──────────────────────────────────────────────────


def encrypt(text: str, passphrase: str) -> str:
    """Encrypt a string.  Every call uses a fresh salt, so output differs per call."""
    try:
        salt = os.urandom(SALT_SIZE)
        key, iv = _derive_key_and_iv(passphrase.encode("utf-8"), salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(text.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        body = encryptor.update(padded) + encryptor.finalize()
    except Exception as exc:
        logger.error("Encryption failed: %s", exc.__class__.__name__)
        raise EncryptionError("Failed to encrypt data") from exc

    return base64.b64encode(SALT_HEADER + salt + body).decode("ascii")


def decrypt(cipher: str, passphrase: str, *, allow_empty: bool = False) -> str:
    """Decrypt a value produced by :func:`encrypt`.

    A wrong passphrase usually shows up as bad padding or bytes that are not
    UTF-8.  An empty result is also treated as a failure unless
    ``allow_empty`` is set, which means an encrypted empty string does not
    round-trip by default.
    """
    try:
        raw = base64.b64decode(cipher, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        logger.warning("Decryption failed: ciphertext is not valid base64")
        raise DecryptionError("Failed to decrypt data") from exc

    header_size = len(SALT_HEADER) + SALT_SIZE
    body = raw[header_size:]
    if not raw.startswith(SALT_HEADER) or not body or len(body) % BLOCK_SIZE:
        logger.warning("Decryption failed: malformed or truncated ciphertext")
        raise DecryptionError("Failed to decrypt data")

    salt = raw[len(SALT_HEADER):header_size]
    try:
        key, iv = _derive_key_and_iv(passphrase.encode("utf-8"), salt)

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()

        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        text = (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
    except Exception as exc:
        logger.warning("Decryption failed: %s", exc.__class__.__name__)
        raise DecryptionError("Failed to decrypt data") from exc

    if not text and not allow_empty:
        logger.warning("Decryption failed: decrypted value is empty")
        raise DecryptionError("Decryption returned empty string")

    return text


# ─── Object encryption ────────────────────────────────────────────────────────


def encrypt_object(value: Any, passphrase: str) -> str:
    """Serialize ``value`` to compact JSON and encrypt it."""
    try:
        text = json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError, RecursionError) as exc:
        raise SerializationError(f"Value is not JSON-serializable: {exc}") from exc
    return encrypt(text, passphrase)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def decrypt_object(cipher: str, passphrase: str) -> Any:
    """Decrypt and parse a value written by :func:`encrypt_object`.

    The shape of the result is not validated.  NaN and Infinity are rejected,
    matching ``allow_nan=False`` on the way in.
    """
    text = decrypt(cipher, passphrase)
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise ParseError("Decrypted value is not valid JSON") from exc
