"""Sealing of approval token entries at rest.

Entries written by the file-backed token store hold submitter addresses
and budget amounts. Each one is serialized to JSON and sealed with
AES-256-GCM into a single text blob::

    v1.<base64url(nonce || ciphertext || tag)>

The token value the entry belongs to is used as associated data, so an
entry renamed or copied under another token's name fails to open just
like a tampered one.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from budget_approval.utils.errors import TokenError, ValidationError

KEY_SIZE_BYTES = 32
NONCE_SIZE_BYTES = 12
FORMAT_PREFIX = "v1."


def generate_key() -> bytes:
    """Return a fresh random key suitable for ``TOKEN_ENCRYPTION_KEY``."""
    return AESGCM.generate_key(bit_length=KEY_SIZE_BYTES * 8)


def key_from_hex(hex_key: str) -> bytes:
    """Decode the configured hex key (64 characters, whitespace ignored).

    Raises:
        ValidationError: If the value is not 32 bytes of hex.
    """
    text = hex_key.strip()
    try:
        key = bytes.fromhex(text)
    except ValueError as e:
        raise ValidationError(
            "Encryption key is not valid hex",
            field="token_encryption_key",
        ) from e
    check_key(key)
    return key


def check_key(key: bytes) -> None:
    if len(key) != KEY_SIZE_BYTES:
        raise ValidationError(
            f"Encryption key must be {KEY_SIZE_BYTES} bytes "
            f"({KEY_SIZE_BYTES * 2} hex characters), got {len(key)}",
            field="token_encryption_key",
        )


def seal_json(data: dict[str, Any], key: bytes, bound_to: str) -> str:
    """Serialize and seal ``data`` for the token ``bound_to``.

    Raises:
        ValidationError: If the key has the wrong length.
        TokenError: If ``data`` is not JSON-serializable.
    """
    check_key(key)
    try:
        plaintext = json.dumps(data, separators=(",", ":")).encode()
    except (TypeError, ValueError) as e:
        raise TokenError("Token entry is not serializable", details={"error": str(e)}) from e

    nonce = os.urandom(NONCE_SIZE_BYTES)
    sealed = nonce + AESGCM(key).encrypt(nonce, plaintext, bound_to.encode())
    return FORMAT_PREFIX + base64.urlsafe_b64encode(sealed).decode("ascii")


def open_json(blob: str, key: bytes, bound_to: str) -> dict[str, Any]:
    """Open a blob produced by :func:`seal_json` for the same token.

    Raises:
        ValidationError: If the key has the wrong length.
        TokenError: If the blob is malformed, was modified, belongs to
            another token, or was sealed with another key.
    """
    check_key(key)
    blob = blob.strip()
    if not blob.startswith(FORMAT_PREFIX):
        raise TokenError("Unknown token entry format")

    try:
        raw = base64.urlsafe_b64decode(blob[len(FORMAT_PREFIX):].encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise TokenError("Token entry is not valid base64") from e
    if len(raw) <= NONCE_SIZE_BYTES:
        raise TokenError("Token entry is truncated")

    nonce, ciphertext = raw[:NONCE_SIZE_BYTES], raw[NONCE_SIZE_BYTES:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, bound_to.encode())
    except InvalidTag as e:
        raise TokenError("Token entry failed authentication (wrong key or modified)") from e

    try:
        data = json.loads(plaintext)
    except ValueError as e:
        raise TokenError("Opened token entry is not JSON") from e
    if not isinstance(data, dict):
        raise TokenError("Opened token entry is not an object")
    return data


__all__ = [
    "KEY_SIZE_BYTES",
    "check_key",
    "generate_key",
    "key_from_hex",
    "open_json",
    "seal_json",
]
