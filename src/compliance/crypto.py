"""
Phone privacy primitives.

Two forms of a phone number ever reach the store:

* a one-way lookup hash (HMAC-SHA256 over the E.164 number), used for every
  equality match between DNC entries, consent records and contact attempts;
* a reversible AES-256-GCM ciphertext, kept only for operational recovery
  and never returned by a public read path.

The hash key must never change once data exists, or DNC and consent lookups
silently stop matching.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.config import get_settings
from core.exceptions import DecryptionError, MissingCredentialsError
from compliance.phone import normalize_phone

NONCE_BYTES = 12
FINGERPRINT_LENGTH = 8


def _hash_key() -> bytes:
    key = get_settings().phone_hash_key
    if not key:
        raise MissingCredentialsError("PHONE_HASH_KEY is not configured")
    return key.encode()


def _encryption_key() -> bytes:
    key = get_settings().phone_encryption_key
    if not key:
        raise MissingCredentialsError("PHONE_ENCRYPTION_KEY is not configured")
    return bytes.fromhex(key)


def hash_phone(phone: str, default_region: Optional[str] = None) -> str:
    """One-way lookup hash of a phone number (hex, 64 chars)."""
    e164 = normalize_phone(phone, default_region)
    return hmac.new(_hash_key(), e164.encode(), hashlib.sha256).hexdigest()


def fingerprint(phone_hash: str) -> str:
    """Short, log-safe prefix of a lookup hash."""
    return phone_hash[:FINGERPRINT_LENGTH]


def encrypt_phone(phone: str, default_region: Optional[str] = None) -> str:
    """Encrypt the E.164 form. Returns base64 JSON ``{iv, authTag, ciphertext}``."""
    e164 = normalize_phone(phone, default_region)
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(_encryption_key()).encrypt(nonce, e164.encode(), None)
    # AESGCM appends the 16-byte tag to the ciphertext
    ciphertext, tag = sealed[:-16], sealed[-16:]
    envelope = {
        "iv": base64.b64encode(nonce).decode(),
        "authTag": base64.b64encode(tag).decode(),
        "ciphertext": base64.b64encode(ciphertext).decode(),
    }
    return base64.b64encode(json.dumps(envelope).encode()).decode()


def decrypt_phone(token: str) -> str:
    """
    Recover the E.164 number from an ``encrypt_phone`` token.

    Raises:
        DecryptionError: malformed token, wrong key or tampered ciphertext.
    """
    try:
        envelope = json.loads(base64.b64decode(token))
        nonce = base64.b64decode(envelope["iv"])
        tag = base64.b64decode(envelope["authTag"])
        ciphertext = base64.b64decode(envelope["ciphertext"])
    except (ValueError, KeyError, TypeError, binascii.Error) as exc:
        raise DecryptionError("Malformed phone ciphertext") from exc

    try:
        plain = AESGCM(_encryption_key()).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptionError("Phone ciphertext failed authentication") from exc
    return plain.decode()


__all__ = [
    "decrypt_phone",
    "encrypt_phone",
    "fingerprint",
    "hash_phone",
]
