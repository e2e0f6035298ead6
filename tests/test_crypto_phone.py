"""Tests for phone normalization, hashing and encryption."""
from __future__ import annotations

import base64
import json

import pytest

from compliance.crypto import decrypt_phone, encrypt_phone, fingerprint, hash_phone
from compliance.locking import lock_phone
from compliance.phone import normalize_phone
from core.config import get_settings
from core.exceptions import (
    ConfigurationError,
    DecryptionError,
    InvalidPhoneNumberError,
    MissingCredentialsError,
)

from conftest import OTHER_PHONE, PHONE


class TestNormalizePhone:
    @pytest.mark.parametrize("value", [PHONE, "+1 225 555 0100", "225.555.0100", "2255550100"])
    def test_formats_normalize_to_e164(self, value):
        assert normalize_phone(value) == "+12255550100"

    @pytest.mark.parametrize("value", [None, "", "call me", "12345", "+1 000 000 0000"])
    def test_invalid_numbers(self, value):
        with pytest.raises(InvalidPhoneNumberError):
            normalize_phone(value)


class TestHashPhone:
    def test_equivalent_formats_hash_equal(self):
        assert hash_phone(PHONE) == hash_phone("+1 225-555-0100")

    def test_distinct_numbers_hash_differently(self):
        assert hash_phone(PHONE) != hash_phone(OTHER_PHONE)

    def test_hex_digest(self):
        digest = hash_phone(PHONE)
        assert len(digest) == 64
        assert "2255550100" not in digest
        assert fingerprint(digest) == digest[:8]

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "phone_hash_key", None)
        with pytest.raises(MissingCredentialsError):
            hash_phone(PHONE)


class TestEncryptPhone:
    def test_decrypts_to_e164(self):
        assert decrypt_phone(encrypt_phone(PHONE)) == "+12255550100"

    def test_fresh_nonce_per_call(self):
        assert encrypt_phone(PHONE) != encrypt_phone(PHONE)

    def test_envelope_shape(self):
        envelope = json.loads(base64.b64decode(encrypt_phone(PHONE)))
        assert set(envelope) == {"iv", "authTag", "ciphertext"}
        assert len(base64.b64decode(envelope["iv"])) == 12
        assert len(base64.b64decode(envelope["authTag"])) == 16

    def test_tampered_ciphertext(self):
        envelope = json.loads(base64.b64decode(encrypt_phone(PHONE)))
        other = json.loads(base64.b64decode(encrypt_phone(OTHER_PHONE)))
        envelope["authTag"] = other["authTag"]
        token = base64.b64encode(json.dumps(envelope).encode()).decode()

        with pytest.raises(DecryptionError):
            decrypt_phone(token)

    @pytest.mark.parametrize("token", ["not-base64!", base64.b64encode(b"{}").decode()])
    def test_malformed_token(self, token):
        with pytest.raises(DecryptionError):
            decrypt_phone(token)

    def test_missing_key_is_a_configuration_error(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "phone_encryption_key", None)
        with pytest.raises(ConfigurationError):
            encrypt_phone(PHONE)


def test_lock_is_noop_on_sqlite(db_session):
    assert lock_phone(db_session, hash_phone(PHONE)) is False
