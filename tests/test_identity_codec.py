"""Tests for SIN hashing, encryption and email masking."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest

from services.errors import MalformedCiphertext, ValidationError
from services.identity_codec import (
    decrypt_identifier,
    encrypt_identifier,
    hash_email,
    hash_identifier,
    mask_email,
    normalize_identifier,
    validate_identifier,
)

KEY = "11" * 32


def test_normalize_strips_spaces_and_dashes():
    assert normalize_identifier(" 046-454 286 ") == "046454286"


def test_validate_rejects_wrong_length():
    with pytest.raises(ValidationError) as exc:
        validate_identifier("12345678")
    assert exc.value.status_code == 400
    assert exc.value.clear_cookie is True


def test_validate_rejects_letters():
    with pytest.raises(ValidationError):
        validate_identifier("12345678a")


def test_hash_is_deterministic_and_keyed():
    h1 = hash_identifier("046454286", "secret-a")
    assert h1 == hash_identifier("046454286", "secret-a")
    assert h1 != hash_identifier("046454286", "secret-b")
    assert len(h1) == 64
    assert "046454286" not in h1


def test_hash_email_ignores_case_and_whitespace():
    assert hash_email(" Driver@Example.com ", "s") == hash_email("driver@example.com", "s")


def test_encrypt_decrypt():
    encrypted = encrypt_identifier("046454286", KEY)
    iv_hex, ct_hex = encrypted.split(":")
    assert len(iv_hex) == 32
    assert len(ct_hex) % 32 == 0
    assert decrypt_identifier(encrypted, KEY) == "046454286"


def test_encrypt_uses_fresh_iv():
    assert encrypt_identifier("046454286", KEY) != encrypt_identifier("046454286", KEY)


@pytest.mark.parametrize("value", ["", "nocolon", "zz:zz", "00:11:22", "abcd:" + "00" * 16])
def test_decrypt_rejects_malformed(value):
    with pytest.raises(MalformedCiphertext):
        decrypt_identifier(value, KEY)


def test_decrypt_with_wrong_key_does_not_return_plaintext():
    encrypted = encrypt_identifier("046454286", KEY)
    try:
        result = decrypt_identifier(encrypted, "22" * 32)
    except MalformedCiphertext:
        return
    assert result != "046454286"


def test_mask_email():
    assert mask_email("driver@mail.com") == "d*****@mail.com"
    assert mask_email("a@b.com") == "a*@b.com"
    assert mask_email("not-an-email") == "********"
