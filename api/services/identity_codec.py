"""
Identity Codec — keyed hashing and reversible encryption of the driver's SIN.

Security:
  - The raw identifier never crosses the persistence boundary
  - HMAC-SHA256 hex digest is the only lookup key
  - AES-256-CBC with a fresh random IV per call, stored as "iv:ciphertext" hex
"""

import hashlib
import hmac
import os
import re

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from services.errors import MalformedCiphertext, ValidationError

IV_LENGTH = 16
KEY_LENGTH = 32

_HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})+$")
_SIN_RE = re.compile(r"^\d{9}$")


def normalize_identifier(raw: str | None) -> str:
    """Strip whitespace and dashes: '123-456 789' -> '123456789'."""
    return re.sub(r"[\s-]", "", str(raw or ""))


def validate_identifier(raw: str | None) -> str:
    """Return the normalized SIN or raise ValidationError."""
    sin = normalize_identifier(raw)
    if not _SIN_RE.match(sin):
        raise ValidationError("Invalid SIN", clear_cookie=True)
    return sin


def hash_identifier(identifier: str, secret: str) -> str:
    """Deterministic HMAC-SHA256 hex digest; equality-searchable, never reversed."""
    return hmac.new(secret.encode("utf-8"), identifier.encode("utf-8"), hashlib.sha256).hexdigest()


def hash_email(email: str, secret: str) -> str:
    return hash_identifier(email.strip().lower(), secret)


def _key_bytes(key: str | bytes) -> bytes:
    raw = bytes.fromhex(key) if isinstance(key, str) else key
    if len(raw) != KEY_LENGTH:
        raise ValueError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(raw)}")
    return raw


def encrypt_identifier(identifier: str, key: str | bytes) -> str:
    """Encrypt to 'ivhex:ciphertexthex'."""
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(identifier.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(_key_bytes(key)), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt_identifier(encrypted: str, key: str | bytes) -> str:
    parts = str(encrypted or "").split(":")
    if len(parts) != 2 or not all(_HEX_RE.match(p) for p in parts):
        raise MalformedCiphertext("Encrypted value must be 'iv:ciphertext' hex")

    iv, ciphertext = bytes.fromhex(parts[0]), bytes.fromhex(parts[1])
    if len(iv) != IV_LENGTH or len(ciphertext) % IV_LENGTH:
        raise MalformedCiphertext("Encrypted value has invalid IV or block length")

    decryptor = Cipher(algorithms.AES(_key_bytes(key)), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    try:
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        raise MalformedCiphertext("Encrypted value could not be decrypted") from exc


def mask_email(email: str) -> str:
    """Mask an email: 'driver@mail.com' -> 'd*****@mail.com'."""
    user, sep, domain = str(email or "").partition("@")
    if not user or not sep or not domain:
        return "********"
    return f"{user[0]}{'*' * max(1, len(user) - 1)}@{domain}"
