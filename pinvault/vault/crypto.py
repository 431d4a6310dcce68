"""
Vault Crypto Core: Key derivation, envelope encryption, and serialization.

Implements the envelope scheme of the PIN vault:
- Key layer: PBKDF2-SHA256(pin, salt, iterations) → KEK → AES-GCM(wrapped DEK)
- Data layer: DEK → AES-GCM → vault document ciphertext

Security Note:
    Never log PINs, keys, plaintext or ciphertext values.
    Nonces are random 96-bit; each encryption draws a fresh one.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Callable, TypeVar

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ValidationError

from .exceptions import AuthenticationError, DeserializationError
from .models import (
    EncryptedPayload,
    MIN_ITERATIONS,
    NONCE_SIZE,
    SALT_SIZE,
)

logger = logging.getLogger("pinvault.vault")

KEY_LENGTH = 32  # AES-256

RandomSource = Callable[[int], bytes]
ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(pin: str, salt: bytes, iterations: int) -> bytes:
    """Derive a 32-byte key-encryption-key from a PIN using PBKDF2-SHA256.

    The result is a pure function of (pin, salt, iterations); the same
    iterations value used at setup must be reused for every unlock.

    Args:
        pin: User PIN; any string is accepted as key material.
        salt: Persisted random salt.
        iterations: PBKDF2 iteration count (at least ``MIN_ITERATIONS``).

    Returns:
        32-byte derived key.

    Raises:
        ValueError: If the salt is empty or iterations is below the minimum.
    """
    if not salt:
        raise ValueError("salt cannot be empty")
    if iterations < MIN_ITERATIONS:
        raise ValueError(
            f"iterations must be at least {MIN_ITERATIONS}, got {iterations}"
        )
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(pin.encode("utf-8", "surrogatepass"))


def generate_key(random_bytes: RandomSource = os.urandom) -> bytes:
    """Return a random 256-bit data-encryption-key."""
    return _draw(random_bytes, KEY_LENGTH)


def generate_salt(random_bytes: RandomSource = os.urandom) -> bytes:
    """Return a random 16-byte PBKDF2 salt."""
    return _draw(random_bytes, SALT_SIZE)


def _draw(random_bytes: RandomSource, size: int) -> bytes:
    value = bytes(random_bytes(size))
    if len(value) != size:
        raise ValueError(
            f"random source returned {len(value)} bytes, expected {size}"
        )
    return value


# ---------------------------------------------------------------------------
# Byte-level envelope
# ---------------------------------------------------------------------------

def encrypt(
    key: bytes,
    plaintext: bytes,
    random_bytes: RandomSource = os.urandom,
) -> EncryptedPayload:
    """Encrypt plaintext with AES-256-GCM under a fresh random nonce.

    Args:
        key: 32-byte AES key (KEK or DEK).
        plaintext: Data to encrypt.
        random_bytes: Secure random source used for the nonce.

    Returns:
        EncryptedPayload holding the nonce and ciphertext (tag included).
    """
    nonce = _draw(random_bytes, NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext, None)
    return EncryptedPayload(
        nonce=nonce,
        ciphertext=ct,
        updated_at=datetime.now(timezone.utc),
    )


def decrypt(key: bytes, payload: EncryptedPayload) -> bytes:
    """Decrypt a payload produced by ``encrypt``.

    Args:
        key: 32-byte AES key the payload was encrypted under.
        payload: Nonce and ciphertext pair.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        AuthenticationError: If the tag does not verify (wrong key,
            corrupted or tampered ciphertext).
    """
    try:
        return AESGCM(key).decrypt(payload.nonce, payload.ciphertext, None)
    except InvalidTag as err:
        raise AuthenticationError(
            "ciphertext failed authentication"
        ) from err


# ---------------------------------------------------------------------------
# Document serialization
# ---------------------------------------------------------------------------

def serialize_document(value: BaseModel) -> bytes:
    """Serialize a pydantic model to canonical JSON bytes (sorted keys)."""
    return orjson.dumps(
        value.model_dump(mode="json", by_alias=True),
        option=orjson.OPT_SORT_KEYS,
    )


def deserialize_document(data: bytes, model: type[ModelT]) -> ModelT:
    """Parse JSON bytes into an instance of ``model``.

    Raises:
        DeserializationError: If the bytes are not JSON of the expected shape.
    """
    try:
        return model.model_validate(orjson.loads(data))
    except orjson.JSONDecodeError as err:
        raise DeserializationError(
            f"{model.__name__} is not valid JSON: {err}"
        ) from err
    except ValidationError as err:
        raise DeserializationError(
            f"{model.__name__} has an unexpected shape: {err}"
        ) from err


def encrypt_document(
    key: bytes,
    value: BaseModel,
    random_bytes: RandomSource = os.urandom,
) -> EncryptedPayload:
    """Serialize and encrypt a structured value."""
    return encrypt(key, serialize_document(value), random_bytes)


def decrypt_document(
    key: bytes,
    payload: EncryptedPayload,
    model: type[ModelT],
) -> ModelT:
    """Decrypt and parse a structured value.

    Raises:
        AuthenticationError: If the payload fails authentication.
        DeserializationError: If the plaintext is not a valid ``model``.
    """
    return deserialize_document(decrypt(key, payload), model)


def zero_bytes(buf: bytearray) -> None:
    """Best-effort zeroization of a mutable buffer that held key material."""
    if isinstance(buf, bytearray):
        buf[:] = b"\x00" * len(buf)
