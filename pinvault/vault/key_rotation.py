"""
Vault Key Wrapping: Protecting the DEK under a PIN-derived KEK.

The DEK never changes for the lifetime of a vault. Changing the PIN only
re-wraps the DEK under a KEK derived from the new PIN and a fresh salt;
the encrypted vault document is left untouched.

Security Note:
    The KEK exists only inside these functions. Never log PINs or keys.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Optional

from .crypto import (
    RandomSource,
    decrypt,
    derive_key,
    encrypt,
    generate_salt,
    KEY_LENGTH,
)
from .exceptions import AuthenticationError
from .models import VaultMetadata

logger = logging.getLogger("pinvault.vault")


def wrap_dek(
    dek: bytes,
    pin: str,
    iterations: int,
    pin_digits: int,
    created_at: Optional[datetime] = None,
    random_bytes: RandomSource = os.urandom,
) -> VaultMetadata:
    """Wrap a DEK under a KEK derived from ``pin`` and a fresh salt.

    Args:
        dek: Raw 32-byte data-encryption-key.
        pin: PIN the KEK is derived from.
        iterations: PBKDF2 iteration count to record and use.
        pin_digits: PIN length recorded for the unlock screen.
        created_at: Creation time to keep; defaults to now.
        random_bytes: Secure random source for salt and nonce.

    Returns:
        New VaultMetadata holding the wrapped DEK.
    """
    if len(dek) != KEY_LENGTH:
        raise ValueError(f"DEK must be {KEY_LENGTH} bytes, got {len(dek)}")
    salt = generate_salt(random_bytes)
    kek = derive_key(pin, salt, iterations)
    wrapped = encrypt(kek, dek, random_bytes)
    return VaultMetadata(
        salt=salt,
        iterations=iterations,
        wrapped_dek=wrapped,
        pin_digits=pin_digits,
        created_at=created_at or datetime.now(timezone.utc),
    )


def unwrap_dek(meta: VaultMetadata, pin: str) -> Optional[bytes]:
    """Re-derive the KEK from ``pin`` and unwrap the DEK.

    Uses the salt and iteration count persisted in ``meta`` verbatim.

    Returns:
        The raw DEK, or None if the PIN is wrong (or the wrapped key was
        tampered with; the two cannot be told apart).
    """
    kek = derive_key(pin, meta.salt, meta.iterations)
    try:
        dek = decrypt(kek, meta.wrapped_dek)
    except AuthenticationError:
        return None
    if len(dek) != KEY_LENGTH:
        return None
    return dek


def rewrap_dek(
    meta: VaultMetadata,
    old_pin: str,
    new_pin: str,
    iterations: int,
    pin_digits: int,
    random_bytes: RandomSource = os.urandom,
) -> Optional[VaultMetadata]:
    """Move the DEK from ``old_pin`` to ``new_pin``.

    Returns:
        Replacement VaultMetadata, or None if ``old_pin`` is wrong.
    """
    dek = unwrap_dek(meta, old_pin)
    if dek is None:
        return None
    new_meta = wrap_dek(
        dek,
        new_pin,
        iterations,
        pin_digits,
        created_at=meta.created_at,
        random_bytes=random_bytes,
    )
    logger.info(
        "Vault DEK re-wrapped: digits=%d iterations=%d",
        pin_digits, iterations,
    )
    return new_meta
