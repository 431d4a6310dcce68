"""Vault error taxonomy.

A wrong PIN is not an error: ``VaultSession.unlock`` reports it as ``False``.
Everything here is unexpected and propagates to the caller.
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class AuthenticationError(VaultError):
    """AEAD tag mismatch: wrong key, or tampered/corrupted ciphertext."""


class DeserializationError(VaultError):
    """Decryption succeeded but the content is not of the expected shape."""


class LockedError(VaultError):
    """Operation requires an unlocked session."""


class PersistenceError(VaultError):
    """The storage backend failed to read or write a record."""


class SetupError(VaultError):
    """Invalid setup parameters, or the vault is already set up."""
