"""PIN Vault: Envelope-encrypted personal vault unlocked by a PIN.

Security Note (Threat Model):
    The DEK and the decrypted document live in process memory while the
    session is unlocked. A memory dump of the process during that window
    exposes them. Losing the PIN, or the persisted salt and wrapped key,
    makes the vault unrecoverable; there is no recovery path.
"""

from .config import VaultConfig
from .exceptions import (
    VaultError,
    AuthenticationError,
    DeserializationError,
    LockedError,
    PersistenceError,
    SetupError,
)
from .models import (
    AccountItem,
    Category,
    EncryptedPayload,
    LinkItem,
    VaultDocument,
    VaultMetadata,
)
from .session_vault import VaultSession, VaultState
from .storage import FileStorage, MemoryStorage, Storage, VaultStore

__all__ = [
    "VaultSession",
    "VaultState",
    "VaultConfig",
    "VaultStore",
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "VaultDocument",
    "VaultMetadata",
    "EncryptedPayload",
    "Category",
    "AccountItem",
    "LinkItem",
    "VaultError",
    "AuthenticationError",
    "DeserializationError",
    "LockedError",
    "PersistenceError",
    "SetupError",
]
