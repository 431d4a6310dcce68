"""PinVault.

Locally encrypted, PIN-locked vault of credentials and links.
"""
from .version import __version__
from .vault import (
    VaultSession,
    VaultConfig,
    MemoryStorage,
    FileStorage,
    VaultDocument,
)

__all__ = [
    "__version__",
    "VaultSession",
    "VaultConfig",
    "MemoryStorage",
    "FileStorage",
    "VaultDocument",
]
