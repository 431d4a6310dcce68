"""
Vault Storage: Key-value persistence backends and the vault record store.

Two records are persisted, each a JSON text document:
- ``vault.meta`` → VaultMetadata (salt, iterations, wrapped DEK, PIN length)
- ``vault.data`` → EncryptedPayload wrapping the serialized VaultDocument

Writes are whole-record and last-writer-wins; a record is never patched.
"""
import os
import stat
import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .exceptions import DeserializationError, PersistenceError
from .models import EncryptedPayload, VaultMetadata

logger = logging.getLogger("pinvault.vault")

META_KEY = "vault.meta"
DATA_KEY = "vault.data"

NOFOLLOW_FLAG = getattr(os, "O_NOFOLLOW", 0)


class Storage(ABC):
    """Async key-value backend storing text records by name.

    Implementations report backend failures as ``PersistenceError`` (an
    ``OSError`` is also accepted and wrapped by ``VaultStore``); any other
    exception is treated as a programming error and propagates unchanged.
    """

    @abstractmethod
    async def get(self, name: str) -> Optional[str]:
        """Return the record stored under ``name``, or None if missing.

        Raises:
            PersistenceError: If the backend cannot be read.
        """

    @abstractmethod
    async def set(self, name: str, value: str) -> None:
        """Store ``value`` under ``name``, replacing any previous record.

        Raises:
            PersistenceError: If the record cannot be written.
        """

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Remove ``name``. No-op if missing."""


class MemoryStorage(Storage):
    """Dict-backed storage; contents live as long as the instance."""

    def __init__(self, records: Optional[dict[str, str]] = None):
        self._records: dict[str, str] = dict(records or {})

    async def get(self, name: str) -> Optional[str]:
        return self._records.get(name)

    async def set(self, name: str, value: str) -> None:
        self._records[name] = value

    async def delete(self, name: str) -> None:
        self._records.pop(name, None)


def _ensure_not_symlink(path: Path, label: str) -> None:
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISLNK(st.st_mode):
        raise PersistenceError(f"{label} {path} is a symlink, which is not allowed")


class FileStorage(Storage):
    """One file per record inside a private (0700) directory.

    Each write goes to a temporary file that is fsynced and atomically
    renamed over the target, so a reader sees either the old or the new
    record, never a partial one.
    """

    def __init__(self, directory: os.PathLike):
        self.directory = Path(directory).expanduser().resolve(strict=False)

    def _path(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid record name: {name!r}")
        return self.directory / name

    def _mkdir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        _ensure_not_symlink(self.directory, "Vault directory")
        if os.name == "posix":
            os.chmod(self.directory, 0o700)

    def _read(self, name: str) -> Optional[str]:
        path = self._path(name)
        _ensure_not_symlink(path, "Record file")
        flags = os.O_RDONLY | NOFOLLOW_FLAG
        try:
            fd = os.open(path, flags)
        except FileNotFoundError:
            return None
        with os.fdopen(fd, "rb") as f:
            return f.read().decode("utf-8")

    def _write(self, name: str, value: str) -> None:
        path = self._path(name)
        self._mkdir()
        _ensure_not_symlink(path, "Record file")
        fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            if os.name == "posix":
                os.chmod(path, 0o600)
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass

    def _remove(self, name: str) -> None:
        try:
            os.remove(self._path(name))
        except FileNotFoundError:
            pass

    async def get(self, name: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._read, name)
        except (OSError, UnicodeDecodeError) as err:
            raise PersistenceError(f"Failed to read {name}: {err}") from err

    async def set(self, name: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._write, name, value)
        except OSError as err:
            raise PersistenceError(f"Failed to write {name}: {err}") from err

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(self._remove, name)
        except OSError as err:
            raise PersistenceError(f"Failed to delete {name}: {err}") from err


class VaultStore:
    """Maps the two vault records onto their pydantic models.

    This is the only component that touches the storage backend; it is
    owned by a single ``VaultSession``.
    """

    def __init__(self, storage: Storage):
        self._storage = storage

    async def _get(self, name: str) -> Optional[str]:
        try:
            return await self._storage.get(name)
        except PersistenceError:
            raise
        except OSError as err:
            raise PersistenceError(f"Failed to read {name}: {err}") from err

    async def _set(self, name: str, value: str) -> None:
        try:
            await self._storage.set(name, value)
        except PersistenceError:
            raise
        except OSError as err:
            raise PersistenceError(f"Failed to write {name}: {err}") from err
        logger.debug("Vault record written: %s", name)

    async def load_metadata(self) -> Optional[VaultMetadata]:
        """Return the persisted VaultMetadata, or None before setup.

        Raises:
            DeserializationError: If the record is malformed.
            PersistenceError: If the backend fails.
        """
        raw = await self._get(META_KEY)
        if raw is None:
            return None
        try:
            return VaultMetadata.model_validate_json(raw)
        except ValidationError as err:
            raise DeserializationError(f"{META_KEY} is malformed: {err}") from err

    async def save_metadata(self, meta: VaultMetadata) -> None:
        await self._set(META_KEY, meta.model_dump_json(by_alias=True))

    async def load_document(self) -> Optional[EncryptedPayload]:
        """Return the encrypted document payload, or None if missing.

        Raises:
            DeserializationError: If the record is malformed.
            PersistenceError: If the backend fails.
        """
        raw = await self._get(DATA_KEY)
        if raw is None:
            return None
        try:
            return EncryptedPayload.model_validate_json(raw)
        except ValidationError as err:
            raise DeserializationError(f"{DATA_KEY} is malformed: {err}") from err

    async def save_document(self, payload: EncryptedPayload) -> None:
        await self._set(
            DATA_KEY, payload.model_dump_json(by_alias=True, exclude_none=True),
        )
