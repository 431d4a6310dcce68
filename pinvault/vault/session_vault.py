"""
VaultSession: The PIN-locked state machine guarding the vault document.

Provides the public API used by the UI layer:
- ``setup(pin, digits)``: create the vault and leave it unlocked
- ``unlock(pin)``: returns False on a wrong PIN, never raises for it
- ``lock()``: drop the DEK and plaintext document, no I/O
- ``read()`` / ``mutate(updater)``: access the document while unlocked
- ``change_pin(old_pin, new_pin)``: re-wrap the DEK under a new PIN
- ``open(storage)``: factory that loads the persisted metadata

Security Note:
    Never log PINs, keys, plaintext or ciphertext values. The DEK and the
    decrypted document exist in process memory only while unlocked.
"""
import os
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .config import VaultConfig
from .crypto import (
    RandomSource,
    decrypt_document,
    encrypt_document,
    generate_key,
    zero_bytes,
)
from .exceptions import (
    AuthenticationError,
    DeserializationError,
    LockedError,
    PersistenceError,
    SetupError,
)
from .key_rotation import rewrap_dek, unwrap_dek, wrap_dek
from .models import VaultDocument, VaultMetadata
from .storage import FileStorage, Storage, VaultStore

logger = logging.getLogger("pinvault.vault")


class VaultState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class VaultSession:
    """PIN-locked vault session owning the in-memory DEK.

    One instance per process; pass it by reference to callers. ``setup``,
    ``unlock``, ``mutate`` and ``change_pin`` are serialized by a
    per-session lock so a read-modify-encrypt-persist cycle is never
    interleaved. Key derivation and encryption run in a worker thread.

    ``lock()`` always wins: an unlock or mutation still in flight when the
    session is locked does not bring plaintext back into memory.
    """

    def __init__(
        self,
        storage: Storage,
        config: Optional[VaultConfig] = None,
        random_bytes: RandomSource = os.urandom,
    ):
        self._store = VaultStore(storage)
        self._config = config or VaultConfig()
        self._random = random_bytes
        self._meta: Optional[VaultMetadata] = None
        self._dek: Optional[bytearray] = None
        self._document: Optional[VaultDocument] = None
        self._mutex = asyncio.Lock()
        # bumped by lock(); in-flight work from an older epoch is discarded
        self._epoch = 0
        # bumped by every unlock(); only the newest attempt may succeed
        self._attempt = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> VaultState:
        if self._dek is not None:
            return VaultState.UNLOCKED
        if self._meta is not None:
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    @property
    def is_setup(self) -> bool:
        return self._meta is not None

    @property
    def is_unlocked(self) -> bool:
        return self._dek is not None

    @property
    def pin_length(self) -> int:
        """PIN length of the vault, or the configured default before setup."""
        if self._meta is not None:
            return self._meta.pin_digits
        return self._config.default_pin_length

    def _require_unlocked(self) -> None:
        if self._dek is None or self._document is None:
            raise LockedError("Vault is locked")

    def _validate_pin(self, pin: str, digits: int) -> None:
        """Validate a new PIN against the supported lengths.

        Raises:
            SetupError: If digits is unsupported or pin is not exactly
                ``digits`` decimal digits.
        """
        if digits not in self._config.pin_digits:
            raise SetupError(
                f"Unsupported PIN length {digits} "
                f"(supported: {self._config.pin_digits})"
            )
        if len(pin) != digits or not (pin.isascii() and pin.isdigit()):
            raise SetupError(f"PIN must be exactly {digits} digits")

    async def _current_metadata(self) -> Optional[VaultMetadata]:
        if self._meta is None:
            self._meta = await self._store.load_metadata()
        return self._meta

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def setup(self, pin: str, digits: int) -> None:
        """Create a new vault protected by ``pin`` and leave it unlocked.

        Args:
            pin: New PIN, exactly ``digits`` decimal digits.
            digits: PIN length, one of the configured ``pin_digits``.

        Raises:
            SetupError: If the parameters are invalid, a vault already
                exists, or the new records could not be persisted.
        """
        self._validate_pin(pin, digits)
        async with self._mutex:
            if await self._current_metadata() is not None:
                raise SetupError("Vault is already set up")
            epoch = self._epoch
            dek = generate_key(self._random)
            document = VaultDocument.empty()
            meta = await asyncio.to_thread(
                wrap_dek, dek, pin, self._config.iterations, digits,
                None, self._random,
            )
            payload = await asyncio.to_thread(
                encrypt_document, dek, document, self._random,
            )
            try:
                await self._store.save_metadata(meta)
                self._meta = meta
                await self._store.save_document(payload)
            except PersistenceError as err:
                logger.error("Vault setup failed to persist: %s", err)
                raise SetupError(f"Failed to persist new vault: {err}") from err
            logger.info(
                "Vault setup complete: digits=%d iterations=%d",
                digits, meta.iterations,
            )
            if epoch != self._epoch:
                return
            self._dek = bytearray(dek)
            self._document = document

    async def unlock(self, pin: str) -> bool:
        """Try to unlock the vault with ``pin``.

        Returns:
            True when unlocked; False on a wrong PIN, when no vault is set
            up, or when the attempt was superseded by a newer ``unlock`` or
            by ``lock``. A failed attempt leaves the session state as it was.

        Raises:
            AuthenticationError: The PIN was right but the stored document
                failed authentication (corruption or tampering).
            DeserializationError: The document decrypted but is malformed.
            PersistenceError: The storage backend failed.
        """
        self._attempt += 1
        attempt = self._attempt
        epoch = self._epoch

        def superseded() -> bool:
            return attempt != self._attempt or epoch != self._epoch

        async with self._mutex:
            if superseded():
                return False
            meta = await self._current_metadata()
            if meta is None:
                logger.warning("Vault unlock attempted before setup")
                return False
            dek = await asyncio.to_thread(unwrap_dek, meta, pin)
            if superseded():
                logger.debug("Vault unlock superseded; result discarded")
                return False
            if dek is None:
                logger.info("Vault unlock failed: incorrect PIN")
                return False

            payload = await self._store.load_document()
            if payload is None:
                document = VaultDocument.empty()
                payload = await asyncio.to_thread(
                    encrypt_document, dek, document, self._random,
                )
                await self._store.save_document(payload)
                logger.warning(
                    "Vault document missing; initialized an empty document",
                )
            else:
                try:
                    document = await asyncio.to_thread(
                        decrypt_document, dek, payload, VaultDocument,
                    )
                except AuthenticationError:
                    logger.error("Vault document failed authentication")
                    raise
                except DeserializationError as err:
                    logger.error("Vault document is malformed: %s", err)
                    raise
            if superseded():
                logger.debug("Vault unlock superseded; result discarded")
                return False
            if self._dek is not None:
                zero_bytes(self._dek)
            self._dek = bytearray(dek)
            self._document = document
            logger.info("Vault unlocked")
            return True

    def lock(self) -> None:
        """Discard the DEK and document immediately. Always allowed, no I/O."""
        self._epoch += 1
        if self._dek is not None:
            zero_bytes(self._dek)
        was_unlocked = self._dek is not None
        self._dek = None
        self._document = None
        if was_unlocked:
            logger.info("Vault locked")

    # ------------------------------------------------------------------
    # Document access
    # ------------------------------------------------------------------

    def read(self) -> VaultDocument:
        """Return a copy of the decrypted vault document.

        Raises:
            LockedError: If the session is not unlocked.
        """
        self._require_unlocked()
        return self._document.model_copy(deep=True)

    async def mutate(
        self, updater: Callable[[VaultDocument], VaultDocument],
    ) -> VaultDocument:
        """Apply ``updater``, persist the re-encrypted result, then commit it.

        The updater receives a private copy of the document. Nothing is
        committed in memory unless the new ciphertext was persisted.

        Args:
            updater: Function returning the new document.

        Returns:
            A copy of the committed document.

        Raises:
            LockedError: If the session is not unlocked.
            PersistenceError: If the document could not be stored.
        """
        self._require_unlocked()
        async with self._mutex:
            self._require_unlocked()
            epoch = self._epoch
            dek = bytes(self._dek)
            updated = updater(self._document.model_copy(deep=True))
            if not isinstance(updated, VaultDocument):
                raise TypeError(
                    f"updater must return a VaultDocument, got {type(updated).__name__}"
                )
            updated = VaultDocument.model_validate(updated.model_dump())
            payload = await asyncio.to_thread(
                encrypt_document, dek, updated, self._random,
            )
            await self._store.save_document(payload)
            if epoch == self._epoch:
                self._document = updated
            else:
                logger.debug("Vault locked during mutation; not committed")
            logger.debug("Vault document updated")
            return updated.model_copy(deep=True)

    # ------------------------------------------------------------------
    # PIN change
    # ------------------------------------------------------------------

    async def change_pin(
        self, old_pin: str, new_pin: str, digits: Optional[int] = None,
    ) -> bool:
        """Re-wrap the DEK under ``new_pin``; the document is not touched.

        Works whether the session is locked or unlocked and does not change
        that state.

        Returns:
            True on success, False if ``old_pin`` is wrong.

        Raises:
            SetupError: If no vault exists or ``new_pin`` is invalid.
            PersistenceError: If the new metadata could not be stored.
        """
        async with self._mutex:
            meta = await self._current_metadata()
            if meta is None:
                raise SetupError("Vault is not set up")
            if digits is None:
                digits = meta.pin_digits
            self._validate_pin(new_pin, digits)
            new_meta = await asyncio.to_thread(
                rewrap_dek, meta, old_pin, new_pin,
                self._config.iterations, digits, self._random,
            )
            if new_meta is None:
                logger.info("Vault PIN change failed: incorrect PIN")
                return False
            await self._store.save_metadata(new_meta)
            self._meta = new_meta
            return True

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        storage: Optional[Storage] = None,
        config: Optional[VaultConfig] = None,
        random_bytes: RandomSource = os.urandom,
    ) -> "VaultSession":
        """Create a session and load the persisted vault metadata.

        This is the primary constructor used at process start.

        Args:
            storage: Key-value backend holding ``vault.meta`` / ``vault.data``.
                Defaults to a ``FileStorage`` at ``config.storage_path``.
            config: Vault settings; defaults to ``VaultConfig()``.
            random_bytes: Secure random source.

        Returns:
            A session in the Uninitialized or Locked state.

        Raises:
            ValueError: If neither ``storage`` nor ``config.storage_path``
                is given.
        """
        config = config or VaultConfig()
        if storage is None:
            if config.storage_path is None:
                raise ValueError(
                    "No storage given and config.storage_path is not set "
                    "(set PINVAULT_STORAGE_PATH)"
                )
            storage = FileStorage(config.storage_path)
        session = cls(storage, config=config, random_bytes=random_bytes)
        session._meta = await session._store.load_metadata()
        logger.info("Vault opened: state=%s", session.state.value)
        return session
