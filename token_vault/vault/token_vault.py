"""
TokenVault — Encrypted token → value storage bound to a client session.

Provides the public API for the Token Vault:
- ``initialize(session_id, challenge)`` / ``wipe()`` — session lifecycle
- ``store(token, value)`` / ``store_from_token_map(mapping)`` — encrypt and persist
- ``retrieve(token)`` / ``retrieve_batch(tokens)`` — decrypt (cache → storage → None)
- ``has_token(token)`` / ``get_stats()`` — existence checks and aggregate counters
- ``subscribe(listener)`` — readiness change notifications

Write and lifecycle failures propagate to the caller. Read failures are
logged and surface as ``None`` so a missing token cannot be told apart
from a tampered one at the API boundary.

Security Note:
    Never log plaintext or ciphertext values. Only log token identifiers,
    counts and operations. Decrypted values exist in process memory
    (the plaintext cache) until ``wipe()``.
"""
import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Optional, Union

from ..exceptions import (
    DecryptionError,
    InvalidTokenFormat,
    StorageError,
    VaultInitError,
    VaultNotReady,
)
from ..tokens import is_valid_token, parse_token_map
from ..types import VaultStats
from .config import VaultConfig, format_bytes
from .crypto import KeyHandle, decrypt_record, derive_key, encrypt_record
from .storage import StorageBackend, create_storage

logger = logging.getLogger("token_vault.vault")

# Rough size of one encrypted record at rest, used for stats only.
_ESTIMATED_RECORD_SIZE = 256

Listener = Callable[[], None]


class TokenVault:
    """Encrypted vault for PII token values.

    Values are encrypted with a key derived from the session credentials
    and persisted through a ``StorageBackend``; decrypted values are only
    kept in an in-memory cache.

    Lookup order for ``retrieve()``: in-memory cache → storage → None.
    Batch operations run sequentially, never concurrently.
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        config: Optional[VaultConfig] = None,
    ):
        self._config = config or VaultConfig()
        self._storage = storage if storage is not None else create_storage(self._config)
        self._key: Optional[KeyHandle] = None
        self._cache: dict[str, str] = {}  # token -> plaintext
        self._session_id: str = ''
        self._ready: bool = False
        # bumped on every initialize/wipe; late results from an older
        # generation are discarded
        self._generation: int = 0
        self._listeners: list[Listener] = []
        self._lifecycle = asyncio.Lock()
        # writes in flight; wipe() waits for them before clearing storage
        self._pending_writes: int = 0
        self._writes_drained = asyncio.Event()
        self._writes_drained.set()

    def __repr__(self) -> str:
        return (
            f"<TokenVault ready={self._ready} "
            f"storage={type(self._storage).__name__} cached={len(self._cache)}>"
        )

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    # ------------------------------------------------------------------
    # Readiness notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for readiness changes.

        Args:
            listener: Zero-argument callable, invoked after ``ready`` flips.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as err:
                logger.error("Vault readiness listener failed: %s", err)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_ready(self) -> int:
        """Fail closed when not ready; return the current generation."""
        if not self._ready or self._key is None:
            raise VaultNotReady()
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return self._ready and self._generation == generation

    def _discard_session(self) -> None:
        self._key = None
        self._cache.clear()
        self._session_id = ''
        self._ready = False
        self._generation += 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, session_id: str, challenge: str) -> None:
        """Derive the session key and open storage.

        Calling it again while the vault is ready is a no-op: the key is
        not re-derived and the cache is kept.

        Args:
            session_id: Server-provided session identifier.
            challenge: Server-issued challenge.

        Raises:
            VaultInitError: If key derivation or storage setup fails.
        """
        async with self._lifecycle:
            if self._ready:
                logger.warning("Vault already initialized, skipping re-initialization")
                return
            try:
                key = await asyncio.to_thread(
                    derive_key,
                    session_id,
                    challenge,
                    self._config.pbkdf2_iterations,
                    self._config.cipher_backend,
                )
                await self._storage.open()
            except Exception as err:
                self._ready = False
                logger.error("Vault initialization failed: %s", err)
                raise VaultInitError(f"Initialization failed: {err}") from err
            self._key = key
            self._session_id = session_id
            self._generation += 1
            self._ready = True
        logger.info("Vault initialization complete - vault ready")
        self._notify()

    async def wipe(self) -> None:
        """Clear storage and cache, discard the key, mark not ready.

        Safe to call repeatedly or before ``initialize``. In-memory state is
        discarded even if clearing storage fails. Writes already in flight
        are awaited first so none of them lands after the clear.

        Raises:
            StorageError: If the storage namespace could not be cleared.
        """
        async with self._lifecycle:
            was_ready = self._ready
            self._discard_session()
            try:
                await self._writes_drained.wait()
                await self._storage.clear()
            except StorageError:
                logger.error(
                    "Vault wipe could not clear storage namespace=%s",
                    self._storage.namespace,
                )
                raise
            finally:
                if was_ready:
                    self._notify()
        logger.info("Vault wipe complete - vault cleared")

    async def close(self) -> None:
        """Release the storage backend. Persisted records are kept."""
        await self._storage.close()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def store(self, token: str, value: str) -> None:
        """Encrypt and persist a single token value.

        Args:
            token: Token identifier (``TOKEN_[A-Za-z0-9]+``).
            value: Plaintext value.

        Raises:
            VaultNotReady: If the vault is not initialized (or was wiped
                while the write was in flight).
            InvalidTokenFormat: If the token is malformed.
            StorageError: If the backend write fails.
        """
        generation = self._check_ready()
        if not is_valid_token(token):
            raise InvalidTokenFormat(token)
        if not isinstance(value, str):
            raise TypeError(
                f"Token value must be str, got {type(value).__name__}"
            )
        record = encrypt_record(self._key, token, value.encode("utf-8"))
        self._pending_writes += 1
        self._writes_drained.clear()
        try:
            await self._storage.put(token, record)
        except StorageError:
            raise
        except Exception as err:
            raise StorageError(f"Storage put failed: {err}") from err
        finally:
            self._pending_writes -= 1
            if self._pending_writes == 0:
                self._writes_drained.set()
        if not self._is_current(generation):
            raise VaultNotReady("Vault was wiped while storing a token")
        self._cache[token] = value
        logger.debug("Vault store: token=%s", token)

    async def store_from_token_map(
        self, token_map: Union[Mapping[str, str], bytes, str]
    ) -> None:
        """Store every entry of a token map received from the issuer.

        Entries are stored one at a time; the first failure aborts and is
        re-raised, and entries stored before it remain stored.

        Args:
            token_map: Mapping of token → plaintext, or its raw JSON document.

        Raises:
            InvalidTokenMap: If the JSON document is malformed.
            VaultNotReady, InvalidTokenFormat, StorageError: From ``store``.
        """
        self._check_ready()
        entries = parse_token_map(token_map)
        for token, value in entries.items():
            await self.store(token, value)
        logger.info("Vault stored %d token(s) from token map", len(entries))

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def retrieve(self, token: str) -> Optional[str]:
        """Decrypt and return a token value.

        Args:
            token: Token identifier.

        Returns:
            The plaintext, or None when the token is absent, its record
            cannot be decrypted, or the vault is not ready.
        """
        if not self._ready or self._key is None:
            logger.warning("Vault not ready - token=%s left unresolved", token)
            return None
        generation = self._generation
        key = self._key

        # 1. Check in-memory cache
        value = self._cache.get(token)
        if value is not None:
            return value
        if not is_valid_token(token):
            return None

        # 2. Read and decrypt the stored record
        try:
            record = await self._storage.get(token)
            if record is None:
                return None
            value = decrypt_record(key, token, record).decode("utf-8")
        except (DecryptionError, UnicodeDecodeError) as err:
            logger.error("Vault decryption failed for token=%s: %s", token, err)
            return None
        except StorageError as err:
            logger.error("Vault retrieval failed for token=%s: %s", token, err)
            return None

        # 3. Discard if the session changed while we were waiting
        if not self._is_current(generation):
            logger.debug("Vault session changed, discarding token=%s", token)
            return None
        self._cache[token] = value
        return value

    async def retrieve_batch(self, tokens: Iterable[str]) -> dict[str, Optional[str]]:
        """Retrieve several token values, one after another.

        Each distinct token is looked up at most once.

        Args:
            tokens: Token identifiers.

        Returns:
            Mapping of token → plaintext (None for unresolved tokens).
        """
        results: dict[str, Optional[str]] = {}
        for token in tokens:
            if token in results:
                continue
            results[token] = await self.retrieve(token)
        return results

    async def has_token(self, token: str) -> bool:
        """Check whether a token is stored, without decrypting it."""
        if not self._ready:
            return False
        try:
            return await self._storage.has(token)
        except StorageError as err:
            logger.error("Vault existence check failed for token=%s: %s", token, err)
            return False

    async def get_stats(self) -> VaultStats:
        """Aggregate counters; never includes token identifiers or values."""
        token_count = await self._storage.count()
        return VaultStats(
            token_count=token_count,
            cache_size=len(self._cache),
            is_ready=self._ready,
            encrypted_size=format_bytes(token_count * _ESTIMATED_RECORD_SIZE),
        )
