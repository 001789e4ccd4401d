"""
Vault Storage — persistent backends for encrypted token records.

Backends store EncryptedRecord instances only; encryption and decryption
are handled by the vault. Every operation is atomic per record, and no
backend relies on multi-record transactions.

- ``MemoryStorage``: process-local, encoded records in a dict.
- ``SqliteStorage``: embedded durable file, one row per (namespace, token).
"""
import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StorageError
from .config import VaultConfig
from .records import EncryptedRecord, decode_record, encode_record

logger = logging.getLogger("token_vault.vault")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS vault_records (
    namespace TEXT NOT NULL,
    token TEXT NOT NULL,
    record BLOB NOT NULL,
    PRIMARY KEY (namespace, token)
)
"""

_UPSERT_RECORD = """
INSERT INTO vault_records (namespace, token, record)
VALUES (?, ?, ?)
ON CONFLICT (namespace, token)
DO UPDATE SET record = excluded.record
"""

_SELECT_RECORD = """
SELECT record FROM vault_records WHERE namespace = ? AND token = ?
"""

_EXISTS_RECORD = """
SELECT 1 FROM vault_records WHERE namespace = ? AND token = ? LIMIT 1
"""

_COUNT_RECORDS = """
SELECT COUNT(*) FROM vault_records WHERE namespace = ?
"""

_CLEAR_RECORDS = """
DELETE FROM vault_records WHERE namespace = ?
"""


class StorageBackend(ABC):
    """
    Interface that all vault storage backends must implement.

    A backend is scoped to a namespace and stores ENCRYPTED records only.
    I/O failures are raised as ``StorageError``; a corrupted record is
    raised by ``get`` as ``DecryptionError``.
    """

    def __init__(self, namespace: str = "tokens"):
        self.namespace = namespace

    async def open(self) -> None:
        """Prepare the backend for use. Idempotent."""

    async def close(self) -> None:
        """Release backend resources. Idempotent."""

    @abstractmethod
    async def put(self, token: str, record: EncryptedRecord) -> None:
        """Store (or replace) the record for ``token``."""

    @abstractmethod
    async def get(self, token: str) -> Optional[EncryptedRecord]:
        """Return the record for ``token``, or None if absent."""

    @abstractmethod
    async def has(self, token: str) -> bool:
        """Check whether a record exists for ``token``."""

    @abstractmethod
    async def count(self) -> int:
        """Number of records in this namespace."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every record in this namespace."""


class MemoryStorage(StorageBackend):
    """In-process backend; records are kept in their encoded form."""

    def __init__(self, namespace: str = "tokens"):
        super().__init__(namespace)
        self._records: dict[str, bytes] = {}

    async def put(self, token: str, record: EncryptedRecord) -> None:
        self._records[token] = encode_record(record)

    async def get(self, token: str) -> Optional[EncryptedRecord]:
        data = self._records.get(token)
        if data is None:
            return None
        return decode_record(data)

    async def has(self, token: str) -> bool:
        return token in self._records

    async def count(self) -> int:
        return len(self._records)

    async def clear(self) -> None:
        self._records.clear()


class SqliteStorage(StorageBackend):
    """Durable backend on an embedded SQLite file.

    sqlite3 calls run in a worker thread so they never block the event
    loop; an asyncio lock keeps them ordered on the single connection.
    """

    def __init__(
        self,
        db_path: Union[str, Path] = "token_vault.db",
        namespace: str = "tokens",
    ):
        super().__init__(namespace)
        self._db_path = db_path
        self._db: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if str(self._db_path) == ":memory:":
            path = ":memory:"
        else:
            db_path = Path(self._db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            path = str(db_path)
        conn = sqlite3.connect(path, check_same_thread=False)
        with conn:
            conn.execute(_SCHEMA)
        return conn

    def _unopened(self) -> bool:
        """True while no connection exists and the database file is absent."""
        if self._db is not None:
            return False
        if str(self._db_path) == ":memory:":
            return True
        return not Path(self._db_path).expanduser().exists()

    async def _run(self, operation: str, func, *args):
        """Run a sqlite3 call off the event loop, mapping errors."""
        async with self._lock:
            try:
                if self._db is None:
                    self._db = await asyncio.to_thread(self._connect)
                    logger.debug("Vault storage opened: %s", self._db_path)
                return await asyncio.to_thread(func, self._db, *args)
            except (sqlite3.Error, OSError) as err:
                logger.error(
                    "Vault storage %s failed (namespace=%s): %s",
                    operation, self.namespace, err,
                )
                raise StorageError(
                    f"Storage {operation} failed: {err}"
                ) from err

    async def open(self) -> None:
        await self._run("open", lambda conn: None)

    async def close(self) -> None:
        async with self._lock:
            if self._db is not None:
                db, self._db = self._db, None
                await asyncio.to_thread(db.close)

    @staticmethod
    def _put(conn: sqlite3.Connection, namespace: str, token: str, data: bytes) -> None:
        with conn:
            conn.execute(_UPSERT_RECORD, (namespace, token, data))

    @staticmethod
    def _fetch_one(conn: sqlite3.Connection, sql: str, *params):
        return conn.execute(sql, params).fetchone()

    @staticmethod
    def _clear(conn: sqlite3.Connection, namespace: str) -> None:
        with conn:
            conn.execute(_CLEAR_RECORDS, (namespace,))

    async def put(self, token: str, record: EncryptedRecord) -> None:
        await self._run(
            "put", self._put, self.namespace, token, encode_record(record)
        )

    async def get(self, token: str) -> Optional[EncryptedRecord]:
        if self._unopened():
            return None
        row = await self._run(
            "get", self._fetch_one, _SELECT_RECORD, self.namespace, token
        )
        if row is None:
            return None
        return decode_record(row[0])

    async def has(self, token: str) -> bool:
        if self._unopened():
            return False
        row = await self._run(
            "has", self._fetch_one, _EXISTS_RECORD, self.namespace, token
        )
        return row is not None

    async def count(self) -> int:
        if self._unopened():
            return 0
        row = await self._run(
            "count", self._fetch_one, _COUNT_RECORDS, self.namespace
        )
        return int(row[0])

    async def clear(self) -> None:
        if self._unopened():
            return
        await self._run("clear", self._clear, self.namespace)


def create_storage(config: VaultConfig) -> StorageBackend:
    """Build the storage backend selected by ``config``."""
    if config.storage_backend == "sqlite":
        return SqliteStorage(config.storage_path, namespace=config.namespace)
    return MemoryStorage(namespace=config.namespace)
