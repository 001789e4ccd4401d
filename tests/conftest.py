"""Shared fixtures for the token vault tests."""
import asyncio

import pytest
import pytest_asyncio

from token_vault import Detokenizer, MemoryStorage, StorageError, TokenVault
from token_vault.vault.records import decode_record

SESSION_ID = "session-0123456789"
CHALLENGE = "Y2hhbGxlbmdlLWZyb20tc2VydmVy"
OTHER_SESSION_ID = "session-9876543210"
OTHER_CHALLENGE = "YW5vdGhlci1jaGFsbGVuZ2UtdmFsdWU="


class FailingStorage(MemoryStorage):
    """Memory backend that raises StorageError for selected operations."""

    def __init__(self, fail_on=(), fail_after: int = 0):
        super().__init__()
        self.fail_on = set(fail_on)
        self.fail_after = fail_after
        self.calls = 0

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            self.calls += 1
            if self.calls > self.fail_after:
                raise StorageError(f"Storage {operation} failed: disk full")

    async def put(self, token, record):
        self._maybe_fail("put")
        await super().put(token, record)

    async def get(self, token):
        self._maybe_fail("get")
        return await super().get(token)

    async def has(self, token):
        self._maybe_fail("has")
        return await super().has(token)

    async def clear(self):
        self._maybe_fail("clear")
        await super().clear()


class GatedStorage(MemoryStorage):
    """Memory backend whose reads block until the gate opens.

    The record is fetched before waiting, so a late read still returns it.
    """

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.reads = 0

    async def get(self, token):
        self.reads += 1
        data = self._records.get(token)
        await self.gate.wait()
        return None if data is None else decode_record(data)


class GatedPutStorage(MemoryStorage):
    """Memory backend whose writes block until the gate opens.

    The record lands in storage only after the gate is set.
    """

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.writes = 0

    async def put(self, token, record):
        self.writes += 1
        await self.gate.wait()
        await super().put(token, record)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def vault(storage):
    """A fresh, uninitialized vault over memory storage."""
    return TokenVault(storage=storage)


@pytest_asyncio.fixture
async def ready_vault(vault):
    """A vault initialized with the default session credentials."""
    await vault.initialize(SESSION_ID, CHALLENGE)
    return vault


@pytest.fixture
def detokenizer(vault):
    return Detokenizer(vault)
