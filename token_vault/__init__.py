"""Token Vault.

Keeps PII token → value mappings encrypted at rest for a client session
and rewrites tokenized text back to the original values on demand.
"""
from .version import __version__
from .exceptions import (
    TokenVaultError,
    KeyDerivationError,
    VaultInitError,
    VaultNotReady,
    InvalidTokenFormat,
    InvalidTokenMap,
    DecryptionError,
    StorageError,
)
from .types import VaultStats, DetokenizationResult, StreamResult
from .tokens import TOKEN_PREFIX, is_valid_token
from .credentials import SessionCredentials
from .vault import (
    TokenVault,
    create_vault,
    VaultConfig,
    StorageBackend,
    MemoryStorage,
    SqliteStorage,
)
from .detokenizer import Detokenizer

__all__ = [
    "__version__",
    "TokenVault",
    "create_vault",
    "VaultConfig",
    "StorageBackend",
    "MemoryStorage",
    "SqliteStorage",
    "Detokenizer",
    "SessionCredentials",
    "VaultStats",
    "DetokenizationResult",
    "StreamResult",
    "TOKEN_PREFIX",
    "is_valid_token",
    "TokenVaultError",
    "KeyDerivationError",
    "VaultInitError",
    "VaultNotReady",
    "InvalidTokenFormat",
    "InvalidTokenMap",
    "DecryptionError",
    "StorageError",
]
