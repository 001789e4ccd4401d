"""Token Vault — Encrypted PII token storage bound to a client session.

Security Note (Threat Model):
    Token values are decrypted in process memory while the session is
    ready. A memory dump of the application process could expose the
    plaintext cache and the AEAD primitive holding the session key.
    This is an accepted limitation; mitigation requires HSM/secure
    enclave integration which is out of scope.
"""
from typing import Optional

from .config import VaultConfig
from .crypto import KeyHandle, derive_key
from .records import EncryptedRecord, decode_record, encode_record
from .storage import StorageBackend, MemoryStorage, SqliteStorage, create_storage
from .token_vault import TokenVault


def create_vault(config: Optional[VaultConfig] = None) -> TokenVault:
    """Build the process-wide vault for the application's composition root.

    Args:
        config: Vault settings; read from the environment when omitted.

    Returns:
        A TokenVault, not yet initialized.
    """
    config = config or VaultConfig.from_env()
    return TokenVault(storage=create_storage(config), config=config)


__all__ = [
    "TokenVault",
    "create_vault",
    "VaultConfig",
    "KeyHandle",
    "derive_key",
    "EncryptedRecord",
    "encode_record",
    "decode_record",
    "StorageBackend",
    "MemoryStorage",
    "SqliteStorage",
    "create_storage",
]
