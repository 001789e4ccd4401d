"""
Vault Configuration — validated settings for key derivation and storage.

Reads settings from environment variables:
    VAULT_PBKDF2_ITERATIONS = <integer, minimum 100000>
    VAULT_CIPHER_BACKEND = aesgcm | chacha20
    VAULT_STORAGE_BACKEND = memory | sqlite
    VAULT_STORAGE_PATH = <path to the sqlite file>
    VAULT_NAMESPACE = <storage namespace>

Security Note:
    Session ids and challenges are never part of the configuration.
"""
import os
import re
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("token_vault.vault")

MIN_PBKDF2_ITERATIONS = 100_000

_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def format_bytes(size: int) -> str:
    """Format a byte count as a human readable string (``"1.5 KB"``)."""
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    idx = 0
    value = float(size)
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    pbkdf2_iterations: int = Field(
        default=MIN_PBKDF2_ITERATIONS, ge=MIN_PBKDF2_ITERATIONS
    )
    cipher_backend: str = Field(default="aesgcm")
    storage_backend: str = Field(default="memory")
    storage_path: str = Field(default="token_vault.db")
    namespace: str = Field(default="tokens")

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage(cls, v: str) -> str:
        """Validate storage backend is supported."""
        v = v.lower()
        if v not in ("memory", "sqlite"):
            raise ValueError(f"Unsupported storage backend: {v}")
        return v

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        if not _NAMESPACE_PATTERN.match(v):
            raise ValueError(f"Invalid storage namespace: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_storage_path(self) -> "VaultConfig":
        """A sqlite backend needs somewhere to live."""
        if self.storage_backend == "sqlite" and not self.storage_path.strip():
            raise ValueError("storage_path is required for the sqlite backend")
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables fall back to the model defaults.

        Returns:
            Populated VaultConfig instance.
        """
        env = {
            "pbkdf2_iterations": os.environ.get("VAULT_PBKDF2_ITERATIONS"),
            "cipher_backend": os.environ.get("VAULT_CIPHER_BACKEND"),
            "storage_backend": os.environ.get("VAULT_STORAGE_BACKEND"),
            "storage_path": os.environ.get("VAULT_STORAGE_PATH"),
            "namespace": os.environ.get("VAULT_NAMESPACE"),
        }
        values = {k: v for k, v in env.items() if v is not None}
        logger.debug(
            "Vault config from environment: %s", sorted(values.keys())
        )
        return cls(**values)
