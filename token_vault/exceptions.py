"""
Token Vault exceptions.

Read-path failures (decryption, missing records) are logged and surface
as ``None``; these exceptions reach callers only from the lifecycle and
write paths.

Security Note:
    Exception messages may carry token identifiers, never values.
"""


class TokenVaultError(Exception):
    """Base exception for the token vault."""

    def __init__(self, message: str = None, *args):
        self.message = message or self.__doc__
        super().__init__(self.message, *args)

    def __str__(self) -> str:
        return self.message


class KeyDerivationError(TokenVaultError):
    """Session key could not be derived."""


class VaultInitError(TokenVaultError):
    """Vault initialization failed."""


class VaultNotReady(TokenVaultError):
    """Vault not ready - initialize first."""


class InvalidTokenFormat(TokenVaultError, ValueError):
    """Token identifier does not match TOKEN_[A-Za-z0-9]+."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Invalid token format: {token!r}")


class InvalidTokenMap(TokenVaultError, ValueError):
    """Token map is not a JSON object of token -> string."""


class DecryptionError(TokenVaultError):
    """Authentication failed or encrypted record is corrupted."""


class StorageError(TokenVaultError):
    """Storage backend operation failed."""
