"""
Vault Crypto Core — Key derivation and record encryption/decryption.

- Key derivation: PBKDF2-HMAC-SHA256(challenge, salt=session_id + challenge)
  → 256-bit key, wrapped in a non-exportable ``KeyHandle``.
- Record layer: AEAD (AES-GCM or ChaCha20-Poly1305) with a random 96-bit
  nonce per record; the token identifier is bound as associated data.

Security Note:
    Never log plaintext, ciphertext, challenges or key material.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import logging
from datetime import datetime, timezone

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import DecryptionError, KeyDerivationError
from .config import MIN_PBKDF2_ITERATIONS
from .records import EncryptedRecord, NONCE_SIZE, TAG_SIZE

logger = logging.getLogger("token_vault.vault")

KEY_LENGTH = 32  # AES-256

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


class KeyHandle:
    """Opaque handle over a derived session key.

    Only the AEAD primitive is kept; the raw key bytes are not retained
    and there is no way to read them back, serialize, or copy the handle.
    """

    __slots__ = ("_cipher", "_backend")

    def __init__(self, key: bytes, backend: str = "aesgcm"):
        try:
            cipher_cls = _CIPHERS[backend]
        except KeyError:
            raise KeyDerivationError(
                f"Unsupported cipher backend: {backend}"
            ) from None
        self._cipher = cipher_cls(key)
        self._backend = backend

    @property
    def backend(self) -> str:
        return self._backend

    def __repr__(self) -> str:
        return f"<KeyHandle backend={self._backend} key=<redacted>>"

    def __reduce__(self):
        raise TypeError("KeyHandle is not serializable")

    def __copy__(self):
        raise TypeError("KeyHandle cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("KeyHandle cannot be copied")


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    session_id: str,
    challenge: str,
    iterations: int = MIN_PBKDF2_ITERATIONS,
    backend: str = "aesgcm",
) -> KeyHandle:
    """Derive the session key using PBKDF2-HMAC-SHA256.

    The challenge is the key material and ``session_id + challenge`` the
    salt, so the same pair always derives the same key.

    Args:
        session_id: Server-provided session identifier.
        challenge: Server-issued challenge string.
        iterations: PBKDF2 iteration count (minimum 100,000).
        backend: AEAD cipher the handle will use.

    Returns:
        Opaque KeyHandle for record encryption.

    Raises:
        KeyDerivationError: If an input is empty or derivation fails.
    """
    if not session_id or not challenge:
        raise KeyDerivationError(
            "Session ID and challenge are required for key derivation"
        )
    if iterations < MIN_PBKDF2_ITERATIONS:
        raise KeyDerivationError(
            f"PBKDF2 iterations must be at least {MIN_PBKDF2_ITERATIONS}"
        )
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=(session_id + challenge).encode("utf-8"),
            iterations=iterations,
        )
        key = kdf.derive(challenge.encode("utf-8"))
        return KeyHandle(key, backend)
    except KeyDerivationError:
        raise
    except Exception as err:
        raise KeyDerivationError(f"Key derivation failed: {err}") from err


# ---------------------------------------------------------------------------
# Record encryption
# ---------------------------------------------------------------------------

def encrypt_record(handle: KeyHandle, token: str, plaintext: bytes) -> EncryptedRecord:
    """Encrypt a token value into an EncryptedRecord.

    A fresh random nonce is drawn for every call.

    Args:
        handle: Session key handle.
        token: Token identifier, bound as associated data.
        plaintext: Value bytes to encrypt.

    Returns:
        EncryptedRecord with ciphertext, nonce and auth tag split apart.
    """
    nonce = os.urandom(NONCE_SIZE)
    sealed = handle._cipher.encrypt(nonce, plaintext, token.encode("utf-8"))
    return EncryptedRecord(
        ciphertext=sealed[:-TAG_SIZE],
        nonce=nonce,
        auth_tag=sealed[-TAG_SIZE:],
        stored_at=datetime.now(timezone.utc).isoformat(),
    )


def decrypt_record(handle: KeyHandle, token: str, record: EncryptedRecord) -> bytes:
    """Decrypt an EncryptedRecord stored under ``token``.

    Args:
        handle: Session key handle.
        token: Token identifier the record was stored under.
        record: Encrypted record from storage.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        DecryptionError: Auth tag verification failed or data is corrupted.
    """
    try:
        return handle._cipher.decrypt(
            record.nonce,
            record.ciphertext + record.auth_tag,
            token.encode("utf-8"),
        )
    except InvalidTag:
        raise DecryptionError(
            "Decryption failed - auth tag verification failed or corrupted data"
        ) from None
    except (TypeError, ValueError) as err:
        raise DecryptionError(f"Decryption failed: {err}") from err
