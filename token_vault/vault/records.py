"""
Encrypted Record Codec — the (ciphertext, nonce, auth_tag) triple at rest.

Records are serialized as a single orjson document so the three parts are
always written and read as one unit:

    {"ciphertext": "<b64>", "nonce": "<b64>", "auth_tag": "<b64>",
     "stored_at": "<iso-8601>"}
"""
import base64
import binascii
from dataclasses import dataclass
from typing import Optional

import orjson

from ..exceptions import DecryptionError

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit authentication tag


@dataclass(frozen=True, slots=True)
class EncryptedRecord:
    """Encrypted value for one token."""
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes
    stored_at: Optional[str] = None

    def __post_init__(self):
        if len(self.nonce) != NONCE_SIZE:
            raise ValueError(
                f"nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}"
            )
        if len(self.auth_tag) != TAG_SIZE:
            raise ValueError(
                f"auth_tag must be {TAG_SIZE} bytes, got {len(self.auth_tag)}"
            )

    def __repr__(self) -> str:
        return (
            f"<EncryptedRecord ciphertext={len(self.ciphertext)}B "
            f"stored_at={self.stored_at}>"
        )

    @property
    def size(self) -> int:
        """Bytes this record occupies before encoding."""
        return len(self.ciphertext) + NONCE_SIZE + TAG_SIZE


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_record(record: EncryptedRecord) -> bytes:
    """Serialize an EncryptedRecord for the storage backend.

    Args:
        record: Record to serialize.

    Returns:
        orjson-encoded bytes.
    """
    return orjson.dumps({
        "ciphertext": _b64(record.ciphertext),
        "nonce": _b64(record.nonce),
        "auth_tag": _b64(record.auth_tag),
        "stored_at": record.stored_at,
    })


def decode_record(data: bytes) -> EncryptedRecord:
    """Deserialize bytes produced by ``encode_record``.

    Args:
        data: orjson-encoded record.

    Returns:
        The EncryptedRecord.

    Raises:
        DecryptionError: If the stored document is corrupted.
    """
    try:
        parsed = orjson.loads(data)
        return EncryptedRecord(
            ciphertext=base64.b64decode(parsed["ciphertext"], validate=True),
            nonce=base64.b64decode(parsed["nonce"], validate=True),
            auth_tag=base64.b64decode(parsed["auth_tag"], validate=True),
            stored_at=parsed.get("stored_at"),
        )
    except (orjson.JSONDecodeError, binascii.Error, KeyError, TypeError,
            AttributeError, ValueError) as err:
        raise DecryptionError(f"Corrupted encrypted record: {err}") from err
