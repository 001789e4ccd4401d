"""
Session credentials — format checks for the session provider.

The vault only requires both values to be present; the session provider
validates their shape with ``SessionCredentials`` before handing them over.
"""
import re

from pydantic import BaseModel, Field, field_validator

_UNSAFE_CHARS = re.compile(r"[<>\"'&]")
_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_CHALLENGE_PATTERN = re.compile(r"^[A-Za-z0-9+/=_-]+$")


def _sanitize(value: str) -> str:
    return _UNSAFE_CHARS.sub("", value.strip())


class SessionCredentials(BaseModel):
    """Validated (session_id, challenge) pair from the server.

    Values are trimmed and stripped of ``<>"'&`` before validation.
    """

    session_id: str
    challenge: str = Field(repr=False)

    model_config = {"frozen": True}

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        v = _sanitize(v)
        if not v:
            raise ValueError("Session ID is required")
        if len(v) < 8:
            raise ValueError("Session ID too short")
        if len(v) > 256:
            raise ValueError("Session ID too long")
        # UUIDs (hyphenated hex) are covered by the same alphabet
        if not _SESSION_ID_PATTERN.match(v):
            raise ValueError("Invalid session ID format")
        return v

    @field_validator("challenge")
    @classmethod
    def validate_challenge(cls, v: str) -> str:
        v = _sanitize(v)
        if not v:
            raise ValueError("Challenge is required")
        if len(v) < 16:
            raise ValueError("Challenge too short")
        if len(v) > 1024:
            raise ValueError("Challenge too long")
        if not _CHALLENGE_PATTERN.match(v):
            raise ValueError("Invalid challenge format")
        return v
