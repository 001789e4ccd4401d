"""Reporting types. None of them ever carries a token value."""
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class VaultStats:
    """Aggregate vault counters."""
    token_count: int
    cache_size: int
    is_ready: bool
    encrypted_size: str = "0 Bytes"   # human readable estimate


@dataclass(slots=True)
class DetokenizationResult:
    """Outcome of a detailed detokenization pass."""
    text: str
    tokens_found: list[str] = field(default_factory=list)
    tokens_resolved: list[str] = field(default_factory=list)
    tokens_missing: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StreamResult:
    """Emitted text plus the tail held back for the next chunk."""
    processed: str
    buffer: str = ""
