"""Token grammar and token map parsing.

Tokens are ``TOKEN_`` followed by one or more ASCII alphanumerics,
matched greedily and case-sensitively.
"""
import re
from collections.abc import Mapping
from typing import Union

import orjson

from .exceptions import InvalidTokenMap

TOKEN_PREFIX = "TOKEN_"

TOKEN_PATTERN = re.compile(r"TOKEN_[A-Za-z0-9]+")


def is_valid_token(token: str) -> bool:
    """Exact single-token format check."""
    return isinstance(token, str) and TOKEN_PATTERN.fullmatch(token) is not None


def parse_token_map(data: Union[bytes, str, Mapping]) -> dict[str, str]:
    """Normalize a token map from the issuer into ``{token: value}``.

    Accepts the raw JSON document (bytes or str) or an already parsed
    mapping. Token formats are checked later by ``TokenVault.store``.

    Raises:
        InvalidTokenMap: If the document is not an object of string values.
    """
    if isinstance(data, (bytes, bytearray, memoryview, str)):
        try:
            data = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise InvalidTokenMap(f"Token map is not valid JSON: {err}") from err
    if not isinstance(data, Mapping):
        raise InvalidTokenMap(
            f"Token map must be an object, got {type(data).__name__}"
        )
    for token, value in data.items():
        if not isinstance(token, str) or not isinstance(value, str):
            raise InvalidTokenMap(
                f"Token map entries must be strings (token {token!r})"
            )
    return dict(data)
