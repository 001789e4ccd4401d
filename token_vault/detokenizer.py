"""
Detokenizer — rewrite tokenized text back to its original values.

Finds ``TOKEN_*`` markers in arbitrary text, resolves them through a
TokenVault and substitutes the values. It only ever reads from the vault.

- ``process(text)`` / ``process_array(texts)`` / ``process_detailed(text)``
- ``process_stream(chunk, buffer)`` / ``flush_stream(buffer)`` for content
  arriving incrementally, and ``detokenize_stream(chunks)`` on top of them.

Unresolved tokens are left verbatim, and processing never raises: on any
internal error the original text is returned.

Security Note:
    Never log text or resolved values; results report token identifiers only.
"""
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Mapping
from typing import Optional

from .tokens import TOKEN_PATTERN, TOKEN_PREFIX, is_valid_token
from .types import DetokenizationResult, StreamResult
from .vault import TokenVault

logger = logging.getLogger("token_vault.detokenizer")


def _substitute(text: str, values: Mapping[str, Optional[str]]) -> str:
    """Replace every token occurrence in a single pass.

    The replacement is returned from a callable, so values are inserted
    literally and never rescanned for tokens.
    """
    def replace(match) -> str:
        value = values.get(match.group(0))
        return match.group(0) if value is None else value
    return TOKEN_PATTERN.sub(replace, text)


def _stream_boundary(text: str) -> int:
    """Index up to which ``text`` can be processed without splitting a token."""
    cut = len(text)
    idx = text.rfind(TOKEN_PREFIX)
    if idx != -1:
        end = idx + len(TOKEN_PREFIX)
        while end < len(text) and text[end].isascii() and text[end].isalnum():
            end += 1
        if end >= len(text):
            # the chunk boundary may fall inside this token
            cut = idx
    if cut == len(text):
        # hold back a trailing partial prefix ("T", "TO", ... "TOKEN")
        for size in range(min(len(TOKEN_PREFIX) - 1, len(text)), 0, -1):
            if text.endswith(TOKEN_PREFIX[:size]):
                cut = len(text) - size
                break
    # an earlier match may run into the held-back tail ("TOKEN_abcTOKEN_x")
    for match in TOKEN_PATTERN.finditer(text):
        if match.start() >= cut:
            break
        if match.end() > cut:
            cut = match.start()
            break
    return cut


class Detokenizer:
    """Token-aware text rewriter bound to a TokenVault."""

    def __init__(self, vault: TokenVault):
        self._vault = vault

    @property
    def vault(self) -> TokenVault:
        return self._vault

    def has_tokens(self, text: str) -> bool:
        """Detect whether text contains any token."""
        return bool(text) and TOKEN_PATTERN.search(text) is not None

    def extract_tokens(self, text: str) -> list[str]:
        """Distinct tokens in order of first occurrence."""
        if not text:
            return []
        return list(dict.fromkeys(TOKEN_PATTERN.findall(text)))

    def is_valid_token(self, token: str) -> bool:
        return is_valid_token(token)

    async def process(self, text: str) -> str:
        """Replace all tokens in text with their values.

        Args:
            text: Text containing tokens.

        Returns:
            Rewritten text. Tokens without a value, and the whole text when
            the vault is not ready or an error occurs, are returned as-is.
        """
        if not text:
            return ''
        if not self._vault.is_ready:
            logger.warning("Vault not ready - returning text with tokens visible")
            return text
        try:
            tokens = self.extract_tokens(text)
            if not tokens:
                return text
            values = await self._vault.retrieve_batch(tokens)
            return _substitute(text, values)
        except Exception as err:
            logger.error(
                "Detokenization failed, returning original text: %s",
                type(err).__name__,
            )
            return text

    async def process_array(self, texts: Iterable[str]) -> list[str]:
        """Process several texts sequentially, preserving order."""
        results: list[str] = []
        for text in texts:
            results.append(await self.process(text))
        return results

    async def process_detailed(self, text: str) -> DetokenizationResult:
        """Like ``process`` but report found, resolved and missing tokens."""
        if not text:
            return DetokenizationResult(text='')
        tokens = self.extract_tokens(text)
        if not tokens:
            return DetokenizationResult(text=text)
        if not self._vault.is_ready:
            return DetokenizationResult(
                text=text,
                tokens_found=tokens,
                tokens_missing=list(tokens),
            )
        try:
            values = await self._vault.retrieve_batch(tokens)
            resolved = [t for t in tokens if values.get(t) is not None]
            missing = [t for t in tokens if values.get(t) is None]
            return DetokenizationResult(
                text=_substitute(text, values),
                tokens_found=tokens,
                tokens_resolved=resolved,
                tokens_missing=missing,
            )
        except Exception as err:
            logger.error(
                "Detailed detokenization failed: %s", type(err).__name__
            )
            return DetokenizationResult(
                text=text,
                tokens_found=tokens,
                tokens_missing=list(tokens),
            )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def process_stream(self, chunk: str, buffer: str = '') -> StreamResult:
        """Process a streamed chunk without ever splitting a token.

        Text from the last ``TOKEN_`` marker onward is held back while its
        alphanumeric run reaches the end of the received text; once any
        other character follows it, the token is complete.

        Args:
            chunk: Newly received text.
            buffer: Tail held back by the previous call.

        Returns:
            StreamResult with the processed text and the new buffer.
        """
        combined = buffer + chunk
        cut = _stream_boundary(combined)
        processed = await self.process(combined[:cut])
        return StreamResult(processed=processed, buffer=combined[cut:])

    async def flush_stream(self, buffer: str) -> str:
        """Process whatever is left in the buffer at end of stream."""
        return await self.process(buffer)

    async def detokenize_stream(
        self, chunks: AsyncIterable[str]
    ) -> AsyncIterator[str]:
        """Detokenize an async stream of chunks.

        Usage:
            async for text in detokenizer.detokenize_stream(response_chunks):
                render(text)
        """
        buffer = ''
        async for chunk in chunks:
            result = await self.process_stream(chunk, buffer)
            buffer = result.buffer
            if result.processed:
                yield result.processed
        tail = await self.flush_stream(buffer)
        if tail:
            yield tail
