"""Token-budgeted, boundary-aware chunking of large text.

Chunking is a pure function of the text and the two limits, so the same
cached report always yields the same chunk boundaries.
"""

import logging
import math
import re

from roast_council.models import Chunk

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_LIMIT_TOKENS = 22_000     # safely under a 25K-token client limit
MAX_LIMIT_TOKENS = 90_000
MIN_LIMIT_TOKENS = 1_000
CHUNK_OVERLAP_TOKENS = 50
_MAX_SEARCH_CHARS = 500

_SENTENCE_END = re.compile(r"[.!?]\s")


def estimate_token_count(text: str) -> int:
    """Rough estimate: one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class ResponseChunker:
    def __init__(
        self,
        chunk_size_tokens: int = DEFAULT_LIMIT_TOKENS,
        overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
    ) -> None:
        self.chunk_size_tokens = min(max(chunk_size_tokens, MIN_LIMIT_TOKENS), MAX_LIMIT_TOKENS)
        # Overlap is capped at 10% of the chunk so every chunk advances.
        self.overlap_tokens = max(0, min(overlap_tokens, self.chunk_size_tokens // 10))

    @property
    def chunk_size_chars(self) -> int:
        return self.chunk_size_tokens * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        return self.overlap_tokens * CHARS_PER_TOKEN

    def chunk_text(self, text: str) -> list[Chunk]:
        """Split text into ordered chunks; chunk n+1 starts overlap_chars before chunk n ends.

        Returns [] for empty text.
        """
        total = len(text)
        if total == 0:
            return []
        if total <= self.chunk_size_chars:
            return [Chunk(content=text, start_offset=0, end_offset=total, original_length=total, is_complete=True)]

        chunks: list[Chunk] = []
        start = 0
        while True:
            ideal_end = min(start + self.chunk_size_chars, total)
            end = ideal_end if ideal_end == total else self._find_breakpoint(text, start, ideal_end)
            chunks.append(Chunk(
                content=text[start:end],
                start_offset=start,
                end_offset=end,
                original_length=total,
                is_complete=end == total,
            ))
            if end == total:
                break
            start = end - self.overlap_chars

        logger.debug(
            "Chunked %d chars (~%d tokens) into %d chunks (target %d tokens/chunk, overlap %d tokens)",
            total, estimate_token_count(text), len(chunks), self.chunk_size_tokens, self.overlap_tokens,
        )
        return chunks

    def _find_breakpoint(self, text: str, start: int, ideal_end: int) -> int:
        """Prefer a paragraph break, then a sentence end, then a word boundary."""
        search = min(_MAX_SEARCH_CHARS, self.chunk_size_chars // 10)
        min_end = max(start + 1, ideal_end - search)

        paragraph = text.rfind("\n\n", min_end - 2, ideal_end)
        if paragraph != -1 and paragraph + 2 >= min_end:
            return paragraph + 2

        for i in range(ideal_end, min_end - 1, -1):
            if _SENTENCE_END.match(text, i - 2, i):
                return i

        for i in range(ideal_end, min_end - 1, -1):
            if text[i - 1].isspace():
                return i

        return ideal_end
