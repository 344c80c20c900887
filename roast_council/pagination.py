"""Pagination over cached text: request parsing, chunk lookup, metadata."""

import json
import logging
import math
from dataclasses import dataclass

from roast_council.chunker import CHARS_PER_TOKEN, CHUNK_OVERLAP_TOKENS, ResponseChunker
from roast_council.models import Chunk, PaginationMetadata, PaginationRequest

logger = logging.getLogger(__name__)

# Character-based limits accepted from callers.
DEFAULT_LIMIT = 90_000
MAX_LIMIT = 100_000
MIN_LIMIT = 1_000

_CURSOR_PREFIX = "offset:"


@dataclass
class Page:
    content: str
    pagination: PaginationMetadata


def _clamp_limit(limit: int) -> int:
    return min(max(limit, MIN_LIMIT), MAX_LIMIT)


def parse_cursor(cursor: str) -> dict[str, int]:
    """Decode 'offset:N' or a JSON object with offset/limit. Invalid cursors decode to {}."""
    if cursor.startswith(_CURSOR_PREFIX):
        try:
            return {"offset": max(0, int(cursor[len(_CURSOR_PREFIX):]))}
        except ValueError:
            logger.warning("Invalid cursor format: %s", cursor)
            return {}
    try:
        parsed = json.loads(cursor)
    except json.JSONDecodeError:
        logger.warning("Invalid cursor format: %s", cursor)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Invalid cursor format: %s", cursor)
        return {}
    result: dict[str, int] = {}
    if isinstance(parsed.get("offset"), int):
        result["offset"] = max(0, parsed["offset"])
    if isinstance(parsed.get("limit"), int):
        result["limit"] = _clamp_limit(parsed["limit"])
    return result


def encode_cursor(offset: int) -> str:
    return f"{_CURSOR_PREFIX}{offset}"


def extract_pagination(
    offset: int | None = None,
    limit: int | None = None,
    cursor: str | None = None,
) -> PaginationRequest:
    """Build a clamped PaginationRequest; a cursor overrides offset/limit."""
    request = PaginationRequest(
        offset=max(0, offset) if offset is not None else 0,
        limit=_clamp_limit(limit) if limit is not None else DEFAULT_LIMIT,
        cursor=cursor,
    )
    if cursor:
        decoded = parse_cursor(cursor)
        request.offset = decoded.get("offset", request.offset)
        request.limit = decoded.get("limit", request.limit)
    return request


def find_chunk_index(chunks: list[Chunk], offset: int) -> int:
    """Index of the first chunk whose [start, end) contains offset.

    Offsets past the end land on the last chunk.
    """
    for index, chunk in enumerate(chunks):
        if chunk.start_offset <= offset < chunk.end_offset:
            return index
    return len(chunks) - 1


def build_metadata(chunks: list[Chunk], index: int, total: int) -> PaginationMetadata:
    chunk = chunks[index]
    has_more = index < len(chunks) - 1
    return PaginationMetadata(
        total=total,
        offset=chunk.start_offset,
        limit=chunk.end_offset - chunk.start_offset,
        has_more=has_more,
        chunk_index=index + 1,
        total_chunks=len(chunks),
        # The current chunk's end falls inside the next chunk only.
        next_cursor=encode_cursor(chunk.end_offset) if has_more else None,
    )


def paginate(text: str, request: PaginationRequest, overlap_tokens: int = CHUNK_OVERLAP_TOKENS) -> Page:
    """Return the chunk of text that contains request.offset."""
    limit_tokens = math.ceil(request.limit / CHARS_PER_TOKEN)
    chunks = ResponseChunker(limit_tokens, overlap_tokens).chunk_text(text)
    if not chunks:
        return Page(
            content="",
            pagination=PaginationMetadata(
                total=0, offset=0, limit=0, has_more=False, chunk_index=1, total_chunks=1,
            ),
        )
    index = find_chunk_index(chunks, request.offset)
    return Page(content=chunks[index].content, pagination=build_metadata(chunks, index, len(text)))


def format_pagination_status(pagination: PaginationMetadata) -> str:
    if pagination.total_chunks <= 1:
        return f"Complete response ({pagination.total:,} characters)"
    end = min(pagination.offset + pagination.limit, pagination.total)
    follow = " • Use the next cursor to continue" if pagination.has_more else " • Complete"
    return (
        f"Part {pagination.chunk_index}/{pagination.total_chunks}: "
        f"chars {pagination.offset:,}-{end:,} of {pagination.total:,}{follow}"
    )
