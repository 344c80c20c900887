"""In-memory response cache with session ownership, LRU/size eviction and TTL.

Entries are keyed by a SHA-256 over the canonical request parameters, so a
repeated request is served without re-running any agent. Callers page
through or resume an entry via opaque context ids; several context ids
(aliases) may point at the same key.

All bookkeeping (entry map, LRU order, size totals, alias index) is mutated
only while holding ``_lock``; compression runs outside it.
"""

import asyncio
import dataclasses
import gzip
import hashlib
import json
import logging
import time
import uuid
import zlib
from collections import OrderedDict
from collections.abc import Callable

from config.config_loader import CacheConfig
from roast_council.errors import PayloadTooLargeError, UnknownHandleError
from roast_council.models import CacheEntry, CacheStats, ConversationMessage

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION = "anonymous"

# Request fields that select a page or a handle, not a distinct analysis.
PAGINATION_FIELDS = frozenset({"offset", "limit", "cursor", "force_refresh", "context_id"})

_MB = 1024 * 1024


def _owner(session_id: str | None) -> str:
    return session_id or ANONYMOUS_SESSION


class ResponseCache:
    def __init__(
        self,
        max_entries: int = 50,
        ttl_hours: float = 2.0,
        max_total_size_mb: float = 500.0,
        max_entry_size_mb: float = 10.0,
        compression_threshold_mb: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_sec = ttl_hours * 3600
        self.max_total_size = int(max_total_size_mb * _MB)
        self.max_entry_size = int(max_entry_size_mb * _MB)
        self.compression_threshold = int(compression_threshold_mb * _MB)
        self._clock = clock

        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()   # oldest access first
        self._context_index: dict[str, str] = {}                      # context id -> key
        self._stats = CacheStats()
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None

        logger.info(
            "ResponseCache initialized: max_entries=%d ttl_hours=%g max_total_mb=%g "
            "max_entry_mb=%g compression_mb=%g",
            max_entries, ttl_hours, max_total_size_mb, max_entry_size_mb, compression_threshold_mb,
        )

    @classmethod
    def from_config(cls, config: CacheConfig) -> "ResponseCache":
        return cls(
            max_entries=config.max_entries,
            ttl_hours=config.ttl_hours,
            max_total_size_mb=config.max_total_size_mb,
            max_entry_size_mb=config.max_entry_size_mb,
            compression_threshold_mb=config.compression_threshold_mb,
        )

    # -- keys and handles ---------------------------------------------------

    @staticmethod
    def generate_cache_key(params: dict) -> str:
        """Stable hash of the request, ignoring field order, None values and pagination fields."""
        canonical = {k: v for k, v in params.items() if v is not None and k not in PAGINATION_FIELDS}
        payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @staticmethod
    def generate_context_id() -> str:
        return uuid.uuid4().hex

    def find_context_id_for_key(self, key: str) -> str | None:
        return next((cid for cid, k in self._context_index.items() if k == key), None)

    def create_alias(self, existing_context_id: str, key: str) -> str:
        """Mint a new context id for an existing entry."""
        if key not in self._entries:
            raise UnknownHandleError(existing_context_id)
        alias = self.generate_context_id()
        self._context_index[alias] = key
        logger.debug("Alias %s -> %s (from %s)", alias[:8], key[:8], existing_context_id[:8])
        return alias

    # -- writes ---------------------------------------------------------------

    async def set(
        self,
        params: dict,
        content: str,
        existing_key: str | None = None,
        session_id: str | None = None,
        conversation: list[ConversationMessage] | None = None,
    ) -> tuple[str, str]:
        """Store content; returns (cache key, new context id).

        Raises:
            PayloadTooLargeError: content exceeds the per-entry (or total) limit.
        """
        key = existing_key or self.generate_cache_key(params)
        stored, compressed, stored_size = await self._encode(content)
        context_id = self.generate_context_id()
        now = self._clock()

        async with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._stats.total_size -= previous.size
            self._ensure_capacity(stored_size)
            self._entries[key] = CacheEntry(
                key=key,
                context_id=context_id,
                content=stored,
                compressed=compressed,
                size=stored_size,
                session_id=_owner(session_id),
                created_at=now,
                last_accessed_at=now,
                request_params=dict(params),
                conversation_history=list(conversation) if conversation else None,
            )
            self._context_index[context_id] = key
            self._stats.total_size += stored_size
            self._stats.entries = len(self._entries)

        logger.info(
            "Cached response %s (%.2fMB%s) for session %s",
            context_id[:8], stored_size / _MB, " compressed" if compressed else "", _owner(session_id)[:8],
        )
        return key, context_id

    async def update_by_context_id(
        self,
        context_id: str,
        content: str,
        conversation: list[ConversationMessage],
        session_id: str | None = None,
    ) -> None:
        """Replace content and history of an entry in place, keeping its context id.

        Raises:
            UnknownHandleError: the handle does not resolve for this session.
            PayloadTooLargeError: the new content exceeds the per-entry limit.
        """
        stored, compressed, stored_size = await self._encode(content)
        now = self._clock()

        async with self._lock:
            key = self._context_index.get(context_id)
            entry = self._lookup(key, session_id) if key else None
            if entry is None:
                raise UnknownHandleError(context_id)
            del self._entries[key]
            self._stats.total_size -= entry.size
            self._ensure_capacity(stored_size)
            entry.content = stored
            entry.compressed = compressed
            entry.size = stored_size
            entry.created_at = now
            entry.last_accessed_at = now
            entry.conversation_history = list(conversation)
            self._entries[key] = entry
            self._stats.total_size += stored_size
            self._stats.entries = len(self._entries)

        logger.info("Updated conversation %s (%d messages)", context_id[:8], len(conversation))

    # -- reads ----------------------------------------------------------------

    async def get(self, key: str, session_id: str | None = None) -> str | None:
        """Logical (decompressed) content, or None if absent, expired or not visible."""
        async with self._lock:
            entry = self._lookup(key, session_id)
        if entry is None:
            return None
        return await self._decode(entry)

    async def get_by_context_id(self, context_id: str, session_id: str | None = None) -> CacheEntry | None:
        """A snapshot of the entry with content decompressed, or None."""
        async with self._lock:
            key = self._context_index.get(context_id)
            if key is None:
                self._stats.misses += 1
                logger.debug("Cache miss for context id %s", context_id[:8])
                return None
            entry = self._lookup(key, session_id)
        if entry is None:
            return None
        content = await self._decode(entry)
        if content is None:
            return None
        history = list(entry.conversation_history) if entry.conversation_history else None
        return dataclasses.replace(
            entry, context_id=context_id, content=content, compressed=False, conversation_history=history,
        )

    # -- maintenance ------------------------------------------------------------

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            self._remove(key)
        if expired:
            logger.info("Cleaned %d expired cache entries", len(expired))
        return len(expired)

    def start_cleanup(self, interval_sec: float = 300.0) -> None:
        """Sweep expired entries periodically. Expiry on read does not depend on it."""
        if self._cleanup_task is not None:
            return

        async def sweep() -> None:
            while True:
                await asyncio.sleep(interval_sec)
                self.cleanup_expired()

        self._cleanup_task = asyncio.get_running_loop().create_task(sweep())

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self.clear()

    def clear(self) -> None:
        self._entries.clear()
        self._context_index.clear()
        self._stats.entries = 0
        self._stats.total_size = 0
        logger.info("Cache cleared")

    @property
    def stats(self) -> CacheStats:
        return dataclasses.replace(self._stats)

    @property
    def total_size(self) -> int:
        return self._stats.total_size

    def __len__(self) -> int:
        return len(self._entries)

    # -- internals ---------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl_sec

    @staticmethod
    def _readable(entry: CacheEntry, session_id: str | None) -> bool:
        return entry.session_id in (ANONYMOUS_SESSION, _owner(session_id))

    def _lookup(self, key: str, session_id: str | None) -> CacheEntry | None:
        """Find a live, visible entry and mark it most recently used. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            logger.debug("Cache miss: %s", key[:8])
            return None
        now = self._clock()
        if self._is_expired(entry, now):
            logger.info("Cache expired: %s (age %.0f minutes)", key[:8], (now - entry.created_at) / 60)
            self._remove(key)
            self._stats.misses += 1
            return None
        if not self._readable(entry, session_id):
            # Reported as a plain miss so foreign entries stay invisible.
            self._stats.misses += 1
            logger.debug("Cache entry %s not visible to session %s", key[:8], _owner(session_id)[:8])
            return None
        entry.last_accessed_at = now
        self._entries.move_to_end(key)
        self._stats.hits += 1
        logger.info("Cache hit: %s (age %.0f minutes)", key[:8], (now - entry.created_at) / 60)
        return entry

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        self._stats.total_size -= entry.size
        for cid in [cid for cid, k in self._context_index.items() if k == key]:
            del self._context_index[cid]
        self._stats.entries = len(self._entries)

    def _ensure_capacity(self, new_size: int) -> None:
        while self._entries and self._stats.total_size + new_size > self.max_total_size:
            oldest = next(iter(self._entries))
            logger.info("Evicting for size limit: %s", oldest[:8])
            self._remove(oldest)
            self._stats.evictions += 1
        while self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            logger.info("Evicting for entry limit: %s", oldest[:8])
            self._remove(oldest)
            self._stats.evictions += 1

    async def _encode(self, content: str) -> tuple[str | bytes, bool, int]:
        raw = content.encode("utf-8")
        if len(raw) > self.max_entry_size:
            logger.warning("Response too large for cache: %.2fMB", len(raw) / _MB)
            raise PayloadTooLargeError(len(raw), self.max_entry_size)
        if len(raw) <= self.compression_threshold:
            stored, compressed = content, False
            stored_size = len(raw)
        else:
            stored, compressed = await asyncio.to_thread(gzip.compress, raw), True
            stored_size = len(stored)
            logger.info("Compressed response: %.2fMB -> %.2fMB", len(raw) / _MB, stored_size / _MB)
        # Nothing larger than the whole budget may be stored, even in an empty cache.
        if stored_size > self.max_total_size:
            logger.warning("Response exceeds total cache budget: %.2fMB", stored_size / _MB)
            raise PayloadTooLargeError(stored_size, self.max_total_size)
        return stored, compressed, stored_size

    async def _decode(self, entry: CacheEntry) -> str | None:
        if not entry.compressed:
            return entry.content
        try:
            raw = await asyncio.to_thread(gzip.decompress, entry.content)
        except (OSError, EOFError, zlib.error) as exc:
            logger.error("Decompression failed for %s, dropping entry: %s", entry.key[:8], exc)
            async with self._lock:
                if self._entries.get(entry.key) is entry:
                    self._remove(entry.key)
            return None
        return raw.decode("utf-8")
