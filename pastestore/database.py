"""
Record store for pastes: Redis-backed, with an in-memory store for development/testing.
Handles paste creation, view-consuming fetches, non-consuming lookups, expiry cleanup
and health checks.

The store never reads the wall clock. Every operation takes the instant it should
evaluate expiry against, resolved by the caller through the time authority.
"""
import bisect
import functools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from redis import Redis
from redis.exceptions import RedisError

from pastestore import ids
from pastestore.config import Settings
from pastestore.exceptions import StorageFailure
from pastestore.records import (
    UNAVAILABLE,
    Available,
    LookupResult,
    PasteRecord,
    validate_new_paste,
)

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5


def _available(record: PasteRecord) -> Available:
    return Available(
        content=record.content,
        remaining_views=record.remaining_views,
        expires_at=record.expires_at,
    )


class PasteStore(ABC):
    """Base class holding the backend-independent half of the store protocol."""

    using_fallback = False

    def __init__(
        self,
        id_length: int = ids.DEFAULT_ID_LENGTH,
        id_factory: Callable[[int], str] = ids.generate,
    ):
        self.id_length = id_length
        self._id_factory = id_factory

    def create(
        self,
        content: str,
        ttl_seconds: Optional[int] = None,
        max_views: Optional[int] = None,
        *,
        now: int,
        created_at: Optional[int] = None,
    ) -> str:
        """
        Create a paste.

        Args:
            content: Text content, must be non-empty after trimming
            ttl_seconds: Optional time-to-live in seconds (>= 1)
            max_views: Optional view limit (>= 1)
            now: Reference instant (ms) the expiry is computed from
            created_at: True creation instant (ms); defaults to ``now``

        Returns:
            The new paste id

        Raises:
            ValidationError: If any input is malformed (nothing is stored)
            StorageFailure: If the record could not be persisted
        """
        validate_new_paste(content, ttl_seconds, max_views, now=now)

        expires_at = now + ttl_seconds * 1000 if ttl_seconds is not None else None
        created_at = now if created_at is None else created_at

        for _ in range(MAX_ID_ATTEMPTS):
            record = PasteRecord(
                id=self._id_factory(self.id_length),
                content=content,
                created_at=created_at,
                expires_at=expires_at,
                remaining_views=max_views,
            )
            if self._insert(record):
                logger.info(f"Paste {record.id} saved successfully")
                return record.id
            logger.warning(f"Paste id {record.id} already in use, regenerating")

        raise StorageFailure(f"Could not allocate a unique paste id after {MAX_ID_ATTEMPTS} attempts")

    def peek(self, paste_id: str, now: int) -> LookupResult:
        """
        Look a paste up without charging a view.

        Returns:
            Available, or UNAVAILABLE if the paste is unknown, expired or exhausted
        """
        record = self._load(paste_id)
        if record is None or not record.is_visible(now):
            logger.debug(f"Paste {paste_id} unavailable")
            return UNAVAILABLE
        return _available(record)

    @abstractmethod
    def consume(self, paste_id: str, now: int) -> LookupResult:
        """
        Fetch a paste and charge one view, atomically per paste id.

        Returns:
            Available with the post-decrement ``remaining_views``, or UNAVAILABLE
        """

    @abstractmethod
    def purge_expired(self, now: int) -> int:
        """Physically delete pastes whose ``expires_at <= now``. Returns the number removed."""

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    def close(self) -> None:
        pass

    @abstractmethod
    def _insert(self, record: PasteRecord) -> bool:
        """Persist ``record`` unless its id is taken. Returns False on id collision."""

    @abstractmethod
    def _load(self, paste_id: str) -> Optional[PasteRecord]:
        pass


class InMemoryPasteStore(PasteStore):
    """In-memory store for development/testing (when Redis is unavailable).

    Records are immutable PasteRecord values swapped under a per-id lock, so
    consume on one paste never races with another consume on the same paste.

    A paste is dropped as soon as its last view is consumed; expired pastes are
    dropped by purge_expired. Pastes with neither limit live until restart.
    Ids of dropped pastes stay in ``_retired`` so they are never handed out again.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._records: Dict[str, PasteRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._expiry_index: List[Tuple[int, str]] = []
        self._retired: Set[str] = set()
        self._guard = threading.Lock()

    def _insert(self, record: PasteRecord) -> bool:
        with self._guard:
            if record.id in self._records or record.id in self._retired:
                return False
            self._locks[record.id] = threading.Lock()
            self._records[record.id] = record
            if record.expires_at is not None:
                bisect.insort(self._expiry_index, (record.expires_at, record.id))
        return True

    def _load(self, paste_id: str) -> Optional[PasteRecord]:
        return self._records.get(paste_id)

    def consume(self, paste_id: str, now: int) -> LookupResult:
        with self._guard:
            lock = self._locks.get(paste_id)
        if lock is None:
            logger.debug(f"Paste {paste_id} unavailable")
            return UNAVAILABLE

        with lock:
            # Re-read under the lock: a purge may have removed it meanwhile.
            record = self._records.get(paste_id)
            if record is None or not record.is_visible(now):
                logger.debug(f"Paste {paste_id} unavailable")
                return UNAVAILABLE
            if record.remaining_views is not None:
                record = replace(record, remaining_views=record.remaining_views - 1)
                if record.remaining_views == 0:
                    self._drop(paste_id)
                else:
                    self._records[paste_id] = record

        return _available(record)

    def purge_expired(self, now: int) -> int:
        with self._guard:
            cut = bisect.bisect_right(self._expiry_index, (now, chr(0x10FFFF)))
            expired = self._expiry_index[:cut]
            del self._expiry_index[:cut]
            locks = [(paste_id, self._locks.pop(paste_id)) for _, paste_id in expired if paste_id in self._locks]

        for paste_id, lock in locks:
            with lock:
                self._records.pop(paste_id, None)
                self._retired.add(paste_id)

        if locks:
            logger.info(f"Purged {len(locks)} expired pastes")
        return len(locks)

    def is_healthy(self) -> bool:
        return True

    def _drop(self, paste_id: str) -> None:
        """Remove an exhausted paste. Caller holds the paste's lock."""
        with self._guard:
            self._records.pop(paste_id, None)
            self._locks.pop(paste_id, None)
            self._retired.add(paste_id)


def handle_redis_errors(method):
    """Wrap Redis-interacting store methods so backend errors surface as StorageFailure."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis error in {method.__name__}: {type(e).__name__}: {e}")
            raise StorageFailure(f"Redis operation {method.__name__} failed") from e

    return wrapper


# KEYS: paste hash, expiry index.
# ARGV: id, content, created_at, expires_at ("" if none), remaining_views ("" if none).
# Returns 1 when stored, 0 when the id is already taken.
CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('HSET', KEYS[1], 'content', ARGV[2], 'created_at', ARGV[3])
if ARGV[4] ~= '' then
  redis.call('HSET', KEYS[1], 'expires_at', ARGV[4])
  redis.call('ZADD', KEYS[2], ARGV[4], ARGV[1])
end
if ARGV[5] ~= '' then
  redis.call('HSET', KEYS[1], 'remaining_views', ARGV[5])
end
return 1
"""

# KEYS: paste hash. ARGV: now.
# Returns nil when unavailable, else {content, expires_at, remaining_views}
# with remaining_views already decremented.
CONSUME_SCRIPT = """
local fields = redis.call('HMGET', KEYS[1], 'content', 'expires_at', 'remaining_views')
if not fields[1] then
  return nil
end
if fields[2] and tonumber(ARGV[1]) >= tonumber(fields[2]) then
  return nil
end
if fields[3] then
  if tonumber(fields[3]) <= 0 then
    return nil
  end
  fields[3] = tostring(redis.call('HINCRBY', KEYS[1], 'remaining_views', -1))
end
return fields
"""


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


class RedisPasteStore(PasteStore):
    """Redis-backed paste store.

    Each paste is a hash at ``<prefix>:paste:<id>``; ids with a TTL are also
    indexed by ``expires_at`` in the sorted set ``<prefix>:expiry``. Create and
    consume run as Lua scripts, which Redis executes atomically.
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        url: str = "redis://localhost:6379",
        prefix: str = "pastestore",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.redis = redis_client if redis_client is not None else Redis.from_url(url, decode_responses=True)
        self.prefix = prefix
        self._create_script = self.redis.register_script(CREATE_SCRIPT)
        self._consume_script = self.redis.register_script(CONSUME_SCRIPT)

    def paste_key(self, paste_id: str) -> str:
        return f"{self.prefix}:paste:{paste_id}"

    def expiry_key(self) -> str:
        return f"{self.prefix}:expiry"

    @handle_redis_errors
    def _insert(self, record: PasteRecord) -> bool:
        stored = self._create_script(
            keys=[self.paste_key(record.id), self.expiry_key()],
            args=[
                record.id,
                record.content,
                record.created_at,
                "" if record.expires_at is None else record.expires_at,
                "" if record.remaining_views is None else record.remaining_views,
            ],
        )
        return int(stored) == 1

    @handle_redis_errors
    def _load(self, paste_id: str) -> Optional[PasteRecord]:
        content, created_at, expires_at, remaining_views = self.redis.hmget(
            self.paste_key(paste_id), ["content", "created_at", "expires_at", "remaining_views"]
        )
        if content is None:
            return None
        return PasteRecord(
            id=paste_id,
            content=content,
            created_at=int(created_at),
            expires_at=_optional_int(expires_at),
            remaining_views=_optional_int(remaining_views),
        )

    @handle_redis_errors
    def consume(self, paste_id: str, now: int) -> LookupResult:
        result = self._consume_script(keys=[self.paste_key(paste_id)], args=[now])
        if result is None:
            logger.debug(f"Paste {paste_id} unavailable")
            return UNAVAILABLE

        content, expires_at, remaining_views = result
        return Available(
            content=content,
            remaining_views=_optional_int(remaining_views),
            expires_at=_optional_int(expires_at),
        )

    @handle_redis_errors
    def purge_expired(self, now: int) -> int:
        expired = self.redis.zrangebyscore(self.expiry_key(), "-inf", now)
        if not expired:
            return 0

        with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(*[self.paste_key(paste_id) for paste_id in expired])
            pipe.zrem(self.expiry_key(), *expired)
            deleted, _ = pipe.execute()

        logger.info(f"Purged {deleted} expired pastes")
        return deleted

    def is_healthy(self) -> bool:
        """Check if the Redis connection is alive."""
        try:
            self.redis.ping()
            return True
        except RedisError as e:
            logger.error(f"Health check failed: {e}")
        return False

    def close(self) -> None:
        self.redis.close()


def open_store(settings: Settings) -> PasteStore:
    """
    Build the store selected by ``settings.STORAGE_BACKEND``.

    An unreachable Redis falls back to the in-memory store when
    ``settings.MEMORY_FALLBACK`` is set.

    Raises:
        StorageFailure: If Redis is unreachable and fallback is disabled
        ValueError: If the backend name is unknown
    """
    if settings.STORAGE_BACKEND == "memory":
        return InMemoryPasteStore(id_length=settings.ID_LENGTH)
    if settings.STORAGE_BACKEND != "redis":
        raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")

    try:
        logger.info(f"Attempting to connect to Redis: {settings.REDIS_URL[:30]}...")
        store = RedisPasteStore(
            url=settings.REDIS_URL,
            prefix=settings.REDIS_PREFIX,
            id_length=settings.ID_LENGTH,
        )
        store.redis.ping()
        logger.info("✓ Redis connected successfully")
        return store
    except RedisError as e:
        logger.error(f"❌ Error connecting to Redis: {type(e).__name__}: {str(e)}")
        if not settings.MEMORY_FALLBACK:
            raise StorageFailure("Redis is unreachable") from e

    logger.warning("Using in-memory fallback for development. Data will NOT persist across restarts.")
    store = InMemoryPasteStore(id_length=settings.ID_LENGTH)
    store.using_fallback = True
    return store
