import json
import time
import threading
import heapq  # For efficient min-heap eviction
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)


# Simple in-memory cache with per-entry TTL
class TTLCache:
    def __init__(self, maxsize=1000, ttl_seconds=300):
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self.cache = {}  # key -> (value, stored_at, expires_at)
        self.eviction_heap = []  # Min-heap of (stored_at, key) for oldest eviction
        self.lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0, "sets": 0}
        self.last_cleanup = time.time()
        self.cleanup_interval = 60  # Cleanup every 60 seconds

    def _cleanup_expired(self):
        """Remove expired entries to prevent memory bloat"""
        current_time = time.time()
        if current_time - self.last_cleanup <= self.cleanup_interval:
            return

        with self.lock:
            expired_keys = [k for k, (_, _, expires_at) in self.cache.items()
                            if current_time >= expires_at]
            for k in expired_keys:
                del self.cache[k]
            self._compact_heap()
            if expired_keys:
                logger.info(f"Cache cleanup: removed {len(expired_keys)} expired entries")
            self.last_cleanup = current_time

    def _compact_heap(self):
        """Rebuild the eviction heap from live entries; caller holds the lock"""
        self.eviction_heap = [(stored_at, k) for k, (_, stored_at, _) in self.cache.items()]
        heapq.heapify(self.eviction_heap)

    def get(self, key: str) -> Optional[Any]:
        self._cleanup_expired()

        with self.lock:
            if key in self.cache:
                value, _, expires_at = self.cache[key]
                if time.time() < expires_at:
                    self.stats["hits"] += 1
                    logger.debug(f"Cache HIT for {key[:40]}")
                    return value
                del self.cache[key]
                logger.debug(f"Cache EXPIRED for {key[:40]}")

            self.stats["misses"] += 1
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        self._cleanup_expired()

        with self.lock:
            stored_at = time.time()
            ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
            self.cache[key] = (value, stored_at, stored_at + ttl)
            heapq.heappush(self.eviction_heap, (stored_at, key))

            # Evict if over maxsize
            while len(self.cache) > self.maxsize and self.eviction_heap:
                old_ts, old_key = heapq.heappop(self.eviction_heap)
                entry = self.cache.get(old_key)
                # Skip heap entries superseded by a later set
                if entry is not None and entry[1] == old_ts:
                    del self.cache[old_key]
                    logger.info(f"Cache EVICTED oldest entry: {old_key[:40]}")

            # Re-setting a key leaves its old heap entry behind
            if len(self.eviction_heap) > 2 * len(self.cache):
                self._compact_heap()

            self.stats["sets"] += 1

    def delete(self, key: str):
        with self.lock:
            self.cache.pop(key, None)

    def get_stats(self) -> Dict[str, Any]:
        with self.lock:
            total = self.stats["hits"] + self.stats["misses"]
            hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0
            return {
                "hits": self.stats["hits"],
                "misses": self.stats["misses"],
                "sets": self.stats["sets"],
                "hit_rate": f"{hit_rate:.1f}%",
                "size": len(self.cache),
                "maxsize": self.maxsize,
                "ttl_seconds": self.ttl_seconds,
            }

    def clear(self):
        with self.lock:
            self.cache.clear()
            self.eviction_heap.clear()
            self.stats = {"hits": 0, "misses": 0, "sets": 0}
            logger.info("Cache cleared")

    def __len__(self) -> int:
        """Return the number of valid (non-expired) entries in the cache"""
        with self.lock:
            current_time = time.time()
            return sum(1 for _, _, expires_at in self.cache.values() if current_time < expires_at)


class ContextCache:
    """
    Best-effort JSON cache for graph contexts.

    Uses Redis when a client is supplied, otherwise an in-process TTLCache.
    Every backend failure is logged and treated as a miss (get) or a no-op
    (set, delete); nothing raised here reaches the request.
    """

    def __init__(self, redis_client: Optional[Redis] = None, local_cache: Optional[TTLCache] = None):
        self.redis = redis_client
        self.local = local_cache if local_cache is not None else TTLCache()

    @property
    def backend(self) -> str:
        return "redis" if self.redis is not None else "memory"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            if self.redis is None:
                return self.local.get(key)
            data = await self.redis.get(key)
            if not data:
                return None
            return json.loads(data)
        except (RedisError, OSError, ValueError) as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Dict[str, Any], ttl_seconds: int = 300) -> None:
        try:
            if self.redis is None:
                self.local.set(key, value, ttl_seconds)
                return
            await self.redis.setex(key, ttl_seconds, json.dumps(value))
        except (RedisError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            if self.redis is None:
                self.local.delete(key)
                return
            await self.redis.delete(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    async def close(self):
        if self.redis is not None:
            await self.redis.aclose()


def create_context_cache(redis_url: Optional[str], maxsize: int = 1000, ttl_seconds: int = 300) -> ContextCache:
    if redis_url:
        logger.info("Using Redis for context cache")
        return ContextCache(redis_client=Redis.from_url(redis_url, socket_timeout=5))
    logger.info("REDIS_URL not set, using in-process context cache")
    return ContextCache(local_cache=TTLCache(maxsize=maxsize, ttl_seconds=ttl_seconds))
