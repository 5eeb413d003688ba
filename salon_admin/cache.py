import json
import logging

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CollectionCache:
    """
    Redis cache for fetched collections (booking pages, service list).

    Every cached key is registered in a per-table index set so a mutation
    can drop all collections of that table in one go.

    The cache is best effort: a redis failure is logged and treated as a
    miss (reads) or a no-op (writes, invalidation), never raised.
    """

    def __init__(self, redis, ttl_seconds: int = 60, prefix: str = "collection"):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def cache_key(self, table: str, variant: str) -> str:
        return f"{self.prefix}:{table}:{variant}"

    def index_key(self, table: str) -> str:
        return f"{self.prefix}keys:{table}"

    async def get(self, table: str, variant: str):
        key = self.cache_key(table, variant)
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache entry %s", key)
            return None

    async def set(self, table: str, variant: str, value) -> None:
        key = self.cache_key(table, variant)
        index = self.index_key(table)
        try:
            pipe = self.redis.pipeline()
            pipe.set(key, json.dumps(value, default=str), ex=self.ttl_seconds)
            pipe.sadd(index, key)
            pipe.expire(index, self.ttl_seconds + 5)  # keep index close to cache TTL
            await pipe.execute()
        except RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def invalidate(self, table: str) -> int:
        """
        Delete every cached collection registered for a table.
        Returns number of cache keys deleted (0 when redis is unavailable).
        """
        index = self.index_key(table)
        try:
            keys = await self.redis.smembers(index)
            if not keys:
                await self.redis.delete(index)
                return 0

            pipe = self.redis.pipeline()
            pipe.delete(*list(keys))
            pipe.delete(index)
            results = await pipe.execute()
        except RedisError as e:
            # entries still expire on their own TTL
            logger.error("Cache invalidation failed for %s: %s", table, e)
            return 0

        return results[0] if results and isinstance(results[0], int) else 0
