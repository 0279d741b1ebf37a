"""
EmbedSearch Embedding Cache

Caches embedding vectors in Redis with a configurable TTL.
Cache keys follow the pattern: embedding_cache:{model}:{md5_of_text}

Rules:
    - The cache never changes results; a miss or a Redis error falls
      through to the embedding model.
    - Redis errors are logged and swallowed — the cache is optional.
    - Vectors are JSON lists of floats (repr round-trips float64 exactly).
"""

import hashlib
import json
from typing import Optional

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "embedding_cache"


def _make_cache_key(model: str, text: str) -> str:
    """Build a deterministic cache key from the model name and text."""
    md5_hash = hashlib.md5(text.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{model}:{md5_hash}"


def _is_vector(value) -> bool:
    """A non-empty list of plain numbers (bools excluded)."""
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
    )


class EmbeddingCache:
    """
    Thin async wrapper around a Redis client.

    Args:
        redis_client: An ``redis.asyncio.Redis`` instance.
        ttl_seconds: Expiry applied to every entry.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: int):
        self._redis = redis_client
        self._ttl = ttl_seconds

    async def get(self, model: str, text: str) -> Optional[list[float]]:
        """Return the cached vector, or None on miss or Redis failure."""
        key = _make_cache_key(model, text)
        try:
            raw = await self._redis.get(key)
        except Exception:
            logger.warning("redis_get_error", key=key, exc_info=True)
            return None

        if raw is None:
            logger.debug("cache_miss", key=key)
            return None

        try:
            vector = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("cache_entry_corrupt", key=key)
            return None

        if not _is_vector(vector):
            logger.warning("cache_entry_corrupt", key=key, payload_type=type(vector).__name__)
            return None

        logger.debug("cache_hit", key=key)
        return vector

    async def set(self, model: str, text: str, vector: list[float]) -> bool:
        """Store a vector. Returns True if it was written."""
        key = _make_cache_key(model, text)
        try:
            await self._redis.set(key, json.dumps(vector), ex=self._ttl)
        except Exception:
            logger.warning("redis_set_error", key=key, exc_info=True)
            return False

        logger.debug("cache_set", key=key, dimension=len(vector), ttl=self._ttl)
        return True


def create_redis_client(redis_url: str) -> Redis:
    """Create an async Redis client; connections are opened lazily."""
    return Redis.from_url(redis_url, decode_responses=True)
