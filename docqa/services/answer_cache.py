"""
Answer Cache
Best-effort Redis cache for question embeddings and final answers.
"""
from typing import Optional
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from docqa.config import Settings
from docqa.models.schemas import FilterSet

logger = structlog.get_logger()

EMBED_PREFIX = "embed:"
ANSWER_PREFIX = "answer:"


def normalize_question(question: str) -> str:
    return question.strip().lower()


def embed_cache_key(question: str) -> str:
    """Embeddings do not depend on filters, so the key leaves them out."""
    return f"{EMBED_PREFIX}{normalize_question(question)}"


def answer_cache_key(question: str, filters: FilterSet) -> str:
    return f"{ANSWER_PREFIX}{normalize_question(question)}:{filters.canonical()}"


class AnswerCache:
    """
    Point get/set against Redis with expiry.

    Never raises: an unreachable or failing Redis behaves like an empty
    cache, and writes are dropped.
    """

    def __init__(self, settings: Settings, client: Optional[Redis] = None):
        self.settings = settings
        if client is None and settings.redis_url:
            client = Redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_timeout=settings.provider_timeout_seconds,
                socket_connect_timeout=settings.provider_timeout_seconds,
            )
        self.client = client

        if self.client is None:
            logger.warning("No REDIS_URL configured, answer cache disabled")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache read failed, treating as miss", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        ttl = ttl_seconds or self.settings.cache_ttl_seconds
        try:
            await self.client.set(key, value, ex=ttl)
            return True
        except RedisError as e:
            logger.warning("Cache write failed, skipping", key=key, error=str(e))
            return False

    async def clear(self) -> int:
        """Delete every embedding and answer entry. Returns the number of keys removed."""
        if not self.enabled:
            return 0
        deleted = 0
        try:
            for prefix in (EMBED_PREFIX, ANSWER_PREFIX):
                async for key in self.client.scan_iter(match=f"{prefix}*"):
                    deleted += await self.client.delete(key)
        except RedisError as e:
            logger.warning("Cache clear interrupted", deleted=deleted, error=str(e))
        logger.info("Cache cleared", deleted=deleted)
        return deleted

    async def close(self):
        if self.enabled:
            await self.client.aclose()
