"""
Unit tests for cache keys and the best-effort Redis cache.
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

from docqa.models.schemas import FilterSet
from docqa.services.answer_cache import (
    AnswerCache,
    answer_cache_key,
    embed_cache_key,
    normalize_question,
)


class TestCacheKeys:

    def test_normalization_collides(self):
        filters = FilterSet.from_mapping({"filename": "a.pdf"})
        assert answer_cache_key("What is CSEC?", filters) == answer_cache_key("  what is csec?  ", filters)
        assert normalize_question("  What is CSEC?  ") == "what is csec?"

    def test_filter_order_does_not_matter(self):
        first = FilterSet.from_mapping({"b": 1, "a": "x"})
        second = FilterSet.from_mapping({"a": "x", "b": 1})
        assert answer_cache_key("q", first) == answer_cache_key("q", second)

    def test_different_filters_differ(self):
        a = FilterSet.from_mapping({"filename": "a.pdf"})
        b = FilterSet.from_mapping({"filename": "b.pdf"})
        assert answer_cache_key("q", a) != answer_cache_key("q", b)

    def test_key_format(self):
        assert answer_cache_key("What is CSEC?", FilterSet()) == "answer:what is csec?:{}"
        assert (
            answer_cache_key("Q", FilterSet.from_mapping({"filename": "a.pdf"}))
            == 'answer:q:{"filename":"a.pdf"}'
        )

    def test_embed_key_ignores_filters(self):
        assert embed_cache_key("  What is CSEC? ") == "embed:what is csec?"


class _ScanningRedis:
    """Minimal async redis stand-in for scan/delete."""

    def __init__(self, keys):
        self.keys = set(keys)

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*")
        for key in sorted(self.keys):
            if key.startswith(prefix):
                yield key

    async def delete(self, key):
        self.keys.discard(key)
        return 1


class TestAnswerCache:

    @pytest.fixture
    def redis_client(self):
        client = Mock()
        client.get = AsyncMock(return_value="cached answer")
        client.set = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_get_hit(self, settings, redis_client):
        cache = AnswerCache(settings, client=redis_client)
        assert await cache.get("answer:q:{}") == "cached answer"
        redis_client.get.assert_awaited_once_with("answer:q:{}")

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, settings, redis_client):
        cache = AnswerCache(settings, client=redis_client)
        assert await cache.set("answer:q:{}", "text", 3600) is True
        redis_client.set.assert_awaited_once_with("answer:q:{}", "text", ex=3600)

    @pytest.mark.asyncio
    async def test_set_defaults_to_configured_ttl(self, settings, redis_client):
        settings.cache_ttl_seconds = 120
        cache = AnswerCache(settings, client=redis_client)
        await cache.set("k", "v")
        redis_client.set.assert_awaited_once_with("k", "v", ex=120)

    @pytest.mark.asyncio
    async def test_unavailable_redis_is_a_miss(self, settings, redis_client):
        redis_client.get.side_effect = RedisConnectionError("connection refused")
        redis_client.set.side_effect = RedisConnectionError("connection refused")
        cache = AnswerCache(settings, client=redis_client)

        assert await cache.get("k") is None
        assert await cache.set("k", "v", 60) is False

    @pytest.mark.asyncio
    async def test_disabled_without_url(self, settings):
        cache = AnswerCache(settings)

        assert cache.enabled is False
        assert await cache.get("k") is None
        assert await cache.set("k", "v", 60) is False
        assert await cache.clear() == 0

    def test_client_built_from_url(self, settings):
        settings.redis_url = "redis://cache:6379/0"
        with patch("docqa.services.answer_cache.Redis") as redis_cls:
            cache = AnswerCache(settings)

        assert cache.enabled
        redis_cls.from_url.assert_called_once()
        args, kwargs = redis_cls.from_url.call_args
        assert args[0] == "redis://cache:6379/0"
        assert kwargs["decode_responses"] is True

    @pytest.mark.asyncio
    async def test_clear_only_touches_own_namespaces(self, settings):
        client = _ScanningRedis({"embed:a", "answer:a:{}", "answer:b:{}", "session:123"})
        cache = AnswerCache(settings, client=client)

        assert await cache.clear() == 3
        assert client.keys == {"session:123"}
