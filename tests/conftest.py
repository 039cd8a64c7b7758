"""
Shared Test Fixtures for the Document Q&A Tests

This file contains:
- In-memory fakes for the embedding, index, cache and LLM gateways
- A QueryPipeline / IngestionService wired to those fakes
- FastAPI TestClient with dependency overrides
"""
import asyncio
import math
import os
import sys
from typing import Any, Callable, Dict, Generator, List, Optional, Union

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from docqa.config import Settings
from docqa.exceptions import InvalidInput, ProviderError
from docqa.main import app, get_answer_cache, get_ingestion_service, get_query_pipeline
from docqa.models.schemas import FilterSet, IndexedPoint, SearchHit
from docqa.services.chunking_service import ChunkingService
from docqa.services.ingestion_service import IngestionService
from docqa.services.query_pipeline import QueryPipeline


# ═══════════════════════════════════════════════════════════════
# GATEWAY FAKES
# ═══════════════════════════════════════════════════════════════

ALPHABET = "abcdefghijklmnopqrstuvwxyz"


class FakeEmbedder:
    """Letter-frequency vectors; records every call."""

    def __init__(self):
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.overrides: Dict[str, List[float]] = {}
        self.delays: Dict[str, float] = {}

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise InvalidInput("Text required for embedding")
        self.calls.append(text)
        if text in self.delays:
            await asyncio.sleep(self.delays[text])
        if self.error is not None:
            raise self.error
        if text in self.overrides:
            return self.overrides[text]
        lowered = text.lower()
        return [float(lowered.count(c)) + 0.01 for c in ALPHABET]

    async def close(self):
        pass


def _matches(filters: FilterSet, payload: Dict[str, Any]) -> bool:
    """Equality filter as the index applies it: every field present and equal."""
    return all(field in payload and payload[field] == value for field, value in filters.constraints)


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorStore:
    """In-memory index. `preset_hits` bypasses similarity when set."""

    def __init__(self):
        self.points: Dict[str, IndexedPoint] = {}
        self.preset_hits: Optional[List[SearchHit]] = None
        self.searches: List[Dict[str, Any]] = []
        self.upserts: List[List[IndexedPoint]] = []
        self.deleted_sources: List[str] = []
        self.error: Optional[Exception] = None

    async def upsert(self, points: List[IndexedPoint]) -> int:
        if self.error is not None:
            raise self.error
        self.upserts.append(list(points))
        for point in points:
            self.points[point.id] = point
        return len(points)

    async def search(self, vector, top_k: int, filters: Optional[FilterSet] = None) -> List[SearchHit]:
        self.searches.append({"vector": vector, "top_k": top_k, "filters": filters})
        if self.error is not None:
            raise self.error
        filters = filters or FilterSet()
        if self.preset_hits is not None:
            hits = [h for h in self.preset_hits if _matches(filters, h.payload)]
        else:
            hits = [
                SearchHit(payload=dict(p.payload), score=_cosine(vector, p.vector))
                for p in self.points.values()
                if _matches(filters, p.payload)
            ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]

    async def delete_by_source(self, source_id: str) -> bool:
        self.deleted_sources.append(source_id)
        self.points = {k: p for k, p in self.points.items() if p.payload.get("source_id") != source_id}
        return True


class FakeCache:
    """Dict-backed cache that records reads and writes."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.gets: List[str] = []
        self.sets: List[tuple] = []

    async def get(self, key: str) -> Optional[str]:
        self.gets.append(key)
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        self.sets.append((key, value, ttl_seconds))
        self.store[key] = value
        return True

    async def clear(self) -> int:
        deleted = len(self.store)
        self.store.clear()
        return deleted

    async def close(self):
        pass


class FakeLLM:
    """
    Scripted generator. Queued responses are returned first; after that
    `default` (a string or a callable taking the prompt) is used.
    """

    def __init__(self, default: Union[str, Callable[[str], str]] = "Generated answer."):
        self.prompts: List[str] = []
        self.kwargs: List[Dict[str, Any]] = []
        self.queue: List[str] = []
        self.default = default

    async def generate(self, prompt: str, temperature=None, deterministic: bool = False) -> str:
        self.prompts.append(prompt)
        self.kwargs.append({"temperature": temperature, "deterministic": deterministic})
        if self.queue:
            return self.queue.pop(0)
        return self.default(prompt) if callable(self.default) else self.default

    async def close(self):
        pass


def make_hit(chunk: str, score: float, **payload) -> SearchHit:
    return SearchHit(payload={"chunk": chunk, **payload}, score=score)


# ═══════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="test-openai-key",
        pinecone_api_key="test-pinecone-key",
        redis_url=None,
        assistant_name="DocQA",
    )


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def pipeline(settings, fake_embedder, fake_store, fake_cache, fake_llm) -> QueryPipeline:
    return QueryPipeline(
        settings,
        embedding_service=fake_embedder,
        vector_store=fake_store,
        cache=fake_cache,
        llm=fake_llm,
    )


@pytest.fixture
def ingestion(settings, fake_embedder, fake_store) -> IngestionService:
    return IngestionService(
        settings,
        chunking_service=ChunkingService.from_settings(settings),
        embedding_service=fake_embedder,
        vector_store=fake_store,
    )


# ═══════════════════════════════════════════════════════════════
# FASTAPI CLIENT FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def client(pipeline, ingestion, fake_cache) -> Generator[TestClient, None, None]:
    """
    Test client with every service swapped for fakes.

    Used without a `with` block so the lifespan (real clients, index
    provisioning) never runs.
    """
    app.dependency_overrides[get_query_pipeline] = lambda: pipeline
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion
    app.dependency_overrides[get_answer_cache] = lambda: fake_cache
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_text() -> str:
    return (
        "Orders ship within two business days. Refunds are issued to the original payment method. "
        "Customers can return items within thirty days of delivery. "
        "Gift cards cannot be refunded or exchanged for cash."
    )
