"""
Query Pipeline
Answers a question from the indexed corpus: greeting intercept, answer
cache, cached embeddings, filtered vector search, optional keyword boost,
score threshold, LLM re-rank, answer synthesis and optional rewrite.
"""
import json
import re
from typing import List, Optional
import structlog
from pydantic import TypeAdapter, ValidationError

from docqa.config import Settings
from docqa.exceptions import InvalidRequest
from docqa.models.schemas import (
    FilterSet,
    QueryRequest,
    QueryResponse,
    RerankedChunk,
    SearchHit,
)
from docqa.services import prompts
from docqa.services.answer_cache import AnswerCache, answer_cache_key, embed_cache_key
from docqa.services.embedding_service import EmbeddingService
from docqa.services.llm_service import LLMService
from docqa.services.vector_store import VectorStore

logger = structlog.get_logger()

GREETING_KEYWORDS = (
    "hi", "hello", "hey", "hiya", "howdy", "greetings", "yo",
    "good morning", "good afternoon", "good evening", "salam", "hola",
)
GREETING_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(k) for k in GREETING_KEYWORDS) + r")\b")
GREETING_MAX_WORDS = 6

CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_rerank_adapter = TypeAdapter(List[RerankedChunk])


def is_greeting(question: str) -> bool:
    """Short messages containing a greeting word carry nothing worth retrieving."""
    normalized = question.strip().lower()
    if len(normalized.split()) > GREETING_MAX_WORDS:
        return False
    return GREETING_PATTERN.search(normalized) is not None


def apply_keyword_boost(question: str, hits: List[SearchHit], boost: float = 0.02) -> List[SearchHit]:
    """
    Add `boost` to a hit's score for every distinct question token that
    occurs (case-insensitive substring) in the hit's chunk text.
    """
    tokens = list(dict.fromkeys(question.lower().split()))
    boosted = []
    for hit in hits:
        text = hit.chunk.lower()
        matched = sum(1 for token in tokens if token in text)
        boosted.append(hit.model_copy(update={"score": hit.score + boost * matched}))
    return boosted


def select_candidates(hits: List[SearchHit], min_score: float, max_candidates: int) -> List[SearchHit]:
    """Best-first hits at or above min_score, capped at max_candidates."""
    ranked = sorted(hits, key=lambda hit: hit.score, reverse=True)
    return [hit for hit in ranked if hit.score >= min_score][:max_candidates]


def top_by_score(candidates: List[SearchHit], limit: int) -> List[RerankedChunk]:
    return [RerankedChunk(chunk=hit.chunk, score=hit.score) for hit in candidates[:limit]]


def parse_rerank_output(raw: str, limit: int) -> Optional[List[RerankedChunk]]:
    """
    Parse the model's re-rank answer: a JSON array of {"chunk", "score"}.

    Returns None when the output is not a usable array, which callers treat
    as "keep the score order".
    """
    text = CODE_FENCE.sub("", raw.strip()).strip()
    try:
        parsed = _rerank_adapter.validate_json(text)
    except ValidationError as e:
        logger.warning("Re-rank output unparseable", error_count=e.error_count())
        return None
    parsed = [item for item in parsed if item.chunk.strip()]
    return parsed[:limit] or None


class QueryPipeline:
    """Runs one question through retrieval and generation."""

    def __init__(
        self,
        settings: Settings,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        cache: AnswerCache,
        llm: LLMService,
        persona: Optional[prompts.Persona] = None,
    ):
        self.settings = settings
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.cache = cache
        self.llm = llm
        self.persona = persona or prompts.Persona.from_settings(settings)

    async def _resolve_embedding(self, question: str) -> List[float]:
        key = embed_cache_key(question)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                vector = json.loads(cached)
            except ValueError:
                vector = None
            if isinstance(vector, list) and vector and all(isinstance(v, (int, float)) for v in vector):
                logger.info("Embedding cache hit")
                return [float(v) for v in vector]
            logger.warning("Discarding undecodable cached embedding", key=key)

        vector = await self.embedding_service.embed(question)
        await self.cache.set(key, json.dumps(vector), self.settings.cache_ttl_seconds)
        return vector

    async def _rerank(self, question: str, candidates: List[SearchHit], limit: int) -> List[RerankedChunk]:
        raw = await self.llm.generate(
            prompts.rerank_prompt(question, candidates, limit),
            deterministic=True,
        )
        reranked = parse_rerank_output(raw, limit)
        if reranked is None:
            logger.info("Falling back to score order", limit=limit)
            return top_by_score(candidates, limit)
        return reranked

    async def run(self, request: QueryRequest) -> QueryResponse:
        question = (request.question or "").strip()
        if not question:
            raise InvalidRequest("Question required")

        if self.persona.enabled and is_greeting(question):
            logger.info("Greeting intercepted")
            answer = await self.llm.generate(prompts.greeting_prompt(self.persona, question))
            return QueryResponse(answer=answer, greeting=True)

        filters = FilterSet.from_mapping(request.filters)
        used_filters = filters.as_dict()
        cache_key = answer_cache_key(question, filters)

        cached_answer = await self.cache.get(cache_key)
        if cached_answer is not None:
            logger.info("Answer cache hit")
            return QueryResponse(answer=cached_answer, cached=True)

        vector = await self._resolve_embedding(question)

        top_k = max(request.limit * 3, self.settings.search_overfetch)
        hits = await self.vector_store.search(vector, top_k, filters)

        if request.hybrid:
            hits = apply_keyword_boost(question, hits, self.settings.hybrid_boost)

        candidates = select_candidates(hits, request.min_score, self.settings.max_candidates)
        logger.info(
            "Candidates selected",
            hits=len(hits),
            candidates=len(candidates),
            min_score=request.min_score,
            hybrid=request.hybrid,
        )

        if not candidates:
            answer = await self.llm.generate(prompts.no_context_prompt(self.persona, question))
            return QueryResponse(
                answer=answer,
                cached=False,
                no_context=True,
                used_filters=used_filters,
                hybrid=request.hybrid,
            )

        if request.rerank:
            reranked = await self._rerank(question, candidates, request.limit)
        else:
            reranked = top_by_score(candidates, request.limit)

        answer = await self.llm.generate(
            prompts.answer_prompt(self.persona, question, [c.chunk for c in reranked])
        )

        rewrite_applied = False
        if request.rewrite and answer != LLMService.FAILURE_MESSAGE:
            rewritten = await self.llm.generate(prompts.rewrite_prompt(answer))
            if rewritten != LLMService.FAILURE_MESSAGE:
                answer = rewritten
                rewrite_applied = True
            else:
                logger.warning("Rewrite failed, keeping synthesized answer")

        # An outage apology is not worth an hour in the cache.
        if answer != LLMService.FAILURE_MESSAGE:
            await self.cache.set(cache_key, answer, self.settings.cache_ttl_seconds)

        return QueryResponse(
            answer=answer,
            cached=False,
            reranked_chunks=reranked,
            used_filters=used_filters,
            hybrid=request.hybrid,
            rewrite_applied=rewrite_applied,
        )
