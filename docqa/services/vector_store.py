"""
Vector Store Service
Manages vector storage in Pinecone with field-equality filtering.
"""
import asyncio
from typing import Any, List, Optional
import structlog
from pinecone import Pinecone, ServerlessSpec
from tenacity import retry, stop_after_attempt, wait_exponential

from docqa.config import Settings
from docqa.exceptions import ProviderError
from docqa.models.schemas import FilterSet, IndexedPoint, SearchHit

logger = structlog.get_logger()


class VectorStore:
    """Wraps a Pinecone index: upsert by id and filtered cosine search."""

    UPSERT_BATCH_SIZE = 100

    def __init__(self, settings: Settings, client: Pinecone = None):
        self.settings = settings
        self.pc = client or Pinecone(api_key=settings.pinecone_api_key)
        self.index_name = settings.pinecone_index
        self._index = None

    @property
    def index(self):
        # Index() resolves the host remotely, so defer it until first use.
        if self._index is None:
            self._index = self.pc.Index(self.index_name)
        return self._index

    async def _call(self, operation: str, **kwargs) -> Any:
        """Run a blocking index call off the event loop with the provider timeout."""
        def invoke():
            return getattr(self.index, operation)(**kwargs)

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(invoke),
                timeout=self.settings.provider_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("Vector index call timed out", operation=operation)
            raise ProviderError("vector_index", f"{operation} timed out") from e
        except Exception as e:
            logger.error("Vector index call failed", operation=operation, error=str(e))
            raise ProviderError("vector_index", f"{operation} failed: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def ensure_index(self) -> bool:
        """
        Create the index if it does not exist yet.

        Idempotent; meant to run once at startup.

        Returns:
            True if the index was created, False if it already existed
        """
        existing = self.pc.list_indexes().names()
        if self.index_name in existing:
            logger.info("Vector index already exists, skipping creation", index=self.index_name)
            return False

        self.pc.create_index(
            name=self.index_name,
            dimension=self.settings.embedding_dimensions,
            metric="cosine",
            spec=ServerlessSpec(
                cloud=self.settings.pinecone_cloud,
                region=self.settings.pinecone_region,
            ),
        )
        logger.info(
            "Vector index created",
            index=self.index_name,
            dimension=self.settings.embedding_dimensions,
        )
        return True

    async def upsert(self, points: List[IndexedPoint]) -> int:
        """
        Store points. Re-upserting an existing id overwrites it.

        Returns:
            Number of vectors upserted
        """
        vectors = [
            {"id": point.id, "values": point.vector, "metadata": point.payload}
            for point in points
        ]

        total_upserted = 0
        for i in range(0, len(vectors), self.UPSERT_BATCH_SIZE):
            batch = vectors[i:i + self.UPSERT_BATCH_SIZE]
            await self._call("upsert", vectors=batch)
            total_upserted += len(batch)

            logger.info(
                "Batch upserted",
                batch_num=i // self.UPSERT_BATCH_SIZE + 1,
                count=len(batch)
            )

        return total_upserted

    async def search(
        self,
        vector: List[float],
        top_k: int,
        filters: Optional[FilterSet] = None,
    ) -> List[SearchHit]:
        """
        Nearest neighbours by cosine similarity, best first.

        Args:
            vector: Query vector
            top_k: Number of results to return
            filters: Field-equality constraints; all must match

        Returns:
            List of SearchHit objects
        """
        index_filter = filters.to_index_filter() if filters else None

        logger.info("Querying vectors", top_k=top_k, filter=index_filter)

        results = await self._call(
            "query",
            vector=vector,
            top_k=top_k,
            filter=index_filter,
            include_metadata=True,
        )

        hits = [
            SearchHit(payload=dict(match.metadata or {}), score=match.score)
            for match in results.matches
        ]
        hits.sort(key=lambda hit: hit.score, reverse=True)

        logger.info("Query complete", results=len(hits))
        return hits

    async def delete_by_source(self, source_id: str) -> bool:
        """Delete all vectors ingested from one document."""
        logger.info("Deleting document vectors", source_id=source_id)
        await self._call(
            "delete",
            filter={"source_id": {"$eq": source_id}},
        )
        return True
