"""
Ingestion Service
Chunks text, embeds every chunk and stores the vectors in the index.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4
import structlog

from docqa.config import Settings
from docqa.exceptions import InvalidRequest
from docqa.models.schemas import Chunk, IndexedPoint
from docqa.services.chunking_service import ChunkingService
from docqa.services.document_parser import DocumentParser
from docqa.services.embedding_service import EmbeddingService
from docqa.services.vector_store import VectorStore

logger = structlog.get_logger()

DEFAULT_TEXT_FILENAME = "user_text.txt"
RESERVED_PAYLOAD_KEYS = {"chunk", "chunk_index", "source_id", "filename"}


@dataclass
class IngestResult:
    source_id: str
    filename: str
    chunk_count: int


def validate_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Index metadata only holds scalars and lists of strings."""
    clean: Dict[str, Any] = {}
    for key, value in (metadata or {}).items():
        if key in RESERVED_PAYLOAD_KEYS:
            continue
        if isinstance(value, (str, bool, int, float)):
            clean[key] = value
        elif isinstance(value, list) and all(isinstance(v, str) for v in value):
            clean[key] = value
        else:
            raise InvalidRequest(
                f"Metadata field '{key}' must be a string, number, boolean or list of strings"
            )
    return clean


class IngestionService:
    """Persists documents as embedded chunks."""

    def __init__(
        self,
        settings: Settings,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        document_parser: Optional[DocumentParser] = None,
    ):
        self.settings = settings
        self.chunking_service = chunking_service
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.document_parser = document_parser or DocumentParser()

    async def _embed_chunks(self, chunks: List[Chunk]) -> List[List[float]]:
        """Embed chunks concurrently (bounded). Results keep chunk order."""
        semaphore = asyncio.Semaphore(max(1, self.settings.embed_concurrency))

        async def embed_one(chunk: Chunk) -> List[float]:
            async with semaphore:
                return await self.embedding_service.embed(chunk.text)

        tasks = [asyncio.ensure_future(embed_one(chunk)) for chunk in chunks]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            # First failure aborts the document: stop the remaining calls.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def ingest_text(
        self,
        text: Optional[str],
        filename: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> IngestResult:
        """
        Chunk, embed and store a text document.

        Args:
            text: Raw document text
            filename: Stored on every point, usable as a query filter
            metadata: Extra scalar fields stored on every point

        Returns:
            IngestResult with the number of stored chunks

        Raises:
            InvalidRequest: text is empty or metadata is not storable
            ProviderError: embedding or index failure; nothing is stored
        """
        if not text or not text.strip():
            raise InvalidRequest("Text required")

        filename = filename or DEFAULT_TEXT_FILENAME
        extra = validate_metadata(metadata)
        source_id = str(uuid4())

        logger.info("Stage: Chunking document...", filename=filename, source_id=source_id)
        chunks = self.chunking_service.chunk_text(text, source_id=source_id)

        logger.info(f"Stage: Generating vector embeddings for {len(chunks)} chunks...")
        embeddings = await self._embed_chunks(chunks)

        points = []
        for chunk, embedding in zip(chunks, embeddings):
            if not embedding:
                logger.warning("Skipping chunk with empty embedding", chunk_index=chunk.index)
                continue
            points.append(IndexedPoint(
                vector=embedding,
                payload={
                    **extra,
                    "chunk": chunk.text,
                    "filename": filename,
                    "chunk_index": chunk.index,
                    "source_id": source_id,
                },
            ))

        if points:
            logger.info("Stage: Storing vectors in Vector Database (Pinecone)...")
            await self.vector_store.upsert(points)

        logger.info(f"Stage: Ingestion complete! Total chunks stored: {len(points)}")
        return IngestResult(source_id=source_id, filename=filename, chunk_count=len(points))

    async def ingest_document(self, data: bytes, filename: str) -> IngestResult:
        """Extract text from a binary document, then ingest it like plain text."""
        logger.info("Stage: Parsing document", filename=filename)
        text = await self.document_parser.extract_text(data)
        if not text.strip():
            raise InvalidRequest("No text could be extracted from the document")
        return await self.ingest_text(text, filename=filename)

    async def delete_document(self, source_id: str) -> bool:
        return await self.vector_store.delete_by_source(source_id)
