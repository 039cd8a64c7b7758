"""
Document Q&A API
Ingest text/PDF documents and answer questions over them.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
import structlog

from docqa.config import Settings, get_settings
from docqa.exceptions import InvalidRequest, ProviderError
from docqa.models.schemas import (
    IngestResponse,
    IngestTextRequest,
    QueryRequest,
    QueryResponse,
)
from docqa.services.answer_cache import AnswerCache
from docqa.services.chunking_service import ChunkingService
from docqa.services.document_parser import DocumentParser
from docqa.services.embedding_service import EmbeddingService
from docqa.services.ingestion_service import IngestionService, IngestResult
from docqa.services.llm_service import LLMService
from docqa.services.query_pipeline import QueryPipeline
from docqa.services.vector_store import VectorStore


def configure_logging(level: str = "INFO"):
    """Configure structlog for terminal readability."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer()  # Human-readable format in terminal
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger()


# ─────────────────────────────────────────────────────────────
# Service Container
# ─────────────────────────────────────────────────────────────

@dataclass
class Services:
    settings: Settings
    embedding_service: EmbeddingService
    vector_store: VectorStore
    cache: AnswerCache
    llm: LLMService
    ingestion: IngestionService
    pipeline: QueryPipeline


def build_services(settings: Settings) -> Services:
    """Construct every gateway once; pipelines receive them explicitly."""
    embedding_service = EmbeddingService(settings)
    vector_store = VectorStore(settings)
    cache = AnswerCache(settings)
    llm = LLMService(settings)
    ingestion = IngestionService(
        settings,
        chunking_service=ChunkingService.from_settings(settings),
        embedding_service=embedding_service,
        vector_store=vector_store,
        document_parser=DocumentParser(),
    )
    pipeline = QueryPipeline(
        settings,
        embedding_service=embedding_service,
        vector_store=vector_store,
        cache=cache,
        llm=llm,
    )
    return Services(settings, embedding_service, vector_store, cache, llm, ingestion, pipeline)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)

    services = build_services(settings)
    if settings.provision_index_on_startup:
        await asyncio.to_thread(services.vector_store.ensure_index)
    app.state.services = services
    logger.info("RAG API ready", environment=settings.environment, index=settings.pinecone_index)

    try:
        yield
    finally:
        await services.cache.close()
        await services.embedding_service.close()
        await services.llm.close()


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.services.ingestion


def get_query_pipeline(request: Request) -> QueryPipeline:
    return request.app.state.services.pipeline


def get_answer_cache(request: Request) -> AnswerCache:
    return request.app.state.services.cache


# Create FastAPI app
app = FastAPI(
    title="Document Q&A API",
    description="Ingest documents and answer questions with retrieval-augmented generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter(prefix="/api/rag")


def _ingest_response(result: IngestResult) -> IngestResponse:
    return IngestResponse(
        status="Done",
        source_id=result.source_id,
        filename=result.filename,
        chunk_count=result.chunk_count,
        message=f"{result.chunk_count} chunks stored",
    )


# ─────────────────────────────────────────────────────────────
# Ingestion
# ─────────────────────────────────────────────────────────────

@router.post("/ingest-text", response_model=IngestResponse)
async def ingest_text(
    request: IngestTextRequest,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """Chunk, embed and store a text document. Extra body fields become point metadata."""
    try:
        result = await ingestion.ingest_text(
            request.text,
            filename=request.filename,
            metadata=request.model_extra,
        )
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"Stage: Ingestion failed - {e}")
        raise HTTPException(status_code=502, detail=f"Ingestion failed: {e}")

    return _ingest_response(result)


@router.post("/ingest-pdf", response_model=IngestResponse)
async def ingest_pdf(
    pdf: UploadFile = File(...),
    filename: Optional[str] = Form(None),
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """Extract text from an uploaded PDF and ingest it."""
    content = await pdf.read()
    name = filename or pdf.filename or "document.pdf"
    try:
        result = await ingestion.ingest_document(content, filename=name)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error(f"Stage: PDF ingestion failed - {e}")
        raise HTTPException(status_code=502, detail=f"Ingestion failed: {e}")

    return _ingest_response(result)


@router.delete("/documents/{source_id}")
async def delete_document(
    source_id: str,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """Remove every chunk stored for one ingested document."""
    try:
        await ingestion.delete_document(source_id)
    except ProviderError as e:
        raise HTTPException(status_code=502, detail=f"Delete failed: {e}")
    return {"status": "deleted", "source_id": source_id}


# ─────────────────────────────────────────────────────────────
# Query
# ─────────────────────────────────────────────────────────────

@router.post("/query", response_model=QueryResponse, response_model_exclude_none=True)
async def query(
    request: QueryRequest,
    pipeline: QueryPipeline = Depends(get_query_pipeline),
):
    """Answer a question from the ingested documents."""
    try:
        return await pipeline.run(request)
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderError as e:
        logger.error("Query failed", provider=e.provider, error=e.message)
        raise HTTPException(status_code=502, detail=f"Query failed: {e}")


# ─────────────────────────────────────────────────────────────
# Maintenance
# ─────────────────────────────────────────────────────────────

@router.post("/cache/clear")
async def clear_cache(cache: AnswerCache = Depends(get_answer_cache)):
    """Drop cached embeddings and answers."""
    deleted = await cache.clear()
    return {"status": "cleared", "deleted": deleted}


app.include_router(router)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "RAG API ready"


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("docqa.main:app", host="0.0.0.0", port=8000, reload=True)
