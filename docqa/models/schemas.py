"""
Data models for the RAG pipeline.
"""
import json
from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any, Mapping, Tuple, Union
from uuid import uuid4

FilterValue = Union[bool, int, float, str]


class Chunk(BaseModel):
    """A bounded, possibly overlapping span of source text."""
    model_config = ConfigDict(frozen=True)

    text: str
    index: int
    source_id: str = ""


class IndexedPoint(BaseModel):
    """A vector plus payload as stored in the index."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    vector: List[float]
    payload: Dict[str, Any] = {}


class SearchHit(BaseModel):
    """Model for search results returned from vector query."""
    payload: Dict[str, Any] = {}
    score: float

    @property
    def chunk(self) -> str:
        return str(self.payload.get("chunk", ""))


class RerankedChunk(BaseModel):
    """One entry of the re-rank output and of the query response."""
    chunk: str
    score: float = 0.0


@dataclass(frozen=True)
class FilterSet:
    """
    Field-equality constraints, kept sorted by field name.

    All constraints must match (AND). The canonical serialization is used
    in cache keys, so equal filter sets always produce equal strings.
    """
    constraints: Tuple[Tuple[str, FilterValue], ...] = ()

    @classmethod
    def from_mapping(cls, filters: Optional[Mapping[str, FilterValue]]) -> "FilterSet":
        if not filters:
            return cls()
        return cls(tuple(sorted(filters.items(), key=lambda item: item[0])))

    def __bool__(self) -> bool:
        return bool(self.constraints)

    def as_dict(self) -> Dict[str, FilterValue]:
        return dict(self.constraints)

    def canonical(self) -> str:
        return json.dumps(self.as_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def to_index_filter(self) -> Optional[Dict[str, Any]]:
        """Translate to a metadata filter; top-level keys are AND-ed."""
        if not self.constraints:
            return None
        return {field: {"$eq": value} for field, value in self.constraints}


# ─────────────────────────────────────────────────────────────
# API Models
# ─────────────────────────────────────────────────────────────

class QueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = None
    filters: Dict[str, FilterValue] = {}
    limit: int = Field(default=5, ge=1, le=50)
    min_score: float = Field(default=0.0, alias="minScore")
    hybrid: bool = False
    rewrite: bool = False
    rerank: bool = True


class QueryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    cached: Optional[bool] = None
    no_context: Optional[bool] = Field(default=None, alias="noContext")
    greeting: Optional[bool] = None
    reranked_chunks: Optional[List[RerankedChunk]] = Field(default=None, alias="rerankedChunks")
    used_filters: Optional[Dict[str, FilterValue]] = Field(default=None, alias="usedFilters")
    hybrid: Optional[bool] = None
    rewrite_applied: Optional[bool] = Field(default=None, alias="rewriteApplied")


class IngestTextRequest(BaseModel):
    """Text plus optional filename; any other fields become point metadata."""
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    filename: str = "user_text.txt"


class IngestResponse(BaseModel):
    status: str          # "Done"
    source_id: str
    filename: str
    chunk_count: int
    message: str
