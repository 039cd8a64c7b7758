"""
Chunking Service
Splits raw text into bounded, overlapping sentence-packed chunks.

Token counts are approximated as ceil(characters / 4). This is a cheap
proxy rather than a real tokenizer, and chunk boundaries depend on it.
"""
import math
import re
from typing import List, Optional

import structlog

from docqa.config import Settings
from docqa.models.schemas import Chunk

logger = structlog.get_logger()

SENTENCE_BOUNDARY = re.compile(r"(?<=[.?!])\s+")
CLAUSE_BOUNDARY = re.compile(r"(?<=[,;])\s+")


def approximate_tokens(text: str) -> int:
    """Approximate token count: 1 token ~ 4 characters."""
    return math.ceil(len(text) / 4)


def split_sentences(text: str) -> List[str]:
    """Split on whitespace that follows '.', '?' or '!'. Empty units are dropped."""
    units = (unit.strip() for unit in SENTENCE_BOUNDARY.split(text))
    return [unit for unit in units if unit]


def split_long_sentence(sentence: str, max_tokens: int) -> List[str]:
    """
    Break an oversized sentence on comma/semicolon boundaries and greedily
    repack the pieces into sub-units of at most max_tokens.

    Best effort: a piece with no comma or semicolon that is itself over
    budget is kept whole.
    """
    pieces = [p.strip() for p in CLAUSE_BOUNDARY.split(sentence) if p.strip()]
    sub_units: List[str] = []
    current: List[str] = []
    current_tokens = 0

    for piece in pieces:
        piece_tokens = approximate_tokens(piece)
        if current and current_tokens + piece_tokens > max_tokens:
            sub_units.append(" ".join(current))
            current = []
            current_tokens = 0
        current.append(piece)
        current_tokens += piece_tokens

    if current:
        sub_units.append(" ".join(current))
    return sub_units


def _units(text: str, max_tokens: int) -> List[str]:
    units: List[str] = []
    for sentence in split_sentences(text):
        if approximate_tokens(sentence) > max_tokens:
            units.extend(split_long_sentence(sentence, max_tokens))
        else:
            units.append(sentence)
    return units


def _overlap_suffix(units: List[str], overlap_tokens: int) -> List[str]:
    """Longest suffix of units whose cumulative token count stays within overlap_tokens."""
    suffix: List[str] = []
    total = 0
    for unit in reversed(units):
        unit_tokens = approximate_tokens(unit)
        if total + unit_tokens > overlap_tokens:
            break
        suffix.insert(0, unit)
        total += unit_tokens
    return suffix


def segment_text(
    text: str,
    max_tokens: int = 200,
    overlap_tokens: int = 30,
    source_id: str = "",
) -> List[Chunk]:
    """
    Pack sentence units into chunks of roughly max_tokens, seeding each new
    chunk with up to overlap_tokens worth of trailing units from the previous one.

    Deterministic: the same arguments always yield the same chunks.
    """
    if not text or not text.strip():
        return []

    texts: List[str] = []
    buffer: List[str] = []
    buffer_tokens = 0

    for unit in _units(text, max_tokens):
        unit_tokens = approximate_tokens(unit)

        if buffer and buffer_tokens + unit_tokens > max_tokens:
            texts.append(" ".join(buffer))
            buffer = _overlap_suffix(buffer, overlap_tokens)
            buffer_tokens = sum(approximate_tokens(u) for u in buffer)

        buffer.append(unit)
        buffer_tokens += unit_tokens

    if buffer:
        texts.append(" ".join(buffer))

    return [Chunk(text=t, index=i, source_id=source_id) for i, t in enumerate(texts)]


class ChunkingService:
    """Applies the configured chunk budgets to documents."""

    def __init__(self, max_tokens: int = 200, overlap_tokens: int = 30):
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChunkingService":
        return cls(
            max_tokens=settings.max_chunk_tokens,
            overlap_tokens=settings.chunk_overlap_tokens,
        )

    def chunk_text(self, text: str, source_id: Optional[str] = None) -> List[Chunk]:
        chunks = segment_text(
            text,
            max_tokens=self.max_tokens,
            overlap_tokens=self.overlap_tokens,
            source_id=source_id or "",
        )
        logger.info(
            "Chunking complete",
            chunk_count=len(chunks),
            max_tokens=self.max_tokens,
            overlap_tokens=self.overlap_tokens,
        )
        return chunks
