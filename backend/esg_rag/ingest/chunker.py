"""Chunking utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from esg_rag.core.errors import ConfigurationError
from esg_rag.ingest.types import ChunkSpan
from esg_rag.models.entities import Chunk, Document
from esg_rag.utils.ids import chunk_id
from esg_rag.utils.text import normalize_newlines

_SEGMENT_RE = re.compile(r"\n\s*\n", re.MULTILINE)
_PAGE_RE = re.compile(r"\b(?:page|p\.)\s*(\d+)", re.IGNORECASE)


@dataclass(slots=True)
class Segment:
    text: str
    start: int
    end: int


class Tokenizer:
    """Locates tokens as character spans so chunks stay exact slices of the source."""

    name = "base"
    pattern: re.Pattern[str] = re.compile(r"\S+")

    def spans(self, text: str) -> list[tuple[int, int]]:
        return [match.span() for match in self.pattern.finditer(text)]

    def count(self, text: str) -> int:
        return sum(1 for _ in self.pattern.finditer(text))


class WordTokenizer(Tokenizer):
    name = "word"
    pattern = re.compile(r"\S+")


class SubwordTokenizer(Tokenizer):
    """Word characters and individual punctuation marks count separately."""

    name = "subword"
    pattern = re.compile(r"\w+|[^\w\s]")


_TOKENIZERS: dict[str, type[Tokenizer]] = {
    WordTokenizer.name: WordTokenizer,
    SubwordTokenizer.name: SubwordTokenizer,
}


def get_tokenizer(unit: str) -> Tokenizer:
    try:
        return _TOKENIZERS[unit]()
    except KeyError:
        raise ConfigurationError(f"Unknown token unit '{unit}'") from None


class Chunker:
    """Split text into ordered, overlapping chunks bounded by a token budget.

    With ``preserve_paragraphs`` consecutive blank-line separated paragraphs are
    packed into one chunk while they fit; a paragraph larger than the budget is
    split on token boundaries. Every chunk after the first starts with the last
    ``overlap_tokens`` tokens of its predecessor.
    """

    def __init__(
        self,
        max_tokens: int,
        overlap_tokens: int = 0,
        preserve_paragraphs: bool = True,
        token_unit: str = "word",
    ) -> None:
        if max_tokens <= 0:
            raise ConfigurationError(f"maxTokens must be positive, got {max_tokens}")
        if overlap_tokens < 0:
            raise ConfigurationError(f"overlapTokens must not be negative, got {overlap_tokens}")
        if overlap_tokens >= max_tokens:
            raise ConfigurationError(
                f"overlapTokens ({overlap_tokens}) must be smaller than maxTokens ({max_tokens})"
            )
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.preserve_paragraphs = preserve_paragraphs
        self.tokenizer = get_tokenizer(token_unit)

    @property
    def signature(self) -> dict[str, Any]:
        """Settings that change chunk boundaries; part of document fingerprints."""
        return {
            "maxTokens": self.max_tokens,
            "overlapTokens": self.overlap_tokens,
            "preserveParagraphs": self.preserve_paragraphs,
            "tokenUnit": self.tokenizer.name,
        }

    def count_tokens(self, text: str) -> int:
        return self.tokenizer.count(text)

    def chunk(self, text: str) -> list[ChunkSpan]:
        text = normalize_newlines(text)
        spans = self.tokenizer.spans(text)
        if not spans:
            return []
        blocks = self._token_blocks(text, spans)
        return [_build_span(text, spans, start, end) for start, end in self._windows(blocks)]

    def _token_blocks(self, text: str, spans: Sequence[tuple[int, int]]) -> list[tuple[int, int]]:
        if not self.preserve_paragraphs:
            return [(0, len(spans))]
        blocks: list[tuple[int, int]] = []
        cursor = 0
        for segment in _iter_segments(text):
            first = cursor
            while cursor < len(spans) and spans[cursor][1] <= segment.end:
                cursor += 1
            if cursor > first:
                blocks.append((first, cursor))
        if cursor < len(spans):
            blocks.append((cursor, len(spans)))
        return blocks

    def _windows(self, blocks: Sequence[tuple[int, int]]) -> list[tuple[int, int]]:
        # Token index ranges [start, end). ``fresh`` marks where tokens not yet
        # emitted begin; everything in [start, fresh) is overlap.
        windows: list[tuple[int, int]] = []
        start = end = fresh = blocks[0][0]
        for _, block_end in blocks:
            while block_end - start > self.max_tokens:
                if end > fresh:
                    windows.append((start, end))
                    start = max(start, end - self.overlap_tokens)
                else:
                    end = start + self.max_tokens
                    windows.append((start, end))
                    start = end - self.overlap_tokens
                fresh = end
            end = block_end
        if end > fresh:
            windows.append((start, end))
        return windows


def chunk_text(
    text: str,
    max_tokens: int = 1000,
    overlap_tokens: int = 200,
    preserve_paragraphs: bool = True,
    token_unit: str = "word",
) -> list[ChunkSpan]:
    """Split text into chunk spans respecting token budgets."""
    chunker = Chunker(max_tokens, overlap_tokens, preserve_paragraphs, token_unit)
    return chunker.chunk(text)


def extract_page_number(text: str, start_char: int) -> int | None:
    """Return the last page marker (``Page 3``, ``p. 3``) starting at or before ``start_char``."""
    last = None
    for match in _PAGE_RE.finditer(text):
        if match.start() > start_char:
            break
        last = match
    if last is None:
        return None
    return int(last.group(1))


def build_chunks(
    document: Document,
    spans: Sequence[ChunkSpan],
    vectors: Sequence[Sequence[float]],
    embedding_model: str,
) -> list[Chunk]:
    """Attach document metadata and vectors to chunk spans."""
    source_text = normalize_newlines(document.text)
    document_metadata = document.source_metadata()
    chunks: list[Chunk] = []
    for index, (span, vector) in enumerate(zip(spans, vectors, strict=True)):
        page_number = extract_page_number(source_text, span.start_char)
        chunks.append(
            Chunk(
                id=chunk_id(document.id, index),
                document_id=document.id,
                index=index,
                text=span.text,
                token_count=span.token_count,
                start_char=span.start_char,
                end_char=span.end_char,
                vector=tuple(float(value) for value in vector),
                page_number=page_number,
                metadata={
                    "chunkIndex": index,
                    "tokenCount": span.token_count,
                    "startChar": span.start_char,
                    "endChar": span.end_char,
                    "pageNumber": page_number,
                    "embeddingModel": embedding_model,
                },
                document_metadata=document_metadata,
            )
        )
    return chunks


def _iter_segments(text: str) -> Iterator[Segment]:
    last_index = 0
    for match in _SEGMENT_RE.finditer(text):
        segment = _trim_segment(text, last_index, match.start())
        if segment:
            yield segment
        last_index = match.end()
    if last_index < len(text):
        segment = _trim_segment(text, last_index, len(text))
        if segment:
            yield segment


def _trim_segment(text: str, start: int, end: int) -> Segment | None:
    seg_start = start
    seg_end = end
    while seg_start < seg_end and text[seg_start].isspace():
        seg_start += 1
    while seg_end > seg_start and text[seg_end - 1].isspace():
        seg_end -= 1
    if seg_start >= seg_end:
        return None
    return Segment(text=text[seg_start:seg_end], start=seg_start, end=seg_end)


def _build_span(text: str, spans: Sequence[tuple[int, int]], start: int, end: int) -> ChunkSpan:
    start_char = spans[start][0]
    end_char = spans[end - 1][1]
    return ChunkSpan(
        text=text[start_char:end_char],
        start_char=start_char,
        end_char=end_char,
        token_count=end - start,
    )


__all__ = [
    "Chunker",
    "Tokenizer",
    "WordTokenizer",
    "SubwordTokenizer",
    "get_tokenizer",
    "chunk_text",
    "extract_page_number",
    "build_chunks",
]
