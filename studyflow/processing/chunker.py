"""
Overlapping Text Chunker.

Splits extracted document text into bounded, overlapping segments that
become the unit of retrieval. Each chunk carries its positional metadata
so generated artifacts can cite the exact slice of source they used.

Key Features:
1. Every chunk is at most ``max_chars`` long
2. Each chunk after the first starts ``overlap`` characters before its
   predecessor ends, so no sentence is lost at a boundary
3. Chunks cover the whole text with no gaps
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator

from studyflow.errors import ConfigError


@dataclass
class TextChunk:
    """
    A bounded slice of a source document.

    Attributes:
        content: The chunk text
        file_name: Name of the document this slice came from
        chunk_index: Position of the chunk within its document
        start_char: Offset of the first character (inclusive)
        end_char: Offset after the last character (exclusive)
    """
    content: str
    file_name: str
    chunk_index: int
    start_char: int
    end_char: int
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        """Metadata stored alongside the chunk row."""
        return {
            "file_name": self.file_name,
            "chunk_index": self.chunk_index,
            "start_char": self.start_char,
            "end_char": self.end_char,
            **self.extra,
        }

    @property
    def char_count(self) -> int:
        return self.end_char - self.start_char


@dataclass
class ChunkingStats:
    """Summary of one chunking run across documents."""
    documents: int = 0
    skipped_documents: int = 0
    chunks: int = 0
    total_chars: int = 0

    @property
    def avg_chunk_chars(self) -> float:
        return self.total_chars / self.chunks if self.chunks else 0.0


class Chunker:
    """
    Fixed-window chunker with overlap.

    The window advances by ``max_chars - overlap`` characters, so the
    overlap must be strictly smaller than the window or it would never
    advance.
    """

    def __init__(self, max_chars: int = 1200, overlap: int = 150):
        """
        Initialize the chunker.

        Args:
            max_chars: Maximum characters per chunk
            overlap: Characters shared with the previous chunk

        Raises:
            ConfigError: If the parameters would never advance the window
        """
        if max_chars <= 0:
            raise ConfigError(f"max_chars must be positive, got {max_chars}")
        if overlap < 0:
            raise ConfigError(f"overlap must not be negative, got {overlap}")
        if overlap >= max_chars:
            raise ConfigError(
                f"overlap ({overlap}) must be smaller than max_chars ({max_chars})",
                max_chars=max_chars,
                overlap=overlap,
            )
        self.max_chars = max_chars
        self.overlap = overlap

    def iter_chunks(self, text: str, file_name: str = "unknown") -> Iterator[TextChunk]:
        """Yield chunks of ``text`` in order."""
        length = len(text)
        start = 0
        index = 0
        while start < length:
            end = min(start + self.max_chars, length)
            yield TextChunk(
                content=text[start:end],
                file_name=file_name,
                chunk_index=index,
                start_char=start,
                end_char=end,
            )
            if end >= length:
                break
            start = end - self.overlap
            index += 1

    def chunk_text(self, text: str, file_name: str = "unknown") -> list[TextChunk]:
        """Split a single document into chunks."""
        return list(self.iter_chunks(text, file_name))

    def chunk_documents(
        self,
        documents: list[tuple[str, str]],
    ) -> tuple[list[TextChunk], ChunkingStats]:
        """
        Chunk several documents, skipping blank ones.

        Args:
            documents: (file_name, text) pairs

        Returns:
            All chunks in ingestion order plus run statistics
        """
        stats = ChunkingStats()
        chunks: list[TextChunk] = []
        for file_name, text in documents:
            stats.documents += 1
            if not text or not text.strip():
                stats.skipped_documents += 1
                continue
            for chunk in self.iter_chunks(text, file_name):
                chunks.append(chunk)
                stats.chunks += 1
                stats.total_chars += chunk.char_count
        return chunks, stats
