"""
Processing module for source document chunking.

Breaks extracted document text into overlapping, bounded chunks with
positional metadata. Chunks are the unit of retrieval for planning and
artifact generation.
"""

from .chunker import (
    Chunker,
    ChunkingStats,
    TextChunk,
)

__all__ = [
    "Chunker",
    "ChunkingStats",
    "TextChunk",
]
