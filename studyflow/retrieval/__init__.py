"""Chunk retrieval: full-text ranking with ordered fallback, plus oracle reranking."""

from .reranker import Reranker
from .retriever import Retriever

__all__ = [
    "Reranker",
    "Retriever",
]
