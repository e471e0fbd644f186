"""
Chunk Retriever.

Ranks a project's chunks against a query through the store's full-text
ranking. When ranking matches nothing (or the ranking query fails) the
retriever delivers the first chunks in ingestion order with score 0, so
planning never stalls just because the query missed.
"""

from __future__ import annotations

from uuid import UUID

from loguru import logger

from studyflow.db.store import ChunkMatch, LearningStore
from studyflow.errors import StoreError


class Retriever:
    """Full-text chunk ranking with ordered fallback."""

    def __init__(self, store: LearningStore):
        self.store = store

    async def retrieve(
        self,
        project_id: UUID,
        query: str,
        limit: int,
        fallback_limit: int | None = None,
    ) -> list[ChunkMatch]:
        """
        Return ranked chunks for ``query``.

        Args:
            project_id: Project whose chunks are searched
            query: Free-text query
            limit: Maximum ranked results
            fallback_limit: How many ordered chunks to deliver when ranking
                yields nothing (defaults to ``limit``)

        Returns:
            Ranked matches, or the first chunks in ingestion order with score 0.
            Empty only when the project has no chunks at all.
        """
        try:
            matches = await self.store.match_chunks(project_id, query, limit)
        except StoreError as exc:
            logger.warning(f"Ranking failed for project {project_id}, using ordered chunks: {exc}")
            matches = []

        if matches:
            logger.debug(f"Retrieved {len(matches)} ranked chunks for '{query[:60]}'")
            return matches

        fallback = await self.store.first_chunks(project_id, fallback_limit or limit)
        if fallback:
            logger.warning(
                f"No ranked matches for '{query[:60]}' in project {project_id}, "
                f"delivering {len(fallback)} chunks in order"
            )
        return fallback
