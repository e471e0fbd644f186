"""
Oracle-assisted Reranker.

Asks the generation oracle to pick the most relevant subset of a large
candidate list. Reranking is an optimization: any failure returns the
candidates unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from studyflow.db.store import ChunkMatch
from studyflow.errors import StudyFlowError
from studyflow.generation.contracts import RerankSelection
from studyflow.generation.prompts import build_rerank_prompts
from studyflow.generation.structured import StructuredGenerator

SELECTION_SCHEMA = {
    "type": "object",
    "properties": {"selected": {"type": "array", "items": {"type": "integer"}, "minItems": 1}},
    "required": ["selected"],
}


class Reranker:
    """Select a focused subset of candidate chunks with one oracle call."""

    def __init__(
        self,
        generator: StructuredGenerator,
        threshold: int = 10,
        target_min: int = 8,
        target_max: int = 12,
        max_retries: int = 1,
        temperature: float = 0.1,
    ):
        self.generator = generator
        self.threshold = threshold
        self.target_min = target_min
        self.target_max = target_max
        self.max_retries = max_retries
        self.temperature = temperature

    async def rerank(self, candidates: Sequence[ChunkMatch], task: str) -> list[ChunkMatch]:
        """
        Return the selected candidates in the order the oracle chose them.

        Lists at or below the threshold are returned as-is without a call.
        Out-of-range and repeated indices are dropped; if nothing usable
        remains, or the call fails, the original list comes back.
        """
        candidates = list(candidates)
        if len(candidates) <= self.threshold:
            return candidates

        system, user = build_rerank_prompts(candidates, task, self.target_min, self.target_max)
        try:
            selection = await self.generator.generate(
                system,
                user,
                validator=RerankSelection.model_validate,
                max_retries=self.max_retries,
                temperature=self.temperature,
                response_schema=SELECTION_SCHEMA,
                label="rerank",
            )
        except StudyFlowError as exc:
            logger.warning(f"Rerank failed, using all {len(candidates)} candidates: {exc}")
            return candidates

        chosen: list[ChunkMatch] = []
        seen: set[int] = set()
        for index in selection.selected:
            if 0 <= index < len(candidates) and index not in seen:
                seen.add(index)
                chosen.append(candidates[index])
            if len(chosen) >= self.target_max:
                break

        if not chosen:
            logger.warning("Rerank selected no valid indices, using all candidates")
            return candidates
        logger.debug(f"Reranked {len(candidates)} candidates down to {len(chosen)}")
        return chosen
