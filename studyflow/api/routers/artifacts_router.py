"""
Artifacts API Router.

Learner-facing artifact reads and submissions. Only public payloads
leave this router; grading reads answer keys internally.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from studyflow.api.dependencies import get_caller_id, get_pipeline
from studyflow.pipeline import StudyPipeline

router = APIRouter()


class AnswerIn(BaseModel):
    block_id: str = Field(..., min_length=1, description="Question or block id")
    value: Any = Field(None, description="Option id, list of option ids, or free text")


class SubmitRequest(BaseModel):
    answers: list[AnswerIn] = Field(..., min_length=1)


@router.get("/{artifact_id}", summary="Get artifact")
async def get_artifact(
    artifact_id: str,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.get_artifact(artifact_id, caller)


@router.post("/{artifact_id}/submit", summary="Submit answers")
async def submit(
    artifact_id: str,
    body: SubmitRequest,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Grade a submission. Every call records a new attempt."""
    return await pipeline.submit(artifact_id, caller, [a.model_dump() for a in body.answers])
