"""
Projects API Router.

Endpoints for the project lifecycle:
- Create a project
- Ingest documents (replaces the chunk set)
- Plan (topics, roadmap, assistant policy, diagnostic)
- Act (generate an artifact or an inline note)
- Check-in (adapt the roadmap)
- Read the project and its artifacts
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from studyflow.api.dependencies import get_caller_id, get_pipeline
from studyflow.pipeline import StudyPipeline

router = APIRouter()


# ========================================
# Request Models
# ========================================


class ProjectCreateRequest(BaseModel):
    title: str | None = Field(None, description="Project title")


class DocumentIn(BaseModel):
    file_name: str = Field("document", description="Source file name")
    text: str = Field(..., description="Extracted document text")


class ChunkingIn(BaseModel):
    max_chars: int | None = Field(None, gt=0, description="Maximum characters per chunk")
    overlap: int | None = Field(None, ge=0, description="Characters shared with the previous chunk")


class IngestRequest(BaseModel):
    documents: list[DocumentIn] = Field(..., min_length=1)
    chunking: ChunkingIn | None = None


class ActRequestBody(BaseModel):
    action_type: str = Field(..., description="Action to perform, e.g. generate_quiz or explain_term")
    context: str | None = Field(None, description="Free-text context from the learner's view")
    target: dict[str, Any] | None = Field(None, description="term, selected_text, topic_id")
    user_answer: str | None = Field(None, description="Learner answer (grade_open only)")


class CheckinSignalsIn(BaseModel):
    hard_topics: list[str] = Field(default_factory=list)
    pace: str | None = Field(None, description="too_slow, ok or too_fast")
    add_more: bool = False


class CheckinRequest(BaseModel):
    signals: CheckinSignalsIn = Field(default_factory=CheckinSignalsIn)


# ========================================
# Endpoints
# ========================================


@router.post("", status_code=201, summary="Create project")
async def create_project(
    body: ProjectCreateRequest,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.create_project(caller, body.title)


@router.get("/{project_id}", summary="Get project")
async def get_project(
    project_id: str,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.get_project(project_id, caller)


@router.get("/{project_id}/artifacts", summary="List artifacts")
async def list_artifacts(
    project_id: str,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> list[dict[str, Any]]:
    """Published artifacts of a project. Answer keys are never included."""
    return await pipeline.list_artifacts(project_id, caller)


@router.post("/{project_id}/ingest", summary="Ingest documents")
async def ingest(
    project_id: str,
    body: IngestRequest,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Chunk the documents and replace the project's previous chunk set."""
    logger.info(f"Ingest request for project {project_id}: {len(body.documents)} documents")
    return await pipeline.ingest(
        project_id,
        caller,
        [doc.model_dump() for doc in body.documents],
        body.chunking.model_dump(exclude_none=True) if body.chunking else None,
    )


@router.post("/{project_id}/plan", summary="Build study plan")
async def plan(
    project_id: str,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.plan(project_id, caller)


@router.post("/{project_id}/act", summary="Run a learning action")
async def act(
    project_id: str,
    body: ActRequestBody,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """
    Generate an artifact or an inline note.

    Generation actions return the new artifact_id; note actions and
    grade_open return artifact_id null and persist nothing.
    """
    return await pipeline.act(
        project_id,
        caller,
        body.action_type,
        context=body.context,
        target=body.target,
        user_answer=body.user_answer,
    )


@router.post("/{project_id}/checkin", summary="Check in and adapt roadmap")
async def checkin(
    project_id: str,
    body: CheckinRequest,
    caller: str = Depends(get_caller_id),
    pipeline: StudyPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    return await pipeline.checkin(project_id, caller, body.signals.model_dump())
