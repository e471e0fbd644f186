"""
FastAPI dependencies.

The oracle lives on ``app.state`` (one shared httpx client per process);
sessions and pipelines are created per request.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from studyflow.db.database import get_async_session
from studyflow.generation.oracle import GenerationOracle
from studyflow.pipeline import StudyPipeline


def get_app_settings() -> Settings:
    return get_settings()


def get_oracle(request: Request) -> GenerationOracle:
    oracle = getattr(request.app.state, "oracle", None)
    if oracle is None:
        raise HTTPException(status_code=503, detail="Generation oracle is not initialized")
    return oracle


def get_caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """Verified caller id supplied by the identity layer in front of the service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_pipeline(
    session: AsyncSession = Depends(get_async_session),
    oracle: GenerationOracle = Depends(get_oracle),
    settings: Settings = Depends(get_app_settings),
) -> StudyPipeline:
    return StudyPipeline(session, oracle, settings)
