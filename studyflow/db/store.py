"""
Persistent store facade.

Wraps an async SQLAlchemy session with the operations the pipeline needs:
project CRUD with ownership checks, chunk replacement, full-text chunk
ranking, atomic artifact + private payload writes, and attempts.

Read paths are split by audience:
- get_artifact_public / list_artifacts: learner-facing, never touch ArtifactPrivate
- get_artifact_private: grading path only
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import cast, delete, func, literal, select
from sqlalchemy.dialects.postgresql import REGCONFIG
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studyflow.db.models import (
    Artifact,
    ArtifactPrivate,
    ArtifactStatus,
    Attempt,
    Project,
    ProjectChunk,
    ProjectStatus,
)
from studyflow.db.models.base import utcnow
from studyflow.errors import AuthorizationError, NotFoundError, StoreError, ValidationError
from studyflow.processing import TextChunk

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


@dataclass
class ChunkMatch:
    """One ranked retrieval hit."""

    id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "metadata": self.metadata, "score": self.score}


def _as_uuid(value: UUID | str, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"{label} is not a valid id: {value!r}") from exc


class LearningStore:
    """Store operations over one request-scoped async session."""

    def __init__(self, session: AsyncSession, fts_config: str = "simple"):
        self.session = session
        self.fts_config = fts_config

    async def commit(self) -> None:
        """Commit the current unit of work (used for visible status transitions)."""
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError(f"Commit failed: {exc}") from exc

    async def rollback(self) -> None:
        await self.session.rollback()

    # =========================================================================
    # Projects
    # =========================================================================

    async def create_project(self, owner_id: str, title: str = "Untitled project") -> Project:
        project = Project(owner_id=owner_id, title=title, status=ProjectStatus.CREATED)
        try:
            self.session.add(project)
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create project: {exc}") from exc
        logger.info(f"Created project {project.id} for {owner_id}")
        return project

    async def get_owned_project(self, project_id: UUID | str, owner_id: str) -> Project:
        """Load a project and verify the caller owns it."""
        project = await self.session.get(Project, _as_uuid(project_id, "project_id"), populate_existing=True)
        if project is None:
            raise NotFoundError("Project not found", project_id=str(project_id))
        if project.owner_id != owner_id:
            raise AuthorizationError("Project belongs to another user", project_id=str(project_id))
        return project

    async def update_project(self, project: Project, **fields: Any) -> Project:
        for name, value in fields.items():
            setattr(project, name, value)
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to update project {project.id}: {exc}") from exc
        return project

    async def set_project_status(self, project: Project, status: str, commit: bool = False) -> None:
        if status not in ProjectStatus.ALL:
            raise ValidationError(f"Unknown project status: {status}")
        await self.update_project(project, status=status)
        if commit:
            await self.commit()

    # =========================================================================
    # Chunks
    # =========================================================================

    async def replace_chunks(
        self,
        project_id: UUID,
        owner_id: str,
        chunks: Sequence[TextChunk],
        batch_size: int = 50,
    ) -> int:
        """
        Replace the project's chunk set (delete-then-insert in batches).

        Returns:
            Number of chunks inserted
        """
        try:
            await self.session.execute(delete(ProjectChunk).where(ProjectChunk.project_id == project_id))
            inserted = 0
            for offset in range(0, len(chunks), batch_size):
                batch = [
                    ProjectChunk(
                        project_id=project_id,
                        owner_id=owner_id,
                        content=chunk.content,
                        chunk_metadata=chunk.metadata,
                        seq=offset + i,
                    )
                    for i, chunk in enumerate(chunks[offset : offset + batch_size])
                ]
                self.session.add_all(batch)
                await self.session.flush()
                inserted += len(batch)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to insert chunks: {exc}") from exc
        return inserted

    async def count_chunks(self, project_id: UUID) -> int:
        stmt = select(func.count()).select_from(ProjectChunk).where(ProjectChunk.project_id == project_id)
        return int(await self.session.scalar(stmt) or 0)

    async def first_chunks(self, project_id: UUID, limit: int) -> list[ChunkMatch]:
        """Chunks in ingestion order, score 0."""
        stmt = (
            select(ProjectChunk)
            .where(ProjectChunk.project_id == project_id)
            .order_by(ProjectChunk.seq)
            .limit(limit)
        )
        rows = await self.session.scalars(stmt)
        return [
            ChunkMatch(id=str(row.id), content=row.content, metadata=row.chunk_metadata or {}, score=0.0)
            for row in rows
        ]

    async def match_chunks(self, project_id: UUID, query: str, limit: int) -> list[ChunkMatch]:
        """
        Rank the project's chunks against ``query``.

        PostgreSQL uses ts_rank over to_tsvector(fts_config, content). Other
        dialects rank by query-term frequency, which keeps the same contract
        (only matching chunks, best first) for local databases.
        """
        if not query.strip() or limit <= 0:
            return []
        if self.session.get_bind().dialect.name == "postgresql":
            return await self._match_chunks_postgres(project_id, query, limit)
        return await self._match_chunks_terms(project_id, query, limit)

    async def _match_chunks_postgres(self, project_id: UUID, query: str, limit: int) -> list[ChunkMatch]:
        config = cast(literal(self.fts_config), REGCONFIG)
        ts_query = func.plainto_tsquery(config, query)
        vector = func.to_tsvector(config, ProjectChunk.content)
        rank = func.ts_rank(vector, ts_query).label("score")
        stmt = (
            select(ProjectChunk.id, ProjectChunk.content, ProjectChunk.chunk_metadata, rank)
            .where(ProjectChunk.project_id == project_id)
            .where(vector.op("@@")(ts_query))
            .order_by(rank.desc(), ProjectChunk.seq)
            .limit(limit)
        )
        # A failed ranking query must not poison the surrounding transaction
        savepoint = await self.session.begin_nested()
        try:
            rows = (await self.session.execute(stmt)).all()
            await savepoint.commit()
        except SQLAlchemyError as exc:
            await savepoint.rollback()
            raise StoreError(f"Chunk ranking failed: {exc}") from exc
        return [
            ChunkMatch(id=str(row.id), content=row.content, metadata=row.chunk_metadata or {}, score=float(row.score))
            for row in rows
        ]

    async def _match_chunks_terms(self, project_id: UUID, query: str, limit: int) -> list[ChunkMatch]:
        terms = {t.lower() for t in _TOKEN_RE.findall(query)}
        if not terms:
            return []
        stmt = select(ProjectChunk).where(ProjectChunk.project_id == project_id).order_by(ProjectChunk.seq)
        scored: list[tuple[float, int, ProjectChunk]] = []
        for row in await self.session.scalars(stmt):
            tokens = [t.lower() for t in _TOKEN_RE.findall(row.content)]
            hits = sum(1 for t in tokens if t in terms)
            if hits:
                scored.append((hits / (1.0 + math.log(len(tokens) + 1)), row.seq, row))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            ChunkMatch(id=str(row.id), content=row.content, metadata=row.chunk_metadata or {}, score=round(score, 6))
            for score, _, row in scored[:limit]
        ]

    # =========================================================================
    # Artifacts
    # =========================================================================

    async def create_artifact_with_private(
        self,
        project: Project,
        owner_id: str,
        title: str,
        kind: str,
        public_json: dict[str, Any],
        private_json: dict[str, Any] | None = None,
        roadmap_step_id: str | None = None,
        sort_order: int | None = None,
    ) -> Artifact:
        """
        Persist an artifact and its private payload as one unit.

        Both rows are written inside a savepoint. If the private write
        fails the savepoint is rolled back, so no artifact survives
        without the answer key it promised.
        """
        project_id = project.id
        artifact = Artifact(
            project_id=project_id,
            owner_id=owner_id,
            title=title,
            kind=kind,
            public_json=public_json,
            status=ArtifactStatus.PUBLISHED,
            roadmap_step_id=roadmap_step_id,
            sort_order=sort_order,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(artifact)
                await self.session.flush()
                if private_json is not None:
                    self.session.add(
                        ArtifactPrivate(artifact_id=artifact.id, owner_id=owner_id, private_json=private_json)
                    )
                    await self.session.flush()
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            # TypeError/ValueError: payload is not JSON serializable
            logger.error(f"Artifact write rolled back for project {project_id}: {exc}")
            raise StoreError(f"Failed to persist artifact '{title}': {exc}") from exc
        logger.info(f"Created {kind} artifact {artifact.id} (private={private_json is not None})")
        return artifact

    async def get_owned_artifact(self, artifact_id: UUID | str, owner_id: str) -> Artifact:
        stmt = (
            select(Artifact, Project.owner_id)
            .join(Project, Project.id == Artifact.project_id)
            .where(Artifact.id == _as_uuid(artifact_id, "artifact_id"))
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Artifact not found", artifact_id=str(artifact_id))
        artifact, project_owner = row
        if artifact.owner_id != owner_id or project_owner != owner_id:
            raise AuthorizationError("Artifact belongs to another user", artifact_id=str(artifact_id))
        return artifact

    async def get_artifact_public(self, artifact_id: UUID | str, owner_id: str) -> dict[str, Any]:
        """Learner-facing view of an artifact. Contains no private payload."""
        return _public_view(await self.get_owned_artifact(artifact_id, owner_id))

    async def list_artifacts(self, project_id: UUID | str, owner_id: str) -> list[dict[str, Any]]:
        """Learner-facing list of published artifacts for a project."""
        project = await self.get_owned_project(project_id, owner_id)
        stmt = (
            select(Artifact)
            .where(Artifact.project_id == project.id)
            .where(Artifact.status == ArtifactStatus.PUBLISHED)
            .order_by(Artifact.sort_order.is_(None), Artifact.sort_order, Artifact.created_at)
        )
        return [_public_view(a) for a in await self.session.scalars(stmt)]

    async def get_artifact_private(self, artifact_id: UUID) -> dict[str, Any] | None:
        """Private payload for grading. Must not be used on learner-facing paths."""
        row = await self.session.get(ArtifactPrivate, artifact_id)
        return dict(row.private_json) if row is not None else None

    # =========================================================================
    # Attempts
    # =========================================================================

    async def create_attempt(
        self,
        artifact: Artifact,
        learner_id: str,
        answers: list[dict[str, Any]],
        score: int | None,
        feedback: dict[str, Any],
    ) -> Attempt:
        attempt = Attempt(
            artifact_id=artifact.id,
            project_id=artifact.project_id,
            learner_id=learner_id,
            answers=answers,
            score=score,
            feedback=feedback,
            status="completed",
            completed_at=utcnow(),
        )
        try:
            self.session.add(attempt)
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to record attempt for artifact {artifact.id}: {exc}") from exc
        return attempt

    async def recent_attempt_scores(self, learner_id: str, project_id: UUID, limit: int) -> list[int | None]:
        """Scores of the learner's most recent attempts in a project, newest first."""
        stmt = (
            select(Attempt.score)
            .where(Attempt.learner_id == learner_id)
            .where(Attempt.project_id == project_id)
            .order_by(Attempt.created_at.desc())
            .limit(limit)
        )
        return list(await self.session.scalars(stmt))


def _public_view(artifact: Artifact) -> dict[str, Any]:
    return {
        "id": str(artifact.id),
        "project_id": str(artifact.project_id),
        "title": artifact.title,
        "kind": artifact.kind,
        "status": artifact.status,
        "public_payload": artifact.public_json,
        "roadmap_step_id": artifact.roadmap_step_id,
        "sort_order": artifact.sort_order,
        "created_at": artifact.created_at.isoformat() if artifact.created_at else None,
    }
