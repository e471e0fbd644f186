"""
Study pipeline entry points.

StudyPipeline is a request-scoped service: build one per request with a
session and an oracle, call one entry point, discard it. All state lives
in the database; ownership is checked on every call.

Entry points:
    create_project  - new empty project
    ingest          - chunk documents and replace the project's chunk set
    plan            - topics, roadmap, assistant policy, optional diagnostic
    act             - one learning artifact or inline note
    submit          - grade a submission into a new attempt
    checkin         - adapt the roadmap to recent performance

Learner-facing reads (never include private payloads):
    get_project, list_artifacts, get_artifact
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from studyflow.adaptive import CheckinAdapter, CheckinSignals
from studyflow.db.models import Project, ProjectStatus
from studyflow.db.store import LearningStore
from studyflow.errors import StoreError, ValidationError
from studyflow.generation.oracle import GenerationOracle
from studyflow.generation.structured import StructuredGenerator
from studyflow.learning import ActionType, ActRequest, Actor, Grader, Planner
from studyflow.processing import Chunker
from studyflow.retrieval import Reranker, Retriever


def _project_view(project: Project) -> dict[str, Any]:
    return {
        "id": str(project.id),
        "title": project.title,
        "status": project.status,
        "topics": project.topics or [],
        "roadmap": project.roadmap or [],
        "assistant_menu_policy": project.assistant_menu_policy,
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
    }


class StudyPipeline:
    """Wires the store, retrieval and generation stack for one unit of work."""

    def __init__(
        self,
        session: AsyncSession,
        oracle: GenerationOracle,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = LearningStore(session, fts_config=self.settings.fts_config)
        self.generator = StructuredGenerator(
            oracle,
            max_retries=self.settings.generation_max_retries,
            temperature=self.settings.ai_temperature,
        )
        self.retriever = Retriever(self.store)
        self.reranker = Reranker(
            self.generator,
            threshold=self.settings.rerank_threshold,
            max_retries=self.settings.rerank_max_retries,
        )
        self.planner = Planner(self.store, self.retriever, self.reranker, self.generator, self.settings)
        self.grader = Grader(self.store, self.retriever, self.generator, self.settings)
        self.actor = Actor(
            self.store, self.retriever, self.reranker, self.generator, self.grader, self.settings
        )
        self.checkin_adapter = CheckinAdapter(self.store, self.planner, self.settings)

    # =========================================================================
    # Entry points
    # =========================================================================

    async def create_project(self, owner_id: str, title: str | None = None) -> dict[str, Any]:
        project = await self.store.create_project(owner_id, (title or "").strip() or "Untitled project")
        await self.store.commit()
        return _project_view(project)

    async def ingest(
        self,
        project_id: UUID | str,
        owner_id: str,
        documents: list[dict[str, Any]],
        chunking: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Chunk documents and replace the project's chunk set.

        Raises:
            ValidationError: No documents, oversize document, or no text at all
            ConfigError: Invalid chunking parameters
            StoreError: Chunk write failed (project -> failed)
        """
        project = await self.store.get_owned_project(project_id, owner_id)
        pairs = self._validate_documents(documents)

        chunking = chunking or {}
        chunker = Chunker(
            max_chars=int(chunking.get("max_chars") or self.settings.chunk_max_chars),
            overlap=int(
                chunking["overlap"] if chunking.get("overlap") is not None else self.settings.chunk_overlap
            ),
        )
        chunks, stats = chunker.chunk_documents(pairs)
        if not chunks:
            raise ValidationError("No text found in the provided documents")

        await self.store.set_project_status(project, ProjectStatus.INGESTING, commit=True)
        try:
            created = await self.store.replace_chunks(
                project.id, owner_id, chunks, batch_size=self.settings.ingest_batch_size
            )
        except StoreError:
            await self.store.rollback()
            await self.store.session.refresh(project)
            await self.store.set_project_status(project, ProjectStatus.FAILED, commit=True)
            raise
        await self.store.set_project_status(project, ProjectStatus.INGESTED)
        await self.store.commit()

        logger.info(
            f"Ingested {stats.documents - stats.skipped_documents} documents into project {project.id}: "
            f"{created} chunks"
        )
        return {"chunks_created": created, "documents": stats.documents, "skipped_documents": stats.skipped_documents}

    async def plan(self, project_id: UUID | str, owner_id: str) -> dict[str, Any]:
        project = await self.store.get_owned_project(project_id, owner_id)
        outcome = await self.planner.plan(project, owner_id)
        await self.store.commit()
        return outcome.to_dict()

    async def act(
        self,
        project_id: UUID | str,
        owner_id: str,
        action_type: str,
        context: str | None = None,
        target: dict[str, Any] | None = None,
        user_answer: str | None = None,
    ) -> dict[str, Any]:
        project = await self.store.get_owned_project(project_id, owner_id)
        if target is not None and not isinstance(target, dict):
            raise ValidationError("target must be an object")
        request = ActRequest(
            action_type=ActionType.parse(action_type),
            context=context,
            target=dict(target or {}),
            user_answer=user_answer,
        )
        outcome = await self.actor.act(project, owner_id, request)
        await self.store.commit()
        return outcome.to_dict()

    async def submit(self, artifact_id: UUID | str, learner_id: str, answers: Any) -> dict[str, Any]:
        artifact = await self.store.get_owned_artifact(artifact_id, learner_id)
        outcome = await self.grader.submit(artifact, learner_id, answers)
        await self.store.commit()
        return outcome.to_dict()

    async def checkin(
        self,
        project_id: UUID | str,
        owner_id: str,
        signals: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        project = await self.store.get_owned_project(project_id, owner_id)
        result = await self.checkin_adapter.checkin(project, owner_id, CheckinSignals.from_dict(signals))
        await self.store.commit()
        return result.to_dict()

    # =========================================================================
    # Learner-facing reads
    # =========================================================================

    async def get_project(self, project_id: UUID | str, owner_id: str) -> dict[str, Any]:
        project = await self.store.get_owned_project(project_id, owner_id)
        view = _project_view(project)
        view["chunk_count"] = await self.store.count_chunks(project.id)
        return view

    async def list_artifacts(self, project_id: UUID | str, owner_id: str) -> list[dict[str, Any]]:
        return await self.store.list_artifacts(project_id, owner_id)

    async def get_artifact(self, artifact_id: UUID | str, owner_id: str) -> dict[str, Any]:
        return await self.store.get_artifact_public(artifact_id, owner_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate_documents(self, documents: Any) -> list[tuple[str, str]]:
        if not isinstance(documents, list) or not documents:
            raise ValidationError("documents must be a non-empty list of {file_name, text}")
        limit = self.settings.ingest_max_document_chars
        pairs: list[tuple[str, str]] = []
        for i, doc in enumerate(documents):
            if not isinstance(doc, dict) or not isinstance(doc.get("text", ""), str):
                raise ValidationError(f"documents[{i}] must be an object with a text field", index=i)
            text = doc.get("text") or ""
            file_name = str(doc.get("file_name") or f"document_{i + 1}")
            if len(text) > limit:
                raise ValidationError(
                    f"Document '{file_name}' has {len(text)} characters, the limit is {limit}",
                    file_name=file_name,
                )
            pairs.append((file_name, text))
        return pairs
