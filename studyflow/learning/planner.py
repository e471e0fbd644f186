"""
Study Planner.

Turns an ingested project into topics, a linear roadmap, an assistant
action policy and, when the material allows it, a diagnostic quiz.

Flow:
1. Retrieve with a fixed topic-discovery query (ordered fallback included)
2. Rerank when the candidate list is large
3. Generate against the PlanResult contract
4. Normalize the roadmap (first step available, rest locked, last next=None)
5. Persist onto the project and publish the diagnostic quiz atomically
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from config import Settings
from studyflow.adaptive.roadmap import normalize_roadmap
from studyflow.db.models import Project, ProjectStatus
from studyflow.db.store import ChunkMatch, LearningStore
from studyflow.errors import GenerationContractError, OracleError, PreconditionError, StoreError
from studyflow.generation.contracts import Diagnostic, PlanResult, RoadmapPatch, default_menu_policy
from studyflow.generation.prompts import (
    PLAN_SYSTEM_PROMPT,
    TOPIC_DISCOVERY_QUERY,
    build_plan_patch_prompt,
    build_plan_user_prompt,
)
from studyflow.generation.structured import StructuredGenerator
from studyflow.retrieval import Reranker, Retriever

DIAGNOSTIC_STEP_ID = "diagnostic"
DIAGNOSTIC_TITLE = "Diagnostic quiz"


@dataclass
class PlanOutcome:
    """What a successful plan run persisted."""

    topics: list[dict[str, Any]]
    roadmap: list[dict[str, Any]]
    assistant_menu_policy: dict[str, Any]
    has_diagnostic: bool = False
    diagnostic_artifact_id: str | None = None
    chunks_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "topics": self.topics,
            "roadmap": self.roadmap,
            "assistant_menu_policy": self.assistant_menu_policy,
            "has_diagnostic": self.has_diagnostic,
            "diagnostic_artifact_id": self.diagnostic_artifact_id,
        }


class Planner:
    """Builds and persists a study plan for one project."""

    def __init__(
        self,
        store: LearningStore,
        retriever: Retriever,
        reranker: Reranker,
        generator: StructuredGenerator,
        settings: Settings,
    ):
        self.store = store
        self.retriever = retriever
        self.reranker = reranker
        self.generator = generator
        self.settings = settings

    async def plan(self, project: Project, owner_id: str) -> PlanOutcome:
        """
        Plan a project end to end.

        Raises:
            PreconditionError: No chunks yet (retry after ingest completes)
            GenerationContractError: Plan output never validated; project -> failed
            OracleError: Oracle transport failure; project -> failed
        """
        chunks = await self.retriever.retrieve(
            project.id,
            TOPIC_DISCOVERY_QUERY,
            limit=self.settings.plan_retrieval_limit,
        )
        if not chunks:
            raise PreconditionError("No chunks found. Run ingest first.", project_id=str(project.id))

        chunks = await self.reranker.rerank(
            chunks, "building a study plan: pick the most informative fragments"
        )

        await self.store.set_project_status(project, ProjectStatus.PLANNING, commit=True)
        logger.info(f"Planning project {project.id} from {len(chunks)} chunks")

        try:
            result: PlanResult = await self.generator.generate(
                PLAN_SYSTEM_PROMPT,
                build_plan_user_prompt(chunks),
                validator=PlanResult.model_validate,
                max_retries=self.settings.generation_max_retries,
                label="plan",
            )
        except (GenerationContractError, OracleError) as exc:
            logger.error(f"Plan generation failed for project {project.id}: {exc}")
            await self.store.set_project_status(project, ProjectStatus.FAILED, commit=True)
            raise

        roadmap = normalize_roadmap(result.roadmap)
        topics = [t.model_dump() for t in result.topics]
        policy = (
            result.assistant_menu_policy.model_dump()
            if result.assistant_menu_policy and result.assistant_menu_policy.items
            else default_menu_policy()
        )
        await self.store.update_project(project, topics=topics, roadmap=roadmap, assistant_menu_policy=policy)

        outcome = PlanOutcome(
            topics=topics,
            roadmap=roadmap,
            assistant_menu_policy=policy,
            chunks_used=len(chunks),
        )
        if result.diagnostic is not None:
            outcome.diagnostic_artifact_id = await self._publish_diagnostic(project, owner_id, result.diagnostic)
            outcome.has_diagnostic = outcome.diagnostic_artifact_id is not None

        await self.store.set_project_status(project, ProjectStatus.PLANNED)
        logger.info(
            f"Planned project {project.id}: {len(topics)} topics, {len(roadmap)} steps, "
            f"diagnostic={outcome.has_diagnostic}"
        )
        return outcome

    async def replan(
        self,
        current_roadmap: list[dict[str, Any]],
        checkin: dict[str, Any],
        chunks: list[ChunkMatch],
    ) -> RoadmapPatch:
        """
        Re-invoke the plan contract seeded with the current roadmap and check-in data.

        Nothing is persisted here; the caller decides what to keep.
        """
        return await self.generator.generate(
            PLAN_SYSTEM_PROMPT,
            build_plan_patch_prompt(current_roadmap, checkin, chunks),
            validator=RoadmapPatch.model_validate,
            max_retries=self.settings.checkin_max_retries,
            label="replan",
        )

    async def _publish_diagnostic(self, project: Project, owner_id: str, diagnostic: Diagnostic) -> str | None:
        if not diagnostic.is_usable:
            if diagnostic.enabled:
                logger.warning(f"Skipping diagnostic for project {project.id}: questions or answer key incomplete")
            return None

        public = {
            "kind": "quiz",
            "questions": [q.model_dump() for q in diagnostic.quiz.questions],
            "shuffle": False,
        }
        private = {
            "kind": "quiz",
            "answer_key": [entry.model_dump() for entry in diagnostic.answer_key],
            "passing_score": self.settings.passing_score,
        }
        try:
            artifact = await self.store.create_artifact_with_private(
                project,
                owner_id,
                title=DIAGNOSTIC_TITLE,
                kind="quiz",
                public_json=public,
                private_json=private,
                roadmap_step_id=DIAGNOSTIC_STEP_ID,
                sort_order=0,
            )
        except StoreError as exc:
            # The plan itself is still usable without the diagnostic
            logger.warning(f"Diagnostic not published for project {project.id}: {exc}")
            return None
        return str(artifact.id)
