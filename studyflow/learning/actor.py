"""
Learning Actor.

Produces one learning unit for a requested action:

- Generation actions (quiz, flashcards, slides, method pack, lesson blocks,
  remediation) persist exactly one artifact, plus its private payload
  when there is one, as a single atomic write.
- Note actions (explain term, example, expand selection, explain
  mistake/correct answer, hint) return an inline assistant note and
  persist nothing.
- grade_open is delegated to the Grader and is inline as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from config import Settings
from studyflow.db.models import Project
from studyflow.db.store import LearningStore
from studyflow.errors import ValidationError
from studyflow.generation.contracts import (
    ActResult,
    AssistantNotePayload,
    QuizPrivate,
    quiz_answer_key_matches,
)
from studyflow.generation.prompts import build_act_system_prompt, build_act_user_prompt
from studyflow.generation.structured import StructuredGenerator
from studyflow.retrieval import Reranker, Retriever

from .grader import Grader
from .notes import dump_note, to_assistant_note


class ActionType(str, Enum):
    """Actions a learner can request."""

    GENERATE_QUIZ = "generate_quiz"
    GENERATE_FLASHCARDS = "generate_flashcards"
    GENERATE_SLIDES = "generate_slides"
    GENERATE_METHOD_PACK = "generate_method_pack"
    GENERATE_LESSON_BLOCKS = "generate_lesson_blocks"
    REMEDIATE_TOPIC = "remediate_topic"
    EXPLAIN_TERM = "explain_term"
    GIVE_EXAMPLE = "give_example"
    EXPAND_SELECTION = "expand_selection"
    EXPLAIN_MISTAKE = "explain_mistake"
    EXPLAIN_CORRECT = "explain_correct"
    GIVE_HINT = "give_hint"
    GRADE_OPEN = "grade_open"

    @classmethod
    def parse(cls, value: str | ActionType) -> ActionType:
        try:
            return cls(value)
        except ValueError as exc:
            allowed = ", ".join(a.value for a in cls)
            raise ValidationError(f"Unknown action_type '{value}'. Allowed: {allowed}") from exc


NOTE_ACTIONS = frozenset(
    {
        ActionType.EXPLAIN_TERM,
        ActionType.GIVE_EXAMPLE,
        ActionType.EXPAND_SELECTION,
        ActionType.EXPLAIN_MISTAKE,
        ActionType.EXPLAIN_CORRECT,
        ActionType.GIVE_HINT,
    }
)

# Artifact kind each persisted action must produce
ARTIFACT_KINDS: dict[ActionType, str] = {
    ActionType.GENERATE_QUIZ: "quiz",
    ActionType.GENERATE_FLASHCARDS: "flashcards",
    ActionType.GENERATE_SLIDES: "slides",
    ActionType.GENERATE_METHOD_PACK: "method_pack",
    ActionType.GENERATE_LESSON_BLOCKS: "course",
    ActionType.REMEDIATE_TOPIC: "course",
}


@dataclass
class ActRequest:
    """One action request from a learner."""

    action_type: ActionType
    context: str | None = None
    target: dict[str, Any] = field(default_factory=dict)
    user_answer: str | None = None

    def retrieval_query(self) -> str:
        parts = [
            str(self.target.get("term") or ""),
            str(self.target.get("selected_text") or "")[:200],
            str(self.target.get("topic_id") or ""),
            (self.context or "")[:200],
        ]
        query = " ".join(p for p in parts if p.strip())
        return query or self.action_type.value

    def subject(self) -> str:
        return str(
            self.target.get("term")
            or self.target.get("topic_id")
            or self.target.get("artifact_id")
            or "artifact"
        )


@dataclass
class ActOutcome:
    """Response of one action; artifact_id is None for inline results."""

    public_payload: dict[str, Any]
    source_refs: list[str]
    ui_hints: dict[str, Any]
    artifact_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact_id": self.artifact_id,
            "public_payload": self.public_payload,
            "source_refs": self.source_refs,
            "ui_hints": self.ui_hints,
        }


def act_validator(action: ActionType):
    """Build the contract check for one action type."""

    def validate(data: Any) -> ActResult:
        result = ActResult.model_validate(data)
        expected = ARTIFACT_KINDS.get(action)
        kind = result.public_payload.kind
        if action in NOTE_ACTIONS:
            # Any shape is accepted; it is flattened into a note afterwards
            return result
        if expected is not None and kind != expected:
            raise ValueError(f"public_payload.kind must be '{expected}' for {action.value}, got '{kind}'")
        if action is ActionType.GENERATE_QUIZ:
            if not isinstance(result.private_payload, QuizPrivate):
                raise ValueError("generate_quiz requires a private_payload of kind 'quiz' with an answer_key")
            missing = quiz_answer_key_matches(result.public_payload, result.private_payload)
            if missing:
                raise ValueError(f"answer_key references unknown question ids: {missing}")
        return result

    return validate


class Actor:
    """Runs one learner action against a project."""

    def __init__(
        self,
        store: LearningStore,
        retriever: Retriever,
        reranker: Reranker,
        generator: StructuredGenerator,
        grader: Grader,
        settings: Settings,
    ):
        self.store = store
        self.retriever = retriever
        self.reranker = reranker
        self.generator = generator
        self.grader = grader
        self.settings = settings

    async def act(self, project: Project, owner_id: str, request: ActRequest) -> ActOutcome:
        """
        Execute an action.

        Raises:
            ValidationError: grade_open without an answer
            GenerationContractError / OracleError: generation failed
            StoreError: the artifact could not be persisted
        """
        action = request.action_type
        logger.info(f"Act {action.value} on project {project.id}")

        if action is ActionType.GRADE_OPEN:
            return await self._grade_open(project, request)

        query = request.retrieval_query()
        chunks = await self.retriever.retrieve(
            project.id,
            query,
            limit=self.settings.act_retrieval_limit,
            fallback_limit=self.settings.act_fallback_limit,
        )
        chunks = await self.reranker.rerank(chunks, f'action "{action.value}" on "{query}"')

        result: ActResult = await self.generator.generate(
            build_act_system_prompt(action.value),
            build_act_user_prompt(chunks, context=request.context, target=request.target),
            validator=act_validator(action),
            max_retries=self.settings.generation_max_retries,
            label=action.value,
        )

        if action in NOTE_ACTIONS:
            return self._inline_note(result)
        return await self._persist(project, owner_id, request, result)

    def _inline_note(self, result: ActResult) -> ActOutcome:
        note = to_assistant_note(result.public_payload, result.source_refs)
        if result.public_payload.kind != "assistant_note":
            logger.debug(f"Repackaged {result.public_payload.kind} payload as assistant_note")
        return ActOutcome(
            public_payload=dump_note(note),
            source_refs=result.source_refs,
            ui_hints={**result.ui_hints.model_dump(), "display_mode": "inline"},
        )

    async def _persist(self, project: Project, owner_id: str, request: ActRequest, result: ActResult) -> ActOutcome:
        action = request.action_type
        public = result.public_payload.model_dump()
        private = result.private_payload.model_dump() if result.private_payload is not None else None
        artifact = await self.store.create_artifact_with_private(
            project,
            owner_id,
            title=f"{action.value} - {request.subject()}",
            kind=ARTIFACT_KINDS[action],
            public_json=public,
            private_json=private,
            roadmap_step_id=request.target.get("topic_id"),
        )
        return ActOutcome(
            artifact_id=str(artifact.id),
            public_payload=public,
            source_refs=result.source_refs,
            ui_hints=result.ui_hints.model_dump(),
        )

    async def _grade_open(self, project: Project, request: ActRequest) -> ActOutcome:
        if not (request.user_answer or "").strip():
            raise ValidationError("grade_open requires user_answer")
        evaluation = await self.grader.evaluate_open(
            project.id,
            request.user_answer,
            context=request.context,
            target=request.target,
        )
        note = AssistantNotePayload(
            kind="assistant_note",
            title="Feedback",
            content=evaluation.content,
            source_refs=evaluation.source_refs,
        )
        return ActOutcome(
            public_payload=dump_note(note),
            source_refs=evaluation.source_refs,
            ui_hints={"display_mode": "inline", "next_actions": [], "score": evaluation.score},
        )
