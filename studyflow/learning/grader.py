"""
Submission Grader.

Two grading modes, chosen by the artifact's private payload:

- Objective: a quiz answer key exists. Scoring is deterministic: each
  question earns its full points only when the submitted option set
  equals the correct set exactly (no partial credit per question).
- Open-ended: no answer key. The oracle grades against retrieved source
  context and returns feedback plus a 0-100 score hint. If the oracle
  fails, the attempt is still recorded with a null score.

Every submission creates exactly one new Attempt; attempts are never updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import pydantic
from loguru import logger

from config import Settings
from studyflow.db.models import Artifact
from studyflow.db.store import LearningStore
from studyflow.errors import ArtifactIntegrityError, StudyFlowError, ValidationError
from studyflow.generation.contracts import ActResult, QuizPrivate
from studyflow.generation.prompts import build_act_system_prompt, build_act_user_prompt
from studyflow.generation.structured import StructuredGenerator
from studyflow.retrieval import Retriever

from .notes import note_text

CONTINUE = "continue_next_step"
REMEDIATE = "remediate_topic"


@dataclass
class GradeOutcome:
    """Result of one graded submission."""

    attempt_id: str
    score: int | None
    feedback: dict[str, Any]
    next_step_suggestion: str | None
    passed: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "score": self.score,
            "feedback": self.feedback,
            "next_step_suggestion": self.next_step_suggestion,
        }


@dataclass
class OpenEvaluation:
    """Oracle verdict on an open answer."""

    score: int | None
    content: str
    source_refs: list[str] = field(default_factory=list)


def normalize_answers(answers: Any) -> list[dict[str, Any]]:
    """
    Validate submitted answers of the form [{block_id, value}].

    Raises:
        ValidationError: Not a non-empty list of objects with a block_id
    """
    if not isinstance(answers, list) or not answers:
        raise ValidationError("answers must be a non-empty list of {block_id, value}")
    normalized = []
    for i, item in enumerate(answers):
        if not isinstance(item, dict) or not str(item.get("block_id") or "").strip():
            raise ValidationError(f"answers[{i}] must be an object with a block_id", index=i)
        normalized.append({"block_id": str(item["block_id"]), "value": item.get("value")})
    return normalized


def _value_set(value: Any) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set)):
        return {str(v) for v in value}
    return {str(value)}


def score_objective(
    answer_key: QuizPrivate,
    answers: list[dict[str, Any]],
) -> tuple[int, dict[str, Any]]:
    """
    Deterministically score answers against a quiz answer key.

    Returns:
        (score 0-100, feedback dict)
    """
    submitted: dict[str, set[str]] = {}
    for answer in answers:
        # First answer per question wins
        submitted.setdefault(answer["block_id"], _value_set(answer.get("value")))

    total = 0.0
    earned = 0.0
    per_question: dict[str, dict[str, Any]] = {}
    for entry in answer_key.answer_key:
        total += entry.points
        correct = submitted.get(entry.question_id, set()) == set(entry.correct_option_ids)
        gained = entry.points if correct else 0.0
        earned += gained
        per_question[entry.question_id] = {"correct": correct, "earned": gained, "max": entry.points}

    score = int(100 * earned / total + 0.5) if total > 0 else 0
    passed = score >= answer_key.passing_score
    feedback = {
        "type": "quiz",
        "total_points": total,
        "earned_points": earned,
        "passing_score": answer_key.passing_score,
        "passed": passed,
        "questions": per_question,
    }
    return score, feedback


class Grader:
    """Scores submissions and records attempts."""

    def __init__(
        self,
        store: LearningStore,
        retriever: Retriever,
        generator: StructuredGenerator,
        settings: Settings,
    ):
        self.store = store
        self.retriever = retriever
        self.generator = generator
        self.settings = settings

    async def submit(self, artifact: Artifact, learner_id: str, answers: Any) -> GradeOutcome:
        """
        Grade a submission and persist exactly one Attempt.

        Raises:
            ValidationError: Malformed answers
            ArtifactIntegrityError: Quiz artifact without a usable answer key
            StoreError: The attempt could not be recorded
        """
        answers = normalize_answers(answers)
        private = await self.store.get_artifact_private(artifact.id)
        answer_key = self._answer_key(artifact, private)

        if answer_key is not None:
            score, feedback = score_objective(answer_key, answers)
            threshold = answer_key.passing_score
        else:
            score, feedback = await self._grade_open(artifact, answers)
            threshold = self.settings.passing_score

        attempt = await self.store.create_attempt(artifact, learner_id, answers, score, feedback)
        if feedback.get("status") == "unavailable":
            suggestion = None
        else:
            # A graded answer without a score counts as zero
            suggestion = CONTINUE if (score or 0) >= threshold else REMEDIATE
        logger.info(f"Graded artifact {artifact.id} for {learner_id}: score={score}, suggestion={suggestion}")
        return GradeOutcome(
            attempt_id=str(attempt.id),
            score=score,
            feedback=feedback,
            next_step_suggestion=suggestion,
            passed=None if score is None else score >= threshold,
        )

    def _answer_key(self, artifact: Artifact, private: dict[str, Any] | None) -> QuizPrivate | None:
        has_key = bool(private) and private.get("kind") == "quiz" and private.get("answer_key")
        if not has_key:
            if artifact.kind == "quiz":
                raise ArtifactIntegrityError(
                    "Quiz artifact has no answer key and cannot be graded",
                    artifact_id=str(artifact.id),
                )
            return None
        try:
            return QuizPrivate.model_validate(private)
        except pydantic.ValidationError as exc:
            raise ArtifactIntegrityError(
                f"Answer key is malformed: {exc.error_count()} errors",
                artifact_id=str(artifact.id),
            ) from exc

    async def _grade_open(self, artifact: Artifact, answers: list[dict[str, Any]]) -> tuple[int | None, dict[str, Any]]:
        answer_text = "\n".join(f"{a['block_id']}: {a['value']}" for a in answers if a.get("value") is not None)
        try:
            evaluation = await self.evaluate_open(
                artifact.project_id,
                answer_text,
                context=f"{artifact.title} ({artifact.kind})",
            )
        except StudyFlowError as exc:
            logger.warning(f"Open grading unavailable for artifact {artifact.id}: {exc}")
            return None, {
                "type": "open",
                "status": "unavailable",
                "error": exc.code,
                "message": "Feedback is temporarily unavailable. Your answer was saved.",
            }
        return evaluation.score, {
            "type": "open",
            "status": "graded",
            "content": evaluation.content,
            "score_hint": evaluation.score,
            "source_refs": evaluation.source_refs,
        }

    async def evaluate_open(
        self,
        project_id: UUID,
        answer: str,
        context: str | None = None,
        target: dict[str, Any] | None = None,
    ) -> OpenEvaluation:
        """
        Ask the oracle to grade an open answer against project sources.

        Raises:
            GenerationContractError / OracleError: propagated to the caller
        """
        query = " ".join(p for p in (context, answer[:200]) if p) or "grade_open"
        chunks = await self.retriever.retrieve(project_id, query, limit=self.settings.grading_context_limit)
        result: ActResult = await self.generator.generate(
            build_act_system_prompt("grade_open"),
            build_act_user_prompt(chunks, context=context, target=target, user_answer=answer),
            validator=ActResult.model_validate,
            max_retries=self.settings.grading_max_retries,
            label="grade_open",
        )
        score = None if result.ui_hints.score is None else int(result.ui_hints.score + 0.5)
        return OpenEvaluation(score=score, content=note_text(result.public_payload), source_refs=result.source_refs)
