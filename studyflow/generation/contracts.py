"""
Output contracts for structured generation.

Pydantic models describing what the oracle must return for each task:
- PlanResult: topics, roadmap, assistant action policy, optional diagnostic
- RoadmapPatch: replan output on check-in
- ActResult: public payload (tagged union on ``kind``), optional private
  payload, source refs and UI hints
- RerankSelection: indices chosen by the reranker

Models are lenient where a deterministic repair exists (unknown
difficulty, missing points) and strict where the data would be unusable
(empty roadmap, duplicate step ids, quiz without answer key).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# Shared pieces
# =============================================================================

ArtifactKind = Literal["course", "quiz", "flashcards", "slides", "method_pack", "assistant_note"]
StepArtifactKind = Literal["course", "quiz", "flashcards", "slides", "method_pack"]
StepStatus = Literal["locked", "available", "completed"]

# Fields that would reveal answers if they slipped into a public quiz payload
PRIVATE_QUESTION_FIELDS = ("correct_option_ids", "correct", "answer", "answer_key", "correct_answer")


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="allow")


class QuizOption(_Lenient):
    id: str
    text: str


class QuizQuestion(_Lenient):
    id: str
    text: str
    type: str = "single_choice"
    options: list[QuizOption] = Field(default_factory=list)
    explanation: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _strip_answers(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if k not in PRIVATE_QUESTION_FIELDS}
        return data


class AnswerKeyEntry(_Lenient):
    question_id: str
    correct_option_ids: list[str] = Field(min_length=1)
    points: float = 1.0

    @field_validator("correct_option_ids", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            return [str(value)]
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    @field_validator("points", mode="before")
    @classmethod
    def _default_points(cls, value: Any) -> Any:
        # Missing or non-positive points count as one
        if value is None or (isinstance(value, (int, float)) and value <= 0):
            return 1.0
        return value


# =============================================================================
# Public payloads (tagged union on "kind")
# =============================================================================


class Lesson(_Lenient):
    id: str
    title: str
    content: str = ""
    type: str = "text"


class CourseModule(_Lenient):
    id: str
    title: str
    lessons: list[Lesson] = Field(default_factory=list)


class CoursePayload(_Lenient):
    kind: Literal["course"]
    title: str | None = None
    modules: list[CourseModule] = Field(min_length=1)


class QuizPayload(_Lenient):
    kind: Literal["quiz"]
    questions: list[QuizQuestion] = Field(min_length=1)
    time_limit_seconds: int | None = None
    shuffle: bool = False


class Flashcard(_Lenient):
    id: str
    front: str
    back: str
    hint: str | None = None


class FlashcardsPayload(_Lenient):
    kind: Literal["flashcards"]
    cards: list[Flashcard] = Field(min_length=1)


class Slide(_Lenient):
    id: str
    type: str = "content"
    title: str = ""
    content: str = ""


class SlidesPayload(_Lenient):
    kind: Literal["slides"]
    slides: list[Slide] = Field(min_length=1)


class Block(_Lenient):
    id: str
    type: str = "concept"
    title: str | None = None
    content: str = ""
    order: int = 0


class MethodPackPayload(_Lenient):
    kind: Literal["method_pack"]
    blocks: list[Block] = Field(min_length=1)


class AssistantNotePayload(_Lenient):
    kind: Literal["assistant_note"]
    title: str
    content: str
    source_refs: list[str] = Field(default_factory=list)


PublicPayload = Annotated[
    Union[
        CoursePayload,
        QuizPayload,
        FlashcardsPayload,
        SlidesPayload,
        MethodPackPayload,
        AssistantNotePayload,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Private payloads
# =============================================================================


class QuizPrivate(_Lenient):
    kind: Literal["quiz"]
    answer_key: list[AnswerKeyEntry] = Field(min_length=1)
    passing_score: int = Field(default=60, ge=0, le=100)


class Rubric(_Lenient):
    criterion: str
    max_points: float = 10
    description: str = ""


class ExercisePrivate(_Lenient):
    kind: Literal["exercise"]
    rubrics: list[Rubric] = Field(default_factory=list)
    sample_answer: str | None = None


PrivatePayload = Annotated[Union[QuizPrivate, ExercisePrivate], Field(discriminator="kind")]


# =============================================================================
# Act contract
# =============================================================================


class UiHints(_Lenient):
    display_mode: str = "full"
    next_actions: list[str] = Field(default_factory=list)
    score: float | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return max(0.0, min(100.0, float(value)))


class ActResult(_Lenient):
    public_payload: PublicPayload
    private_payload: PrivatePayload | None = None
    source_refs: list[str] = Field(default_factory=list)
    ui_hints: UiHints = Field(default_factory=UiHints)

    @field_validator("source_refs", mode="before")
    @classmethod
    def _stringify_refs(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        return value


def quiz_answer_key_matches(payload: QuizPayload, private: QuizPrivate) -> list[str]:
    """Return question ids in the answer key that the public quiz does not contain."""
    question_ids = {q.id for q in payload.questions}
    return [entry.question_id for entry in private.answer_key if entry.question_id not in question_ids]


# =============================================================================
# Plan contract
# =============================================================================

DIFFICULTIES = ("beginner", "intermediate", "advanced")


class Topic(_Lenient):
    id: str
    title: str
    description: str = ""
    key_terms: list[str] = Field(default_factory=list)
    difficulty: Literal["beginner", "intermediate", "advanced"] = "intermediate"
    estimated_minutes: int = Field(default=30, ge=0)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _normalize_difficulty(cls, value: Any) -> Any:
        text = str(value or "").strip().lower()
        return text if text in DIFFICULTIES else "intermediate"


class RoadmapStep(_Lenient):
    id: str
    title: str
    description: str = ""
    artifact_type: StepArtifactKind = "course"
    status: StepStatus = "locked"
    next_step_id: str | None = None

    @field_validator("artifact_type", mode="before")
    @classmethod
    def _normalize_artifact_type(cls, value: Any) -> Any:
        text = str(value or "").strip().lower()
        return text if text in ("course", "quiz", "flashcards", "slides", "method_pack") else "course"

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        text = str(value or "").strip().lower()
        return text if text in ("locked", "available", "completed") else "locked"


def _unique_step_ids(steps: list[RoadmapStep]) -> list[RoadmapStep]:
    seen: set[str] = set()
    for step in steps:
        if step.id in seen:
            raise ValueError(f"roadmap step ids must be unique, '{step.id}' repeats")
        seen.add(step.id)
    return steps


class MenuItem(_Lenient):
    id: str
    label: str
    action: str
    enabled: bool = True
    visible: bool = True


class IntegrityRule(_Lenient):
    rule_id: str
    description: str = ""
    condition: str = ""
    action: str = "hide"


class AssistantMenuPolicy(_Lenient):
    context: str = "learning"
    items: list[MenuItem] = Field(default_factory=list)
    integrity_rules: list[IntegrityRule] = Field(default_factory=list)


class DiagnosticQuiz(_Lenient):
    questions: list[QuizQuestion] = Field(default_factory=list)


class Diagnostic(_Lenient):
    enabled: bool = False
    quiz: DiagnosticQuiz | None = None
    answer_key: list[AnswerKeyEntry] = Field(default_factory=list)

    @property
    def is_usable(self) -> bool:
        """True when the quiz can be published with a complete answer key."""
        if not self.enabled or self.quiz is None or not self.quiz.questions or not self.answer_key:
            return False
        question_ids = {q.id for q in self.quiz.questions}
        return all(entry.question_id in question_ids for entry in self.answer_key)


class PlanResult(_Lenient):
    topics: list[Topic] = Field(min_length=1)
    roadmap: list[RoadmapStep] = Field(min_length=1)
    assistant_menu_policy: AssistantMenuPolicy | None = None
    diagnostic: Diagnostic | None = None

    _check_roadmap = field_validator("roadmap")(_unique_step_ids)


class RoadmapPatch(_Lenient):
    roadmap: list[RoadmapStep] = Field(min_length=1)
    topics: list[Topic] | None = None

    _check_roadmap = field_validator("roadmap")(_unique_step_ids)


# =============================================================================
# Rerank contract
# =============================================================================


class RerankSelection(_Lenient):
    selected: list[int] = Field(min_length=1)


def default_menu_policy() -> dict[str, Any]:
    """Assistant menu used when the planner returns none."""
    return AssistantMenuPolicy(
        items=[
            MenuItem(id="explain", label="Explain term", action="explain_term"),
            MenuItem(id="example", label="Show an example", action="give_example"),
            MenuItem(id="expand", label="Go deeper", action="expand_selection"),
            MenuItem(id="quiz", label="Check my knowledge", action="generate_quiz"),
            MenuItem(id="flashcards", label="Flashcards", action="generate_flashcards"),
        ],
        integrity_rules=[
            IntegrityRule(
                rule_id="no_answers",
                description="Do not reveal answers before the attempt is completed",
                condition="attempt.status != completed",
                action="hide",
            )
        ],
    ).model_dump()
