"""
Unit tests for deterministic and open-ended grading.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from studyflow.errors import ArtifactIntegrityError, OracleUnavailable, ValidationError
from studyflow.generation.contracts import QuizPrivate
from studyflow.generation.structured import StructuredGenerator
from studyflow.learning.grader import CONTINUE, REMEDIATE, Grader, normalize_answers, score_objective


@pytest.fixture
def answer_key():
    return QuizPrivate.model_validate(
        {
            "kind": "quiz",
            "answer_key": [
                {"question_id": "q1", "correct_option_ids": ["a"], "points": 1},
                {"question_id": "q2", "correct_option_ids": ["b", "c"], "points": 2},
            ],
        }
    )


def _artifact(kind="quiz"):
    return SimpleNamespace(id=uuid4(), project_id=uuid4(), title="Quiz", kind=kind)


def _grader(store, oracle, test_settings):
    retriever = AsyncMock()
    retriever.retrieve.return_value = []
    return Grader(store, retriever, StructuredGenerator(oracle), test_settings)


class TestScoreObjective:
    """Tests for deterministic answer-key scoring."""

    def test_all_correct_scores_100(self, answer_key):
        score, feedback = score_objective(
            answer_key, normalize_answers([{"block_id": "q1", "value": "a"}, {"block_id": "q2", "value": ["b", "c"]}])
        )

        assert score == 100
        assert feedback["passed"] is True
        assert feedback["total_points"] == 3
        assert feedback["earned_points"] == 3

    def test_partial_multiselect_earns_nothing_for_that_question(self, answer_key):
        score, feedback = score_objective(
            answer_key, normalize_answers([{"block_id": "q1", "value": "a"}, {"block_id": "q2", "value": ["b"]}])
        )

        assert score == 33
        assert feedback["passed"] is False
        assert feedback["questions"]["q2"] == {"correct": False, "earned": 0.0, "max": 2.0}

    def test_order_of_multiselect_does_not_matter(self, answer_key):
        score, _ = score_objective(
            answer_key, normalize_answers([{"block_id": "q1", "value": "a"}, {"block_id": "q2", "value": ["c", "b"]}])
        )

        assert score == 100

    def test_missing_answers_score_zero(self, answer_key):
        score, feedback = score_objective(answer_key, [])

        assert score == 0
        assert feedback["questions"]["q1"]["correct"] is False

    def test_first_answer_per_question_counts(self, answer_key):
        score, _ = score_objective(
            answer_key,
            normalize_answers(
                [
                    {"block_id": "q1", "value": "b"},
                    {"block_id": "q1", "value": "a"},
                    {"block_id": "q2", "value": ["b", "c"]},
                ]
            ),
        )

        assert score == 67

    def test_missing_points_count_as_one(self):
        key = QuizPrivate.model_validate(
            {"kind": "quiz", "answer_key": [{"question_id": "q1", "correct_option_ids": "a", "points": None}]}
        )

        score, feedback = score_objective(key, [{"block_id": "q1", "value": "a"}])

        assert score == 100
        assert feedback["total_points"] == 1.0

    def test_passing_score_comes_from_answer_key(self, answer_key):
        strict = answer_key.model_copy(update={"passing_score": 34})

        score, feedback = score_objective(strict, [{"block_id": "q2", "value": ["b", "c"]}])

        assert score == 67
        assert feedback["passing_score"] == 34
        assert feedback["passed"] is True


class TestNormalizeAnswers:
    """Tests for submission validation."""

    @pytest.mark.parametrize("answers", [None, [], "q1=a", [{"value": "a"}], ["a"], [{"block_id": " "}]])
    def test_malformed_answers_raise(self, answers):
        with pytest.raises(ValidationError):
            normalize_answers(answers)

    def test_block_ids_are_strings(self):
        assert normalize_answers([{"block_id": 1, "value": "x"}]) == [{"block_id": "1", "value": "x"}]


class TestGraderSubmit:
    """Tests for Grader.submit branching."""

    @pytest.mark.asyncio
    async def test_objective_submission_records_one_attempt(self, make_oracle, test_settings):
        store = AsyncMock()
        store.get_artifact_private.return_value = {
            "kind": "quiz",
            "answer_key": [{"question_id": "q1", "correct_option_ids": ["a"], "points": 1}],
            "passing_score": 60,
        }
        store.create_attempt.return_value = SimpleNamespace(id=uuid4())
        oracle = make_oracle()

        outcome = await _grader(store, oracle, test_settings).submit(
            _artifact(), "learner", [{"block_id": "q1", "value": "a"}]
        )

        assert outcome.score == 100
        assert outcome.next_step_suggestion == CONTINUE
        store.create_attempt.assert_called_once()
        assert oracle.call_count == 0

    @pytest.mark.asyncio
    async def test_quiz_without_answer_key_is_an_integrity_error(self, make_oracle, test_settings):
        store = AsyncMock()
        store.get_artifact_private.return_value = None

        with pytest.raises(ArtifactIntegrityError):
            await _grader(store, make_oracle(), test_settings).submit(
                _artifact("quiz"), "learner", [{"block_id": "q1", "value": "a"}]
            )

        store.create_attempt.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_answer_uses_score_hint(self, make_oracle, test_settings):
        store = AsyncMock()
        store.get_artifact_private.return_value = None
        store.create_attempt.return_value = SimpleNamespace(id=uuid4())
        oracle = make_oracle(
            {
                "public_payload": {
                    "kind": "method_pack",
                    "blocks": [{"id": "fb1", "type": "feedback", "title": "Feedback", "content": "Good start."}],
                },
                "private_payload": None,
                "source_refs": [],
                "ui_hints": {"score": 45},
            }
        )

        outcome = await _grader(store, oracle, test_settings).submit(
            _artifact("course"), "learner", [{"block_id": "essay", "value": "Routers forward packets."}]
        )

        assert outcome.score == 45
        assert outcome.next_step_suggestion == REMEDIATE
        assert outcome.feedback["type"] == "open"
        assert "Good start." in outcome.feedback["content"]

    @pytest.mark.asyncio
    async def test_oracle_failure_still_records_attempt_with_null_score(self, make_oracle, test_settings):
        store = AsyncMock()
        store.get_artifact_private.return_value = None
        store.create_attempt.return_value = SimpleNamespace(id=uuid4())
        oracle = make_oracle(OracleUnavailable("down"))

        outcome = await _grader(store, oracle, test_settings).submit(
            _artifact("slides"), "learner", [{"block_id": "b1", "value": "my answer"}]
        )

        assert outcome.score is None
        assert outcome.next_step_suggestion is None
        assert outcome.feedback["status"] == "unavailable"
        args = store.create_attempt.call_args.args
        assert args[3] is None

    @pytest.mark.asyncio
    async def test_graded_open_answer_without_score_suggests_remediation(self, make_oracle, test_settings):
        store = AsyncMock()
        store.get_artifact_private.return_value = None
        store.create_attempt.return_value = SimpleNamespace(id=uuid4())
        oracle = make_oracle(
            {
                "public_payload": {"kind": "assistant_note", "title": "Feedback", "content": "Mention the routing table."},
                "private_payload": None,
                "source_refs": [],
                "ui_hints": {"score": None},
            }
        )

        outcome = await _grader(store, oracle, test_settings).submit(
            _artifact("course"), "learner", [{"block_id": "essay", "value": "Routers forward packets."}]
        )

        assert outcome.score is None
        assert outcome.feedback["status"] == "graded"
        assert outcome.next_step_suggestion == REMEDIATE

    @pytest.mark.asyncio
    async def test_empty_submission_is_rejected_before_grading(self, make_oracle, test_settings):
        store = AsyncMock()
        oracle = make_oracle()

        with pytest.raises(ValidationError):
            await _grader(store, oracle, test_settings).submit(_artifact(), "learner", [])

        store.get_artifact_private.assert_not_called()
        store.create_attempt.assert_not_called()
        assert oracle.call_count == 0
