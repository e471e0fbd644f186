"""
Unit tests for the Check-in Adapter.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from studyflow.adaptive import CheckinAdapter, CheckinSignals
from studyflow.adaptive.checkin_adapter import average_score
from studyflow.errors import GenerationContractError, PreconditionError, ValidationError
from studyflow.generation.contracts import RoadmapPatch


@pytest.fixture
def roadmap():
    return [
        {"id": "osi", "title": "OSI model", "artifact_type": "course", "status": "completed", "next_step_id": "subnets"},
        {"id": "subnets", "title": "Subnetting practice", "artifact_type": "quiz", "status": "available", "next_step_id": "routing"},
        {"id": "routing", "title": "Routing", "artifact_type": "course", "status": "locked", "next_step_id": None},
    ]


@pytest.fixture
def project(roadmap):
    return SimpleNamespace(id=uuid4(), roadmap=roadmap)


def _adapter(test_settings, scores, planner=None):
    store = MagicMock(
        recent_attempt_scores=AsyncMock(return_value=scores),
        first_chunks=AsyncMock(return_value=[]),
        update_project=AsyncMock(),
    )
    planner = planner or MagicMock(replan=AsyncMock())
    return CheckinAdapter(store, planner, test_settings), store, planner


class TestAverageScore:
    def test_mean_of_scored_attempts(self):
        assert average_score([40, 45, 50]) == 45.0

    def test_null_scores_are_ignored(self):
        assert average_score([70, None, 80]) == 75.0

    def test_no_scores_counts_as_perfect(self):
        assert average_score([]) == 100.0
        assert average_score([None]) == 100.0

    def test_rounded_to_two_places(self):
        assert average_score([1, 2, 2]) == 1.67


class TestCheckinSignals:
    def test_defaults(self):
        signals = CheckinSignals.from_dict(None)

        assert signals.hard_topics == []
        assert signals.pace is None
        assert signals.add_more is False

    @pytest.mark.parametrize("raw", ["too fast", "Too-Fast", "TOO_FAST"])
    def test_pace_is_normalized(self, raw):
        assert CheckinSignals.from_dict({"pace": raw}).pace == "too_fast"

    def test_hard_topics_must_be_list(self):
        with pytest.raises(ValidationError):
            CheckinSignals.from_dict({"hard_topics": "subnetting"})

    def test_blank_topics_dropped(self):
        assert CheckinSignals.from_dict({"hard_topics": ["osi", " ", ""]}).hard_topics == ["osi"]


class TestShouldReplan:
    @pytest.mark.parametrize(
        "avg,signals,expected",
        [
            (45.0, {}, True),
            (50.0, {}, False),
            (90.0, {"hard_topics": ["a", "b", "c"]}, True),
            (90.0, {"hard_topics": ["a", "b"]}, False),
            (90.0, {"pace": "too_fast"}, True),
            (90.0, {"pace": "too_slow"}, False),
        ],
    )
    def test_triggers(self, test_settings, avg, signals, expected):
        adapter, _, _ = _adapter(test_settings, [])

        assert adapter.should_replan(avg, CheckinSignals.from_dict(signals)) is expected


class TestCheckin:
    @pytest.mark.asyncio
    async def test_low_average_triggers_replan(self, test_settings, project, roadmap):
        patch = RoadmapPatch.model_validate(
            {
                "roadmap": [
                    {"id": "osi", "title": "OSI model", "status": "completed"},
                    {"id": "osi_review", "title": "OSI layers again", "status": "locked"},
                    {"id": "subnets", "title": "Subnetting practice", "artifact_type": "quiz"},
                ]
            }
        )
        planner = MagicMock(replan=AsyncMock(return_value=patch))
        adapter, store, _ = _adapter(test_settings, [40, 45, 50], planner)

        result = await adapter.checkin(project, "learner", CheckinSignals())

        assert result.replan_triggered is True
        assert result.roadmap_updated is True
        assert result.avg_score == 45.0
        assert [s["status"] for s in result.roadmap] == ["completed", "available", "locked"]
        assert result.roadmap[-1]["next_step_id"] is None
        planner.replan.assert_awaited_once()
        checkin = planner.replan.call_args.args[1]
        assert checkin["avg_score"] == 45.0
        store.update_project.assert_called_once()

    @pytest.mark.asyncio
    async def test_good_average_patches_locally(self, test_settings, project):
        adapter, store, planner = _adapter(test_settings, [70, 80])

        result = await adapter.checkin(project, "learner", CheckinSignals(hard_topics=["osi"]))

        assert result.replan_triggered is False
        assert result.roadmap_updated is True
        assert result.review_step_ids == ["osi"]
        first = result.roadmap[0]
        assert first["description"].startswith("[Review] ")
        assert first["status"] == "available"
        assert [s["status"] for s in result.roadmap].count("available") == 1
        planner.replan.assert_not_called()
        store.update_project.assert_called_once_with(project, roadmap=result.roadmap)

    @pytest.mark.asyncio
    async def test_flagged_locked_step_becomes_available(self, test_settings, project):
        adapter, store, _ = _adapter(test_settings, [90])

        result = await adapter.checkin(project, "learner", CheckinSignals(hard_topics=["routing"]))

        assert result.review_step_ids == ["routing"]
        assert [s["status"] for s in result.roadmap] == ["completed", "locked", "available"]
        assert result.roadmap[2]["description"].startswith("[Review] ")
        store.update_project.assert_awaited_once_with(project, roadmap=result.roadmap)

    @pytest.mark.asyncio
    async def test_nothing_matched_leaves_roadmap(self, test_settings, project, roadmap):
        adapter, store, _ = _adapter(test_settings, [90])

        result = await adapter.checkin(project, "learner", CheckinSignals(hard_topics=["astronomy"]))

        assert result.roadmap_updated is False
        assert result.roadmap == roadmap
        store.update_project.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_replan_keeps_current_roadmap(self, test_settings, project, roadmap):
        error = GenerationContractError("bad patch", last_error="roadmap: too short", attempts=2)
        planner = MagicMock(replan=AsyncMock(side_effect=error))
        adapter, store, _ = _adapter(test_settings, [], planner)

        result = await adapter.checkin(project, "learner", CheckinSignals(pace="too_fast"))

        assert result.replan_triggered is True
        assert result.roadmap_updated is False
        assert result.roadmap == roadmap
        store.update_project.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_roadmap(self, test_settings):
        adapter, _, _ = _adapter(test_settings, [])

        with pytest.raises(PreconditionError):
            await adapter.checkin(SimpleNamespace(id=uuid4(), roadmap=[]), "learner", CheckinSignals())
