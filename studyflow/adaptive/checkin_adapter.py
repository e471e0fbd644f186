"""
Check-in Adapter.

Reads the learner's recent performance and adapts the roadmap:

- Full replan (plan contract seeded with the current roadmap, the
  signals and the average score) when the average is below the
  threshold, enough hard topics are flagged, or the pace is too fast.
- Otherwise a local rule-based patch: flagged topics matching a step
  are annotated for review and the earliest of them becomes the one
  available step. No oracle call.

A failed replan keeps the current roadmap unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from config import Settings
from studyflow.db.models import Project
from studyflow.db.store import LearningStore
from studyflow.errors import PreconditionError, StudyFlowError, ValidationError

from .roadmap import mark_for_review, normalize_roadmap

if TYPE_CHECKING:
    from studyflow.learning.planner import Planner

TOO_FAST = "too_fast"
NO_SCORES_AVERAGE = 100.0


@dataclass
class CheckinSignals:
    """Self-reported learner signals."""

    hard_topics: list[str] = field(default_factory=list)
    pace: str | None = None
    add_more: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CheckinSignals:
        data = data or {}
        hard_topics = data.get("hard_topics") or []
        if not isinstance(hard_topics, list):
            raise ValidationError("signals.hard_topics must be a list of strings")
        pace = data.get("pace")
        return cls(
            hard_topics=[str(t) for t in hard_topics if str(t).strip()],
            pace=str(pace).strip().lower().replace(" ", "_").replace("-", "_") if pace else None,
            add_more=bool(data.get("add_more", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"hard_topics": self.hard_topics, "pace": self.pace, "add_more": self.add_more}


@dataclass
class CheckinResult:
    roadmap_updated: bool
    replan_triggered: bool
    avg_score: float
    roadmap: list[dict[str, Any]]
    review_step_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roadmap_updated": self.roadmap_updated,
            "replan_triggered": self.replan_triggered,
            "avg_score": self.avg_score,
            "roadmap": self.roadmap,
        }


def average_score(scores: list[int | None]) -> float:
    """Mean of the non-null scores; 100 when nothing has been scored yet."""
    scored = [s for s in scores if s is not None]
    if not scored:
        return NO_SCORES_AVERAGE
    return round(sum(scored) / len(scored), 2)


class CheckinAdapter:
    """Decides between replanning and a local roadmap patch."""

    def __init__(self, store: LearningStore, planner: Planner, settings: Settings):
        self.store = store
        self.planner = planner
        self.settings = settings

    def should_replan(self, avg: float, signals: CheckinSignals) -> bool:
        return (
            avg < self.settings.replan_score_threshold
            or len(signals.hard_topics) >= self.settings.replan_hard_topic_count
            or signals.pace == TOO_FAST
        )

    async def checkin(self, project: Project, learner_id: str, signals: CheckinSignals) -> CheckinResult:
        """
        Run one check-in for a learner.

        Raises:
            PreconditionError: The project has no roadmap yet
        """
        current = list(project.roadmap or [])
        if not current:
            raise PreconditionError("Project has no roadmap yet. Run plan first.", project_id=str(project.id))

        scores = await self.store.recent_attempt_scores(learner_id, project.id, self.settings.checkin_window)
        avg = average_score(scores)

        if self.should_replan(avg, signals):
            logger.info(
                f"Check-in replan for project {project.id}: avg={avg}, "
                f"hard_topics={len(signals.hard_topics)}, pace={signals.pace}"
            )
            roadmap = await self._replan(project, current, signals, avg)
            return CheckinResult(
                roadmap_updated=roadmap is not None,
                replan_triggered=True,
                avg_score=avg,
                roadmap=roadmap if roadmap is not None else current,
            )

        patched, matched = mark_for_review(current, signals.hard_topics)
        if matched:
            await self.store.update_project(project, roadmap=patched)
            logger.info(f"Check-in marked {len(matched)} steps for review in project {project.id}")
        return CheckinResult(
            roadmap_updated=bool(matched),
            replan_triggered=False,
            avg_score=avg,
            roadmap=patched if matched else current,
            review_step_ids=matched,
        )

    async def _replan(
        self,
        project: Project,
        current: list[dict[str, Any]],
        signals: CheckinSignals,
        avg: float,
    ) -> list[dict[str, Any]] | None:
        chunks = await self.store.first_chunks(project.id, self.settings.checkin_context_limit)
        checkin = {**signals.to_dict(), "avg_score": avg}
        try:
            patch = await self.planner.replan(current, checkin, chunks)
        except StudyFlowError as exc:
            logger.warning(f"Replan failed for project {project.id}, keeping current roadmap: {exc}")
            return None

        roadmap = normalize_roadmap(patch.roadmap, keep_completed=True)
        fields: dict[str, Any] = {"roadmap": roadmap}
        if patch.topics:
            fields["topics"] = [t.model_dump() for t in patch.topics]
        await self.store.update_project(project, **fields)
        return roadmap
