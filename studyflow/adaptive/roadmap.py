"""
Roadmap normalization.

A roadmap is an ordered list of steps; a step's successor is simply the
next element. ``next_step_id`` is kept in the stored JSON for readers,
but it is always recomputed from position here, so inserting or
removing a step can never leave a dangling pointer.

Linear invariant after normalization:
- exactly one step is "available": the earliest incomplete one, or the
  earliest step flagged for review
  (none once every step is completed)
- every other incomplete step is "locked"
- the last step's next_step_id is None
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from studyflow.generation.contracts import RoadmapStep

REVIEW_PREFIX = "[Review] "

StepLike = RoadmapStep | dict[str, Any]


def _coerce(steps: Iterable[StepLike]) -> list[RoadmapStep]:
    return [s if isinstance(s, RoadmapStep) else RoadmapStep.model_validate(s) for s in steps]


def normalize_roadmap(
    steps: Iterable[StepLike],
    keep_completed: bool = False,
    available_id: str | None = None,
) -> list[dict[str, Any]]:
    """
    Return a roadmap satisfying the linear invariant.

    Args:
        steps: Steps in learning order (dicts or RoadmapStep)
        keep_completed: Preserve "completed" steps (check-in path). When
            False (fresh plan) every step is reset and the first one
            becomes available.
        available_id: Step to make available instead of the earliest
            incomplete one. Every other incomplete step is locked.

    Returns:
        JSON-ready list of step dicts
    """
    ordered = [s.model_copy() for s in _coerce(steps)]
    if available_id is not None and not any(s.id == available_id for s in ordered):
        available_id = None
    available_set = False
    for position, step in enumerate(ordered):
        if step.id == available_id:
            step.status = "available"
            available_set = True
        elif not (keep_completed and step.status == "completed"):
            step.status = "locked" if available_set or available_id is not None else "available"
            available_set = True
        step.next_step_id = ordered[position + 1].id if position + 1 < len(ordered) else None
    return [s.model_dump() for s in ordered]


def available_steps(roadmap: Sequence[dict[str, Any]]) -> list[str]:
    """Ids of steps currently marked available."""
    return [step.get("id", "") for step in roadmap if step.get("status") == "available"]


def _matches(step: RoadmapStep, topic: str) -> bool:
    needle = topic.strip().lower()
    if not needle:
        return False
    return step.id.lower() == needle or needle in step.title.lower()


def mark_for_review(
    roadmap: Iterable[StepLike],
    hard_topics: Sequence[str],
) -> tuple[list[dict[str, Any]], list[str]]:
    """
    Rule-based local patch for flagged hard topics.

    Matching steps (by id or case-insensitive title containment) get a
    review annotation and lose their completed status. The earliest of
    them becomes the single available step, even when it was locked
    ahead of the learner's current position, and every other incomplete
    step is locked.

    Returns:
        (patched roadmap, ids of matched steps)
    """
    steps = [s.model_copy() for s in _coerce(roadmap)]
    matched: list[str] = []
    for step in steps:
        if any(_matches(step, topic) for topic in hard_topics):
            matched.append(step.id)
            if not step.description.startswith(REVIEW_PREFIX):
                step.description = f"{REVIEW_PREFIX}{step.description}"
            if step.status == "completed":
                step.status = "locked"
    if not matched:
        return [s.model_dump() for s in steps], matched
    return normalize_roadmap(steps, keep_completed=True, available_id=matched[0]), matched
