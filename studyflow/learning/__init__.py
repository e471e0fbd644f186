"""
Learning orchestration: planning, actions and grading.

Each service works on one request-scoped LearningStore and an injected
StructuredGenerator; none of them hold state between calls.
"""

from .actor import ActionType, ActOutcome, ActRequest, Actor, NOTE_ACTIONS
from .grader import GradeOutcome, Grader, normalize_answers, score_objective
from .planner import Planner, PlanOutcome

__all__ = [
    # Planning
    "Planner",
    "PlanOutcome",
    # Actions
    "Actor",
    "ActionType",
    "ActOutcome",
    "ActRequest",
    "NOTE_ACTIONS",
    # Grading
    "Grader",
    "GradeOutcome",
    "normalize_answers",
    "score_objective",
]
