"""Adaptive roadmap maintenance: normalization and check-in adaptation."""

from .checkin_adapter import CheckinAdapter, CheckinResult, CheckinSignals
from .roadmap import available_steps, mark_for_review, normalize_roadmap

__all__ = [
    "CheckinAdapter",
    "CheckinResult",
    "CheckinSignals",
    "available_steps",
    "mark_for_review",
    "normalize_roadmap",
]
