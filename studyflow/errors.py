"""
Error taxonomy for the study pipeline.

Every error carries an HTTP status code and a stable machine code so the
API layer can translate it without inspecting messages.
"""

from __future__ import annotations

from typing import Any


class StudyFlowError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ConfigError(StudyFlowError):
    """Invalid configuration, e.g. chunk overlap that would never advance."""

    status_code = 400
    code = "config_error"


class ValidationError(StudyFlowError):
    """Malformed or missing request fields. Never retried."""

    status_code = 400
    code = "validation_error"


class AuthorizationError(StudyFlowError):
    """Caller does not own the target project or artifact."""

    status_code = 403
    code = "forbidden"


class NotFoundError(StudyFlowError):
    status_code = 404
    code = "not_found"


class PreconditionError(StudyFlowError):
    """A retryable precondition is not met yet (e.g. chunks still being ingested)."""

    status_code = 409
    code = "precondition_failed"


class ArtifactIntegrityError(StudyFlowError):
    """An artifact is missing data it promised, such as a quiz answer key."""

    status_code = 409
    code = "artifact_integrity"


class StoreError(StudyFlowError):
    """Persistence failure on a write the caller depends on."""

    status_code = 500
    code = "store_error"


# =============================================================================
# Oracle errors
# =============================================================================


class OracleError(StudyFlowError):
    """Base class for generation oracle transport failures."""

    status_code = 502
    code = "oracle_error"


class OracleRateLimited(OracleError):
    status_code = 429
    code = "RATE_LIMITED"


class OraclePaymentRequired(OracleError):
    status_code = 402
    code = "PAYMENT_REQUIRED"


class OracleUnavailable(OracleError):
    """Any other gateway failure (5xx, timeouts, malformed envelopes)."""


class GenerationContractError(StudyFlowError):
    """Oracle output never validated within the retry budget. Retryable by the user."""

    status_code = 502
    code = "generation_contract"

    def __init__(self, message: str, last_error: str, attempts: int):
        super().__init__(message, last_error=last_error, attempts=attempts)
        self.last_error = last_error
        self.attempts = attempts
