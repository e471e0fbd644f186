"""
Structured Generator.

The reliability contract around the generation oracle:

1. Send the system + user prompt
2. Strip a markdown code fence if present
3. Extract the first JSON object or array and parse it
4. Run the caller's validator
5. On any failure, append the rejected reply and a message naming the
   failure, then try again, up to ``max_retries`` extra attempts

Either validated data comes back or GenerationContractError is raised;
partially validated output is never returned. Oracle transport errors
(rate limit, payment, unavailable) are not retried here and propagate
as their own types. Nothing is persisted.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any, TypeVar

import pydantic
from loguru import logger

from studyflow.errors import GenerationContractError, StudyFlowError

from .oracle import GenerationOracle, Message

T = TypeVar("T")
Validator = Callable[[Any], T]

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_JSON_START_RE = re.compile(r"[\{\[]")

MAX_REASON_CHARS = 1200

CORRECTION_PROMPT = (
    "The previous response was invalid: {reason}\n\n"
    "Return only valid JSON that matches the requested format, "
    "with no extra text, comments or markdown fences."
)


class OutputRejected(Exception):
    """Raised internally when a response fails extraction, parsing or validation."""


def extract_json(raw: str) -> Any:
    """
    Pull the first JSON value out of an oracle response.

    Raises:
        OutputRejected: No JSON start found, or the JSON does not parse
    """
    text = (raw or "").strip()
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()

    start = _JSON_START_RE.search(text)
    if start is None:
        raise OutputRejected("Response does not contain a JSON object or array.")

    try:
        value, _ = json.JSONDecoder().raw_decode(text, start.start())
    except json.JSONDecodeError as exc:
        raise OutputRejected(f"JSON parse error: {exc}") from exc
    return value


def _describe_validation_error(exc: Exception) -> str:
    if isinstance(exc, pydantic.ValidationError):
        parts = []
        for error in exc.errors()[:8]:
            location = ".".join(str(p) for p in error.get("loc", ())) or "<root>"
            parts.append(f"{location}: {error.get('msg')}")
        message = "; ".join(parts)
    else:
        message = str(exc) or exc.__class__.__name__
    return f"Validation failed: {message}"[:MAX_REASON_CHARS]


class StructuredGenerator:
    """
    Retry-with-validation wrapper over a GenerationOracle.

    Holds no per-call state: each ``generate`` call builds its own
    transcript, so one instance is safe to share across requests.
    """

    def __init__(
        self,
        oracle: GenerationOracle,
        max_retries: int = 2,
        temperature: float | None = None,
    ):
        self.oracle = oracle
        self.max_retries = max_retries
        self.temperature = temperature

    async def generate(
        self,
        system: str,
        user: str,
        validator: Validator[T] | None = None,
        max_retries: int | None = None,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
        label: str = "generation",
    ) -> T | Any:
        """
        Run the generation contract.

        Args:
            system: System prompt
            user: User prompt
            validator: Callable returning the validated value or raising
            max_retries: Extra attempts after the first (defaults to instance setting)
            temperature: Sampling temperature override
            response_schema: Optional JSON schema forwarded to the oracle
            label: Name used in log lines

        Returns:
            The validator's return value, or the parsed JSON when no validator

        Raises:
            GenerationContractError: Output never validated within the budget
            OracleError: Transport failures, propagated untouched
        """
        retries = self.max_retries if max_retries is None else max_retries
        total_attempts = retries + 1
        transcript: tuple[Message, ...] = (
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        )
        last_error = ""
        last_raw = ""

        for attempt in range(1, total_attempts + 1):
            if attempt > 1:
                transcript = transcript + (
                    {"role": "assistant", "content": last_raw},
                    {"role": "user", "content": CORRECTION_PROMPT.format(reason=last_error)},
                )

            raw = await self.oracle.complete(
                list(transcript),
                temperature=self.temperature if temperature is None else temperature,
                response_schema=response_schema,
            )

            try:
                return self._accept(raw, validator)
            except OutputRejected as exc:
                last_raw = raw
                last_error = str(exc)[:MAX_REASON_CHARS]
                logger.warning(f"{label}: attempt {attempt}/{total_attempts} rejected - {last_error}")

        raise GenerationContractError(
            f"{label} failed after {total_attempts} attempts. Last error: {last_error}",
            last_error=last_error,
            attempts=total_attempts,
        )

    @staticmethod
    def _accept(raw: str, validator: Validator[T] | None) -> T | Any:
        parsed = extract_json(raw)
        if validator is None:
            return parsed
        try:
            return validator(parsed)
        except StudyFlowError:
            raise
        except Exception as exc:  # Any validator failure on oracle output is a rejection
            raise OutputRejected(_describe_validation_error(exc)) from exc
