"""
Generation oracle client.

The oracle is the external text-generation service. Pipeline components
receive it as an injected dependency exposing one ``complete`` capability,
so tests can substitute a deterministic stub.

GatewayOracle speaks the OpenAI-compatible chat-completions protocol over
httpx. It does not retry: the structured generator owns the retry budget,
and rate-limit / payment failures must reach the caller as typed errors.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger

from config import Settings, get_settings
from studyflow.errors import (
    OraclePaymentRequired,
    OracleRateLimited,
    OracleUnavailable,
)

Message = dict[str, str]


class GenerationOracle(Protocol):
    """Anything that can turn a chat transcript into text."""

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        ...


class GatewayOracle:
    """HTTP client for an OpenAI-compatible chat-completions gateway."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        temperature: float = 0.3,
        timeout_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the gateway client.

        Args:
            api_url: Chat-completions endpoint
            api_key: Bearer token (required before the first call)
            model: Model identifier sent with every request
            temperature: Default sampling temperature
            timeout_seconds: Transport timeout; cancellation is left to httpx
            client: Optional preconfigured AsyncClient (shared across requests)
        """
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> GatewayOracle:
        settings = settings or get_settings()
        return cls(
            api_url=settings.ai_gateway_url,
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            temperature=settings.ai_temperature,
            timeout_seconds=settings.ai_timeout_seconds,
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        """
        Send a chat transcript and return the assistant's text.

        Raises:
            OracleRateLimited: Gateway answered 429
            OraclePaymentRequired: Gateway answered 402
            OracleUnavailable: Any other transport or HTTP failure
        """
        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if response_schema is not None:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "output", "schema": response_schema},
            }

        data = await self._post(body)
        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise OracleUnavailable(f"Malformed gateway response: {exc}") from exc
        return content

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise OracleUnavailable("AI gateway API key is not configured")

        try:
            response = await self.client.post(
                self.api_url,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as exc:
            logger.warning(f"AI gateway timeout: {exc}")
            raise OracleUnavailable(f"AI gateway timeout: {exc}") from exc
        except httpx.RequestError as exc:
            logger.warning(f"AI gateway request error: {exc}")
            raise OracleUnavailable(f"AI gateway request error: {exc}") from exc

        if response.status_code == 429:
            raise OracleRateLimited("AI gateway rate limit reached, try again later")
        if response.status_code == 402:
            raise OraclePaymentRequired("AI gateway credits exhausted")
        if response.is_error:
            logger.error(f"AI gateway error {response.status_code}: {response.text[:500]}")
            raise OracleUnavailable(
                f"AI gateway error {response.status_code}",
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise OracleUnavailable(f"AI gateway returned invalid JSON: {exc}") from exc
