"""Async LLM client for planning, evaluation and parameter generation."""

from __future__ import annotations

import logging
import os
from typing import AsyncIterator

import httpx
from anthropic import (
    APIConnectionError,
    APIError,
    AsyncAnthropic,
    AuthenticationError,
    InternalServerError,
    RateLimitError,
)

from agentflow.config import LLMSettings
from agentflow.errors import LLMClientError, OperationTimeoutError

logger = logging.getLogger(__name__)


def is_transient_llm_error(error: BaseException) -> bool:
    """Retry predicate for LLM-backed dependencies.

    Connection problems, rate limits, server errors and timeouts are
    retried; anything else (bad request, auth, invalid output) is not.
    """
    if isinstance(error, LLMClientError) and error.__cause__ is not None:
        error = error.__cause__
    return isinstance(
        error,
        (
            APIConnectionError,
            RateLimitError,
            InternalServerError,
            httpx.TransportError,
            OperationTimeoutError,
        ),
    )


class LLMClient:
    """Thin wrapper over AsyncAnthropic with error handling."""

    def __init__(
        self,
        settings: LLMSettings | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize LLM client.

        Args:
            settings: Model, timeout and sampling settings.
            client: Pre-built client. Built from ANTHROPIC_API_KEY when None.

        Raises:
            LLMClientError: If no client is given and ANTHROPIC_API_KEY is not set.
        """
        self.settings = settings or LLMSettings()

        if client is not None:
            self.client = client
            return

        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMClientError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Set it to your Anthropic API key to enable LLM functions."
            )

        try:
            self.client = AsyncAnthropic(
                api_key=api_key,
                timeout=httpx.Timeout(self.settings.timeout_seconds),
            )
        except AuthenticationError as e:
            raise LLMClientError(f"Invalid ANTHROPIC_API_KEY: {e}") from e

    @property
    def model_name(self) -> str:
        return self.settings.model

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Complete a prompt using the LLM.

        Args:
            prompt: The user prompt.
            system: Optional system prompt.
            temperature: Sampling temperature. Defaults to the configured one.

        Returns:
            The completion text.

        Raises:
            LLMClientError: If the API call fails or returns empty response.
        """
        try:
            response = await self.client.messages.create(
                **self._request(prompt, system, temperature)
            )
        except APIError as e:
            logger.error("LLM API error: %s", e)
            raise LLMClientError(f"LLM API call failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise LLMClientError("LLM returned empty response")
        return text

    async def stream(
        self,
        prompt: str,
        system: str | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        """Yield completion text as it arrives.

        Raises:
            LLMClientError: If the API call fails.
        """
        try:
            async with self.client.messages.stream(
                **self._request(prompt, system, temperature)
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except APIError as e:
            logger.error("LLM streaming error: %s", e)
            raise LLMClientError(f"LLM streaming call failed: {e}") from e

    def _request(
        self, prompt: str, system: str | None, temperature: float | None
    ) -> dict:
        request: dict = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature if temperature is None else temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        return request
