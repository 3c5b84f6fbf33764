"""LLM client abstraction for interpretation and scheduling.

Callers depend on the LLMClient protocol (system prompt plus messages in,
completion text out), so tests substitute a fake without touching the
Anthropic SDK. AnthropicLLMClient is the production implementation.
"""

import logging
from typing import Any, Protocol, runtime_checkable

from anthropic import AsyncAnthropic

from src.errors import ConfigurationError
from src.orchestrator.nl_engine.config import get_api_key, get_model

logger = logging.getLogger(__name__)


@runtime_checkable
class LLMClient(Protocol):
    """Chat-completion endpoint returning raw text."""

    async def complete(
        self, system: str, messages: list[dict[str, Any]]
    ) -> str:
        """Return the completion text for a system prompt and message list."""
        ...


class AnthropicLLMClient:
    """LLMClient backed by the Anthropic Messages API.

    The SDK client is created lazily so that a missing API key surfaces
    as ConfigurationError at call time, which the interpreter recovers
    from by switching to the pattern fallback.

    Args:
        model: Model identifier; defaults to ANTHROPIC_MODEL.
        max_tokens: Completion budget.
        api_key: Explicit key; defaults to ANTHROPIC_API_KEY.
    """

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int = 2048,
        api_key: str | None = None,
    ) -> None:
        self._model = get_model(model)
        self._max_tokens = max_tokens
        self._api_key = api_key
        self._client: AsyncAnthropic | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key or get_api_key())

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            api_key = self._api_key or get_api_key()
            if not api_key:
                raise ConfigurationError(
                    "AI interpretation unavailable: configure ANTHROPIC_API_KEY"
                )
            self._client = AsyncAnthropic(api_key=api_key)
        return self._client

    async def complete(
        self, system: str, messages: list[dict[str, Any]]
    ) -> str:
        """Send one Messages API request and join the text blocks.

        Raises:
            ConfigurationError: If no API key is configured.
            anthropic.APIError: On transport or API failure.
        """
        client = self._get_client()
        response = await client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system,
            messages=messages,
        )
        text = "".join(
            block.text for block in response.content if block.type == "text"
        )
        logger.debug("LLM completion: %d chars from %s", len(text), self._model)
        return text
