"""
Gemini client shared by every phase node.

Wraps `google-genai` with a per-call timeout, error categorization and
exponential-backoff retries for recoverable failures. Nodes receive an
`LLMClient` instance; tests substitute a fake with the same two methods.
"""

import asyncio
from typing import Any

from google import genai
from google.genai import types

from task_orchestrator.config import LLMConfig
from task_orchestrator.utils.error_handling import (
    LLMError,
    categorize_error,
    retry_async,
)
from task_orchestrator.utils.json_parsing import parse_json_response
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


class LLMClient:
    """Async text and JSON completions against a Gemini model."""

    def __init__(self, config: LLMConfig, client: genai.Client | None = None):
        """
        Initialize the client.

        Args:
            config: Model, sampling and retry settings
            client: Pre-built genai client (optional, created lazily otherwise)
        """
        self.config = config
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.api_key or None)
        return self._client

    async def complete(
        self,
        system: str,
        user: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        purpose: str = "completion",
    ) -> str:
        """
        Generate a text completion.

        Args:
            system: System instruction
            user: User message
            temperature: Override of the configured temperature
            max_tokens: Override of the configured output token limit
            purpose: Short label used in log messages

        Returns:
            The model's text, stripped ("" when the model returned nothing)

        Raises:
            LLMError: If the call fails after retries
        """
        contents = [types.Content(role="user", parts=[types.Part.from_text(text=user)])]
        generation_config = types.GenerateContentConfig(
            temperature=self.config.temperature if temperature is None else temperature,
            max_output_tokens=max_tokens or self.config.max_tokens,
            system_instruction=system,
        )

        async def attempt() -> str:
            try:
                async with asyncio.timeout(self.config.timeout_seconds):
                    response = await self.client.aio.models.generate_content(
                        model=self.config.model,
                        contents=contents,
                        config=generation_config,
                    )
            except LLMError:
                raise
            except Exception as e:
                category, recoverable = categorize_error(e)
                logger.warning(f"LLM {purpose} failed ({category.value}): {e!s}")
                raise LLMError(
                    str(e) or type(e).__name__,
                    category=category,
                    recoverable=recoverable,
                    original_error=e,
                ) from e
            return (response.text or "").strip()

        return await retry_async(
            attempt,
            max_attempts=self.config.max_retries,
            label=f"LLM {purpose}",
        )

    async def complete_json(
        self,
        system: str,
        user: str,
        default: Any = None,
        expect: type | None = dict,
        temperature: float | None = None,
        max_tokens: int | None = None,
        purpose: str = "json",
    ) -> Any:
        """
        Generate a completion and parse it as JSON.

        Args:
            system: System instruction
            user: User message
            default: Value returned when no parsing tier succeeds
            expect: Required top-level JSON type
            temperature: Override of the configured temperature
            max_tokens: Override of the configured output token limit
            purpose: Short label used in log messages

        Returns:
            Parsed value, or `default`

        Raises:
            LLMError: If the call fails after retries
        """
        text = await self.complete(
            system, user, temperature=temperature, max_tokens=max_tokens, purpose=purpose
        )
        result = parse_json_response(text, default=default, expect=expect)
        if result.used_default:
            logger.warning(f"LLM {purpose} returned no usable JSON, using default")
        else:
            logger.debug(f"LLM {purpose} JSON parsed via {result.tier.value}")
        return result.value
