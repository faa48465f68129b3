"""Gemini adapter via Google AI Studio (google-genai SDK).

Each call is a single attempt. Provider failures are mapped to
``GenerationTransientError`` / ``GenerationFatalError`` and fallback across
models is left to the router.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog
from google import genai

from tcmconsult.errors import to_generation_error
from tcmconsult.models.base import ModelAdapter
from tcmconsult.models.schema import ModelResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger()

DEFAULT_MODEL = "gemini-2.5-pro"

# Pricing per 1M tokens (approximate)
COST_PER_1M_INPUT = 1.25
COST_PER_1M_OUTPUT = 10.00

THINKING_MODELS = {"gemini-2.5-pro", "gemini-3-pro-preview"}


class GeminiAdapter(ModelAdapter):
    """Adapter for Gemini models via Google AI Studio."""

    def __init__(self, api_key: str = "", model: str = DEFAULT_MODEL, json_output: bool = True):
        self._client = genai.Client(api_key=api_key)
        self._model = model
        self._is_thinking_model = model in THINKING_MODELS
        self._json_output = json_output

    @property
    def name(self) -> str:
        return self._model

    def _config(self, max_tokens: int) -> dict:
        # Thinking models count internal reasoning against max_output_tokens.
        effective_max_tokens = max(max_tokens, 8192) if self._is_thinking_model else max_tokens
        config: dict = {"max_output_tokens": effective_max_tokens}
        if self._json_output:
            config["response_mime_type"] = "application/json"
        return config

    async def generate(self, prompt: str, max_tokens: int = 2048) -> ModelResponse:
        """Generate with Gemini, tracking cost."""
        start = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self._model,
                contents=prompt,
                config=self._config(max_tokens),
            )
        except Exception as e:
            logger.warning("gemini_generate_failed", model=self._model, error=str(e)[:120])
            raise to_generation_error(e, self._model) from e

        elapsed = (time.perf_counter() - start) * 1000
        text = response.text or ""
        input_tokens = 0
        output_tokens = 0
        if hasattr(response, "usage_metadata") and response.usage_metadata:
            input_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            output_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        cost = (input_tokens * COST_PER_1M_INPUT + output_tokens * COST_PER_1M_OUTPUT) / 1_000_000
        return ModelResponse(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=elapsed,
            estimated_cost=cost,
        )

    async def stream(self, prompt: str, max_tokens: int = 2048) -> AsyncIterator[str]:
        """Stream text chunks through the SDK's async client."""
        try:
            chunks = await self._client.aio.models.generate_content_stream(
                model=self._model,
                contents=prompt,
                config=self._config(max_tokens),
            )
            async for chunk in chunks:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            logger.warning("gemini_stream_failed", model=self._model, error=str(e)[:120])
            raise to_generation_error(e, self._model) from e

    async def health_check(self) -> bool:
        """Check if Gemini API is reachable."""
        try:
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self._model,
                contents='Return JSON: {"status": "ok"}',
                config={"response_mime_type": "application/json", "max_output_tokens": 50},
            )
        except Exception:
            return False
        return response is not None
