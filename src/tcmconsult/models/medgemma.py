"""MedGemma adapter for a HuggingFace Inference Endpoint.

Supports two backend modes:
- TGI: text_generation with Gemma chat template tags
- vLLM: OpenAI-compatible chat_completion API
"""

from __future__ import annotations

import asyncio
import time

import structlog
from huggingface_hub import InferenceClient

from tcmconsult.errors import to_generation_error
from tcmconsult.models.base import ModelAdapter
from tcmconsult.models.schema import ModelResponse

logger = structlog.get_logger()


def format_gemma_prompt(system: str, user: str) -> str:
    """Format prompt using Gemma chat template.

    Gemma folds system prompt into first user turn.
    """
    return f"<start_of_turn>user\n{system}\n\n{user}<end_of_turn>\n<start_of_turn>model\n"


class MedGemmaAdapter(ModelAdapter):
    """Adapter for MedGemma on an HF Inference Endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        hf_token: str = "",
        model_name: str = "medgemma-27b",
        use_chat_api: bool = True,
        system_prompt: str = "",
    ):
        self._endpoint_url = endpoint_url
        self._client = InferenceClient(
            model=endpoint_url,
            token=hf_token or None,
            headers={"X-Scale-Up-Timeout": "300"},
        )
        self._model_name = model_name
        self._use_chat_api = use_chat_api
        self._system_prompt = system_prompt

    @property
    def name(self) -> str:
        return self._model_name

    def _call_text_generation(self, prompt: str, max_tokens: int) -> tuple[str, int]:
        """TGI backend. Returns (text, estimated_input_tokens), chars // 4 heuristic."""
        formatted = format_gemma_prompt(self._system_prompt, prompt)
        result = self._client.text_generation(formatted, max_new_tokens=max_tokens)
        return result, len(formatted) // 4

    def _call_chat_completion(self, prompt: str, max_tokens: int) -> tuple[str, int]:
        """vLLM backend. Returns (text, input_tokens) from API usage stats."""
        messages = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat_completion(messages=messages, max_tokens=max_tokens)
        text = response.choices[0].message.content or ""
        input_tokens = getattr(response.usage, "prompt_tokens", len(prompt) // 4)
        return text, input_tokens

    async def generate(self, prompt: str, max_tokens: int = 2048) -> ModelResponse:
        """Generate text; one attempt, errors mapped for the router."""
        start = time.perf_counter()
        call = self._call_chat_completion if self._use_chat_api else self._call_text_generation
        try:
            result, prompt_len = await asyncio.to_thread(call, prompt, max_tokens)
        except Exception as e:
            logger.warning(
                "medgemma_generate_failed",
                model=self._model_name,
                endpoint=self._endpoint_url,
                error=str(e)[:120],
            )
            raise to_generation_error(e, self._model_name) from e

        elapsed = (time.perf_counter() - start) * 1000
        output_tokens = len(result) // 4
        cost = prompt_len * 0.00001 + output_tokens * 0.00003
        return ModelResponse(
            text=result,
            input_tokens=prompt_len,
            output_tokens=output_tokens,
            latency_ms=elapsed,
            estimated_cost=cost,
            token_count_estimated=not self._use_chat_api,
        )

    async def health_check(self) -> bool:
        """Check if the endpoint is reachable with a minimal generation."""
        try:
            await self.generate("Say OK.", max_tokens=5)
        except Exception:
            return False
        return True
