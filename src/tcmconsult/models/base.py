"""Base protocol for generation backends.

The router treats every backend through this interface; adapters raise
typed errors from ``tcmconsult.errors`` so fallback can branch on them.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tcmconsult.models.schema import ModelResponse


class ModelAdapter(abc.ABC):
    """Abstract base for LLM model adapters."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Model identifier, matching the registry's ``model_id``."""

    @abc.abstractmethod
    async def generate(self, prompt: str, max_tokens: int = 2048) -> ModelResponse:
        """Send prompt to model and return structured response."""

    async def stream(self, prompt: str, max_tokens: int = 2048) -> AsyncIterator[str]:
        """Yield response text in chunks.

        Backends without native streaming yield the full generation once.
        """
        response = await self.generate(prompt, max_tokens=max_tokens)
        yield response.text

    @abc.abstractmethod
    async def health_check(self) -> bool:
        """Return True if model endpoint is reachable."""
