"""Response metadata shared by all model adapters."""

from __future__ import annotations

from pydantic import BaseModel


class ModelResponse(BaseModel):
    """Raw model API response metadata."""

    text: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    estimated_cost: float
    token_count_estimated: bool = False
