"""Model output cleanup and JSON extraction shared by generation consumers."""

from __future__ import annotations

import json
import re
from typing import Any


def clean_model_response(raw_text: str) -> str:
    """Strip model-specific artifacts before JSON parsing.

    Handles MedGemma prompt echo, thinking tokens, and chat turn markers.
    Clean responses (Gemini) pass through unchanged.
    """
    if "<start_of_turn>model" in raw_text:
        raw_text = raw_text.rsplit("<start_of_turn>model", 1)[1]

    # MedGemma internal monologue: <unused94>thought ... <unused95>
    raw_text = re.sub(r"<unused\d+>.*?<unused\d+>", "", raw_text, flags=re.DOTALL)
    raw_text = re.sub(r"<unused\d+>", "", raw_text)
    raw_text = re.sub(r"^\s*thought\s+", "", raw_text, flags=re.IGNORECASE | re.MULTILINE)
    raw_text = raw_text.replace("<end_of_turn>", "")

    return raw_text.strip()


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in model output, or None.

    Tries the whole text, then a markdown code fence, then the outermost
    brace span.
    """
    cleaned = clean_model_response(raw_text)

    candidates = [cleaned]
    fence = re.search(r"```(?:json)?\s*(.*?)\s*```", cleaned, re.DOTALL)
    if fence:
        candidates.append(fence.group(1))
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        candidates.append(cleaned[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None
