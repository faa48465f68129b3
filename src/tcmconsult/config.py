"""Runtime configuration: YAML file overlaid on built-in defaults.

Secrets (``GOOGLE_API_KEY``, ``HF_TOKEN``) are read from the environment,
never from the YAML file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field

from tcmconsult.routing.registry import (
    COMPLEXITY_THRESHOLDS,
    COMPLEXITY_WEIGHTS,
    DEFAULT_DOCTOR_LEVEL_MODELS,
    DEFAULT_MODELS,
)
from tcmconsult.routing.schema import ComplexityTier, DoctorLevel, ModelCandidate

logger = structlog.get_logger()


class RoutingConfig(BaseModel):
    tier_thresholds: dict[ComplexityTier, float] = Field(
        default_factory=lambda: dict(COMPLEXITY_THRESHOLDS)
    )
    complexity_weights: dict[str, float] = Field(default_factory=lambda: dict(COMPLEXITY_WEIGHTS))
    long_history_threshold: int = 10
    max_retries: int = 3
    stream_max_retries: int = 2
    max_fallbacks: int = 3
    window_size: int = 100
    min_samples_for_history: int = 5
    doctor_level_models: dict[DoctorLevel, str] = Field(
        default_factory=lambda: dict(DEFAULT_DOCTOR_LEVEL_MODELS)
    )
    models: list[ModelCandidate] = Field(default_factory=lambda: list(DEFAULT_MODELS))


class SafetyConfig(BaseModel):
    max_alternatives: int = 5
    enable_ai_checks: bool = True
    minor_age: int = 18
    elderly_age: int = 65


class PipelineConfig(BaseModel):
    timeout_seconds: float | None = 30.0
    max_tokens: int = 2048
    # Deployment-wide switches; a request flag can only narrow these.
    enable_personalization: bool = True
    enable_safety_validation: bool = True


class TelemetryConfig(BaseModel):
    enabled: bool = False
    path: Path = Path("runs/telemetry.jsonl")


class TcmConsultConfig(BaseModel):
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)


def load_config(path: str | Path | None = None) -> TcmConsultConfig:
    """Load config from YAML. Missing sections fall back to defaults."""
    if path is None:
        return TcmConsultConfig()
    config_path = Path(path)
    with open(config_path) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    config = TcmConsultConfig.model_validate(raw)
    logger.info(
        "config_loaded",
        path=str(config_path),
        models=len(config.routing.models),
        timeout_seconds=config.pipeline.timeout_seconds,
    )
    return config
