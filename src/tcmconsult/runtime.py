"""Runtime wiring for the consultation pipeline.

This module centralizes:
1. Adapter factories driven by environment variables.
2. Health preflight checks for the configured model endpoints.
3. Assembly of a ready-to-run ``DiagnosticOrchestrator``.
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from tcmconsult.diagnostic.orchestrator import DiagnosticOrchestrator
from tcmconsult.diagnostic.personalization import RuleBasedPersonalizer
from tcmconsult.models.gemini import GeminiAdapter
from tcmconsult.models.medgemma import MedGemmaAdapter
from tcmconsult.routing.complexity import ComplexityAnalyzer
from tcmconsult.routing.router import ModelRouter
from tcmconsult.safety.validator import SafetyValidator
from tcmconsult.tracing.telemetry import JsonlTelemetrySink, NullTelemetrySink

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tcmconsult.config import RoutingConfig, TcmConsultConfig
    from tcmconsult.models.base import ModelAdapter

logger = structlog.get_logger()

SAFETY_MODEL_ID = "gemini-2.5-pro"

_API_KEY_ENV = "GOOGLE_API_KEY"
_HF_TOKEN_ENV = "HF_TOKEN"
_MEDGEMMA_ENDPOINT_ENV = "TCMCONSULT_MEDGEMMA_ENDPOINT"
_MEDGEMMA_CHAT_API_ENV = "TCMCONSULT_MEDGEMMA_CHAT_API"
_DISABLE_AI_SAFETY_ENV = "TCMCONSULT_DISABLE_AI_SAFETY"


@dataclass(slots=True)
class HealthCheckResult:
    """Result of one preflight check."""

    name: str
    ok: bool
    latency_ms: float
    detail: str


def _is_truthy(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def api_key_from_env() -> str:
    return os.environ.get(_API_KEY_ENV, "")


def hf_token_from_env() -> str:
    return os.environ.get(_HF_TOKEN_ENV, "")


def create_adapters(
    config: RoutingConfig, api_key: str = "", hf_token: str = ""
) -> dict[str, ModelAdapter]:
    """Create one adapter per registry model whose backend is configured."""
    endpoint = os.environ.get(_MEDGEMMA_ENDPOINT_ENV, "")
    use_chat_api = _is_truthy(os.environ.get(_MEDGEMMA_CHAT_API_ENV, "true"))

    adapters: dict[str, ModelAdapter] = {}
    for model in config.models:
        if model.model_id.startswith("gemini") and api_key:
            adapters[model.model_id] = GeminiAdapter(api_key=api_key, model=model.model_id)
        elif model.model_id.startswith("medgemma") and endpoint:
            adapters[model.model_id] = MedGemmaAdapter(
                endpoint_url=endpoint,
                hf_token=hf_token,
                model_name=model.model_id,
                use_chat_api=use_chat_api,
            )

    if not adapters:
        msg = (
            f"No generation backend configured. Set {_API_KEY_ENV} for Gemini "
            f"and/or {_MEDGEMMA_ENDPOINT_ENV} for MedGemma."
        )
        raise ValueError(msg)
    logger.info("adapters_created", models=sorted(adapters))
    return adapters


def create_safety_assistant(api_key: str = "") -> ModelAdapter | None:
    """Adapter used by the AI-assisted safety checks, or None when unavailable."""
    if not api_key or _is_truthy(os.environ.get(_DISABLE_AI_SAFETY_ENV, "")):
        return None
    return GeminiAdapter(api_key=api_key, model=SAFETY_MODEL_ID)


def build_orchestrator(
    config: TcmConsultConfig,
    adapters: Mapping[str, ModelAdapter] | None,
    assistant: ModelAdapter | None = None,
) -> DiagnosticOrchestrator:
    telemetry = (
        JsonlTelemetrySink(config.telemetry.path) if config.telemetry.enabled else NullTelemetrySink()
    )
    return DiagnosticOrchestrator(
        router=ModelRouter(adapters=adapters, config=config.routing),
        validator=SafetyValidator(assistant=assistant, config=config.safety),
        personalizer=RuleBasedPersonalizer(),
        analyzer=ComplexityAnalyzer(config.routing),
        config=config.pipeline,
        telemetry=telemetry,
    )


def _truncate_detail(raw: str, max_len: int = 200) -> str:
    if len(raw) <= max_len:
        return raw
    return raw[:max_len].rstrip() + "..."


async def check_model_health(name: str, adapter: ModelAdapter) -> HealthCheckResult:
    """Run model adapter health check without raising."""
    start = time.perf_counter()
    try:
        ok = await adapter.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        detail = "ok" if ok else "health check returned False"
        log_fn = logger.info if ok else logger.warning
        log_fn(
            "preflight_model_ok" if ok else "preflight_model_failed",
            check=name,
            model=adapter.name,
            latency_ms=f"{latency_ms:.0f}",
        )
        return HealthCheckResult(name=name, ok=ok, latency_ms=latency_ms, detail=detail)
    except Exception as exc:
        latency_ms = (time.perf_counter() - start) * 1000
        detail = _truncate_detail(f"{type(exc).__name__}: {exc}")
        logger.warning(
            "preflight_model_exception",
            check=name,
            model=adapter.name,
            latency_ms=f"{latency_ms:.0f}",
            error=detail,
        )
        return HealthCheckResult(name=name, ok=False, latency_ms=latency_ms, detail=detail)


async def run_preflight(adapters: Mapping[str, ModelAdapter]) -> list[HealthCheckResult]:
    """Check every adapter concurrently. Never raises for individual failures."""
    names = list(adapters)
    raw_results = await asyncio.gather(
        *(check_model_health(name, adapters[name]) for name in names),
        return_exceptions=True,
    )
    results: list[HealthCheckResult] = []
    for name, item in zip(names, raw_results, strict=True):
        if isinstance(item, BaseException):
            detail = _truncate_detail(f"{type(item).__name__}: {item}")
            logger.warning("preflight_unexpected_exception", check=name, error=detail)
            results.append(HealthCheckResult(name=name, ok=False, latency_ms=0.0, detail=detail))
            continue
        results.append(item)

    failed = [r.name for r in results if not r.ok]
    logger.info("preflight_complete", total_checks=len(results), failed_checks=failed)
    return results


def failed_preflight_checks(results: list[HealthCheckResult]) -> list[HealthCheckResult]:
    """Return preflight checks that failed."""
    return [r for r in results if not r.ok]
