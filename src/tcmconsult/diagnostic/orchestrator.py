"""Diagnostic pipeline orchestrator.

Stages run strictly in order:

    complexity_analysis -> model_selection -> base_generation
        -> [personalization] -> [safety_validation] -> assembled

Every stage records exactly one ``ProcessingStep``. A stage that raises
marks its step failed and aborts the run with ``PipelineStageError``
carrying the partial trace. Personalization is the exception: its failure
degrades to the unmodified recommendations.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from tcmconsult.config import PipelineConfig
from tcmconsult.diagnostic.prompts import build_diagnosis_prompt, parse_diagnosis
from tcmconsult.diagnostic.schema import (
    DiagnosticRequest,
    DiagnosticResponse,
    PersonalizationFactors,
    PipelineStage,
    ProcessingStep,
)
from tcmconsult.errors import CallerTimeoutError, PipelineStageError
from tcmconsult.routing.complexity import ComplexityAnalyzer
from tcmconsult.routing.schema import RoutingOverrides, RoutingRequirements
from tcmconsult.safety.schema import MedicalHistory, Severity, ValidationContext
from tcmconsult.tracing.telemetry import NullTelemetrySink, TelemetrySink, emit_async

if TYPE_CHECKING:
    from tcmconsult.diagnostic.personalization import Personalizer
    from tcmconsult.routing.router import ModelRouter
    from tcmconsult.safety.validator import SafetyValidator

logger = structlog.get_logger()

T = TypeVar("T")

BASE_CONFIDENCE = 0.8
FAST_GENERATION_MS = 5_000
SLOW_GENERATION_MS = 15_000
RISK_CONFIDENCE_ADJUSTMENT: dict[Severity, float] = {
    Severity.LOW: 0.1,
    Severity.MEDIUM: 0.0,
    Severity.HIGH: -0.2,
    Severity.CRITICAL: -0.4,
}


def compute_confidence(generation_latency_ms: float, risk_level: Severity | None) -> float:
    """Heuristic confidence in [0.1, 1.0] from generation speed and safety risk."""
    confidence = BASE_CONFIDENCE
    if generation_latency_ms < FAST_GENERATION_MS:
        confidence += 0.1
    elif generation_latency_ms > SLOW_GENERATION_MS:
        confidence -= 0.1
    if risk_level is not None:
        confidence += RISK_CONFIDENCE_ADJUSTMENT[risk_level]
    return round(min(1.0, max(0.1, confidence)), 4)


def routing_inputs(request: DiagnosticRequest) -> tuple[RoutingRequirements, RoutingOverrides]:
    """Hard requirements and overrides the router sees for this request."""
    requirements = RoutingRequirements(
        requires_vision=len(request.images) > 0,
        requires_streaming=request.requires_streaming,
        language=request.language,
        preferred_models=list(request.preferred_models),
    )
    overrides = RoutingOverrides(
        preferred_model=request.preferred_model, doctor_level=request.doctor_level
    )
    return requirements, overrides


def _now() -> datetime:
    return datetime.now(tz=UTC)


class DiagnosticOrchestrator:
    """Runs one consultation request end to end."""

    def __init__(
        self,
        router: ModelRouter,
        validator: SafetyValidator | None = None,
        personalizer: Personalizer | None = None,
        analyzer: ComplexityAnalyzer | None = None,
        config: PipelineConfig | None = None,
        telemetry: TelemetrySink | None = None,
    ):
        self._router = router
        self._validator = validator
        self._personalizer = personalizer
        self._analyzer = analyzer or ComplexityAnalyzer()
        self._config = config or PipelineConfig()
        self._telemetry = telemetry or NullTelemetrySink()

    async def process(
        self, request: DiagnosticRequest, timeout_seconds: float | None = None
    ) -> DiagnosticResponse:
        """Run the pipeline. Raises PipelineStageError or CallerTimeoutError."""
        timeout = timeout_seconds if timeout_seconds is not None else self._config.timeout_seconds
        steps: list[ProcessingStep] = []
        start = time.perf_counter()
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        logger.info("consultation_started", user_id=request.user_id, timeout_seconds=timeout)

        try:
            if timeout is None:
                response = await self._run(request, steps, start, deadline)
            else:
                response = await asyncio.wait_for(
                    self._run(request, steps, start, deadline), timeout=timeout
                )
        except (TimeoutError, CallerTimeoutError) as exc:
            for step in steps:
                if step.ended_at is None:
                    step.ended_at = _now()
                    step.error = "caller timeout"
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.warning(
                "consultation_timeout",
                user_id=request.user_id,
                timeout_seconds=timeout,
                completed_steps=[str(s.name) for s in steps if s.success],
            )
            await self._emit_failure(request, steps, "CallerTimeoutError", elapsed_ms)
            msg = f"Consultation exceeded {timeout}s deadline"
            raise CallerTimeoutError(msg, steps=steps) from exc
        except PipelineStageError as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            await self._emit_failure(request, exc.steps, exc.classification, elapsed_ms)
            raise

        await emit_async(
            self._telemetry,
            "consultation_completed",
            {
                "user_id": request.user_id,
                "model": response.model_used,
                "tier": str(response.complexity.tier),
                "confidence": response.confidence,
                "risk_level": str(response.safety.risk_level) if response.safety else None,
                "total_latency_ms": response.total_latency_ms,
                "steps": _step_summary(response.processing_steps),
            },
        )
        return response

    async def _emit_failure(
        self,
        request: DiagnosticRequest,
        steps: list[ProcessingStep],
        classification: str,
        elapsed_ms: float,
    ) -> None:
        await emit_async(
            self._telemetry,
            "consultation_failed",
            {
                "user_id": request.user_id,
                "error": classification,
                "total_latency_ms": elapsed_ms,
                "steps": _step_summary(steps),
            },
        )

    async def _stage(
        self,
        stage: PipelineStage,
        steps: list[ProcessingStep],
        action: Callable[[], Awaitable[tuple[T, dict[str, Any]]]],
    ) -> T:
        step = ProcessingStep(name=stage, started_at=_now())
        steps.append(step)
        try:
            value, metadata = await action()
        except CallerTimeoutError:
            step.ended_at = _now()
            step.error = "caller timeout"
            raise
        except Exception as exc:
            step.ended_at = _now()
            step.error = f"{type(exc).__name__}: {exc}"[:300]
            logger.error("pipeline_stage_failed", stage=str(stage), error=step.error)
            raise PipelineStageError(str(stage), list(steps)) from exc
        step.ended_at = _now()
        step.success = True
        step.metadata = metadata
        return value

    @staticmethod
    def _skip(stage: PipelineStage, steps: list[ProcessingStep]) -> None:
        now = _now()
        steps.append(
            ProcessingStep(name=stage, started_at=now, ended_at=now, success=True, skipped=True)
        )

    async def _run(
        self,
        request: DiagnosticRequest,
        steps: list[ProcessingStep],
        start: float,
        deadline: float | None = None,
    ) -> DiagnosticResponse:
        async def analyze():
            complexity = self._analyzer.analyze(request)
            return complexity, {"tier": str(complexity.tier), "score": complexity.score}

        complexity = await self._stage(PipelineStage.COMPLEXITY_ANALYSIS, steps, analyze)

        requirements, overrides = routing_inputs(request)

        async def select():
            selection = self._router.select_candidates(complexity, requirements, overrides)
            return selection, {
                "primary": selection.primary.model_id,
                "fallbacks": [m.model_id for m in selection.fallbacks],
            }

        selection = await self._stage(PipelineStage.MODEL_SELECTION, steps, select)

        async def generate():
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - asyncio.get_running_loop().time())
            route = await self._router.execute(
                selection,
                build_diagnosis_prompt(request),
                streaming=request.requires_streaming,
                timeout_seconds=remaining,
                max_tokens=self._config.max_tokens,
            )
            report = parse_diagnosis(route.text)
            return (route, report), {
                "model": route.model_id,
                "attempts": route.attempted_models,
                "retry_count": route.retry_count,
                "latency_ms": route.latency_ms,
                "parsed": report.parsed,
            }

        route, report = await self._stage(PipelineStage.BASE_GENERATION, steps, generate)
        recommendations = report.recommendations
        history = request.medical_history or MedicalHistory()

        personalization_applied = False
        if (
            request.requires_personalization
            and self._config.enable_personalization
            and self._personalizer is not None
        ):
            personalizer = self._personalizer
            factors = PersonalizationFactors(
                allergies=list(history.allergies),
                dietary_type=request.dietary_type,
                disliked_foods=list(request.disliked_foods),
                language=request.language,
            )

            async def personalize():
                try:
                    result = await personalizer.personalize(recommendations, factors)
                except Exception as exc:
                    logger.warning(
                        "personalization_degraded",
                        user_id=request.user_id,
                        error=f"{type(exc).__name__}: {exc}"[:200],
                    )
                    return (recommendations, False), {"degraded": True, "error": type(exc).__name__}
                return (result.recommendations, True), {"adjustments": result.adjustments}

            recommendations, personalization_applied = await self._stage(
                PipelineStage.PERSONALIZATION, steps, personalize
            )
        else:
            self._skip(PipelineStage.PERSONALIZATION, steps)

        safety = None
        if (
            request.requires_safety_validation
            and self._config.enable_safety_validation
            and self._validator is not None
        ):
            validator = self._validator
            context = ValidationContext(
                medical_history=history,
                age=request.basic_info.age,
                diagnosis=" ".join(p for p in (report.diagnosis, report.analysis) if p),
                symptoms=[m.content for m in request.messages if m.role == "user"],
                language=request.language,
            )

            async def validate():
                result = await validator.validate(recommendations, context)
                return result, {
                    "risk_level": str(result.risk_level),
                    "is_safe": result.is_safe,
                    "concerns": len(result.concerns),
                    "failed_checks": [str(k) for k in result.failed_checks],
                }

            safety = await self._stage(PipelineStage.SAFETY_VALIDATION, steps, validate)
        else:
            self._skip(PipelineStage.SAFETY_VALIDATION, steps)

        confidence = compute_confidence(route.latency_ms, safety.risk_level if safety else None)
        total_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "consultation_assembled",
            user_id=request.user_id,
            model=route.model_id,
            confidence=confidence,
            total_latency_ms=f"{total_ms:.0f}",
        )
        return DiagnosticResponse(
            user_id=request.user_id,
            report=report,
            recommendations=recommendations,
            complexity=complexity,
            route=route,
            model_used=route.model_id,
            selection_reasoning=selection.reasoning,
            safety=safety,
            personalization_applied=personalization_applied,
            confidence=confidence,
            processing_steps=steps,
            total_latency_ms=total_ms,
        )


def _step_summary(steps: list[ProcessingStep]) -> list[dict[str, Any]]:
    return [
        {
            "name": str(s.name),
            "success": s.success,
            "skipped": s.skipped,
            "duration_ms": round(s.duration_ms, 1),
            "error": s.error,
        }
        for s in steps
    ]
