"""Complexity-aware model router with ordered fallback.

Selection is two stages over the registry: a declarative filter on hard
requirements, then a weighted ranking. Execution walks the ranked list,
one attempt per candidate, until a call succeeds, a fatal error surfaces,
the retry budget runs out, or the caller's deadline passes.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from tcmconsult.config import RoutingConfig
from tcmconsult.errors import (
    CallerTimeoutError,
    GenerationFatalError,
    NoEligibleModelError,
    classify_provider_error,
)
from tcmconsult.routing.performance import PerformanceStore
from tcmconsult.routing.schema import (
    CandidateSelection,
    ModelCandidate,
    RequestComplexity,
    RouteResult,
    RoutingOverrides,
    RoutingRequirements,
    ScoredCandidate,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tcmconsult.models.base import ModelAdapter

logger = structlog.get_logger()


class ModelRouter:
    """Selects and invokes generation backends.

    A router built without adapters can still plan (``select_candidates``)
    but cannot ``execute``; the CLI uses this for dry runs.
    """

    def __init__(
        self,
        adapters: Mapping[str, ModelAdapter] | None = None,
        config: RoutingConfig | None = None,
        performance: PerformanceStore | None = None,
    ):
        self._config = config or RoutingConfig()
        self._registry: dict[str, ModelCandidate] = {m.model_id: m for m in self._config.models}
        self._adapters = dict(adapters) if adapters is not None else None
        self.performance = performance or PerformanceStore(self._config.window_size)

    @property
    def registry(self) -> list[ModelCandidate]:
        return list(self._registry.values())

    # --- selection ---

    def _rejection(
        self,
        model: ModelCandidate,
        complexity: RequestComplexity,
        requirements: RoutingRequirements,
    ) -> str | None:
        if self._adapters is not None and model.model_id not in self._adapters:
            return "no adapter configured"
        if model.model_id in requirements.excluded_models:
            return "excluded by caller"
        if requirements.requires_vision and not model.supports_vision:
            return "vision not supported"
        if requirements.requires_streaming and not model.supports_streaming:
            return "streaming not supported"
        if complexity.tier not in model.complexity_tiers:
            return f"not rated for {complexity.tier} requests"
        if requirements.language not in model.supported_languages:
            return f"language {requirements.language} not supported"
        if (
            requirements.max_latency_ms is not None
            and model.average_latency_ms > requirements.max_latency_ms
        ):
            return "too slow"
        if (
            requirements.max_cost_per_token is not None
            and model.cost_per_token > requirements.max_cost_per_token
        ):
            return "too expensive"
        return None

    def filter_candidates(
        self, complexity: RequestComplexity, requirements: RoutingRequirements
    ) -> list[ModelCandidate]:
        """Registry entries that satisfy every hard requirement, in registry order."""
        eligible: list[ModelCandidate] = []
        for model in self._registry.values():
            reason = self._rejection(model, complexity, requirements)
            if reason is None:
                eligible.append(model)
            else:
                logger.debug("router_candidate_rejected", model=model.model_id, reason=reason)

        if not eligible:
            msg = (
                f"No eligible model for {complexity.tier} request "
                f"(vision={requirements.requires_vision}, "
                f"streaming={requirements.requires_streaming}, "
                f"language={requirements.language})"
            )
            raise NoEligibleModelError(msg, requirements=requirements.model_dump())
        return eligible

    def score_candidate(
        self,
        model: ModelCandidate,
        complexity: RequestComplexity,
        requirements: RoutingRequirements,
    ) -> ScoredCandidate:
        breakdown = {
            "quality": model.quality_score * 40,
            "medical_accuracy": model.medical_accuracy * 30,
            "history": self.performance.history_score(
                model.model_id, self._config.min_samples_for_history
            ),
            "latency": max(0.0, 15 - model.average_latency_ms / 1000),
            "cost": max(0.0, 10 - model.cost_per_token * 1_000_000),
            "tier_fit": 10.0 if model.home_tier == complexity.tier else 5.0,
            "preference": 20.0 if model.model_id in requirements.preferred_models else 0.0,
        }
        return ScoredCandidate(candidate=model, score=sum(breakdown.values()), breakdown=breakdown)

    def rank_candidates(
        self,
        candidates: list[ModelCandidate],
        complexity: RequestComplexity,
        requirements: RoutingRequirements,
    ) -> list[ScoredCandidate]:
        """Descending by score; ties keep registry order (stable sort)."""
        scored = [self.score_candidate(m, complexity, requirements) for m in candidates]
        return sorted(scored, key=lambda s: s.score, reverse=True)

    def _apply_overrides(
        self, ranked: list[ScoredCandidate], overrides: RoutingOverrides, reasoning: list[str]
    ) -> list[ScoredCandidate]:
        forced: str | None = None
        source = ""
        if overrides.preferred_model:
            forced, source = overrides.preferred_model, "preferred model"
        elif overrides.doctor_level is not None:
            forced = self._config.doctor_level_models.get(overrides.doctor_level)
            source = f"{overrides.doctor_level} doctor level"
        if not forced:
            return ranked

        for idx, scored in enumerate(ranked):
            if scored.candidate.model_id == forced:
                reasoning.append(f"Using {forced} as primary ({source} override)")
                return [scored, *ranked[:idx], *ranked[idx + 1 :]]

        reasoning.append(f"Override {forced} ({source}) is not eligible; keeping ranked order")
        logger.warning("router_override_ineligible", model=forced, source=source)
        return ranked

    def select_candidates(
        self,
        complexity: RequestComplexity,
        requirements: RoutingRequirements | None = None,
        overrides: RoutingOverrides | None = None,
    ) -> CandidateSelection:
        """Primary plus up to ``max_fallbacks`` fallbacks for this request."""
        requirements = requirements or RoutingRequirements()
        eligible = self.filter_candidates(complexity, requirements)
        ranked = self.rank_candidates(eligible, complexity, requirements)

        reasoning: list[str] = []
        ranked = self._apply_overrides(ranked, overrides or RoutingOverrides(), reasoning)

        primary = ranked[0]
        fallbacks = [s.candidate for s in ranked[1 : 1 + self._config.max_fallbacks]]
        reasoning.insert(
            0,
            f"Selected {primary.candidate.model_id} (score {primary.score:.1f}) "
            f"for {complexity.tier} request",
        )
        if fallbacks:
            reasoning.append("Fallbacks: " + ", ".join(m.model_id for m in fallbacks))

        logger.info(
            "router_selection",
            tier=str(complexity.tier),
            primary=primary.candidate.model_id,
            fallbacks=[m.model_id for m in fallbacks],
            eligible=len(eligible),
        )
        return CandidateSelection(
            primary=primary.candidate,
            fallbacks=fallbacks,
            ranked=ranked,
            reasoning=reasoning,
        )

    # --- execution ---

    def _adapter_for(self, model_id: str) -> ModelAdapter:
        if self._adapters is None or model_id not in self._adapters:
            msg = f"No adapter configured for {model_id}"
            raise GenerationFatalError(msg, model_id=model_id)
        return self._adapters[model_id]

    async def _attempt(
        self, adapter: ModelAdapter, prompt: str, streaming: bool, max_tokens: int
    ) -> tuple[str, int, int, float]:
        if streaming:
            chunks = [chunk async for chunk in adapter.stream(prompt, max_tokens=max_tokens)]
            text = "".join(chunks)
            return text, len(prompt) // 4, len(text) // 4, 0.0
        response = await adapter.generate(prompt, max_tokens=max_tokens)
        return response.text, response.input_tokens, response.output_tokens, response.estimated_cost

    async def execute(
        self,
        selection: CandidateSelection,
        prompt: str,
        streaming: bool = False,
        timeout_seconds: float | None = None,
        max_tokens: int = 2048,
    ) -> RouteResult:
        """Call candidates in order until one succeeds.

        At most ``max_retries + 1`` attempts (``stream_max_retries`` when
        streaming). Every attempt, success or failure, is recorded in the
        performance store. Fatal errors propagate at once; exhausting the
        chain raises ``GenerationFatalError`` chained from the last error.
        The caller deadline is shared by all attempts and is never retried.
        """
        max_retries = self._config.stream_max_retries if streaming else self._config.max_retries
        ordered = selection.ordered[: max_retries + 1]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds if timeout_seconds is not None else None

        start = time.perf_counter()
        attempted: list[str] = []
        last_error: Exception | None = None

        for index, candidate in enumerate(ordered):
            model_id = candidate.model_id
            adapter = self._adapter_for(model_id)
            attempted.append(model_id)
            attempt_start = time.perf_counter()
            try:
                async with asyncio.timeout_at(deadline) as scope:
                    text, input_tokens, output_tokens, cost = await self._attempt(
                        adapter, prompt, streaming, max_tokens
                    )
            except TimeoutError as exc:
                latency_ms = (time.perf_counter() - attempt_start) * 1000
                if scope.expired():
                    self.performance.record(model_id, False, latency_ms, "caller_timeout", index)
                    logger.warning(
                        "router_caller_timeout",
                        model=model_id,
                        attempt=index + 1,
                        timeout_seconds=timeout_seconds,
                    )
                    msg = f"Generation exceeded {timeout_seconds}s deadline"
                    raise CallerTimeoutError(msg) from exc
                self.performance.record(model_id, False, latency_ms, "TIMEOUT", index)
                last_error = exc
                continue
            except asyncio.CancelledError:
                # Cancelled by an enclosing deadline; the attempt still counts.
                latency_ms = (time.perf_counter() - attempt_start) * 1000
                self.performance.record(model_id, False, latency_ms, "caller_timeout", index)
                logger.warning("router_attempt_cancelled", model=model_id, attempt=index + 1)
                raise
            except GenerationFatalError as exc:
                latency_ms = (time.perf_counter() - attempt_start) * 1000
                self.performance.record(model_id, False, latency_ms, type(exc).__name__, index)
                exc.attempts = list(attempted)
                exc.retry_count = index
                exc.elapsed_ms = (time.perf_counter() - start) * 1000
                logger.error("router_fatal_error", model=model_id, attempt=index + 1, error=str(exc)[:200])
                raise
            except Exception as exc:
                latency_ms = (time.perf_counter() - attempt_start) * 1000
                error_type = classify_provider_error(exc)
                self.performance.record(model_id, False, latency_ms, error_type, index)
                logger.warning(
                    "router_attempt_failed",
                    model=model_id,
                    attempt=index + 1,
                    max_attempts=len(ordered),
                    error_type=error_type,
                    error=str(exc)[:120],
                )
                last_error = exc
                continue

            latency_ms = (time.perf_counter() - attempt_start) * 1000
            self.performance.record(model_id, True, latency_ms, None, index)
            total_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "router_generation_ok",
                model=model_id,
                attempt=index + 1,
                latency_ms=f"{latency_ms:.0f}",
                streamed=streaming,
            )
            return RouteResult(
                text=text,
                model_id=model_id,
                attempt_index=index,
                retry_count=index,
                latency_ms=latency_ms,
                total_latency_ms=total_ms,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                estimated_cost=cost,
                attempted_models=attempted,
                streamed=streaming,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        msg = (
            f"All {len(attempted)} candidate models failed after "
            f"{max(len(attempted) - 1, 0)} retries in {elapsed_ms:.0f}ms"
        )
        logger.error("router_chain_exhausted", attempts=attempted, elapsed_ms=f"{elapsed_ms:.0f}")
        raise GenerationFatalError(
            msg,
            model_id=attempted[-1] if attempted else "",
            attempts=attempted,
            retry_count=max(len(attempted) - 1, 0),
            elapsed_ms=elapsed_ms,
        ) from last_error

    async def route(
        self,
        complexity: RequestComplexity,
        prompt: str,
        requirements: RoutingRequirements | None = None,
        overrides: RoutingOverrides | None = None,
        timeout_seconds: float | None = None,
        max_tokens: int = 2048,
    ) -> RouteResult:
        """Select then execute in one call."""
        requirements = requirements or RoutingRequirements()
        selection = self.select_candidates(complexity, requirements, overrides)
        return await self.execute(
            selection,
            prompt,
            streaming=requirements.requires_streaming,
            timeout_seconds=timeout_seconds,
            max_tokens=max_tokens,
        )
