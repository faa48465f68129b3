"""Safety validator: fans out every checker and aggregates one risk verdict.

``validate`` never raises. A checker that fails internally is replaced by a
single conservative concern for its slice, and its kind is listed in
``failed_checks``.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import TYPE_CHECKING

import structlog

from tcmconsult.config import SafetyConfig
from tcmconsult.errors import SafetyCheckInternalError
from tcmconsult.safety.checkers import CHECKERS, Checker, CheckerDeps
from tcmconsult.safety.knowledge import (
    ALLERGEN_SYNONYMS,
    ALLERGY_ALTERNATIVES,
    HERB_SUBSTITUTES,
    SAFETY_ADVICE,
)
from tcmconsult.safety.schema import (
    CheckKind,
    CheckResult,
    EvidenceLevel,
    RecommendationSet,
    RequiredAction,
    SafetyConcern,
    SafetyValidationResult,
    Severity,
    ValidationContext,
)

if TYPE_CHECKING:
    from tcmconsult.models.base import ModelAdapter

logger = structlog.get_logger()


def overall_risk(concerns: list[SafetyConcern]) -> Severity:
    """Maximum severity among concerns; low when there are none."""
    return max((c.severity for c in concerns), key=lambda s: s.rank, default=Severity.LOW)


def is_overall_safe(risk: Severity, concerns: list[SafetyConcern]) -> bool:
    return risk != Severity.CRITICAL and not any(c.severity == Severity.CRITICAL for c in concerns)


def safety_advice(concerns: list[SafetyConcern]) -> list[str]:
    """One advice line per distinct required action, most urgent first."""
    actions = {c.action_required for c in concerns}
    return [text for action, text in SAFETY_ADVICE.items() if action in actions]


def conservative_slice(kind: CheckKind) -> CheckResult:
    return CheckResult(
        kind=kind,
        concerns=[
            SafetyConcern(
                kind=kind,
                severity=Severity.HIGH,
                description=f"{kind} check unavailable - consult a healthcare provider",
                affected_recommendation="all",
                evidence_level=EvidenceLevel.THEORETICAL,
                action_required=RequiredAction.SEEK_MEDICAL_ADVICE,
            )
        ],
    )


def failsafe_result() -> SafetyValidationResult:
    concern = SafetyConcern(
        kind=CheckKind.CONTRAINDICATION,
        severity=Severity.HIGH,
        description="Safety validation system error - please consult healthcare provider",
        affected_recommendation="all",
        evidence_level=EvidenceLevel.CLINICAL_STUDY,
        action_required=RequiredAction.SEEK_MEDICAL_ADVICE,
    )
    return SafetyValidationResult(
        is_safe=False,
        risk_level=Severity.HIGH,
        concerns=[concern],
        recommendations=["Consult healthcare provider before following any recommendations"],
        failed_checks=list(CheckKind),
    )


class SafetyValidator:
    """Runs all registered checkers concurrently over the same input."""

    def __init__(
        self,
        assistant: ModelAdapter | None = None,
        config: SafetyConfig | None = None,
        checkers: dict[CheckKind, Checker] | None = None,
    ):
        self._config = config or SafetyConfig()
        self._deps = CheckerDeps(assistant=assistant, config=self._config)
        self._checkers = dict(checkers) if checkers is not None else dict(CHECKERS)

    async def _run_checker(
        self,
        kind: CheckKind,
        checker: Checker,
        recommendations: RecommendationSet,
        context: ValidationContext,
    ) -> CheckResult:
        try:
            if inspect.iscoroutinefunction(checker):
                return await checker(recommendations, context, self._deps)
            return checker(recommendations, context, self._deps)
        except Exception as exc:
            msg = f"{kind} checker failed: {type(exc).__name__}: {exc}"
            raise SafetyCheckInternalError(msg, check=kind) from exc

    async def validate(
        self, recommendations: RecommendationSet, context: ValidationContext
    ) -> SafetyValidationResult:
        """Validate recommendations against the patient context. Never raises."""
        start = time.perf_counter()
        try:
            kinds = list(self._checkers)
            outcomes = await asyncio.gather(
                *(
                    self._run_checker(kind, self._checkers[kind], recommendations, context)
                    for kind in kinds
                ),
                return_exceptions=True,
            )

            slices: list[CheckResult] = []
            failed: list[CheckKind] = []
            for kind, outcome in zip(kinds, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    logger.warning(
                        "safety_check_failed",
                        check=str(kind),
                        error=str(outcome)[:200],
                    )
                    failed.append(kind)
                    slices.append(conservative_slice(kind))
                else:
                    slices.append(outcome)

            result = self._aggregate(recommendations, context, slices, failed)
        except Exception:
            logger.error("safety_validation_failed", exc_info=True)
            return failsafe_result()

        logger.info(
            "safety_validation_complete",
            risk_level=str(result.risk_level),
            is_safe=result.is_safe,
            concerns=len(result.concerns),
            emergency_flags=len(result.emergency_flags),
            failed_checks=[str(k) for k in failed],
            latency_ms=f"{(time.perf_counter() - start) * 1000:.0f}",
        )
        return result

    def _aggregate(
        self,
        recommendations: RecommendationSet,
        context: ValidationContext,
        slices: list[CheckResult],
        failed: list[CheckKind],
    ) -> SafetyValidationResult:
        concerns = [c for s in slices for c in s.concerns]
        risk = overall_risk(concerns)
        return SafetyValidationResult(
            is_safe=is_overall_safe(risk, concerns),
            risk_level=risk,
            concerns=concerns,
            recommendations=safety_advice(concerns),
            emergency_flags=[f for s in slices for f in s.emergency_flags],
            contraindications=[c for s in slices for c in s.contraindications],
            drug_interactions=[i for s in slices for i in s.drug_interactions],
            alternative_suggestions=self._alternatives(concerns, context),
            failed_checks=failed,
        )

    def _alternatives(self, concerns: list[SafetyConcern], context: ValidationContext) -> list[str]:
        """Substitutes for flagged items, deduplicated and capped."""
        suggestions: list[str] = []

        if any(c.kind == CheckKind.ALLERGY for c in concerns):
            for allergen in context.medical_history.allergies:
                key = allergen.strip().lower()
                suggestion = ALLERGY_ALTERNATIVES.get(ALLERGEN_SYNONYMS.get(key, key))
                if suggestion:
                    suggestions.append(suggestion)

        for concern in concerns:
            flagged = concern.affected_recommendation.lower()
            if flagged == "all":
                continue
            for herb, substitute in HERB_SUBSTITUTES.items():
                if herb in flagged:
                    suggestions.append(substitute)

        unique = list(dict.fromkeys(suggestions))
        return unique[: self._config.max_alternatives]
