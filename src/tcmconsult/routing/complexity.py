"""Request complexity analysis.

Pure scoring of request attributes into a tier, a 0-100 score and an
ordered list of human-readable reasons. Same request, same result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from tcmconsult.config import RoutingConfig
from tcmconsult.routing.schema import (
    ComplexityFactors,
    ComplexityTier,
    MedicalComplexity,
    RequestComplexity,
    Urgency,
)

if TYPE_CHECKING:
    from tcmconsult.diagnostic.schema import DiagnosticRequest
    from tcmconsult.safety.schema import MedicalHistory

logger = structlog.get_logger()

MAX_SCORE = 100.0

# (weight key, reason) in reasoning order.
FACTOR_REASONS: tuple[tuple[str, str], ...] = (
    ("images", "Contains images requiring vision analysis"),
    ("multiple_files", "Multiple files need processing"),
    ("long_history", "Long conversation history"),
    ("analysis", "Requires deep medical analysis"),
    ("personalization", "Needs personalized recommendations"),
    ("medical_high", "High medical complexity detected"),
    ("medical_medium", "Moderate medical complexity detected"),
    ("urgency_urgent", "Urgent priority level"),
    ("urgency_high", "High priority level"),
)


def medical_complexity(history: MedicalHistory | None) -> MedicalComplexity:
    if history is None:
        return MedicalComplexity.LOW
    if len(history.conditions) > 3:
        return MedicalComplexity.HIGH
    if len(history.current_medications) > 2:
        return MedicalComplexity.MEDIUM
    return MedicalComplexity.LOW


def extract_factors(request: DiagnosticRequest, long_history_threshold: int = 10) -> ComplexityFactors:
    return ComplexityFactors(
        has_images=len(request.images) > 0,
        image_count=len(request.images),
        has_multiple_files=len(request.files) > 1,
        file_count=len(request.files),
        total_file_bytes=sum(f.size_bytes for f in request.files),
        has_long_history=len(request.messages) > long_history_threshold,
        message_count=len(request.messages),
        requires_analysis=request.requires_analysis,
        requires_personalization=request.requires_personalization,
        medical_complexity=medical_complexity(request.medical_history),
        urgency=request.urgency,
    )


def triggered_factors(factors: ComplexityFactors) -> set[str]:
    keys: set[str] = set()
    if factors.has_images:
        keys.add("images")
    if factors.has_multiple_files:
        keys.add("multiple_files")
    if factors.has_long_history:
        keys.add("long_history")
    if factors.requires_analysis:
        keys.add("analysis")
    if factors.requires_personalization:
        keys.add("personalization")
    if factors.medical_complexity == MedicalComplexity.HIGH:
        keys.add("medical_high")
    elif factors.medical_complexity == MedicalComplexity.MEDIUM:
        keys.add("medical_medium")
    if factors.urgency == Urgency.URGENT:
        keys.add("urgency_urgent")
    elif factors.urgency == Urgency.HIGH:
        keys.add("urgency_high")
    return keys


class ComplexityAnalyzer:
    """Scores requests with configurable weights and tier thresholds."""

    def __init__(self, config: RoutingConfig | None = None):
        self._config = config or RoutingConfig()

    def tier_for(self, score: float) -> ComplexityTier:
        thresholds = sorted(self._config.tier_thresholds.items(), key=lambda kv: kv[1], reverse=True)
        for tier, threshold in thresholds:
            if score >= threshold:
                return tier
        return ComplexityTier.SIMPLE

    def score(self, factors: ComplexityFactors) -> tuple[float, list[str]]:
        weights = self._config.complexity_weights
        active = triggered_factors(factors)
        raw = sum(weights.get(key, 0.0) for key in active)
        score = min(max(float(raw), 0.0), MAX_SCORE)
        reasons = [reason for key, reason in FACTOR_REASONS if key in active]
        return score, reasons

    def analyze(self, request: DiagnosticRequest) -> RequestComplexity:
        factors = extract_factors(request, self._config.long_history_threshold)
        score, reasons = self.score(factors)
        tier = self.tier_for(score)
        logger.info(
            "complexity_analyzed",
            user_id=request.user_id,
            tier=str(tier),
            score=score,
            factors=len(reasons),
        )
        return RequestComplexity(
            tier=tier,
            score=score,
            factors=factors,
            reasoning=(f"Overall complexity score: {score:.0f}/100", *reasons),
        )
