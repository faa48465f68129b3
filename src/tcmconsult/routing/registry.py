"""Default model capability registry and complexity scoring tables."""

from __future__ import annotations

from tcmconsult.routing.schema import ComplexityTier, DoctorLevel, ModelCandidate

S = ComplexityTier.SIMPLE
M = ComplexityTier.MODERATE
C = ComplexityTier.COMPLEX
A = ComplexityTier.ADVANCED

# Points per triggered factor; keys match routing.complexity.FACTOR_REASONS.
COMPLEXITY_WEIGHTS: dict[str, float] = {
    "images": 25,
    "multiple_files": 20,
    "long_history": 15,
    "analysis": 25,
    "personalization": 15,
    "medical_medium": 8,
    "medical_high": 15,
    "urgency_high": 10,
    "urgency_urgent": 20,
}

# Minimum score per tier; anything below the lowest is simple.
COMPLEXITY_THRESHOLDS: dict[ComplexityTier, float] = {A: 75, C: 50, M: 25}

DEFAULT_MODELS: tuple[ModelCandidate, ...] = (
    ModelCandidate(
        model_id="gemini-2.0-flash",
        display_name="Gemini 2.0 Flash",
        supports_vision=True,
        complexity_tiers=(S, M),
        quality_score=0.82,
        medical_accuracy=0.80,
        average_latency_ms=2000,
        cost_per_token=0.075e-6,
    ),
    ModelCandidate(
        model_id="gemini-2.5-flash",
        display_name="Gemini 2.5 Flash",
        supports_vision=True,
        complexity_tiers=(M, S, C),
        quality_score=0.87,
        medical_accuracy=0.85,
        average_latency_ms=3500,
        cost_per_token=0.30e-6,
    ),
    ModelCandidate(
        model_id="gemini-2.5-pro",
        display_name="Gemini 2.5 Pro",
        supports_vision=True,
        complexity_tiers=(C, M, A),
        quality_score=0.93,
        medical_accuracy=0.92,
        average_latency_ms=7000,
        cost_per_token=1.25e-6,
    ),
    ModelCandidate(
        model_id="gemini-3-pro-preview",
        display_name="Gemini 3 Pro",
        supports_vision=True,
        complexity_tiers=(A, C),
        quality_score=0.96,
        medical_accuracy=0.94,
        average_latency_ms=10000,
        cost_per_token=2.0e-6,
    ),
    ModelCandidate(
        model_id="medgemma-27b",
        display_name="MedGemma 27B",
        supports_vision=False,
        supports_streaming=False,
        complexity_tiers=(C, M),
        quality_score=0.85,
        medical_accuracy=0.93,
        average_latency_ms=9000,
        cost_per_token=0.5e-6,
        supported_languages=("en",),
    ),
)

DEFAULT_DOCTOR_LEVEL_MODELS: dict[DoctorLevel, str] = {
    DoctorLevel.MASTER: "gemini-3-pro-preview",
    DoctorLevel.EXPERT: "gemini-2.5-pro",
    DoctorLevel.PHYSICIAN: "gemini-2.0-flash",
}
