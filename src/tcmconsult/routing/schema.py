"""Domain models for complexity analysis and model routing."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ComplexityTier(enum.StrEnum):
    """Request complexity classification, lowest first."""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        return list(ComplexityTier).index(self)


class MedicalComplexity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Urgency(enum.StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DoctorLevel(enum.StrEnum):
    """Practitioner capability level chosen by the patient."""

    MASTER = "master"
    EXPERT = "expert"
    PHYSICIAN = "physician"


class ComplexityFactors(BaseModel):
    """Raw request attributes that feed the complexity score."""

    model_config = ConfigDict(frozen=True)

    has_images: bool = False
    image_count: int = 0
    has_multiple_files: bool = False
    file_count: int = 0
    total_file_bytes: int = 0
    has_long_history: bool = False
    message_count: int = 0
    requires_analysis: bool = False
    requires_personalization: bool = False
    medical_complexity: MedicalComplexity = MedicalComplexity.LOW
    urgency: Urgency = Urgency.NORMAL


class RequestComplexity(BaseModel):
    """Output of the complexity analyzer."""

    model_config = ConfigDict(frozen=True)

    tier: ComplexityTier
    score: float = Field(ge=0.0, le=100.0)
    factors: ComplexityFactors
    reasoning: tuple[str, ...] = ()


class ModelCandidate(BaseModel):
    """Static capability record for one generation backend.

    ``complexity_tiers`` is ordered: the first entry is the tier the model
    is tuned for, the rest are tiers it can still serve.
    """

    model_config = ConfigDict(frozen=True)

    model_id: str
    display_name: str = ""
    supports_vision: bool = False
    supports_streaming: bool = True
    complexity_tiers: tuple[ComplexityTier, ...]
    quality_score: float = Field(ge=0.0, le=1.0)
    medical_accuracy: float = Field(ge=0.0, le=1.0)
    average_latency_ms: float = Field(ge=0.0)
    cost_per_token: float = Field(ge=0.0)
    supported_languages: tuple[str, ...] = ("en", "zh", "ms")

    @property
    def home_tier(self) -> ComplexityTier:
        return self.complexity_tiers[0]


class RoutingRequirements(BaseModel):
    """Hard filters and soft preferences for candidate selection."""

    requires_vision: bool = False
    requires_streaming: bool = False
    language: str = "en"
    excluded_models: list[str] = Field(default_factory=list)
    preferred_models: list[str] = Field(default_factory=list)
    max_latency_ms: float | None = None
    max_cost_per_token: float | None = None


class RoutingOverrides(BaseModel):
    """Caller-forced primary model, applied after ranking."""

    preferred_model: str | None = None
    doctor_level: DoctorLevel | None = None


class ScoredCandidate(BaseModel):
    candidate: ModelCandidate
    score: float
    breakdown: dict[str, float] = Field(default_factory=dict)


class CandidateSelection(BaseModel):
    """Ordered primary + fallbacks produced by the router."""

    primary: ModelCandidate
    fallbacks: list[ModelCandidate] = Field(default_factory=list)
    ranked: list[ScoredCandidate] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)

    @property
    def ordered(self) -> list[ModelCandidate]:
        return [self.primary, *self.fallbacks]


class PerformanceEntry(BaseModel):
    """Outcome of one generation attempt."""

    model_config = ConfigDict(frozen=True)

    model_id: str
    success: bool
    latency_ms: float
    error_type: str | None = None
    attempt_index: int = 0
    timestamp: datetime


class PerformanceStats(BaseModel):
    model_id: str
    total_requests: int
    success_rate: float
    average_latency_ms: float
    recent_errors: list[str] = Field(default_factory=list)


class RouteResult(BaseModel):
    """Successful generation, attributed to exactly one candidate."""

    text: str
    model_id: str
    attempt_index: int
    retry_count: int
    latency_ms: float
    total_latency_ms: float
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0
    attempted_models: list[str] = Field(default_factory=list)
    streamed: bool = False
