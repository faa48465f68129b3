"""Domain models for the diagnostic pipeline."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tcmconsult.routing.schema import DoctorLevel, RequestComplexity, RouteResult, Urgency
from tcmconsult.safety.schema import MedicalHistory, RecommendationSet, SafetyValidationResult


class PipelineStage(enum.StrEnum):
    """Pipeline stages, in execution order."""

    COMPLEXITY_ANALYSIS = "complexity_analysis"
    MODEL_SELECTION = "model_selection"
    BASE_GENERATION = "base_generation"
    PERSONALIZATION = "personalization"
    SAFETY_VALIDATION = "safety_validation"


class DietaryType(enum.StrEnum):
    OMNIVORE = "omnivore"
    VEGETARIAN = "vegetarian"
    VEGAN = "vegan"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0


class BasicInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    age: int | None = None
    gender: str | None = None


class DiagnosticRequest(BaseModel):
    """One consultation request. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    doctor_level: DoctorLevel | None = None
    language: str = "en"
    messages: tuple[Message, ...] = ()
    images: tuple[Attachment, ...] = ()
    files: tuple[Attachment, ...] = ()
    medical_history: MedicalHistory | None = None
    basic_info: BasicInfo = Field(default_factory=BasicInfo)
    urgency: Urgency = Urgency.NORMAL
    requires_analysis: bool = True
    requires_personalization: bool = False
    requires_safety_validation: bool = True
    requires_streaming: bool = False
    preferred_model: str | None = None
    preferred_models: tuple[str, ...] = ()
    dietary_type: DietaryType = DietaryType.OMNIVORE
    disliked_foods: tuple[str, ...] = ()


class ProcessingStep(BaseModel):
    name: PipelineStage
    started_at: datetime
    ended_at: datetime | None = None
    success: bool = False
    skipped: bool = False
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds() * 1000


class DiagnosisReport(BaseModel):
    """Parsed base generation."""

    diagnosis: str
    constitution: str = ""
    analysis: str = ""
    recommendations: RecommendationSet = Field(default_factory=RecommendationSet)
    parsed: bool = True


class PersonalizationResult(BaseModel):
    recommendations: RecommendationSet
    adjustments: list[str] = Field(default_factory=list)


class DiagnosticResponse(BaseModel):
    user_id: str
    report: DiagnosisReport
    recommendations: RecommendationSet
    complexity: RequestComplexity
    route: RouteResult
    model_used: str
    selection_reasoning: list[str] = Field(default_factory=list)
    safety: SafetyValidationResult | None = None
    personalization_applied: bool = False
    confidence: float
    processing_steps: list[ProcessingStep]
    total_latency_ms: float


class PersonalizationFactors(BaseModel):
    """Inputs the personalizer is allowed to see."""

    allergies: list[str] = Field(default_factory=list)
    dietary_type: DietaryType = DietaryType.OMNIVORE
    disliked_foods: list[str] = Field(default_factory=list)
    language: str = "en"
