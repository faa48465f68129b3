"""Domain models for medical safety validation."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(enum.StrEnum):
    """Concern severity, lowest first. Ordering drives risk aggregation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class CheckKind(enum.StrEnum):
    """One independent safety checker; also the kind of concern it emits."""

    ALLERGY = "allergy"
    DRUG_INTERACTION = "drug_interaction"
    CONTRAINDICATION = "contraindication"
    EMERGENCY = "emergency"
    PREGNANCY = "pregnancy"
    AGE_RELATED = "age_related"


class RequiredAction(enum.StrEnum):
    MONITOR = "monitor"
    MODIFY_DOSAGE = "modify_dosage"
    AVOID_COMPLETELY = "avoid_completely"
    SEEK_MEDICAL_ADVICE = "seek_medical_advice"
    EMERGENCY_CARE = "emergency_care"


class EvidenceLevel(enum.StrEnum):
    CLINICAL_STUDY = "clinical_study"
    CASE_REPORT = "case_report"
    THEORETICAL = "theoretical"
    TRADITIONAL_KNOWLEDGE = "traditional_knowledge"


class InteractionSeverity(enum.StrEnum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    SEVERE = "severe"


class PregnancyStatus(enum.StrEnum):
    NOT_PREGNANT = "not_pregnant"
    PREGNANT = "pregnant"
    BREASTFEEDING = "breastfeeding"
    UNKNOWN = "unknown"


class SafetyConcern(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CheckKind
    severity: Severity
    description: str
    affected_recommendation: str = ""
    evidence_level: EvidenceLevel = EvidenceLevel.TRADITIONAL_KNOWLEDGE
    action_required: RequiredAction


class EmergencyFlag(BaseModel):
    condition: str
    urgency: str = "immediate"
    description: str
    recommended_action: str
    symptoms: list[str] = Field(default_factory=list)


class DrugInteraction(BaseModel):
    herb: str
    drug: str
    severity: InteractionSeverity
    mechanism: str = ""
    clinical_effects: list[str] = Field(default_factory=list)
    management: str = ""
    source: str = "known_table"


class Contraindication(BaseModel):
    item: str
    condition: str
    absolute: bool
    reason: str


class MedicalHistory(BaseModel):
    """Read-only patient history supplied with the request."""

    current_medications: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    pregnancy_status: PregnancyStatus = PregnancyStatus.UNKNOWN


class RecommendationSet(BaseModel):
    dietary: list[str] = Field(default_factory=list)
    herbal: list[str] = Field(default_factory=list)
    lifestyle: list[str] = Field(default_factory=list)
    acupressure: list[str] = Field(default_factory=list)

    def flatten(self) -> list[str]:
        """All recommendations in category order: dietary, herbal, lifestyle, acupressure."""
        return [*self.dietary, *self.herbal, *self.lifestyle, *self.acupressure]


class ValidationContext(BaseModel):
    medical_history: MedicalHistory = Field(default_factory=MedicalHistory)
    age: int | None = None
    diagnosis: str = ""
    symptoms: list[str] = Field(default_factory=list)
    language: str = "en"


class CheckResult(BaseModel):
    """Output slice of a single checker."""

    kind: CheckKind
    concerns: list[SafetyConcern] = Field(default_factory=list)
    emergency_flags: list[EmergencyFlag] = Field(default_factory=list)
    drug_interactions: list[DrugInteraction] = Field(default_factory=list)
    contraindications: list[Contraindication] = Field(default_factory=list)


class SafetyValidationResult(BaseModel):
    is_safe: bool
    risk_level: Severity
    concerns: list[SafetyConcern] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    emergency_flags: list[EmergencyFlag] = Field(default_factory=list)
    contraindications: list[Contraindication] = Field(default_factory=list)
    drug_interactions: list[DrugInteraction] = Field(default_factory=list)
    alternative_suggestions: list[str] = Field(default_factory=list)
    failed_checks: list[CheckKind] = Field(default_factory=list)
