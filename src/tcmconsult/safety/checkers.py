"""Independent safety checkers.

Each checker takes the same inputs and returns one ``CheckResult`` slice.
Checkers never read each other's output; the validator fans them out and
joins the slices. Checkers that need the generation backend are coroutines,
the rest are plain functions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from tcmconsult.config import SafetyConfig
from tcmconsult.parsing import extract_json_object
from tcmconsult.safety.knowledge import (
    ALLERGEN_SYNONYMS,
    CONDITION_CONTRAINDICATIONS,
    CRITICAL_SYMPTOMS,
    CROSS_REACTIVITY,
    EMERGENCY_KEYWORDS,
    GERIATRIC_CAUTION_KEYWORDS,
    INTERACTION_ACTION_MAP,
    INTERACTION_SEVERITY_MAP,
    KNOWN_INTERACTIONS,
    PEDIATRIC_CAUTION_KEYWORDS,
    PREGNANCY_CONTRAINDICATIONS,
    PREGNANCY_UNSAFE_KEYWORDS,
)
from tcmconsult.safety.schema import (
    CheckKind,
    CheckResult,
    Contraindication,
    DrugInteraction,
    EmergencyFlag,
    EvidenceLevel,
    InteractionSeverity,
    PregnancyStatus,
    RecommendationSet,
    RequiredAction,
    SafetyConcern,
    Severity,
    ValidationContext,
)

if TYPE_CHECKING:
    from tcmconsult.models.base import ModelAdapter

logger = structlog.get_logger()


@dataclass(slots=True)
class CheckerDeps:
    """Shared collaborators handed to every checker."""

    assistant: ModelAdapter | None = None
    config: SafetyConfig = field(default_factory=SafetyConfig)

    @property
    def ai_enabled(self) -> bool:
        return self.assistant is not None and self.config.enable_ai_checks


Checker = Callable[
    [RecommendationSet, ValidationContext, CheckerDeps],
    CheckResult | Awaitable[CheckResult],
]


# --- Allergy ---


def _allergen_forms(allergen: str) -> tuple[str, set[str]]:
    canonical = ALLERGEN_SYNONYMS.get(allergen, allergen)
    forms = {allergen, canonical}
    forms.update(alias for alias, target in ALLERGEN_SYNONYMS.items() if target == canonical)
    return canonical, forms


def check_allergies(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    """Flag recommendations that contain, or cross-react with, a listed allergen."""
    result = CheckResult(kind=CheckKind.ALLERGY)
    allergies = [a.strip().lower() for a in context.medical_history.allergies if a.strip()]
    if not allergies:
        return result

    for allergen in allergies:
        canonical, forms = _allergen_forms(allergen)
        cross_pattern = CROSS_REACTIVITY.get(canonical)
        for rec in recommendations.flatten():
            text = rec.lower()
            if any(form in text for form in forms):
                description = f"Contains {allergen}, which is listed as an allergy"
            elif cross_pattern is not None and cross_pattern.search(text):
                description = f"May cross-react with {allergen} allergy"
            else:
                continue
            result.concerns.append(
                SafetyConcern(
                    kind=CheckKind.ALLERGY,
                    severity=Severity.HIGH,
                    description=description,
                    affected_recommendation=rec,
                    evidence_level=EvidenceLevel.CLINICAL_STUDY,
                    action_required=RequiredAction.AVOID_COMPLETELY,
                )
            )
    return result


# --- Drug interactions ---


def _known_interaction(herb: str, medication: str) -> DrugInteraction | None:
    herb_text = herb.lower()
    med_text = medication.lower()
    for drug, herbs in KNOWN_INTERACTIONS.items():
        if drug not in med_text:
            continue
        for herb_key, (severity, mechanism, management) in herbs.items():
            if herb_key in herb_text:
                return DrugInteraction(
                    herb=herb,
                    drug=medication,
                    severity=severity,
                    mechanism=mechanism,
                    management=management,
                    source="known_table",
                )
    return None


def build_interaction_prompt(herb: str, medication: str) -> str:
    return (
        "As a clinical pharmacist and TCM expert, analyze the potential interaction between:\n"
        f'- TCM herb/substance: "{herb}"\n'
        f'- Western medication: "{medication}"\n\n'
        "Respond with JSON only:\n"
        "{\n"
        '  "has_interaction": true | false,\n'
        '  "severity": "minor|moderate|major|severe",\n'
        '  "mechanism": "mechanism of interaction",\n'
        '  "clinical_effects": ["effect 1", "effect 2"],\n'
        '  "management": "how to manage this interaction"\n'
        "}\n"
        "Be conservative: if uncertain, err on the side of caution."
    )


async def lookup_interaction(
    herb: str, medication: str, assistant: ModelAdapter
) -> DrugInteraction | None:
    """Ask the generation backend about one herb/drug pair."""
    response = await assistant.generate(build_interaction_prompt(herb, medication), max_tokens=512)
    data = extract_json_object(response.text)
    if data is None:
        msg = f"Unparseable interaction analysis for {herb} + {medication}"
        raise ValueError(msg)
    if not data.get("has_interaction"):
        return None
    return DrugInteraction(
        herb=herb,
        drug=medication,
        severity=InteractionSeverity(str(data.get("severity", "moderate")).lower()),
        mechanism=str(data.get("mechanism", "")),
        clinical_effects=[str(e) for e in data.get("clinical_effects") or []],
        management=str(data.get("management", "")),
        source="ai",
    )


def conservative_interaction(herb: str, medication: str) -> DrugInteraction:
    return DrugInteraction(
        herb=herb,
        drug=medication,
        severity=InteractionSeverity.MODERATE,
        mechanism="Interaction could not be assessed",
        management="Consult healthcare provider before combining",
        source="fallback",
    )


def interaction_concern(interaction: DrugInteraction) -> SafetyConcern:
    return SafetyConcern(
        kind=CheckKind.DRUG_INTERACTION,
        severity=INTERACTION_SEVERITY_MAP[interaction.severity],
        description=(
            f"Potential {interaction.severity} interaction between "
            f"{interaction.herb} and {interaction.drug}"
        ),
        affected_recommendation=interaction.herb,
        evidence_level=(
            EvidenceLevel.CLINICAL_STUDY
            if interaction.source == "known_table"
            else EvidenceLevel.THEORETICAL
        ),
        action_required=INTERACTION_ACTION_MAP[interaction.severity],
    )


async def check_drug_interactions(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    """Herbal recommendations x current medications, table first then AI."""
    result = CheckResult(kind=CheckKind.DRUG_INTERACTION)
    medications = [m for m in context.medical_history.current_medications if m.strip()]
    if not medications or not recommendations.herbal:
        return result

    assistant = deps.assistant if deps.ai_enabled else None
    unknown_pairs: list[tuple[str, str]] = []
    for herb in recommendations.herbal:
        for medication in medications:
            known = _known_interaction(herb, medication)
            if known is not None:
                result.drug_interactions.append(known)
            elif assistant is not None:
                unknown_pairs.append((herb, medication))
            else:
                # No lookup possible; an unassessed pair is not a safe pair.
                logger.info("interaction_lookup_unavailable", herb=herb, medication=medication)
                result.drug_interactions.append(conservative_interaction(herb, medication))

    if unknown_pairs and assistant is not None:
        lookups = await asyncio.gather(
            *(lookup_interaction(h, m, assistant) for h, m in unknown_pairs),
            return_exceptions=True,
        )
        for (herb, medication), outcome in zip(unknown_pairs, lookups, strict=True):
            if isinstance(outcome, Exception):
                logger.warning(
                    "interaction_lookup_failed",
                    herb=herb,
                    medication=medication,
                    error=f"{type(outcome).__name__}: {outcome}"[:200],
                )
                result.drug_interactions.append(conservative_interaction(herb, medication))
            elif outcome is not None:
                result.drug_interactions.append(outcome)

    result.concerns.extend(interaction_concern(i) for i in result.drug_interactions)
    return result


# --- Contraindications ---


def _contraindication_concern(item: Contraindication, rec: str) -> SafetyConcern:
    return SafetyConcern(
        kind=CheckKind.CONTRAINDICATION,
        severity=Severity.CRITICAL if item.absolute else Severity.HIGH,
        description=f"{item.item} is contraindicated with {item.condition}: {item.reason}",
        affected_recommendation=rec,
        evidence_level=EvidenceLevel.TRADITIONAL_KNOWLEDGE,
        action_required=(
            RequiredAction.AVOID_COMPLETELY if item.absolute else RequiredAction.SEEK_MEDICAL_ADVICE
        ),
    )


def check_contraindications(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    """Pregnancy and chronic-condition contraindication tables."""
    result = CheckResult(kind=CheckKind.CONTRAINDICATION)
    history = context.medical_history

    tables: list[tuple[str, dict[str, tuple[tuple[str, ...], bool, str]]]] = []
    if history.pregnancy_status == PregnancyStatus.PREGNANT:
        tables.append(("pregnancy", PREGNANCY_CONTRAINDICATIONS))
    for condition in history.conditions:
        lowered = condition.lower()
        for key, table in CONDITION_CONTRAINDICATIONS.items():
            if key in lowered:
                tables.append((condition, table))

    for rec in recommendations.flatten():
        text = rec.lower()
        for condition, table in tables:
            for item, (forms, absolute, reason) in table.items():
                if any(form in text for form in forms):
                    entry = Contraindication(
                        item=item, condition=condition, absolute=absolute, reason=reason
                    )
                    result.contraindications.append(entry)
                    result.concerns.append(_contraindication_concern(entry, rec))
    return result


# --- Emergency ---


def _emergency_text(context: ValidationContext) -> str:
    return " ".join([context.diagnosis, *context.symptoms]).lower()


def keyword_emergencies(text: str) -> list[EmergencyFlag]:
    flags: list[EmergencyFlag] = []
    for keyword in EMERGENCY_KEYWORDS:
        if keyword not in text:
            continue
        condition, action = CRITICAL_SYMPTOMS.get(
            keyword, (keyword, "Seek immediate emergency medical care")
        )
        flags.append(
            EmergencyFlag(
                condition=condition,
                description=f"Emergency symptom reported: {keyword}",
                recommended_action=action,
                symptoms=[keyword],
            )
        )
    return flags


def combination_emergencies(text: str) -> list[EmergencyFlag]:
    """Symptom combinations that indicate an emergency together."""
    flags: list[EmergencyFlag] = []
    if "chest pain" in text and ("shortness of breath" in text or "nausea" in text):
        flags.append(
            EmergencyFlag(
                condition="Possible Heart Attack",
                description="Chest pain with shortness of breath or nausea",
                recommended_action="Call emergency services immediately, chew aspirin if not allergic",
                symptoms=["chest pain", "shortness of breath", "nausea"],
            )
        )
    if ("facial drooping" in text or "arm weakness" in text) and "speech difficulty" in text:
        flags.append(
            EmergencyFlag(
                condition="Possible Stroke",
                description="Facial drooping or arm weakness with speech difficulty",
                recommended_action="Call emergency services immediately, note time of symptom onset",
                symptoms=["facial drooping", "arm weakness", "speech difficulty"],
            )
        )
    if "difficulty breathing" in text and ("swelling" in text or "rash" in text):
        flags.append(
            EmergencyFlag(
                condition="Possible Anaphylaxis",
                description="Difficulty breathing with swelling or rash",
                recommended_action="Call emergency services, use an adrenaline auto-injector if available",
                symptoms=["difficulty breathing", "swelling", "rash"],
            )
        )
    return flags


def build_emergency_prompt(text: str) -> str:
    return (
        "Analyze the following medical text for emergency conditions that require "
        f'immediate medical attention:\n"{text}"\n\n'
        "Respond with JSON only:\n"
        '{"emergencies_detected": [{"condition": "...", "symptoms": ["..."], '
        '"urgency": "immediate|urgent|semi_urgent", "recommended_action": "...", '
        '"reasoning": "..."}]}\n'
        "Only flag true medical emergencies that require immediate professional care."
    )


async def ai_emergencies(text: str, assistant: ModelAdapter) -> list[EmergencyFlag]:
    """AI scan for emergencies the keyword tables miss. Contributes nothing on failure."""
    try:
        response = await assistant.generate(build_emergency_prompt(text), max_tokens=512)
        data = extract_json_object(response.text) or {}
        return [
            EmergencyFlag(
                condition=str(item["condition"]),
                urgency=str(item.get("urgency", "immediate")),
                description=str(item.get("reasoning", "")),
                recommended_action=str(
                    item.get("recommended_action", "Seek immediate emergency medical care")
                ),
                symptoms=[str(s) for s in item.get("symptoms") or []],
            )
            for item in data.get("emergencies_detected") or []
        ]
    except Exception as exc:
        logger.warning("ai_emergency_scan_failed", error=f"{type(exc).__name__}: {exc}"[:200])
        return []


async def check_emergencies(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    """Scan diagnosis and symptoms for emergency presentations."""
    result = CheckResult(kind=CheckKind.EMERGENCY)
    text = _emergency_text(context)
    if not text.strip():
        return result

    flags = keyword_emergencies(text) + combination_emergencies(text)
    if deps.ai_enabled and deps.assistant is not None:
        flags.extend(await ai_emergencies(text, deps.assistant))

    seen: set[str] = set()
    for flag in flags:
        key = flag.condition.lower()
        if key in seen:
            continue
        seen.add(key)
        result.emergency_flags.append(flag)
        result.concerns.append(
            SafetyConcern(
                kind=CheckKind.EMERGENCY,
                severity=Severity.CRITICAL,
                description=f"Emergency condition detected: {flag.condition}",
                affected_recommendation="all",
                evidence_level=EvidenceLevel.CLINICAL_STUDY,
                action_required=RequiredAction.EMERGENCY_CARE,
            )
        )
    return result


# --- Pregnancy / age ---


def check_pregnancy(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    result = CheckResult(kind=CheckKind.PREGNANCY)
    if context.medical_history.pregnancy_status not in (
        PregnancyStatus.PREGNANT,
        PregnancyStatus.BREASTFEEDING,
    ):
        return result
    for rec in recommendations.flatten():
        text = rec.lower()
        if any(keyword in text for keyword in PREGNANCY_UNSAFE_KEYWORDS):
            result.concerns.append(
                SafetyConcern(
                    kind=CheckKind.PREGNANCY,
                    severity=Severity.MEDIUM,
                    description="Recommendation may not be suitable during pregnancy/breastfeeding",
                    affected_recommendation=rec,
                    action_required=RequiredAction.SEEK_MEDICAL_ADVICE,
                )
            )
    return result


def check_age(
    recommendations: RecommendationSet, context: ValidationContext, deps: CheckerDeps
) -> CheckResult:
    result = CheckResult(kind=CheckKind.AGE_RELATED)
    age = context.age
    if age is None:
        return result

    if age < deps.config.minor_age:
        keywords, severity, action, evidence, description = (
            PEDIATRIC_CAUTION_KEYWORDS,
            Severity.MEDIUM,
            RequiredAction.SEEK_MEDICAL_ADVICE,
            EvidenceLevel.CLINICAL_STUDY,
            "Strong herbs may not be appropriate for children",
        )
    elif age > deps.config.elderly_age:
        keywords, severity, action, evidence, description = (
            GERIATRIC_CAUTION_KEYWORDS,
            Severity.LOW,
            RequiredAction.MONITOR,
            EvidenceLevel.TRADITIONAL_KNOWLEDGE,
            "Cooling herbs should be used cautiously in elderly patients",
        )
    else:
        return result

    for rec in recommendations.flatten():
        if any(keyword in rec.lower() for keyword in keywords):
            result.concerns.append(
                SafetyConcern(
                    kind=CheckKind.AGE_RELATED,
                    severity=severity,
                    description=description,
                    affected_recommendation=rec,
                    evidence_level=evidence,
                    action_required=action,
                )
            )
    return result


CHECKERS: dict[CheckKind, Checker] = {
    CheckKind.ALLERGY: check_allergies,
    CheckKind.DRUG_INTERACTION: check_drug_interactions,
    CheckKind.CONTRAINDICATION: check_contraindications,
    CheckKind.EMERGENCY: check_emergencies,
    CheckKind.PREGNANCY: check_pregnancy,
    CheckKind.AGE_RELATED: check_age,
}
