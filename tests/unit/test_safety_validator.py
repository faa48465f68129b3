"""Tests for safety validation aggregation."""

import asyncio
from unittest.mock import patch

from tcmconsult.config import SafetyConfig
from tcmconsult.safety.checkers import CHECKERS
from tcmconsult.safety.schema import (
    CheckKind,
    CheckResult,
    MedicalHistory,
    PregnancyStatus,
    RecommendationSet,
    RequiredAction,
    SafetyConcern,
    Severity,
    ValidationContext,
)
from tcmconsult.safety.validator import (
    SafetyValidator,
    is_overall_safe,
    overall_risk,
    safety_advice,
)


def _concern(severity: Severity, action: RequiredAction = RequiredAction.MONITOR) -> SafetyConcern:
    return SafetyConcern(
        kind=CheckKind.ALLERGY, severity=severity, description="x", action_required=action
    )


def test_overall_risk_is_max_severity():
    assert overall_risk([]) == Severity.LOW
    assert overall_risk([_concern(Severity.MEDIUM), _concern(Severity.HIGH)]) == Severity.HIGH


def test_critical_concern_is_never_safe():
    concerns = [_concern(Severity.CRITICAL)]
    assert is_overall_safe(overall_risk(concerns), concerns) is False
    assert is_overall_safe(Severity.HIGH, [_concern(Severity.HIGH)]) is True


def test_safety_advice_most_urgent_first():
    advice = safety_advice(
        [
            _concern(Severity.LOW, RequiredAction.MONITOR),
            _concern(Severity.CRITICAL, RequiredAction.EMERGENCY_CARE),
            _concern(Severity.HIGH, RequiredAction.AVOID_COMPLETELY),
            _concern(Severity.HIGH, RequiredAction.AVOID_COMPLETELY),
        ]
    )
    assert advice == [
        "Seek immediate emergency medical care",
        "Avoid flagged substances completely",
        "Monitor for any adverse reactions",
    ]


def test_clean_recommendations_are_safe():
    recs = RecommendationSet(dietary=["Warm rice porridge"], lifestyle=["Sleep before 11pm"])
    result = asyncio.run(SafetyValidator().validate(recs, ValidationContext(age=35)))

    assert result.is_safe is True
    assert result.risk_level == Severity.LOW
    assert result.concerns == []
    assert result.failed_checks == []


def test_pregnancy_contraindication_is_unsafe():
    recs = RecommendationSet(herbal=["Angelica root soup"])
    context = ValidationContext(
        medical_history=MedicalHistory(pregnancy_status=PregnancyStatus.PREGNANT)
    )
    result = asyncio.run(SafetyValidator().validate(recs, context))

    assert result.is_safe is False
    assert result.risk_level == Severity.CRITICAL
    assert result.contraindications
    assert any("goji" in s for s in result.alternative_suggestions)


def test_failing_checker_is_replaced_with_conservative_concern():
    def broken(recommendations, context, deps):
        raise KeyError("table missing")

    checkers = dict(CHECKERS)
    checkers[CheckKind.ALLERGY] = broken
    validator = SafetyValidator(checkers=checkers)

    recs = RecommendationSet(herbal=["Ginkgo biloba extract"])
    context = ValidationContext(medical_history=MedicalHistory(current_medications=["warfarin"]))
    result = asyncio.run(validator.validate(recs, context))

    assert result.failed_checks == [CheckKind.ALLERGY]
    assert result.risk_level == Severity.HIGH
    kinds = {c.kind for c in result.concerns}
    assert kinds == {CheckKind.ALLERGY, CheckKind.DRUG_INTERACTION}
    allergy = next(c for c in result.concerns if c.kind == CheckKind.ALLERGY)
    assert allergy.description == "allergy check unavailable - consult a healthcare provider"
    assert allergy.action_required == RequiredAction.SEEK_MEDICAL_ADVICE


def test_every_checker_runs_on_the_same_input():
    seen: list[CheckKind] = []

    def spy(kind):
        def checker(recommendations, context, deps):
            seen.append(kind)
            return CheckResult(kind=kind)

        return checker

    async def async_spy(recommendations, context, deps):
        seen.append(CheckKind.EMERGENCY)
        return CheckResult(kind=CheckKind.EMERGENCY)

    checkers = {kind: spy(kind) for kind in CheckKind}
    checkers[CheckKind.EMERGENCY] = async_spy
    result = asyncio.run(
        SafetyValidator(checkers=checkers).validate(RecommendationSet(), ValidationContext())
    )

    assert sorted(seen) == sorted(CheckKind)
    assert result.is_safe is True


def test_alternatives_are_deduplicated_and_capped():
    recs = RecommendationSet(
        dietary=["shrimp congee", "almond milk", "cheese toast", "tofu stir fry"],
        herbal=["ginkgo tea", "ginkgo capsules"],
    )
    context = ValidationContext(
        medical_history=MedicalHistory(
            allergies=["shellfish", "nuts", "dairy", "soy"], current_medications=["warfarin"]
        )
    )
    validator = SafetyValidator(config=SafetyConfig(max_alternatives=3))
    result = asyncio.run(validator.validate(recs, context))

    assert len(result.alternative_suggestions) == 3
    assert len(set(result.alternative_suggestions)) == 3


def test_validate_never_raises():
    with patch.object(SafetyValidator, "_aggregate", side_effect=RuntimeError("boom")):
        result = asyncio.run(SafetyValidator().validate(RecommendationSet(), ValidationContext()))

    assert result.is_safe is False
    assert result.risk_level == Severity.HIGH
    assert set(result.failed_checks) == set(CheckKind)
