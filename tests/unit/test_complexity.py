"""Tests for request complexity analysis."""

from tcmconsult.config import RoutingConfig
from tcmconsult.diagnostic.schema import Attachment, DiagnosticRequest, Message
from tcmconsult.routing.complexity import ComplexityAnalyzer, extract_factors, medical_complexity
from tcmconsult.routing.schema import ComplexityTier, MedicalComplexity, Urgency
from tcmconsult.safety.schema import MedicalHistory


def _messages(n: int) -> tuple[Message, ...]:
    return tuple(Message(role="user", content=f"symptom note {i}") for i in range(n))


def _image(name: str = "tongue.jpg") -> Attachment:
    return Attachment(name=name, mime_type="image/jpeg", size_bytes=120_000)


def test_images_long_history_and_analysis_is_complex():
    request = DiagnosticRequest(
        user_id="u1",
        messages=_messages(12),
        images=(_image(), _image("face.jpg")),
        requires_analysis=True,
    )
    result = ComplexityAnalyzer().analyze(request)

    assert result.tier == ComplexityTier.COMPLEX
    assert result.score == 65
    assert result.reasoning == (
        "Overall complexity score: 65/100",
        "Contains images requiring vision analysis",
        "Long conversation history",
        "Requires deep medical analysis",
    )


def test_bare_request_is_simple_with_score_line_only():
    request = DiagnosticRequest(user_id="u1", requires_analysis=False)
    result = ComplexityAnalyzer().analyze(request)

    assert result.tier == ComplexityTier.SIMPLE
    assert result.score == 0
    assert result.reasoning == ("Overall complexity score: 0/100",)


def test_score_is_clamped_to_100():
    request = DiagnosticRequest(
        user_id="u1",
        messages=_messages(20),
        images=(_image(),),
        files=(_image("a.pdf"), _image("b.pdf")),
        requires_analysis=True,
        requires_personalization=True,
        medical_history=MedicalHistory(conditions=["a", "b", "c", "d"]),
        urgency=Urgency.URGENT,
    )
    result = ComplexityAnalyzer().analyze(request)

    assert result.score == 100
    assert result.tier == ComplexityTier.ADVANCED
    assert "High medical complexity detected" in result.reasoning
    assert "Urgent priority level" in result.reasoning


def test_history_of_exactly_threshold_is_not_long():
    request = DiagnosticRequest(user_id="u1", messages=_messages(10))
    assert extract_factors(request).has_long_history is False


def test_medical_complexity_levels():
    assert medical_complexity(None) == MedicalComplexity.LOW
    assert medical_complexity(MedicalHistory(conditions=["a", "b", "c", "d"])) == MedicalComplexity.HIGH
    assert medical_complexity(MedicalHistory(current_medications=["x", "y", "z"])) == MedicalComplexity.MEDIUM
    assert medical_complexity(MedicalHistory(conditions=["a"], current_medications=["x"])) == MedicalComplexity.LOW


def test_moderate_medical_and_high_urgency_reasons():
    request = DiagnosticRequest(
        user_id="u1",
        requires_analysis=True,
        medical_history=MedicalHistory(current_medications=["x", "y", "z"]),
        urgency=Urgency.HIGH,
    )
    result = ComplexityAnalyzer().analyze(request)

    assert result.score == 25 + 8 + 10
    assert result.tier == ComplexityTier.MODERATE
    assert result.reasoning[-2:] == ("Moderate medical complexity detected", "High priority level")


def test_analysis_is_deterministic():
    request = DiagnosticRequest(user_id="u1", messages=_messages(12), images=(_image(),))
    analyzer = ComplexityAnalyzer()
    assert analyzer.analyze(request) == analyzer.analyze(request)


def test_tier_is_monotonic_in_score():
    analyzer = ComplexityAnalyzer()
    ranks = [analyzer.tier_for(score).rank for score in range(0, 101)]
    assert ranks == sorted(ranks)
    assert analyzer.tier_for(24.9) == ComplexityTier.SIMPLE
    assert analyzer.tier_for(25) == ComplexityTier.MODERATE
    assert analyzer.tier_for(50) == ComplexityTier.COMPLEX
    assert analyzer.tier_for(75) == ComplexityTier.ADVANCED


def test_custom_thresholds_and_weights():
    config = RoutingConfig(
        tier_thresholds={
            ComplexityTier.ADVANCED: 90,
            ComplexityTier.COMPLEX: 60,
            ComplexityTier.MODERATE: 10,
        },
        complexity_weights={"analysis": 12},
    )
    request = DiagnosticRequest(user_id="u1", images=(_image(),), requires_analysis=True)
    result = ComplexityAnalyzer(config).analyze(request)

    # Factors without a weight contribute nothing but are still reported.
    assert result.score == 12
    assert result.tier == ComplexityTier.MODERATE
    assert "Contains images requiring vision analysis" in result.reasoning
