"""BDD step definitions for safety validation."""

import asyncio

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from tcmconsult.models.base import ModelAdapter
from tcmconsult.safety.schema import MedicalHistory, RecommendationSet, ValidationContext
from tcmconsult.safety.validator import SafetyValidator


@scenario(
    "../../../features/safety/safety_validation.feature",
    "Shellfish allergy flags a shrimp recommendation",
)
def test_shellfish_allergy():
    pass


@scenario(
    "../../../features/safety/safety_validation.feature",
    "Failed interaction lookup yields a conservative concern",
)
def test_interaction_lookup_failure():
    pass


@scenario(
    "../../../features/safety/safety_validation.feature",
    "Emergency symptoms make the result unsafe",
)
def test_emergency_symptoms():
    pass


class UnavailableAssistant(ModelAdapter):
    @property
    def name(self) -> str:
        return "unavailable"

    async def generate(self, prompt: str, max_tokens: int = 2048):
        raise ConnectionError("assistant backend unreachable")

    async def health_check(self) -> bool:
        return False


# --- Shared context ---


@pytest.fixture()
def context():
    return {
        "allergies": [],
        "medications": [],
        "symptoms": [],
        "recommendations": {"dietary": [], "herbal": []},
        "assistant": None,
    }


# --- Given ---


@given(parsers.parse('a patient allergic to "{allergen}"'))
def given_allergy(context, allergen):
    context["allergies"].append(allergen)


@given(parsers.parse('a patient taking "{medication}"'))
def given_medication(context, medication):
    context["medications"].append(medication)


@given(parsers.parse('the {category} recommendation "{text}"'))
def given_recommendation(context, category, text):
    context["recommendations"][category].append(text)


@given("the interaction assistant is unavailable")
def given_unavailable_assistant(context):
    context["assistant"] = UnavailableAssistant()


@given(parsers.parse('the patient reports "{symptom}"'))
def given_symptom(context, symptom):
    context["symptoms"].append(symptom)


# --- When ---


@when("the recommendations are validated")
def validate(context):
    validation_context = ValidationContext(
        medical_history=MedicalHistory(
            allergies=context["allergies"], current_medications=context["medications"]
        ),
        symptoms=context["symptoms"],
    )
    validator = SafetyValidator(assistant=context["assistant"])
    context["result"] = asyncio.run(
        validator.validate(RecommendationSet(**context["recommendations"]), validation_context)
    )


# --- Then ---


@then(parsers.parse('there is a "{severity}" "{kind}" concern'))
def check_concern(context, severity, kind):
    assert any(c.severity == severity and c.kind == kind for c in context["result"].concerns)


@then(parsers.parse('the overall risk level is "{level}"'))
def check_risk(context, level):
    assert context["result"].risk_level == level


@then(parsers.parse('the "{kind}" concern requires "{action}"'))
def check_action(context, kind, action):
    concern = next(c for c in context["result"].concerns if c.kind == kind)
    assert concern.action_required == action


@then("the result is not safe")
def check_unsafe(context):
    assert context["result"].is_safe is False


@then(parsers.parse('the emergency flags include "{condition}"'))
def check_emergency(context, condition):
    assert condition in [f.condition for f in context["result"].emergency_flags]
