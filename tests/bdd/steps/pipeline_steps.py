"""BDD step definitions for the diagnostic consultation pipeline."""

import asyncio

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from tcmconsult.diagnostic.orchestrator import DiagnosticOrchestrator
from tcmconsult.diagnostic.personalization import RuleBasedPersonalizer
from tcmconsult.diagnostic.schema import BasicInfo, DiagnosticRequest, Message
from tcmconsult.errors import GenerationTransientError, PipelineStageError
from tcmconsult.models.base import ModelAdapter
from tcmconsult.models.schema import ModelResponse
from tcmconsult.routing.registry import DEFAULT_MODELS
from tcmconsult.routing.router import ModelRouter
from tcmconsult.safety.validator import SafetyValidator

DIAGNOSIS = (
    '{"diagnosis": "Spleen qi deficiency", "constitution": "qi deficient", '
    '"analysis": "Fatigue after meals", "recommendations": {"dietary": ["Millet congee"], '
    '"herbal": [], "lifestyle": ["Rest after lunch"], "acupressure": ["ST36"]}}'
)


@scenario(
    "../../../features/diagnostic/consultation_pipeline.feature",
    "Successful consultation records every stage",
)
def test_successful_consultation():
    pass


@scenario(
    "../../../features/diagnostic/consultation_pipeline.feature",
    "Generation failure reports the failing stage",
)
def test_generation_failure():
    pass


class StubAdapter(ModelAdapter):
    def __init__(self, model_id: str, healthy: bool):
        self._model_id = model_id
        self._healthy = healthy

    @property
    def name(self) -> str:
        return self._model_id

    async def generate(self, prompt: str, max_tokens: int = 2048) -> ModelResponse:
        if not self._healthy:
            raise GenerationTransientError("connection refused", model_id=self._model_id)
        return ModelResponse(
            text=DIAGNOSIS, input_tokens=50, output_tokens=40, latency_ms=20.0, estimated_cost=0.0
        )

    async def health_check(self) -> bool:
        return self._healthy


# --- Shared context ---


@pytest.fixture()
def context():
    return {}


# --- Given ---


@given("a patient consultation about fatigue after meals")
def given_consultation(context):
    context["request"] = DiagnosticRequest(
        user_id="bdd-patient",
        messages=(Message(role="user", content="I feel exhausted after every meal"),),
        basic_info=BasicInfo(age=38),
        requires_personalization=True,
    )


def _orchestrator(healthy: bool) -> DiagnosticOrchestrator:
    adapters = {m.model_id: StubAdapter(m.model_id, healthy) for m in DEFAULT_MODELS}
    return DiagnosticOrchestrator(
        router=ModelRouter(adapters=adapters),
        validator=SafetyValidator(),
        personalizer=RuleBasedPersonalizer(),
    )


@given("all generation backends respond")
def given_healthy_backends(context):
    context["orchestrator"] = _orchestrator(healthy=True)


@given("every generation backend is down")
def given_failing_backends(context):
    context["orchestrator"] = _orchestrator(healthy=False)


# --- When ---


@when("the consultation is processed")
def process(context):
    context["response"] = asyncio.run(context["orchestrator"].process(context["request"]))


@when("the consultation is processed expecting a failure")
def process_failure(context):
    with pytest.raises(PipelineStageError) as exc_info:
        asyncio.run(context["orchestrator"].process(context["request"]))
    context["error"] = exc_info.value


# --- Then ---


@then(parsers.parse('the processing steps are "{names}"'))
def check_steps(context, names):
    expected = [n.strip() for n in names.split(",")]
    assert [str(s.name) for s in context["response"].processing_steps] == expected


@then("every processing step succeeded")
def check_success(context):
    assert all(s.success for s in context["response"].processing_steps)


@then(parsers.parse('the failure stage is "{stage}"'))
def check_failure_stage(context, stage):
    assert context["error"].stage == stage


@then(parsers.parse('the partial trace ends with a failed "{stage}" step'))
def check_partial_trace(context, stage):
    last = context["error"].steps[-1]
    assert last.name == stage
    assert last.success is False
