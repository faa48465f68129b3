"""Tests for error classification and typed generation errors."""

import pytest

from tcmconsult.errors import (
    GenerationFatalError,
    GenerationTransientError,
    PipelineStageError,
    classify_provider_error,
    to_generation_error,
)


@pytest.mark.parametrize(
    ("message", "code"),
    [
        ("Your API key was reported as leaked", "API_KEY_LEAKED"),
        ("400 API_KEY_INVALID: API key not valid", "API_KEY_INVALID"),
        ("429 RESOURCE_EXHAUSTED: quota exceeded", "API_QUOTA_EXCEEDED"),
        ("404 NOT_FOUND: models/foo is not found", "MODEL_NOT_FOUND"),
        ("503 UNAVAILABLE: model is overloaded", "MODEL_OVERLOADED"),
        ("Read timed out", "TIMEOUT"),
        ("something odd", "UNKNOWN_ERROR"),
    ],
)
def test_classify_provider_error(message, code):
    assert classify_provider_error(RuntimeError(message)) == code


def test_builtin_timeout_classified_as_timeout():
    assert classify_provider_error(TimeoutError()) == "TIMEOUT"


def test_credential_errors_are_fatal():
    err = to_generation_error(RuntimeError("API_KEY_INVALID"), "gemini-2.5-pro")
    assert isinstance(err, GenerationFatalError)
    assert err.model_id == "gemini-2.5-pro"


def test_overload_and_unknown_errors_are_transient():
    assert isinstance(to_generation_error(RuntimeError("503"), "m"), GenerationTransientError)
    assert isinstance(to_generation_error(ValueError("weird"), "m"), GenerationTransientError)


def test_typed_errors_pass_through_unchanged():
    original = GenerationTransientError("busy", model_id="m")
    assert to_generation_error(original, "other") is original


def test_pipeline_stage_error_classification_uses_cause():
    try:
        try:
            raise GenerationFatalError("exhausted")
        except GenerationFatalError as cause:
            raise PipelineStageError("base_generation", []) from cause
    except PipelineStageError as exc:
        assert exc.classification == "GenerationFatalError"
        assert exc.stage == "base_generation"


def test_pipeline_stage_error_without_cause():
    assert PipelineStageError("complexity_analysis", []).classification == "PipelineStageError"
