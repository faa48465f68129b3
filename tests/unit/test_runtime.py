"""Tests for runtime wiring and preflight checks."""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tcmconsult.config import RoutingConfig, TcmConsultConfig
from tcmconsult.diagnostic.orchestrator import DiagnosticOrchestrator
from tcmconsult.runtime import (
    SAFETY_MODEL_ID,
    build_orchestrator,
    create_adapters,
    create_safety_assistant,
    failed_preflight_checks,
    run_preflight,
)


@patch("tcmconsult.runtime.MedGemmaAdapter")
@patch("tcmconsult.runtime.GeminiAdapter")
def test_create_adapters_for_configured_backends(mock_gemini, mock_medgemma):
    env = {
        "TCMCONSULT_MEDGEMMA_ENDPOINT": "https://medgemma.example",
        "TCMCONSULT_MEDGEMMA_CHAT_API": "false",
    }
    with patch.dict(os.environ, env, clear=False):
        adapters = create_adapters(RoutingConfig(), api_key="key", hf_token="hf")

    assert sorted(adapters) == sorted(m.model_id for m in RoutingConfig().models)
    assert mock_gemini.call_count == 4
    mock_medgemma.assert_called_once_with(
        endpoint_url="https://medgemma.example",
        hf_token="hf",
        model_name="medgemma-27b",
        use_chat_api=False,
    )


@patch("tcmconsult.runtime.GeminiAdapter")
def test_create_adapters_gemini_only(mock_gemini):
    with patch.dict(os.environ, {"TCMCONSULT_MEDGEMMA_ENDPOINT": ""}, clear=False):
        adapters = create_adapters(RoutingConfig(), api_key="key")
    assert "medgemma-27b" not in adapters
    assert len(adapters) == 4


def test_create_adapters_without_backends_fails():
    with patch.dict(os.environ, {"TCMCONSULT_MEDGEMMA_ENDPOINT": ""}, clear=False):
        with pytest.raises(ValueError, match="No generation backend configured"):
            create_adapters(RoutingConfig())


@patch("tcmconsult.runtime.GeminiAdapter")
def test_create_safety_assistant(mock_gemini):
    with patch.dict(os.environ, {"TCMCONSULT_DISABLE_AI_SAFETY": ""}, clear=False):
        assert create_safety_assistant("") is None
        create_safety_assistant("key")
    mock_gemini.assert_called_once_with(api_key="key", model=SAFETY_MODEL_ID)

    with patch.dict(os.environ, {"TCMCONSULT_DISABLE_AI_SAFETY": "1"}, clear=False):
        assert create_safety_assistant("key") is None


def test_build_orchestrator_without_adapters():
    orchestrator = build_orchestrator(TcmConsultConfig(), adapters=None)
    assert isinstance(orchestrator, DiagnosticOrchestrator)


def _adapter(name: str, ok=True, error: Exception | None = None) -> MagicMock:
    adapter = MagicMock()
    adapter.name = name
    adapter.health_check = AsyncMock(return_value=ok, side_effect=error)
    return adapter


def test_run_preflight_reports_each_backend():
    adapters = {
        "gemini-2.5-pro": _adapter("gemini-2.5-pro"),
        "gemini-2.0-flash": _adapter("gemini-2.0-flash", ok=False),
        "medgemma-27b": _adapter("medgemma-27b", error=RuntimeError("503 cold start")),
    }
    results = asyncio.run(run_preflight(adapters))

    assert [r.name for r in results] == list(adapters)
    assert [r.ok for r in results] == [True, False, False]
    assert results[1].detail == "health check returned False"
    assert results[2].detail == "RuntimeError: 503 cold start"
    assert [r.name for r in failed_preflight_checks(results)] == ["gemini-2.0-flash", "medgemma-27b"]
