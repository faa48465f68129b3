"""Tests for Gemini adapter."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from tcmconsult.errors import GenerationFatalError, GenerationTransientError
from tcmconsult.models.gemini import GeminiAdapter
from tcmconsult.models.schema import ModelResponse


def test_gemini_adapter_name():
    with patch("tcmconsult.models.gemini.genai.Client"):
        adapter = GeminiAdapter(api_key="fake", model="gemini-2.0-flash")
        assert adapter.name == "gemini-2.0-flash"


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_generate(mock_client_cls):
    mock_client = MagicMock()
    mock_response = MagicMock()
    mock_response.text = '{"diagnosis": "Spleen qi deficiency"}'
    mock_response.usage_metadata = MagicMock()
    mock_response.usage_metadata.prompt_token_count = 150
    mock_response.usage_metadata.candidates_token_count = 30
    mock_client.models.generate_content.return_value = mock_response
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="fake")
    result = asyncio.run(adapter.generate("test prompt"))

    assert isinstance(result, ModelResponse)
    assert "Spleen" in result.text
    assert result.input_tokens == 150
    assert result.output_tokens == 30
    assert result.estimated_cost > 0


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_thinking_model_raises_token_floor(mock_client_cls):
    mock_client = MagicMock()
    mock_client.models.generate_content.return_value = MagicMock(text="{}", usage_metadata=None)
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="fake", model="gemini-2.5-pro")
    asyncio.run(adapter.generate("p", max_tokens=256))

    config = mock_client.models.generate_content.call_args.kwargs["config"]
    assert config["max_output_tokens"] >= 8192


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_overload_maps_to_transient(mock_client_cls):
    mock_client = MagicMock()
    mock_client.models.generate_content.side_effect = Exception("503 UNAVAILABLE")
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="fake", model="gemini-2.0-flash")
    with pytest.raises(GenerationTransientError) as exc_info:
        asyncio.run(adapter.generate("p"))
    assert exc_info.value.model_id == "gemini-2.0-flash"
    # Single attempt: fallback is the router's job.
    assert mock_client.models.generate_content.call_count == 1


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_invalid_key_maps_to_fatal(mock_client_cls):
    mock_client = MagicMock()
    mock_client.models.generate_content.side_effect = Exception("400 API_KEY_INVALID")
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="bad")
    with pytest.raises(GenerationFatalError):
        asyncio.run(adapter.generate("p"))


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_health_check(mock_client_cls):
    mock_client = MagicMock()
    mock_client.models.generate_content.return_value = MagicMock(text='{"status": "ok"}')
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="fake")
    assert asyncio.run(adapter.health_check()) is True


@patch("tcmconsult.models.gemini.genai.Client")
def test_gemini_health_check_failure(mock_client_cls):
    mock_client = MagicMock()
    mock_client.models.generate_content.side_effect = Exception("network down")
    mock_client_cls.return_value = mock_client

    adapter = GeminiAdapter(api_key="fake")
    assert asyncio.run(adapter.health_check()) is False
