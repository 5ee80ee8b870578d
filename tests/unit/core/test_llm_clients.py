"""Test unified LLM client functionality."""

import pytest
import httpx
from unittest.mock import AsyncMock, patch

from helm_campaign.core.anthropic_client import AnthropicClient
from helm_campaign.core.base_llm_client import BaseLLMClient
from helm_campaign.core.exceptions import APIClientError, ConfigurationError
from helm_campaign.core.openrouter_client import OpenRouterClient
from helm_campaign.core.unified_llm import LLMProvider, UnifiedLLMClient, create_llm_client


def test_unified_llm_with_anthropic():
    """Test unified LLM client with Anthropic provider."""
    client = UnifiedLLMClient(
        provider="anthropic",
        api_key="test_anthropic_key",
        model="claude-3-haiku-20240307",
        timeout=60,
        max_retries=3
    )

    assert client.provider == LLMProvider.ANTHROPIC
    assert isinstance(client.client, AnthropicClient)


def test_unified_llm_with_openrouter():
    """Test unified LLM client with OpenRouter provider."""
    client = create_llm_client(
        provider="openrouter",
        api_key="test_openrouter_key",
        model="anthropic/claude-3-haiku",
        base_url="https://openrouter.ai/api/v1/chat/completions",
    )

    assert client.provider == LLMProvider.OPENROUTER
    assert isinstance(client.client, OpenRouterClient)


def test_unified_llm_invalid_provider():
    """Test that an unknown provider is a configuration error."""
    with pytest.raises(ConfigurationError):
        UnifiedLLMClient(provider="carrier-pigeon", api_key="key", model="m")


def test_unified_llm_requires_api_key():
    with pytest.raises(ConfigurationError):
        UnifiedLLMClient(provider="anthropic", api_key="", model="m")


@pytest.mark.asyncio
async def test_unified_llm_generate_content_delegates():
    """Test content generation is delegated to the vendor client."""
    with patch("helm_campaign.core.unified_llm.OpenRouterClient") as mock_openrouter:
        mock_instance = AsyncMock()
        mock_instance.generate_content = AsyncMock(return_value="Generated text")
        mock_openrouter.return_value = mock_instance

        client = UnifiedLLMClient(provider="openrouter", api_key="test_key", model="m")

        result = await client.generate_content(
            contents="Test prompt",
            system_instruction="Test instruction"
        )

        assert result == "Generated text"
        mock_instance.generate_content.assert_called_once()


@pytest.mark.asyncio
async def test_anthropic_payload_and_text_blocks():
    """Test Anthropic request payload and response parsing."""
    client = AnthropicClient(api_key="key", model="claude-3-haiku-20240307")
    response = {
        "content": [
            {"type": "text", "text": "[{\"noteId\": "},
            {"type": "tool_use", "id": "ignored"},
            {"type": "text", "text": "\"n1\"}]"},
        ],
        "stop_reason": "end_turn",
    }

    with patch.object(client.client, "call_api", AsyncMock(return_value=response)) as mock_call:
        text = await client.generate_content(
            contents="Classify",
            system_instruction="You classify notes",
            generation_config={"temperature": 0.0, "max_output_tokens": 512},
        )

    assert text == '[{"noteId": "n1"}]'
    payload = mock_call.call_args.kwargs["payload"]
    assert payload["system"] == "You classify notes"
    assert payload["max_tokens"] == 512
    assert payload["messages"] == [{"role": "user", "content": "Classify"}]


@pytest.mark.asyncio
async def test_anthropic_invalid_response():
    client = AnthropicClient(api_key="key")

    with patch.object(client.client, "call_api", AsyncMock(return_value={"error": "overloaded"})):
        with pytest.raises(APIClientError):
            await client.generate_content(contents="Classify")


@pytest.mark.asyncio
async def test_openrouter_response_parsing():
    client = OpenRouterClient(api_key="key")
    response = {"choices": [{"message": {"content": "ok"}}]}

    with patch.object(client.client, "call_api", AsyncMock(return_value=response)) as mock_call:
        assert await client.generate_content(contents="hi", system_instruction="sys") == "ok"

    messages = mock_call.call_args.kwargs["payload"]["messages"]
    assert messages[0] == {"role": "system", "content": "sys"}


# ========== BASE CLIENT TESTS ==========

def test_auth_headers():
    bearer = BaseLLMClient(api_key="k1", base_url="https://example.test")
    anthropic = BaseLLMClient(
        api_key="k2",
        base_url="https://example.test",
        auth_header="x-api-key",
        auth_scheme=None,
        extra_headers={"anthropic-version": "2023-06-01"},
    )

    assert bearer._build_headers(None)["Authorization"] == "Bearer k1"
    headers = anthropic._build_headers(None)
    assert headers["x-api-key"] == "k2"
    assert headers["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in headers


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    client = BaseLLMClient(api_key="k", base_url="https://example.test", max_retries=3, retry_delay=0)
    request = httpx.Request("POST", "https://example.test")
    bad_request = httpx.Response(400, request=request, text="bad request")

    with patch("httpx.AsyncClient.post", AsyncMock(return_value=bad_request)) as mock_post:
        with pytest.raises(APIClientError):
            await client.call_api(payload={})

    assert mock_post.await_count == 1


@pytest.mark.asyncio
async def test_server_error_is_retried():
    client = BaseLLMClient(api_key="k", base_url="https://example.test", max_retries=2, retry_delay=0)
    request = httpx.Request("POST", "https://example.test")
    responses = [
        httpx.Response(503, request=request, text="unavailable"),
        httpx.Response(200, request=request, json={"ok": True}),
    ]

    with patch("httpx.AsyncClient.post", AsyncMock(side_effect=responses)) as mock_post:
        assert await client.call_api(payload={}) == {"ok": True}

    assert mock_post.await_count == 2
