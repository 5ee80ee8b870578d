"""Anthropic Messages API client implementation."""

from typing import Any, Dict, Optional

from helm_campaign.core.base_llm_client import BaseLLMClient
from helm_campaign.core.exceptions import APIClientError
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient:
    """Wrapper for the Anthropic Messages API.

    Exposes the same ``generate_content`` signature as ``OpenRouterClient``
    so ``UnifiedLLMClient`` can swap one for the other.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        base_url: str = "https://api.anthropic.com/v1/messages",
        timeout: int = 60,
        max_retries: int = 3,
        max_output_tokens: int = 4096,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_output_tokens = max_output_tokens

        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            auth_header="x-api-key",
            auth_scheme=None,
            extra_headers={"anthropic-version": ANTHROPIC_VERSION},
        )

        LOGGER.info(f"Initialized Anthropic client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using an Anthropic model.

        Args:
            contents: User message text
            system_instruction: Optional system prompt
            generation_config: Optional config (temperature, max_output_tokens)

        Returns:
            Concatenated text blocks of the response

        Raises:
            APIClientError: If the call fails or the response has no text
        """
        generation_config = generation_config or {}
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": generation_config.get("max_output_tokens", self.max_output_tokens),
            "temperature": generation_config.get("temperature", 0.0),
            "messages": [{"role": "user", "content": contents}],
        }
        if system_instruction:
            payload["system"] = system_instruction

        response = await self.client.call_api(endpoint="", method="POST", payload=payload)

        blocks = response.get("content")
        if not isinstance(blocks, list):
            LOGGER.error(f"Unexpected Anthropic response format: {response}")
            raise APIClientError("Invalid response format from Anthropic")

        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        if not text:
            LOGGER.warning("Empty response from Anthropic", extra={"stop_reason": response.get("stop_reason")})
        return text
