"""OpenRouter LLM client implementation."""

from typing import Any, Dict, Optional

from helm_campaign.core.base_llm_client import BaseLLMClient
from helm_campaign.core.exceptions import APIClientError
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OpenRouterClient:
    """Wrapper for the OpenRouter chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "anthropic/claude-3-haiku",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        max_retries: int = 3,
        max_output_tokens: int = 4096,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model name to use
            base_url: OpenRouter API URL
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            max_output_tokens: Default completion token limit
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_output_tokens = max_output_tokens

        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries
        )

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using an OpenRouter model.

        Args:
            contents: User message text
            system_instruction: Optional system instruction
            generation_config: Optional generation config (temperature, etc.)

        Returns:
            Generated text response

        Raises:
            APIClientError: If generation fails
        """
        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        generation_config = generation_config or {}
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": generation_config.get("temperature", 0.0),
            "max_tokens": generation_config.get("max_output_tokens", self.max_output_tokens),
        }

        response = await self.client.call_api(endpoint="", method="POST", payload=payload)

        if "choices" in response and len(response["choices"]) > 0:
            message = response["choices"][0].get("message", {})
            content = message.get("content", "")
            if not content:
                LOGGER.warning("Empty response from OpenRouter")
                return ""
            return content

        LOGGER.error(f"Unexpected OpenRouter response format: {response}")
        raise APIClientError("Invalid response format from OpenRouter")
