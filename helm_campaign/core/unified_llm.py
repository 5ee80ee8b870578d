"""Unified LLM client factory.

Selects the HTTP client for the configured vendor (Anthropic or OpenRouter)
behind one ``generate_content`` call.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from helm_campaign.core.anthropic_client import AnthropicClient
from helm_campaign.core.exceptions import ConfigurationError
from helm_campaign.core.openrouter_client import OpenRouterClient
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM vendors."""
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Unified LLM client that wraps different vendors."""

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 60,
        max_retries: int = 3,
        max_output_tokens: int = 4096,
    ):
        try:
            self.provider = LLMProvider(provider)
        except ValueError as e:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}", e) from e

        if not api_key:
            raise ConfigurationError(f"API key required for LLM provider {self.provider.value}")

        self.model = model

        if self.provider == LLMProvider.ANTHROPIC:
            self.client = AnthropicClient(
                api_key=api_key,
                model=model,
                base_url=base_url or "https://api.anthropic.com/v1/messages",
                timeout=timeout,
                max_retries=max_retries,
                max_output_tokens=max_output_tokens,
            )
        else:
            self.client = OpenRouterClient(
                api_key=api_key,
                model=model,
                base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
                timeout=timeout,
                max_retries=max_retries,
                max_output_tokens=max_output_tokens,
            )

        LOGGER.info(f"Initialized unified LLM with {self.provider.value} provider (model: {model})")

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the configured vendor.

        Raises:
            APIClientError: If generation fails
        """
        return await self.client.generate_content(
            contents=contents,
            system_instruction=system_instruction,
            generation_config=generation_config,
        )


def create_llm_client(
    provider: Union[str, LLMProvider],
    api_key: str,
    model: str,
    base_url: Optional[str] = None,
    timeout: int = 60,
    max_retries: int = 3,
    max_output_tokens: int = 4096,
) -> UnifiedLLMClient:
    """Factory function to create a unified LLM client."""
    return UnifiedLLMClient(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout=timeout,
        max_retries=max_retries,
        max_output_tokens=max_output_tokens,
    )
