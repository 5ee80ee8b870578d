"""Builds the configured AI provider and cache."""

from datetime import timedelta
from typing import Optional

from helm_campaign.core.config import Settings, settings as default_settings
from helm_campaign.core.exceptions import ConfigurationError
from helm_campaign.core.unified_llm import LLMProvider, create_llm_client
from helm_campaign.repositories.storage import Storage
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.llm_provider import LLMAIProvider
from helm_campaign.services.ai.mock_provider import MockAIProvider
from helm_campaign.services.ai.provider import AIProvider
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

MOCK_PROVIDER = "mock"


def create_ai_provider(app_settings: Optional[Settings] = None) -> AIProvider:
    """Create the provider named by ``AI_PROVIDER``.

    A real vendor without an API key falls back to the mock provider with a
    warning, so local imports keep working offline.

    Raises:
        ConfigurationError: If ``AI_PROVIDER`` names an unknown vendor
    """
    ai = (app_settings or default_settings).ai
    provider_name = ai.provider.lower()

    if provider_name == MOCK_PROVIDER:
        return MockAIProvider()

    if provider_name not in {p.value for p in LLMProvider}:
        raise ConfigurationError(f"Unsupported AI provider: {ai.provider}")

    if not ai.api_key:
        LOGGER.warning(
            f"No API key configured for {provider_name}, using mock AI provider",
            extra={"provider": provider_name},
        )
        return MockAIProvider()

    client = create_llm_client(
        provider=provider_name,
        api_key=ai.api_key,
        model=ai.model,
        base_url=ai.api_url,
        timeout=ai.timeout,
        max_retries=ai.max_retries,
        max_output_tokens=ai.max_output_tokens,
    )
    return LLMAIProvider(
        client=client,
        batch_size=ai.batch_size,
        rate_limit_delay_ms=ai.rate_limit_delay_ms,
        classification_content_limit=ai.classification_content_limit,
        relationship_content_limit=ai.relationship_content_limit,
        max_output_tokens=ai.max_output_tokens,
    )


def create_ai_cache(storage: Storage, app_settings: Optional[Settings] = None) -> AICache:
    cache_settings = (app_settings or default_settings).cache
    return AICache(
        storage,
        ttl=timedelta(days=cache_settings.ttl_days),
        model_id=cache_settings.model_id,
        expiring_soon=timedelta(days=cache_settings.expiring_soon_days),
    )
