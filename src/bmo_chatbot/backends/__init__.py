"""Provider backends and a unified registry."""

import logging

import httpx

from ..errors import ProviderRequestError
from ..provider import ChatProvider
from ..settings import Settings
from .anthropic import AnthropicProvider
from .gemini import GoogleGeminiProvider
from .mistral import MistralProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .openrouter import OpenRouterProvider
from .rest_url import RESTAPIURLProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES = [
    OpenAIProvider,
    AnthropicProvider,
    OllamaProvider,
    RESTAPIURLProvider,
    MistralProvider,
    GoogleGeminiProvider,
    OpenRouterProvider,
]


def get_providers(settings: Settings, client: httpx.AsyncClient) -> dict[str, ChatProvider]:
    """Instantiate every backend against the shared settings and HTTP client."""
    return {cls.name: cls(settings, client) for cls in PROVIDER_CLASSES}


async def refresh_models(providers: dict[str, ChatProvider]) -> dict[str, list[str]]:
    """Re-fetch model lists for configured providers and store them in settings.

    A provider whose listing fails keeps its previous list.
    """
    refreshed = {}
    for provider in providers.values():
        if not provider.is_configured():
            continue
        try:
            models = await provider.list_models()
        except ProviderRequestError as e:
            logger.error("Failed to list models for %s: %s", provider.name, e)
            continue
        provider.connection.models = models
        refreshed[provider.name] = models
        logger.info("%s: %d models", provider.name, len(models))
    return refreshed
