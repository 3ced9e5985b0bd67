"""OpenRouter backend.

OpenRouter speaks the OpenAI dialect and interleaves ``: OPENROUTER
PROCESSING`` comment lines into its streams, which the SSE framing skips.
"""

from .openai import OpenAICompatibleProvider

OPENROUTER_API_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAICompatibleProvider):
    """Provider for openrouter.ai."""

    name = "openrouter"
    stop_gate = True

    @property
    def connection(self):
        return self.settings.open_router

    def is_configured(self) -> bool:
        return bool(self.connection.api_key)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def api_key(self) -> str:
        return self.connection.api_key

    def chat_urls(self) -> list[str]:
        return [f"{OPENROUTER_API_URL}/chat/completions"]

    def models_urls(self) -> list[str]:
        return [f"{OPENROUTER_API_URL}/models"]
