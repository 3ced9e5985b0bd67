"""Mistral backend.

Same chat-completions dialect as OpenAI. Streamed chunks whose
``finish_reason`` is ``"stop"`` are not appended.
"""

from .openai import OpenAICompatibleProvider

MISTRAL_API_URL = "https://api.mistral.ai/v1"


class MistralProvider(OpenAICompatibleProvider):
    """Provider for the Mistral La Plateforme API."""

    name = "mistral"
    stop_gate = True

    @property
    def connection(self):
        return self.settings.mistral

    def is_configured(self) -> bool:
        return bool(self.connection.api_key)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def api_key(self) -> str:
        return self.connection.api_key

    def chat_urls(self) -> list[str]:
        return [f"{MISTRAL_API_URL}/chat/completions"]

    def models_urls(self) -> list[str]:
        return [f"{MISTRAL_API_URL}/models"]
