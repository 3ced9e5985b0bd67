"""Generic OpenAI-compatible REST URL backend (LM Studio, vLLM, LocalAI, ...).

Servers disagree on whether the API lives under ``/v1`` or ``/api/v1``, so
both path variants are tried in that order and the first 2xx answer wins.
The API key is optional.
"""

from .openai import OpenAICompatibleProvider

PATH_PREFIXES = ("/v1", "/api/v1")


class RESTAPIURLProvider(OpenAICompatibleProvider):
    """Provider for a user-supplied OpenAI-compatible server."""

    name = "rest_api_url"
    stop_gate = True

    @property
    def connection(self):
        return self.settings.rest_api_url

    def is_configured(self) -> bool:
        return bool(self.connection.rest_api_url)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def api_key(self) -> str:
        return self.connection.api_key

    def _base(self) -> str:
        return self.connection.rest_api_url.rstrip("/")

    def chat_urls(self) -> list[str]:
        if not self.is_configured():
            return []
        return [f"{self._base()}{prefix}/chat/completions" for prefix in PATH_PREFIXES]

    def models_urls(self) -> list[str]:
        if not self.is_configured():
            return []
        return [f"{self._base()}{prefix}/models" for prefix in PATH_PREFIXES]
