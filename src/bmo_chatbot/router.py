"""Model router: maps the active model id to the provider that serves it.

The table is built once from the settings' model lists, in priority order:

1. built-in OpenAI models
2. built-in Anthropic models, then the configured Anthropic list
3. Ollama (only when its URL is set)
4. REST URL
5. Mistral
6. Google Gemini
7. OpenAI base-URL models
8. OpenRouter

The first provider to list a model owns it. When different providers list
the same id the conflict is recorded; in strict mode routing that id raises
``AmbiguousModelError`` instead of silently picking the earlier provider.
Call ``rebuild()`` after the model lists change.
"""

import logging

from .errors import AmbiguousModelError, ModelNotFoundError
from .provider import ChatProvider
from .settings import Settings

logger = logging.getLogger(__name__)


class ModelRouter:
    def __init__(self, settings: Settings, providers: dict[str, ChatProvider]):
        self.settings = settings
        self.providers = providers
        self._table: dict[str, ChatProvider] = {}
        self._conflicts: dict[str, list[str]] = {}
        self.rebuild()

    def _sources(self) -> list[tuple[ChatProvider, list[str]]]:
        p = self.providers
        sources = [
            (p["openai"], list(p["openai"].builtin_models)),
            (p["anthropic"], list(p["anthropic"].builtin_models) + p["anthropic"].known_models()),
        ]
        if p["ollama"].is_configured():
            sources.append((p["ollama"], p["ollama"].known_models()))
        for name in ("rest_api_url", "mistral", "google_gemini", "openai", "openrouter"):
            sources.append((p[name], p[name].known_models()))
        return sources

    def rebuild(self) -> None:
        table: dict[str, ChatProvider] = {}
        conflicts: dict[str, list[str]] = {}
        for provider, models in self._sources():
            for model in models:
                owner = table.get(model)
                if owner is None:
                    table[model] = provider
                elif owner is not provider:
                    names = conflicts.setdefault(model, [owner.name])
                    if provider.name not in names:
                        names.append(provider.name)

        for model, names in conflicts.items():
            logger.warning("Model %r is listed by %s; %s takes precedence", model, ", ".join(names), names[0])

        self._table = table
        self._conflicts = conflicts
        logger.debug("Routing table rebuilt: %d models", len(table))

    @property
    def conflicts(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._conflicts.items()}

    def models(self) -> dict[str, list[str]]:
        """Return routable model ids grouped by provider name, in table order."""
        grouped: dict[str, list[str]] = {}
        for model, provider in self._table.items():
            grouped.setdefault(provider.name, []).append(model)
        return grouped

    def all_models(self) -> list[str]:
        return list(self._table)

    def route(self, model: str) -> ChatProvider:
        provider = self._table.get(model)
        if provider is None:
            raise ModelNotFoundError(model)
        if self.settings.general.strict_model_routing and model in self._conflicts:
            raise AmbiguousModelError(model, self._conflicts[model])
        return provider
