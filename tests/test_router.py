"""Tests for model routing."""

import httpx
import pytest

from bmo_chatbot.backends import get_providers
from bmo_chatbot.errors import AmbiguousModelError, ModelNotFoundError
from bmo_chatbot.router import ModelRouter
from bmo_chatbot.settings import Settings


@pytest.fixture
def client():
    return httpx.AsyncClient()


def _router(settings, client):
    return ModelRouter(settings, get_providers(settings, client))


class TestModelRouter:

    def test_builtin_models(self, client):
        router = _router(Settings(), client)
        assert router.route("gpt-4").name == "openai"
        assert router.route("claude-3-opus-20240229").name == "anthropic"
        assert router.route("claude-2.1").name == "anthropic"

    def test_configured_lists(self, client):
        settings = Settings()
        settings.ollama.models = ["llama3"]
        settings.rest_api_url.models = ["local-model"]
        settings.mistral.models = ["mistral-large-latest"]
        settings.google_gemini.models = ["gemini-1.5-pro"]
        settings.openai.models = ["my-finetune"]
        settings.open_router.models = ["meta-llama/llama-3-70b"]
        router = _router(settings, client)

        assert router.route("llama3").name == "ollama"
        assert router.route("local-model").name == "rest_api_url"
        assert router.route("mistral-large-latest").name == "mistral"
        assert router.route("gemini-1.5-pro").name == "google_gemini"
        assert router.route("my-finetune").name == "openai"
        assert router.route("meta-llama/llama-3-70b").name == "openrouter"

    def test_ollama_skipped_without_url(self, client):
        settings = Settings()
        settings.ollama.rest_api_url = ""
        settings.ollama.models = ["llama3"]
        with pytest.raises(ModelNotFoundError):
            _router(settings, client).route("llama3")

    def test_unknown_model(self, client):
        with pytest.raises(ModelNotFoundError) as exc:
            _router(Settings(), client).route("nope")
        assert exc.value.model == "nope"

    def test_priority_on_conflict(self, client):
        settings = Settings()
        settings.ollama.models = ["shared"]
        settings.open_router.models = ["shared", "gpt-4"]
        router = _router(settings, client)

        assert router.route("shared").name == "ollama"
        assert router.route("gpt-4").name == "openai"
        assert router.conflicts == {"gpt-4": ["openai", "openrouter"], "shared": ["ollama", "openrouter"]}

    def test_strict_routing_rejects_conflicts(self, client):
        settings = Settings()
        settings.general.strict_model_routing = True
        settings.mistral.models = ["shared"]
        settings.open_router.models = ["shared"]
        router = _router(settings, client)

        with pytest.raises(AmbiguousModelError) as exc:
            router.route("shared")
        assert exc.value.providers == ["mistral", "openrouter"]
        assert router.route("gpt-4").name == "openai"

    def test_duplicates_within_one_provider_are_not_conflicts(self, client):
        settings = Settings()
        settings.anthropic.models = ["claude-2.1"]
        router = _router(settings, client)
        assert router.conflicts == {}

    def test_deterministic(self, client):
        settings = Settings()
        settings.mistral.models = ["a", "b"]
        settings.open_router.models = ["b", "c"]
        first = _router(settings, client)
        second = _router(settings, client)
        assert first.all_models() == second.all_models()
        assert all(first.route(m).name == second.route(m).name for m in first.all_models())

    def test_rebuild_picks_up_new_models(self, client):
        settings = Settings()
        router = _router(settings, client)
        settings.mistral.models = ["open-mixtral-8x7b"]
        with pytest.raises(ModelNotFoundError):
            router.route("open-mixtral-8x7b")
        router.rebuild()
        assert router.route("open-mixtral-8x7b").name == "mistral"

    def test_models_grouped(self, client):
        settings = Settings()
        settings.mistral.models = ["m1"]
        grouped = _router(settings, client).models()
        assert list(grouped)[:2] == ["openai", "anthropic"]
        assert grouped["mistral"] == ["m1"]
