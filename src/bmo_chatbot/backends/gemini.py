"""Google Gemini backend (non-streaming).

Gemini has no system role in ``contents``, so the system prompt is sent as a
primer exchange (a user turn with the prompt, a model turn acknowledging it)
ahead of the converted history, where ``assistant`` becomes ``model``.
"""

import logging

from ..core import ASSISTANT, ChatRequest
from ..errors import ProviderRequestError
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


def convert_messages(request: ChatRequest) -> list[dict]:
    return [
        {"role": "model" if m.role == ASSISTANT else m.role, "parts": [{"text": m.content}]}
        for m in request.messages
    ]


class GoogleGeminiProvider(ChatProvider):
    """Provider for the Gemini ``generateContent`` API."""

    name = "google_gemini"

    @property
    def connection(self):
        return self.settings.google_gemini

    def is_configured(self) -> bool:
        return bool(self.connection.api_key)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def payload(self, request: ChatRequest) -> dict:
        primer = [
            {
                "role": "user",
                "parts": [{"text": f"System prompt: \n\n {request.system_prompt} Respond understood if you got it."}],
            },
            {"role": "model", "parts": [{"text": "Understood."}]},
        ]
        return {
            "contents": primer + convert_messages(request),
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": self.max_tokens(request),
                "topP": 0.8,
                "topK": 10,
            },
        }

    async def complete(self, request: ChatRequest) -> str:
        model = request.model.removeprefix("models/")
        data = await self._post_json(
            f"{GEMINI_API_URL}/models/{model}:generateContent",
            self.payload(request),
            params={"key": self.connection.api_key},
        )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            message = f"Response blocked: {reason}" if reason else "Unexpected response format: no candidates"
            raise ProviderRequestError(self.name, message) from e

    async def list_models(self) -> list[str]:
        data = await self._get_json(f"{GEMINI_API_URL}/models", params={"key": self.connection.api_key})
        models = []
        for entry in data.get("models", []):
            if not isinstance(entry, dict):
                continue
            if "generateContent" not in entry.get("supportedGenerationMethods", []):
                continue
            name = entry.get("name", "")
            if name:
                models.append(name.removeprefix("models/"))
        return models
