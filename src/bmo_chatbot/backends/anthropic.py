"""Anthropic backend.

Two endpoints are in play:

- Messages API (``POST /v1/messages``): the system prompt goes in ``system``;
  the reply is the concatenation of the ``text`` content blocks. Streams are
  SSE with ``content_block_delta`` events carrying ``delta.text`` and end with
  ``message_stop``.
- Legacy Text Completions (``POST /v1/complete``), used for the
  ``claude-instant`` / ``claude-2`` families: a single ``Human:`` /
  ``Assistant:`` prompt; every ``data:`` line carries a ``completion`` piece.

Both authenticate with ``x-api-key`` and pin ``anthropic-version``.
"""

import logging
from typing import AsyncIterator

from ..core import ASSISTANT, ChatRequest
from ..errors import ProviderRequestError
from ..framing import iter_sse_payloads
from ..provider import ChatProvider

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"

ANTHROPIC_MODELS = (
    "claude-instant-1.2",
    "claude-2.0",
    "claude-2.1",
    "claude-3-haiku-20240307",
    "claude-3-sonnet-20240229",
    "claude-3-opus-20240229",
    "claude-3-5-sonnet-20240620",
)

LEGACY_PREFIXES = ("claude-instant", "claude-2")


def uses_legacy_api(model: str) -> bool:
    return model.startswith(LEGACY_PREFIXES)


def legacy_prompt(request: ChatRequest) -> str:
    """Render the conversation in Text Completions form."""
    parts = [request.system_prompt] if request.system_prompt else []
    for message in request.messages:
        speaker = "Assistant" if message.role == ASSISTANT else "Human"
        parts.append(f"\n\n{speaker}: {message.content}")
    parts.append("\n\nAssistant:")
    return "".join(parts)


class AnthropicProvider(ChatProvider):
    """Provider for the Anthropic API."""

    name = "anthropic"
    builtin_models = ANTHROPIC_MODELS

    @property
    def connection(self):
        return self.settings.anthropic

    def is_configured(self) -> bool:
        return bool(self.connection.api_key)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def headers(self) -> dict:
        return {
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
            "x-api-key": self.connection.api_key,
        }

    def payload(self, request: ChatRequest, stream: bool) -> dict:
        if uses_legacy_api(request.model):
            return {
                "model": request.model,
                "prompt": legacy_prompt(request),
                "max_tokens_to_sample": self.max_tokens(request),
                "temperature": request.temperature,
                "stream": stream,
            }
        body = {
            "model": request.model,
            "messages": request.message_dicts(),
            "max_tokens": self.max_tokens(request),
            "temperature": request.temperature,
        }
        if request.system_prompt:
            body["system"] = request.system_prompt
        if stream:
            body["stream"] = True
        return body

    def url(self, request: ChatRequest) -> str:
        path = "/v1/complete" if uses_legacy_api(request.model) else "/v1/messages"
        return ANTHROPIC_API_URL + path

    async def complete(self, request: ChatRequest) -> str:
        data = await self._post_json(self.url(request), self.payload(request, stream=False), self.headers())
        if uses_legacy_api(request.model):
            return data.get("completion") or ""

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderRequestError(self.name, "Unexpected response format: no content")
        return "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        legacy = uses_legacy_api(request.model)
        async with self._open_stream(self.url(request), self.payload(request, stream=True), self.headers()) as response:
            async for event in iter_sse_payloads(response.aiter_lines(), self.name):
                event_type = event.get("type")
                if event_type == "error":
                    error = event.get("error") or {}
                    raise ProviderRequestError(self.name, error.get("message") or "Stream error")
                if legacy:
                    completion = event.get("completion")
                    if completion:
                        yield completion
                    continue
                if event_type == "message_stop":
                    return
                if event_type == "content_block_delta":
                    text = (event.get("delta") or {}).get("text")
                    if text:
                        yield text

    async def list_models(self) -> list[str]:
        # No listing endpoint is used; offer built-ins plus anything configured.
        models = list(ANTHROPIC_MODELS)
        models.extend(m for m in self.connection.models if m not in models)
        return models
