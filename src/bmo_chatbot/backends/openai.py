"""OpenAI chat completions backend.

Also the base for every backend speaking the chat-completions dialect
(Mistral, OpenRouter, arbitrary REST URLs):

- Request: ``POST .../chat/completions`` with ``{model, messages, temperature,
  max_tokens, stream}``; the system prompt is the leading ``system`` message.
- Non-streaming reply: ``choices[0].message.content``.
- Streaming reply: SSE ``data:`` lines, delta at ``choices[0].delta.content``,
  terminated by ``data: [DONE]``.

Subclasses may return several candidate URLs; they are tried in order and the
first one that answers with a 2xx status wins.
"""

import logging
from typing import AsyncIterator

from ..core import ChatRequest
from ..errors import ProviderRequestError, StreamParseError
from ..framing import iter_sse_payloads, openai_delta
from ..provider import ChatProvider
from ..settings import DEFAULT_SYSTEM_ROLE

logger = logging.getLogger(__name__)

OPENAI_MODELS = (
    "gpt-3.5-turbo",
    "gpt-3.5-turbo-1106",
    "gpt-4",
    "gpt-4-1106-preview",
    "gpt-4-turbo",
    "gpt-4o",
    "gpt-4o-mini",
)


class OpenAICompatibleProvider(ChatProvider):
    """Shared request/response handling for chat-completions style APIs."""

    # Skip chunks whose finish_reason is "stop" (Mistral-style streams).
    stop_gate = False

    def chat_urls(self) -> list[str]:
        raise NotImplementedError

    def models_urls(self) -> list[str]:
        raise NotImplementedError

    def api_key(self) -> str:
        return ""

    def headers(self) -> dict:
        key = self.api_key()
        return {"Authorization": f"Bearer {key}"} if key else {}

    def payload(self, request: ChatRequest, stream: bool) -> dict:
        body = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt or DEFAULT_SYSTEM_ROLE},
                *request.message_dicts(),
            ],
            "temperature": request.temperature,
            "stream": stream,
        }
        max_tokens = self.max_tokens(request)
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        return body

    async def complete(self, request: ChatRequest) -> str:
        payload = self.payload(request, stream=False)
        last_error = None
        for url in self.chat_urls():
            try:
                data = await self._post_json(url, payload, self.headers())
            except ProviderRequestError as e:
                logger.info("%s: %s failed: %s", self.name, url, e)
                last_error = e
                continue
            return _completion_text(self.name, data)
        raise last_error or ProviderRequestError(self.name, "No URL configured")

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        payload = self.payload(request, stream=True)
        last_error = None
        for url in self.chat_urls():
            opened = False
            try:
                async with self._open_stream(url, payload, self.headers()) as response:
                    opened = True
                    async for chunk in iter_sse_payloads(response.aiter_lines(), self.name):
                        try:
                            delta = openai_delta(chunk, stop_gate=self.stop_gate)
                        except StreamParseError as e:
                            logger.warning("%s: skipping malformed chunk: %s", self.name, e)
                            continue
                        if delta:
                            yield delta
                return
            except ProviderRequestError as e:
                if opened:
                    raise
                logger.info("%s: %s failed: %s", self.name, url, e)
                last_error = e
        raise last_error or ProviderRequestError(self.name, "No URL configured")

    async def list_models(self) -> list[str]:
        last_error = None
        for url in self.models_urls():
            try:
                data = await self._get_json(url, self.headers())
            except ProviderRequestError as e:
                last_error = e
                continue
            entries = data.get("data")
            if isinstance(entries, list):
                return [m["id"] for m in entries if isinstance(m, dict) and m.get("id")]
        raise last_error or ProviderRequestError(self.name, "No model list in response")


class OpenAIProvider(OpenAICompatibleProvider):
    """Provider for the OpenAI API or any base URL configured in its place."""

    name = "openai"
    builtin_models = OPENAI_MODELS
    default_max_tokens = None

    @property
    def connection(self):
        return self.settings.openai

    def is_configured(self) -> bool:
        return bool(self.connection.base_url)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def api_key(self) -> str:
        return self.connection.api_key

    def _base(self) -> str:
        return self.connection.base_url.rstrip("/")

    def chat_urls(self) -> list[str]:
        return [f"{self._base()}/chat/completions"]

    def models_urls(self) -> list[str]:
        return [f"{self._base()}/models"]


def _completion_text(provider: str, data: dict) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderRequestError(provider, "Unexpected response format: no choices") from e
    return content or ""
