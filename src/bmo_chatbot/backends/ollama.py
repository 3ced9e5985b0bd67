"""Ollama backend.

Talks to a local Ollama server, no authentication.

- ``POST /api/chat``: ``{model, messages, stream, options, keep_alive}``;
  replies carry ``message.content``.
- ``POST /api/generate`` (optional): the conversation is flattened into one
  ``prompt`` with the system prompt in ``system``; replies carry ``response``.

Streams are newline-delimited JSON objects. The first object with
``done: true`` ends the stream.
"""

import logging
from typing import AsyncIterator

from ..core import ChatRequest
from ..errors import ProviderRequestError
from ..framing import iter_ndjson_payloads
from ..provider import ChatProvider

logger = logging.getLogger(__name__)


class OllamaProvider(ChatProvider):
    """Provider for a local Ollama server."""

    name = "ollama"

    @property
    def connection(self):
        return self.settings.ollama

    def is_configured(self) -> bool:
        return bool(self.connection.rest_api_url)

    def known_models(self) -> list[str]:
        return list(self.connection.models)

    def streaming_enabled(self) -> bool:
        return self.connection.enable_stream

    def _base(self) -> str:
        return self.connection.rest_api_url.rstrip("/")

    def options(self, request: ChatRequest) -> dict:
        """Build the ``options`` object, leaving out unset parameters."""
        params = self.connection.parameters.model_dump(exclude={"keep_alive"})
        options = {name: value for name, value in params.items() if value is not None and value != []}
        options["temperature"] = request.temperature
        options["num_predict"] = request.max_tokens if request.max_tokens is not None else -1
        return options

    def payload(self, request: ChatRequest, stream: bool) -> dict:
        if self.connection.use_generate_endpoint:
            body = {
                "model": request.model,
                "system": request.system_prompt,
                "prompt": "\n\n".join(f"{m.role}: {m.content}" for m in request.messages),
                "stream": stream,
                "options": self.options(request),
            }
        else:
            body = {
                "model": request.model,
                "messages": [
                    {"role": "system", "content": request.system_prompt},
                    *request.message_dicts(),
                ],
                "stream": stream,
                "options": self.options(request),
            }
        keep_alive = _keep_alive(self.connection.parameters.keep_alive)
        if keep_alive is not None:
            body["keep_alive"] = keep_alive
        return body

    def url(self) -> str:
        path = "/api/generate" if self.connection.use_generate_endpoint else "/api/chat"
        return self._base() + path

    async def complete(self, request: ChatRequest) -> str:
        data = await self._post_json(self.url(), self.payload(request, stream=False))
        return self._text(data)

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        async with self._open_stream(self.url(), self.payload(request, stream=True)) as response:
            async for chunk in iter_ndjson_payloads(response.aiter_lines(), self.name):
                if chunk.get("error"):
                    raise ProviderRequestError(self.name, str(chunk["error"]))
                if chunk.get("done") is True:
                    return
                try:
                    text = self._text(chunk)
                except ProviderRequestError as e:
                    logger.warning("%s: skipping malformed chunk: %s", self.name, e)
                    continue
                if text:
                    yield text

    async def list_models(self) -> list[str]:
        data = await self._get_json(self._base() + "/api/tags")
        return [m["name"] for m in data.get("models", []) if isinstance(m, dict) and m.get("name")]

    def _text(self, data: dict) -> str:
        if self.connection.use_generate_endpoint:
            text = data.get("response")
        else:
            text = (data.get("message") or {}).get("content")
        if text is None:
            raise ProviderRequestError(self.name, "Unexpected response format")
        return text


def _keep_alive(value):
    """Numbers are seconds; strings such as ``"5m"`` pass through."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return text
