"""Abstract base class for chat completion providers."""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from .core import ChatRequest
from .errors import ProviderRequestError
from .settings import Settings

logger = logging.getLogger(__name__)


class ChatProvider(ABC):
    """Base class for LLM backends.

    Each backend (OpenAI, Anthropic, Ollama, ...) implements this interface so
    the router and the stream aggregator can treat them uniformly. Every
    network or HTTP failure leaves an adapter as ``ProviderRequestError``.
    """

    name: str  # "openai", "anthropic", "ollama", ...
    builtin_models: tuple[str, ...] = ()
    default_max_tokens: int | None = 4096

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if the connection settings allow issuing requests."""
        ...

    @abstractmethod
    def known_models(self) -> list[str]:
        """Return the model ids stored in this provider's settings block."""
        ...

    def streaming_enabled(self) -> bool:
        return False

    @abstractmethod
    async def complete(self, request: ChatRequest) -> str:
        """Issue a non-streaming request and return the full reply."""
        ...

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Yield reply text deltas. Providers without streaming yield once."""
        yield await self.complete(request)

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Fetch the model ids this provider currently serves."""
        ...

    def max_tokens(self, request: ChatRequest) -> int | None:
        return request.max_tokens if request.max_tokens is not None else self.default_max_tokens

    # ── HTTP helpers ─────────────────────────────────────────────────

    async def _post_json(self, url: str, payload: dict, headers: dict | None = None,
                         params: dict | None = None) -> dict:
        try:
            response = await self.client.post(url, json=payload, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, _describe(e)) from e
        await self._raise_for_status(response)
        return self._json(response)

    async def _get_json(self, url: str, headers: dict | None = None, params: dict | None = None) -> dict:
        try:
            response = await self.client.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, _describe(e)) from e
        await self._raise_for_status(response)
        return self._json(response)

    @asynccontextmanager
    async def _open_stream(self, url: str, payload: dict, headers: dict | None = None,
                           params: dict | None = None) -> AsyncIterator[httpx.Response]:
        """POST and yield the streaming response once its status is 2xx.

        Transport errors raised while the caller reads the body are converted
        as well, so a connection dropped mid-stream surfaces as
        ``ProviderRequestError``.
        """
        try:
            async with self.client.stream("POST", url, json=payload, headers=headers, params=params) as response:
                await self._raise_for_status(response)
                yield response
        except httpx.HTTPError as e:
            raise ProviderRequestError(self.name, _describe(e)) from e

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        await response.aread()
        message = error_message(response)
        logger.debug("%s request to %s failed (%s): %s", self.name, response.request.url, response.status_code, message)
        raise ProviderRequestError(self.name, message, response.status_code)

    def _json(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderRequestError(self.name, "Response is not valid JSON", response.status_code) from e
        if not isinstance(data, dict):
            raise ProviderRequestError(self.name, "Unexpected response format", response.status_code)
        return data


def error_message(response: httpx.Response) -> str:
    """Pull the provider's own error text out of a failed response."""
    try:
        data = response.json()
    except (ValueError, json.JSONDecodeError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        for key in ("message", "detail"):
            if data.get(key):
                return str(data[key])

    text = response.text.strip()
    if text:
        return text[:500]
    return f"HTTP error! Status: {response.status_code}"


def _describe(e: httpx.HTTPError) -> str:
    detail = str(e)
    return f"{type(e).__name__}: {detail}" if detail else type(e).__name__
