"""Line framing for streamed provider responses.

Two framings are in use:

- Server-sent events (OpenAI, Mistral, OpenRouter, REST URL, Anthropic):
  ``data: {json}`` lines, terminated by ``data: [DONE]`` where the provider
  sends one. Lines starting with ``:`` are keep-alive comments and ``event:``
  lines only name the event, so both are skipped.
- Newline-delimited JSON (Ollama): one object per line.

A line that fails to decode raises ``StreamParseError``; the ``iter_*``
helpers log and skip it so one bad chunk never ends the stream.
"""

import json
import logging
from typing import AsyncIterator

from .errors import StreamParseError

logger = logging.getLogger(__name__)

DONE = object()


def decode_sse_line(line: str):
    """Decode one SSE line.

    Returns the JSON payload as a dict, ``None`` for lines carrying no data,
    or ``DONE`` for the terminator.
    """
    line = line.strip()
    if not line or line.startswith(":") or line.startswith("event:"):
        return None
    if line in ("data: [DONE]", "data:[DONE]"):
        return DONE
    if line.startswith("data:"):
        line = line[5:].lstrip()
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise StreamParseError(line, f"invalid JSON ({e.msg})") from e
    if not isinstance(payload, dict):
        raise StreamParseError(line, "expected a JSON object")
    return payload


def decode_ndjson_line(line: str) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise StreamParseError(line, f"invalid JSON ({e.msg})") from e
    if not isinstance(payload, dict):
        raise StreamParseError(line, "expected a JSON object")
    return payload


def openai_delta(payload: dict, stop_gate: bool = False) -> str:
    """Extract ``choices[0].delta.content`` from a chat-completions chunk.

    With ``stop_gate`` a chunk whose ``finish_reason`` is ``"stop"``
    contributes nothing.
    """
    try:
        choice = payload["choices"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise StreamParseError(json.dumps(payload), "chunk has no choices") from e
    if stop_gate and choice.get("finish_reason") == "stop":
        return ""
    delta = choice.get("delta") or {}
    return delta.get("content") or ""


async def iter_sse_payloads(lines: AsyncIterator[str], provider: str) -> AsyncIterator[dict]:
    async for line in lines:
        try:
            payload = decode_sse_line(line)
        except StreamParseError as e:
            logger.warning("%s: skipping malformed chunk: %s", provider, e)
            continue
        if payload is DONE:
            return
        if payload is not None:
            yield payload


async def iter_ndjson_payloads(lines: AsyncIterator[str], provider: str) -> AsyncIterator[dict]:
    async for line in lines:
        try:
            payload = decode_ndjson_line(line)
        except StreamParseError as e:
            logger.warning("%s: skipping malformed chunk: %s", provider, e)
            continue
        if payload is not None:
            yield payload
