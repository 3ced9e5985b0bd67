"""Tests for SSE / NDJSON line framing."""

import json

import pytest

from bmo_chatbot.errors import StreamParseError
from bmo_chatbot.framing import (
    DONE,
    decode_ndjson_line,
    decode_sse_line,
    iter_ndjson_payloads,
    iter_sse_payloads,
    openai_delta,
)


async def _lines(*lines):
    for line in lines:
        yield line


class TestDecodeSSELine:

    def test_data_line(self):
        assert decode_sse_line('data: {"a": 1}') == {"a": 1}

    def test_data_without_space(self):
        assert decode_sse_line('data:{"a": 1}') == {"a": 1}

    def test_done(self):
        assert decode_sse_line("data: [DONE]") is DONE
        assert decode_sse_line("data:[DONE]") is DONE

    def test_content_mentioning_done_is_data(self):
        line = "data: " + json.dumps({"choices": [{"delta": {"content": "data: [DONE]"}}]})
        assert decode_sse_line(line) == {"choices": [{"delta": {"content": "data: [DONE]"}}]}


    def test_blank_comment_and_event_lines_carry_nothing(self):
        assert decode_sse_line("") is None
        assert decode_sse_line(": OPENROUTER PROCESSING") is None
        assert decode_sse_line("event: content_block_delta") is None

    def test_invalid_json(self):
        with pytest.raises(StreamParseError):
            decode_sse_line("data: {not json")

    def test_non_object(self):
        with pytest.raises(StreamParseError):
            decode_sse_line("data: [1, 2]")


class TestDecodeNDJSONLine:

    def test_object(self):
        assert decode_ndjson_line('{"done": false}\n') == {"done": False}

    def test_blank(self):
        assert decode_ndjson_line("   ") is None

    def test_invalid(self):
        with pytest.raises(StreamParseError):
            decode_ndjson_line("{")


class TestOpenAIDelta:

    def test_content(self):
        assert openai_delta({"choices": [{"delta": {"content": "Hi"}}]}) == "Hi"

    def test_role_only_chunk(self):
        assert openai_delta({"choices": [{"delta": {"role": "assistant"}}]}) == ""

    def test_stop_gate(self):
        chunk = {"choices": [{"delta": {"content": "x"}, "finish_reason": "stop"}]}
        assert openai_delta(chunk) == "x"
        assert openai_delta(chunk, stop_gate=True) == ""

    def test_missing_choices(self):
        with pytest.raises(StreamParseError):
            openai_delta({"id": "chunk"})


@pytest.mark.asyncio
async def test_sse_stops_at_done():
    lines = _lines('data: {"n": 1}', "", "data: [DONE]", 'data: {"n": 2}')
    payloads = [p async for p in iter_sse_payloads(lines, "test")]
    assert payloads == [{"n": 1}]


@pytest.mark.asyncio
async def test_sse_skips_malformed_chunks():
    lines = _lines('data: {"n": 1}', "data: {broken", ": keep-alive", 'data: {"n": 2}')
    payloads = [p async for p in iter_sse_payloads(lines, "test")]
    assert payloads == [{"n": 1}, {"n": 2}]


@pytest.mark.asyncio
async def test_ndjson_payloads():
    lines = _lines('{"n": 1}', "", "garbage", '{"n": 2}')
    payloads = [p async for p in iter_ndjson_payloads(lines, "test")]
    assert payloads == [{"n": 1}, {"n": 2}]
