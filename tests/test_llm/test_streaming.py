"""
Tests for the streaming decoders and consume_stream.

Tests cover:
1. Per-vendor line decoders (SSE chat, Gemini SSE, NDJSON, event SSE, Responses)
2. consume_stream: ordering, sentinel handling, malformed lines, usage
3. Token estimation when the vendor reports no usage
4. Valid JSON of the wrong shape is skipped, never fatal
"""

from __future__ import annotations

import json

import pytest

from llmcore.llm.streaming import (
    StreamDelta,
    consume_stream,
    decode_ndjson_chat,
    decode_sse_chat,
    decode_sse_events,
    decode_sse_gemini,
    decode_sse_responses,
    estimate_tokens,
)


async def _lines(*items: str):
    for item in items:
        yield item


def _data(obj) -> str:
    return "data: " + json.dumps(obj)


def _chat_chunk(text: str) -> str:
    return _data({"choices": [{"delta": {"content": text}}]})


# ===========================================================================
# Decoders
# ===========================================================================

class TestDecodeSSEChat:

    def test_text_delta(self):
        assert decode_sse_chat(_chat_chunk("Hel")).text == "Hel"

    def test_done_sentinel(self):
        assert decode_sse_chat("data: [DONE]") == StreamDelta(done=True)

    def test_usage_chunk(self):
        line = _data({"choices": [], "usage": {"prompt_tokens": 12, "completion_tokens": 3}})
        delta = decode_sse_chat(line)
        assert delta.text == ""
        assert delta.prompt_tokens == 12
        assert delta.completion_tokens == 3

    @pytest.mark.parametrize("line", [
        ": keep-alive",
        "event: ping",
        "data: {not json",
        "data: [1, 2]",
    ])
    def test_ignored_lines(self, line):
        assert decode_sse_chat(line) is None

    def test_null_content(self):
        line = _data({"choices": [{"delta": {"role": "assistant", "content": None}}]})
        assert decode_sse_chat(line).text == ""


class TestDecodeSSEGemini:

    def test_text_and_usage(self):
        line = _data({
            "candidates": [{"content": {"parts": [{"text": "Bonjour"}]}}],
            "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 2},
        })
        delta = decode_sse_gemini(line)
        assert delta.text == "Bonjour"
        assert delta.prompt_tokens == 7
        assert delta.completion_tokens == 2
        assert delta.done is False

    def test_no_candidates(self):
        assert decode_sse_gemini(_data({"candidates": []})).text == ""


class TestDecodeNDJSON:

    def test_content_line(self):
        delta = decode_ndjson_chat(json.dumps({"message": {"content": "hi"}, "done": False}))
        assert delta.text == "hi"
        assert not delta.done

    def test_done_line_carries_counts(self):
        line = json.dumps({"message": {"content": ""}, "done": True,
                           "prompt_eval_count": 20, "eval_count": 8})
        delta = decode_ndjson_chat(line)
        assert delta.done
        assert delta.prompt_tokens == 20
        assert delta.completion_tokens == 8

    def test_garbage(self):
        assert decode_ndjson_chat("not json at all") is None


class TestDecodeSSEEvents:

    def test_text_delta_only(self):
        line = _data({"type": "content_block_delta",
                      "delta": {"type": "text_delta", "text": "Hi"}})
        assert decode_sse_events(line).text == "Hi"

    def test_non_text_delta_ignored(self):
        line = _data({"type": "content_block_delta",
                      "delta": {"type": "input_json_delta", "partial_json": "{"}})
        assert decode_sse_events(line) is None

    def test_usage_events(self):
        start = _data({"type": "message_start", "message": {"usage": {"input_tokens": 30}}})
        delta = _data({"type": "message_delta", "usage": {"output_tokens": 9}})
        assert decode_sse_events(start).prompt_tokens == 30
        assert decode_sse_events(delta).completion_tokens == 9

    def test_message_stop(self):
        assert decode_sse_events(_data({"type": "message_stop"})).done

    def test_other_events_ignored(self):
        assert decode_sse_events(_data({"type": "ping"})) is None
        assert decode_sse_events("event: content_block_delta") is None


class TestDecodeSSEResponses:

    def test_output_text_delta(self):
        line = _data({"type": "response.output_text.delta", "delta": "abc"})
        assert decode_sse_responses(line).text == "abc"

    def test_completed(self):
        line = _data({"type": "response.completed",
                      "response": {"usage": {"input_tokens": 4, "output_tokens": 6}}})
        delta = decode_sse_responses(line)
        assert delta.done
        assert delta.prompt_tokens == 4
        assert delta.completion_tokens == 6

    def test_unrelated_event(self):
        assert decode_sse_responses(_data({"type": "response.created"})) is None


# ===========================================================================
# consume_stream
# ===========================================================================

class TestConsumeStream:

    @pytest.mark.asyncio
    async def test_sse_chunks_in_order(self):
        received = []
        response = await consume_stream(
            _lines(_chat_chunk("Hel"), _chat_chunk("lo"), "data: [DONE]"),
            decode_sse_chat,
            callback=received.append,
        )
        assert received == ["Hel", "lo"]
        assert response.content == "Hello"
        assert response.total_tokens > 0

    @pytest.mark.asyncio
    async def test_stops_at_sentinel(self):
        received = []
        await consume_stream(
            _lines(_chat_chunk("a"), "data: [DONE]", _chat_chunk("never")),
            decode_sse_chat,
            callback=received.append,
        )
        assert received == ["a"]

    @pytest.mark.asyncio
    async def test_malformed_and_blank_lines_skipped(self):
        received = []
        response = await consume_stream(
            _lines("", _chat_chunk("x"), "data: {broken", ": comment", _chat_chunk("y")),
            decode_sse_chat,
            callback=received.append,
        )
        assert received == ["x", "y"]
        assert response.content == "xy"

    @pytest.mark.asyncio
    async def test_callback_not_called_for_empty_deltas(self):
        received = []
        await consume_stream(
            _lines(_data({"choices": [{"delta": {"role": "assistant"}}]}), "data: [DONE]"),
            decode_sse_chat,
            callback=received.append,
        )
        assert received == []

    @pytest.mark.asyncio
    async def test_vendor_usage_preferred(self):
        response = await consume_stream(
            _lines(
                _chat_chunk("Hello there"),
                _data({"choices": [], "usage": {"prompt_tokens": 11, "completion_tokens": 2}}),
                "data: [DONE]",
            ),
            decode_sse_chat,
        )
        assert response.prompt_tokens == 11
        assert response.completion_tokens == 2
        assert response.total_tokens == 13

    @pytest.mark.asyncio
    async def test_tokens_estimated_without_usage(self):
        text = "x" * 40
        response = await consume_stream(_lines(_chat_chunk(text)), decode_sse_chat)
        assert response.completion_tokens == 10
        assert response.prompt_tokens == 0
        assert response.total_tokens == 10

    @pytest.mark.asyncio
    async def test_end_of_input_without_sentinel(self):
        response = await consume_stream(
            _lines(json.dumps({"message": {"content": "partial"}, "done": False})),
            decode_ndjson_chat,
        )
        assert response.content == "partial"

    @pytest.mark.asyncio
    async def test_anthropic_event_stream(self):
        received = []
        response = await consume_stream(
            _lines(
                "event: message_start",
                _data({"type": "message_start", "message": {"usage": {"input_tokens": 5}}}),
                _data({"type": "content_block_start", "index": 0}),
                _data({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}),
                _data({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "!"}}),
                _data({"type": "message_delta", "usage": {"output_tokens": 2}}),
                _data({"type": "message_stop"}),
            ),
            decode_sse_events,
            callback=received.append,
        )
        assert received == ["Hi", "!"]
        assert response.prompt_tokens == 5
        assert response.completion_tokens == 2

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        async def broken():
            yield _chat_chunk("a")
            raise ConnectionError("peer reset")

        with pytest.raises(ConnectionError):
            await consume_stream(broken(), decode_sse_chat)


class TestEstimateTokens:

    @pytest.mark.parametrize("text,expected", [("", 0), ("abc", 0), ("abcd", 1), ("a" * 10, 2)])
    def test_four_chars_per_token(self, text, expected):
        assert estimate_tokens(text) == expected


# ===========================================================================
# Wrong-shaped JSON
# ===========================================================================

class TestWrongShapedLines:

    @pytest.mark.parametrize("decoder,line", [
        (decode_sse_chat, _data({"choices": [{"delta": "oops"}]})),
        (decode_sse_chat, _data({"choices": "oops", "usage": [1]})),
        (decode_sse_chat, _data({"choices": [{"delta": {"content": 42}}]})),
        (decode_sse_gemini, _data({"candidates": [None]})),
        (decode_sse_gemini, _data({"candidates": [{"content": {"parts": ["x"]}}]})),
        (decode_ndjson_chat, json.dumps({"message": "oops"})),
        (decode_sse_events, _data({"type": "content_block_delta", "delta": "oops"})),
        (decode_sse_events, _data({"type": "message_start", "message": "oops"})),
        (decode_sse_responses, _data({"type": "response.completed", "response": []})),
    ])
    def test_decoders_yield_no_text(self, decoder, line):
        delta = decoder(line)
        assert delta is None or (delta.text == "" and not delta.prompt_tokens)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decoder,bad,good", [
        (decode_sse_chat, _data({"choices": [{"delta": "oops"}]}), _chat_chunk("ok")),
        (
            decode_sse_gemini,
            _data({"candidates": [None]}),
            _data({"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}),
        ),
        (
            decode_ndjson_chat,
            json.dumps({"message": "oops"}),
            json.dumps({"message": {"content": "ok"}, "done": True}),
        ),
    ])
    async def test_bad_line_then_good_line(self, decoder, bad, good):
        received = []
        response = await consume_stream(_lines(bad, good), decoder, callback=received.append)
        assert received == ["ok"]
        assert response.content == "ok"

    @pytest.mark.asyncio
    async def test_raising_decoder_line_skipped(self):
        def picky(line: str):
            if line == "boom":
                raise KeyError("missing")
            return StreamDelta(text=line)

        response = await consume_stream(_lines("a", "boom", "b"), picky)
        assert response.content == "ab"
