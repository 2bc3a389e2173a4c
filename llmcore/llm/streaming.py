"""
Streaming decoders — turn a vendor's line stream into ordered text deltas.

Three wire shapes are handled:

1. SSE with a sentinel: `data: {...}` lines, `data: [DONE]` ends the stream
   (OpenAI, OpenRouter, Azure; Gemini uses the same framing without a
   sentinel).
2. NDJSON: one JSON object per line, `"done": true` ends the stream (Ollama).
3. Event-typed SSE: only `content_block_delta`/`text_delta` events carry
   text and `message_stop` ends the stream (Anthropic).

Every decoder maps one line to at most one StreamDelta. Lines that do not
parse as the expected envelope are skipped. `consume_stream` delivers each
delta to the caller's callback the moment its line is decoded and builds
the aggregate ChatResponse, estimating tokens when the vendor reports none.

Usage:
    response = await consume_stream(
        http_response.aiter_lines(),
        decode_sse_chat,
        callback=lambda text: print(text, end="", flush=True),
    )
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional

from llmcore.llm.types import ChatResponse, StreamCallback

logger = logging.getLogger(__name__)

# Characters per token used when a vendor reports no usage for a stream.
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


# ---------------------------------------------------------------------------
# Stream Delta
# ---------------------------------------------------------------------------

@dataclass
class StreamDelta:
    """What one line contributed: text, a terminal marker, and/or usage."""

    text: str = ""
    done: bool = False
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None


LineDecoder = Callable[[str], Optional[StreamDelta]]


def _sse_payload(line: str) -> Optional[str]:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


def _load(payload: str) -> Optional[dict[str, Any]]:
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(value: Any) -> dict[str, Any]:
    if isinstance(value, list) and value:
        return _obj(value[0])
    return {}


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


# ---------------------------------------------------------------------------
# Decoders
# ---------------------------------------------------------------------------

def decode_sse_chat(line: str) -> Optional[StreamDelta]:
    """OpenAI-style chat completion chunks with a `[DONE]` sentinel."""
    payload = _sse_payload(line)
    if payload is None:
        return None
    if payload == "[DONE]":
        return StreamDelta(done=True)

    chunk = _load(payload)
    if chunk is None:
        return None

    choice = _first(chunk.get("choices"))
    delta = StreamDelta(text=_str(_obj(choice.get("delta")).get("content")))

    usage = _obj(chunk.get("usage"))
    delta.prompt_tokens = _count(usage.get("prompt_tokens"))
    delta.completion_tokens = _count(usage.get("completion_tokens"))
    return delta


def decode_sse_gemini(line: str) -> Optional[StreamDelta]:
    """Gemini `streamGenerateContent?alt=sse`: candidates[0].content.parts[0].text."""
    payload = _sse_payload(line)
    if payload is None:
        return None
    chunk = _load(payload)
    if chunk is None:
        return None

    candidate = _first(chunk.get("candidates"))
    part = _first(_obj(candidate.get("content")).get("parts"))
    delta = StreamDelta(text=_str(part.get("text")))

    usage = _obj(chunk.get("usageMetadata"))
    delta.prompt_tokens = _count(usage.get("promptTokenCount"))
    delta.completion_tokens = _count(usage.get("candidatesTokenCount"))
    return delta


def decode_ndjson_chat(line: str) -> Optional[StreamDelta]:
    """Ollama `/api/chat` stream: message.content, `done` + eval counts."""
    chunk = _load(line.strip())
    if chunk is None:
        return None

    delta = StreamDelta(text=_str(_obj(chunk.get("message")).get("content")))
    if chunk.get("done") is True:
        delta.done = True
        delta.prompt_tokens = _count(chunk.get("prompt_eval_count"))
        delta.completion_tokens = _count(chunk.get("eval_count"))
    return delta


def decode_sse_events(line: str) -> Optional[StreamDelta]:
    """Anthropic Messages stream: typed events, text only in text_delta."""
    payload = _sse_payload(line)
    if payload is None:
        return None
    event = _load(payload)
    if event is None:
        return None

    kind = event.get("type")
    if kind == "content_block_delta":
        inner = _obj(event.get("delta"))
        if inner.get("type") == "text_delta":
            return StreamDelta(text=_str(inner.get("text")))
        return None
    if kind == "message_start":
        usage = _obj(_obj(event.get("message")).get("usage"))
        return StreamDelta(prompt_tokens=_count(usage.get("input_tokens")))
    if kind == "message_delta":
        usage = _obj(event.get("usage"))
        return StreamDelta(completion_tokens=_count(usage.get("output_tokens")))
    if kind == "message_stop":
        return StreamDelta(done=True)
    return None


def decode_sse_responses(line: str) -> Optional[StreamDelta]:
    """OpenAI Responses API stream: output_text deltas until response.completed."""
    payload = _sse_payload(line)
    if payload is None:
        return None
    event = _load(payload)
    if event is None:
        return None

    kind = event.get("type")
    if kind == "response.output_text.delta":
        return StreamDelta(text=_str(event.get("delta")))
    if kind in ("response.completed", "response.failed", "response.incomplete"):
        usage = _obj(_obj(event.get("response")).get("usage"))
        return StreamDelta(
            done=True,
            prompt_tokens=_count(usage.get("input_tokens")),
            completion_tokens=_count(usage.get("output_tokens")),
        )
    return None


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------

async def consume_stream(
    lines: AsyncIterator[str],
    decoder: LineDecoder,
    callback: Optional[StreamCallback] = None,
) -> ChatResponse:
    """
    Drive `decoder` over `lines` until end-of-input or a terminal marker.

    Errors raised while reading `lines` propagate: a broken transport is
    fatal to the call even though a malformed line is not.
    """
    collected: list[str] = []
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    chunk_count = 0

    async for line in lines:
        if not line.strip():
            continue
        try:
            delta = decoder(line)
        except (AttributeError, TypeError, KeyError, ValueError) as e:
            logger.debug(
                "stream_line_skipped",
                extra={"line": line[:200], "error": str(e)[:200]},
            )
            continue
        if delta is None:
            continue

        if delta.text:
            collected.append(delta.text)
            chunk_count += 1
            if callback is not None:
                callback(delta.text)
        if delta.prompt_tokens:
            prompt_tokens = delta.prompt_tokens
        if delta.completion_tokens:
            completion_tokens = delta.completion_tokens
        if delta.done:
            break

    content = "".join(collected)
    if not completion_tokens:
        completion_tokens = estimate_tokens(content)

    logger.debug(
        "stream_decoded",
        extra={"chunks": chunk_count, "text_length": len(content)},
    )

    return ChatResponse(
        content=content,
        prompt_tokens=prompt_tokens or 0,
        completion_tokens=completion_tokens,
        total_tokens=(prompt_tokens or 0) + completion_tokens,
    )
