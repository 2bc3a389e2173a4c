"""
Anthropic Messages API adapter.

System messages are lifted into the top-level `system` field; every other
role is sent as "user" or "assistant". Images and documents become typed
`source` blocks. Reasoning levels map to an extended-thinking token budget.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from llmcore.exceptions import ProviderError
from llmcore.llm.capabilities import Capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.streaming import decode_sse_events
from llmcore.llm.types import (
    ChatRequest,
    ChatResponse,
    DocumentPart,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolCall,
    split_data_uri,
)

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 8192

# Reasoning level → thinking budget (tokens).
THINKING_BUDGETS: dict[str, int] = {
    "low": 1024,
    "medium": 4096,
    "high": 16384,
}
DEFAULT_THINKING_BUDGET = 1024


def thinking_budget(level: Optional[str]) -> int:
    return THINKING_BUDGETS.get(level or "", DEFAULT_THINKING_BUDGET)


def _content_blocks(message: Message) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            if part.is_data_uri:
                mime, data = split_data_uri(part.url)
                if not data:
                    continue
                source = {"type": "base64", "media_type": mime, "data": data}
            else:
                source = {"type": "url", "url": part.url}
            blocks.append({"type": "image", "source": source})
        elif isinstance(part, DocumentPart):
            if part.data:
                source = {"type": "base64", "media_type": part.mime_type, "data": part.data}
            elif part.url:
                source = {"type": "url", "url": part.url}
            else:
                continue
            blocks.append({"type": "document", "source": source})
    return blocks


def to_anthropic_messages(messages: tuple[Message, ...]) -> tuple[str, list[dict[str, Any]]]:
    """Returns (system text, wire messages)."""
    system: list[str] = []
    wire: list[dict[str, Any]] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            system.append(message.text)
            continue

        if message.role is Role.TOOL:
            wire.append({
                "role": "user",
                "content": [{
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.text,
                }],
            })
            continue

        role = "assistant" if message.role is Role.ASSISTANT else "user"
        if not message.is_multipart and not message.tool_calls:
            wire.append({"role": role, "content": message.content})
            continue

        blocks = _content_blocks(message)
        for tc in message.tool_calls:
            try:
                tool_input = tc.parsed_arguments()
            except ValueError:
                tool_input = {}
            blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tool_input})
        wire.append({"role": role, "content": blocks})
    return "\n\n".join(system), wire


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"
    api_key_env = ("ANTHROPIC_API_KEY",)
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        reasoning=True,
        pdf=True,
    )
    stream_decoder = decode_sse_events

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        return f"{self.config.base_url}/messages"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        system, messages = to_anthropic_messages(request.messages)
        body: dict[str, Any] = {
            "model": self.resolve_model(request.model),
            "messages": messages,
            "max_tokens": DEFAULT_MAX_TOKENS,
        }
        if system:
            body["system"] = system
        if stream:
            body["stream"] = True
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.reasoning_value:
            body["thinking"] = {
                "type": "enabled",
                "budget_tokens": thinking_budget(request.reasoning_value),
            }
        if request.tools:
            body["tools"] = [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters or {"type": "object", "properties": {}},
                }
                for t in request.tools
            ]
        return body

    def error_from_payload(self, data: Any) -> Optional[ProviderError]:
        # {"type": "error", "error": {"type": "overloaded_error", "message": "..."}}
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if not isinstance(error, dict):
            return None
        return ProviderError(
            self.name,
            str(error.get("message") or error),
            code=str(error.get("type") or ""),
        )

    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in data.get("content") or []:
            kind = block.get("type")
            if kind == "text":
                texts.append(block.get("text") or "")
            elif kind == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id", ""),
                    name=block.get("name", ""),
                    arguments=json.dumps(block.get("input") or {}),
                ))

        usage = data.get("usage") or {}
        return ChatResponse(
            content="".join(texts),
            tool_calls=tool_calls,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            finish_reason=data.get("stop_reason") or "",
        )
