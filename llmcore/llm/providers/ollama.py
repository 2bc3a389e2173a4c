"""Ollama (local) adapter: `/api/chat`, NDJSON streaming, no auth by default."""

from __future__ import annotations

import json
from typing import Any

from llmcore.llm.capabilities import Capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.streaming import decode_ndjson_chat
from llmcore.llm.types import (
    ChatRequest,
    ChatResponse,
    ImagePart,
    Message,
    TextPart,
    ToolCall,
    split_data_uri,
)


def to_ollama_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for message in messages:
        item: dict[str, Any] = {"role": message.role.value}
        if not message.is_multipart:
            item["content"] = message.content
        else:
            texts: list[str] = []
            images: list[str] = []
            for part in message.content:
                if isinstance(part, TextPart):
                    texts.append(part.text)
                elif isinstance(part, ImagePart):
                    _, data = split_data_uri(part.url)
                    if data:
                        images.append(data)
            item["content"] = "\n".join(texts)
            if images:
                item["images"] = images
        if message.tool_calls:
            item["tool_calls"] = [
                {"function": {"name": tc.name, "arguments": _loads(tc.arguments)}}
                for tc in message.tool_calls
            ]
        wire.append(item)
    return wire


def _loads(arguments: str) -> Any:
    try:
        return json.loads(arguments or "{}")
    except ValueError:
        return {}


class OllamaProvider(BaseProvider):
    name = "ollama"
    default_base_url = "http://localhost:11434"
    api_key_env = ("OLLAMA_API_KEY",)
    requires_api_key = False
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        json=True,
    )
    stream_decoder = decode_ndjson_chat

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        return f"{self.config.base_url}/api/chat"

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.resolve_model(request.model),
            "messages": to_ollama_messages(request.messages),
            "stream": stream,
        }
        if request.temperature is not None:
            body["options"] = {"temperature": request.temperature}
        if request.json_mode:
            body["format"] = "json"
        if request.tools:
            body["tools"] = [t.to_openai() for t in request.tools]
        return body

    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        message = data.get("message") or {}
        tool_calls = []
        for i, tc in enumerate(message.get("tool_calls") or []):
            function = tc.get("function") or {}
            arguments = function.get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments or {})
            tool_calls.append(ToolCall(id=f"call_{i}", name=function.get("name", ""), arguments=arguments))

        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            prompt_tokens=data.get("prompt_eval_count", 0),
            completion_tokens=data.get("eval_count", 0),
            finish_reason=data.get("done_reason") or ("stop" if data.get("done") else ""),
        )
