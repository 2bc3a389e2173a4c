"""
OpenAI adapters: Chat Completions, the Responses API, and Azure OpenAI.

Requests without built-in tools go to `/chat/completions`. Requests that
declare built-in tools (web_search, file_search, code_interpreter, mcp, ...)
go to `/responses`, whose output is parsed into ExtendedOutput: citations,
consulted sources and hosted tool calls.

Azure reuses the Chat Completions wire format against a deployment URL,
authenticating with an `api-key` header.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from llmcore.exceptions import ProviderError
from llmcore.llm.capabilities import Capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.streaming import LineDecoder, decode_sse_chat, decode_sse_responses
from llmcore.llm.types import (
    ChatRequest,
    ChatResponse,
    Citation,
    DocumentPart,
    ExtendedOutput,
    HostedToolCall,
    ImagePart,
    Message,
    Role,
    Source,
    TextPart,
    ToolCall,
)


# ---------------------------------------------------------------------------
# Chat Completions wire helpers (shared with OpenRouter)
# ---------------------------------------------------------------------------

def to_openai_content(message: Message) -> Any:
    if isinstance(message.content, str):
        return message.content

    parts: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            parts.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            image: dict[str, Any] = {"url": part.url}
            if part.detail:
                image["detail"] = part.detail
            parts.append({"type": "image_url", "image_url": image})
        elif isinstance(part, DocumentPart):
            if part.data:
                file_data = f"data:{part.mime_type};base64,{part.data}"
            elif part.url:
                file_data = part.url
            else:
                continue
            parts.append({
                "type": "file",
                "file": {"filename": part.name or "document.pdf", "file_data": file_data},
            })
    return parts


def to_openai_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for message in messages:
        item: dict[str, Any] = {
            "role": message.role.value,
            "content": to_openai_content(message),
        }
        if message.tool_calls:
            item["tool_calls"] = [tc.to_openai() for tc in message.tool_calls]
        if message.tool_call_id:
            item["tool_call_id"] = message.tool_call_id
        wire.append(item)
    return wire


def parse_chat_completion(provider: str, data: dict[str, Any]) -> ChatResponse:
    choices = data.get("choices") or []
    if not choices:
        raise ProviderError(provider, "no response choices")

    choice = choices[0]
    message = choice.get("message") or {}
    tool_calls = [
        ToolCall(
            id=tc.get("id", ""),
            name=(tc.get("function") or {}).get("name", ""),
            arguments=(tc.get("function") or {}).get("arguments") or "{}",
            type=tc.get("type", "function"),
        )
        for tc in message.get("tool_calls") or []
    ]
    usage = data.get("usage") or {}
    return ChatResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
        finish_reason=choice.get("finish_reason") or "",
    )


# ---------------------------------------------------------------------------
# Responses API wire helpers
# ---------------------------------------------------------------------------

def to_responses_input(messages: tuple[Message, ...]) -> tuple[str, list[dict[str, Any]]]:
    """Split into (instructions, input items) for the Responses API."""
    instructions: list[str] = []
    items: list[dict[str, Any]] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            instructions.append(message.text)
            continue
        if message.role is Role.TOOL:
            items.append({
                "type": "function_call_output",
                "call_id": message.tool_call_id,
                "output": message.text,
            })
            continue

        text_type = "output_text" if message.role is Role.ASSISTANT else "input_text"
        content: list[dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                content.append({"type": text_type, "text": part.text})
            elif isinstance(part, ImagePart):
                content.append({"type": "input_image", "image_url": part.url})
            elif isinstance(part, DocumentPart):
                if part.data:
                    content.append({
                        "type": "input_file",
                        "filename": part.name or "document.pdf",
                        "file_data": f"data:{part.mime_type};base64,{part.data}",
                    })
                elif part.url:
                    content.append({"type": "input_file", "file_url": part.url})
        if content:
            items.append({"role": message.role.value, "content": content})
        for tc in message.tool_calls:
            items.append({
                "type": "function_call",
                "call_id": tc.id,
                "name": tc.name,
                "arguments": tc.arguments,
            })
    return "\n\n".join(instructions), items


def parse_responses_output(data: dict[str, Any]) -> ChatResponse:
    """
    Parse a Responses API payload.

    Text comes from `message` items; annotations become citations;
    `web_search_call` actions contribute sources; `function_call` items
    become ordinary tool calls and every other `*_call` item is kept as a
    hosted tool call.
    """
    extended = ExtendedOutput()
    texts: list[str] = []
    tool_calls: list[ToolCall] = []

    for item in data.get("output") or []:
        if not isinstance(item, dict):
            continue
        extended.output_items.append(item)
        kind = item.get("type", "")

        if kind == "message":
            for block in item.get("content") or []:
                if block.get("type") not in ("output_text", "text"):
                    continue
                texts.append(block.get("text") or "")
                for ann in block.get("annotations") or []:
                    extended.citations.append(Citation(
                        type=ann.get("type", ""),
                        url=ann.get("url", ""),
                        title=ann.get("title", ""),
                        file_id=ann.get("file_id", ""),
                        filename=ann.get("filename", ""),
                        start_index=ann.get("start_index", ann.get("index", 0)) or 0,
                        end_index=ann.get("end_index", 0) or 0,
                    ))
        elif kind == "function_call":
            tool_calls.append(ToolCall(
                id=item.get("call_id") or item.get("id", ""),
                name=item.get("name", ""),
                arguments=item.get("arguments") or "{}",
            ))
        elif kind.endswith("_call"):
            extended.tool_calls.append(HostedToolCall(
                id=item.get("id", ""),
                type=kind,
                status=item.get("status", ""),
                server_label=item.get("server_label", ""),
                name=item.get("name", ""),
                arguments=_as_text(item.get("arguments")),
                output=_as_text(item.get("output")),
                error=_as_text(item.get("error")),
            ))
            action = item.get("action") or {}
            for src in action.get("sources") or []:
                if isinstance(src, dict) and src.get("url"):
                    extended.sources.append(Source(url=src["url"], title=src.get("title", "")))

    content = "".join(texts) or data.get("output_text") or ""
    usage = data.get("usage") or {}
    return ChatResponse(
        content=content,
        tool_calls=tool_calls,
        prompt_tokens=usage.get("input_tokens", 0),
        completion_tokens=usage.get("output_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
        finish_reason=data.get("status", ""),
        extended=extended,
    )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIProvider(BaseProvider):
    """api.openai.com: Chat Completions, or the Responses API for built-in tools."""

    name = "openai"
    default_base_url = "https://api.openai.com/v1"
    api_key_env = ("OPENAI_API_KEY",)
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        json=True,
        reasoning=True,
        pdf=True,
        web_search=True,
        file_search=True,
        code_interpreter=True,
        mcp=True,
        image_generation=True,
        computer_use=True,
        shell=True,
        apply_patch=True,
    )
    stream_decoder = decode_sse_chat

    def uses_responses_api(self, request: ChatRequest) -> bool:
        return bool(request.builtin_tools)

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        if self.uses_responses_api(request):
            return f"{self.config.base_url}/responses"
        return f"{self.config.base_url}/chat/completions"

    def decoder_for(self, request: ChatRequest) -> Optional[LineDecoder]:
        if self.uses_responses_api(request):
            return decode_sse_responses
        return decode_sse_chat

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        if self.uses_responses_api(request):
            return self._responses_body(request, stream=stream)

        body: dict[str, Any] = {
            "model": self.resolve_model(request.model),
            "messages": to_openai_messages(request.messages),
        }
        if stream:
            body["stream"] = True
            body["stream_options"] = {"include_usage": True}
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.reasoning_value:
            body["reasoning_effort"] = request.reasoning_value
        if request.tools:
            body["tools"] = [t.to_openai() for t in request.tools]
            body["tool_choice"] = "auto"
        if request.json_mode:
            body["response_format"] = {"type": "json_object"}
        return body

    def _responses_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        instructions, items = to_responses_input(request.messages)
        body: dict[str, Any] = {
            "model": self.resolve_model(request.model),
            "input": items,
        }
        if instructions:
            body["instructions"] = instructions
        if stream:
            body["stream"] = True
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.reasoning_value:
            body["reasoning"] = {"effort": request.reasoning_value}

        tools: list[dict[str, Any]] = [bt.to_dict() for bt in request.builtin_tools]
        for tool in request.tools:
            spec: dict[str, Any] = {"type": "function", "name": tool.name}
            if tool.description:
                spec["description"] = tool.description
            if tool.parameters:
                spec["parameters"] = tool.parameters
            tools.append(spec)
        body["tools"] = tools

        if request.json_mode:
            body["text"] = {"format": {"type": "json_object"}}
        return body

    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        if "output" in data:
            return parse_responses_output(data)
        return parse_chat_completion(self.name, data)


# ---------------------------------------------------------------------------
# Azure OpenAI
# ---------------------------------------------------------------------------

AZURE_PLACEHOLDER_URL = (
    "https://YOUR-RESOURCE.openai.azure.com/openai/deployments/YOUR-DEPLOYMENT"
)
AZURE_API_VERSION = "2024-10-21"


class AzureOpenAIProvider(OpenAIProvider):
    """
    Azure OpenAI deployment. The base URL is the full deployment URL;
    the key falls back from AZURE_OPENAI_API_KEY to OPENAI_API_KEY.
    """

    name = "azure"
    default_base_url = AZURE_PLACEHOLDER_URL
    api_key_env = ("AZURE_OPENAI_API_KEY", "OPENAI_API_KEY")
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        json=True,
        reasoning=True,
    )
    api_version = AZURE_API_VERSION

    @property
    def deployment_url(self) -> str:
        return self.config.base_url

    def uses_responses_api(self, request: ChatRequest) -> bool:
        return False

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        return f"{self.config.base_url}/chat/completions?api-version={self.api_version}"

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "api-key": self.config.api_key}
