"""
Google Gemini (generativelanguage) adapter.

Authentication is a `key` query parameter rather than a header. The
assistant role is renamed "model" and system text goes into
`systemInstruction`. Only inline (data URI) images can be sent; remote
image URLs are dropped.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from llmcore.exceptions import ProviderError
from llmcore.llm.capabilities import Capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.streaming import decode_sse_gemini
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


def _parts(message: Message) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            parts.append({"text": part.text})
        elif isinstance(part, ImagePart):
            mime, data = split_data_uri(part.url)
            if data:
                parts.append({"inlineData": {"mimeType": mime, "data": data}})
        elif isinstance(part, DocumentPart):
            if part.data:
                parts.append({"inlineData": {"mimeType": part.mime_type, "data": part.data}})
            elif part.url:
                parts.append({"fileData": {"mimeType": part.mime_type, "fileUri": part.url}})
    for tc in message.tool_calls:
        try:
            args = tc.parsed_arguments()
        except ValueError:
            args = {}
        parts.append({"functionCall": {"name": tc.name, "args": args}})
    return parts


def to_gemini_contents(
    messages: tuple[Message, ...],
) -> tuple[Optional[dict[str, Any]], list[dict[str, Any]]]:
    """Returns (systemInstruction or None, contents)."""
    system: list[str] = []
    contents: list[dict[str, Any]] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            system.append(message.text)
            continue
        if message.role is Role.TOOL:
            contents.append({
                "role": "user",
                "parts": [{
                    "functionResponse": {
                        "name": message.tool_call_id,
                        "response": {"content": message.text},
                    },
                }],
            })
            continue

        parts = _parts(message)
        if not parts:
            continue
        role = "model" if message.role is Role.ASSISTANT else "user"
        contents.append({"role": role, "parts": parts})

    instruction = {"parts": [{"text": "\n\n".join(system)}]} if system else None
    return instruction, contents


class GoogleProvider(BaseProvider):
    name = "google"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    api_key_env = ("GOOGLE_API_KEY", "GEMINI_API_KEY")
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        json=True,
        reasoning=True,
        pdf=True,
    )
    stream_decoder = decode_sse_gemini

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        model = self.resolve_model(request.model)
        if stream:
            return (
                f"{self.config.base_url}/models/{model}:streamGenerateContent"
                f"?alt=sse&key={self.config.api_key}"
            )
        return f"{self.config.base_url}/models/{model}:generateContent?key={self.config.api_key}"

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        instruction, contents = to_gemini_contents(request.messages)
        body: dict[str, Any] = {"contents": contents}
        if instruction is not None:
            body["systemInstruction"] = instruction

        generation: dict[str, Any] = {}
        if request.temperature is not None:
            generation["temperature"] = request.temperature
        if request.json_mode:
            generation["responseMimeType"] = "application/json"
        if request.reasoning_value:
            generation["thinkingConfig"] = {"thinkingLevel": request.reasoning_value}
        if generation:
            body["generationConfig"] = generation

        if request.tools:
            declarations = []
            for tool in request.tools:
                decl: dict[str, Any] = {"name": tool.name, "description": tool.description}
                if tool.parameters:
                    decl["parameters"] = tool.parameters
                declarations.append(decl)
            body["tools"] = [{"functionDeclarations": declarations}]
        return body

    def error_from_payload(self, data: Any) -> Optional[ProviderError]:
        # {"error": {"code": 400, "message": "...", "status": "INVALID_ARGUMENT"}}
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if not isinstance(error, dict):
            return None
        return ProviderError(
            self.name,
            str(error.get("message") or error),
            code=str(error.get("status") or error.get("code") or ""),
        )

    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(self.name, "no response candidates")

        candidate = candidates[0]
        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "text" in part:
                texts.append(part.get("text") or "")
            elif "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(ToolCall(
                    id=f"call_{len(tool_calls)}",
                    name=call.get("name", ""),
                    arguments=json.dumps(call.get("args") or {}),
                ))

        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            content="".join(texts),
            tool_calls=tool_calls,
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            total_tokens=usage.get("totalTokenCount", 0),
            finish_reason=candidate.get("finishReason") or "",
        )
