"""OpenRouter adapter: OpenAI-compatible wire, the default provider."""

from __future__ import annotations

from typing import Any

from llmcore.llm.capabilities import Capabilities
from llmcore.llm.providers.base import BaseProvider
from llmcore.llm.providers.openai import parse_chat_completion, to_openai_messages
from llmcore.llm.streaming import decode_sse_chat
from llmcore.llm.types import ChatRequest, ChatResponse

APP_REFERER = "https://github.com/llmcore/llmcore"
APP_TITLE = "llmcore"


class OpenRouterProvider(BaseProvider):
    """
    openrouter.ai: model ids are OpenRouter slugs and pass through as-is.

    Sends `reasoning` as a top-level field and identifies the calling app
    with HTTP-Referer / X-Title headers.
    """

    name = "openrouter"
    default_base_url = "https://openrouter.ai/api/v1"
    api_key_env = ("OPENROUTER_API_KEY",)
    CAPABILITIES = Capabilities(
        tools=True,
        vision=True,
        streaming=True,
        json=True,
        reasoning=True,
    )
    stream_decoder = decode_sse_chat

    def endpoint(self, request: ChatRequest, *, stream: bool) -> str:
        return f"{self.config.base_url}/chat/completions"

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["HTTP-Referer"] = APP_REFERER
        headers["X-Title"] = APP_TITLE
        return headers

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.resolve_model(request.model),
            "messages": to_openai_messages(request.messages),
        }
        if stream:
            body["stream"] = True
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.reasoning_value:
            body["reasoning"] = request.reasoning_value
        if request.tools:
            body["tools"] = [t.to_openai() for t in request.tools]
            body["tool_choice"] = "auto"
        if request.json_mode:
            body["response_format"] = {"type": "json_object"}
        return body

    def parse_response(self, data: dict[str, Any]) -> ChatResponse:
        return parse_chat_completion(self.name, data)
