"""
Tests for the provider adapters.

Every adapter is exercised end to end against httpx.MockTransport: the
outgoing URL, headers and JSON body are inspected, and canned vendor
payloads are parsed back into ChatResponse objects.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from llmcore.exceptions import ConfigurationError, OperationCancelled, ProviderError
from llmcore.llm.providers import (
    PROVIDER_CLASSES,
    AnthropicProvider,
    AzureOpenAIProvider,
    GoogleProvider,
    OllamaProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderConfig,
    ProviderType,
    create_provider,
)
from llmcore.llm.providers.anthropic import thinking_budget, to_anthropic_messages
from llmcore.llm.providers.google import to_gemini_contents
from llmcore.llm.providers.openai import AZURE_API_VERSION, to_responses_input
from llmcore.llm.retry import TRANSPORT_ERROR_CODE
from llmcore.llm.types import (
    BuiltinTool,
    ChatRequest,
    DocumentPart,
    ImagePart,
    Message,
    TextPart,
    ToolCall,
    ToolSpec,
)
from llmcore.scope import Scope
from tests.stubs import (
    RecordingTransport,
    chat_completion,
    json_response,
    ndjson_response,
    sse_response,
)

PNG_URI = "data:image/png;base64,iVBORw0KGgo="

WEATHER_TOOL = ToolSpec(
    name="get_weather",
    description="Current weather for a city",
    parameters={"type": "object", "properties": {"city": {"type": "string"}}},
)


def _provider(cls, transport, **config):
    config.setdefault("api_key", "sk-test")
    return cls(ProviderConfig(**config), transport=transport)


def _request(model: str, **fields) -> ChatRequest:
    fields.setdefault("messages", [Message.system("Be brief."), Message.user("Hello")])
    return ChatRequest(model=model, **fields)


# ===========================================================================
# Registry
# ===========================================================================

class TestCreateProvider:

    def test_every_type_registered(self):
        assert set(PROVIDER_CLASSES) == set(ProviderType)

    def test_by_name(self):
        provider = create_provider("anthropic", api_key="k")
        assert isinstance(provider, AnthropicProvider)
        assert provider.config.api_key == "k"

    def test_default_is_openrouter(self):
        assert isinstance(create_provider(), OpenRouterProvider)

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError, match="unknown provider"):
            create_provider("skynet")

    def test_config_and_options_conflict(self):
        with pytest.raises(ConfigurationError):
            create_provider("openai", ProviderConfig(), api_key="k")

    def test_key_from_env_fallback(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-gemini-var")
        assert create_provider("google").config.api_key == "from-gemini-var"

    def test_primary_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "azure-key")
        monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
        assert create_provider("azure").config.api_key == "azure-key"

    def test_base_url_trailing_slash_stripped(self):
        provider = create_provider("ollama", base_url="http://gpu-box:11434/")
        assert provider.config.base_url == "http://gpu-box:11434"


# ===========================================================================
# Shared HTTP behaviour
# ===========================================================================

class TestHTTPErrors:

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_network(self):
        transport = RecordingTransport([json_response(chat_completion())])
        provider = OpenAIProvider(transport=transport)
        with pytest.raises(ProviderError, match="OPENAI_API_KEY not set"):
            await provider.send(_request("openai/gpt-4o"))
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_status_becomes_code(self):
        transport = RecordingTransport([json_response(
            {"error": {"message": "slow down", "code": "rate_limited"}}, status=429,
        )])
        provider = _provider(OpenRouterProvider, transport)
        with pytest.raises(ProviderError) as exc:
            await provider.send(_request("openai/gpt-4o"))
        err = exc.value
        assert err.code == "429"
        assert err.status_code == 429
        assert err.details == {"status": 429, "vendor_code": "rate_limited"}
        assert "slow down" in str(err)

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        transport = RecordingTransport([httpx.Response(502, content=b"Bad Gateway")])
        provider = _provider(OpenAIProvider, transport)
        with pytest.raises(ProviderError) as exc:
            await provider.send(_request("openai/gpt-4o"))
        assert exc.value.code == "502"
        assert "Bad Gateway" in exc.value.message

    @pytest.mark.asyncio
    async def test_error_envelope_in_success_body(self):
        transport = RecordingTransport([json_response({"error": {"message": "quota", "code": 402}})])
        provider = _provider(OpenRouterProvider, transport)
        with pytest.raises(ProviderError) as exc:
            await provider.send(_request("openai/gpt-4o"))
        assert exc.value.code == "402"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = _provider(OpenAIProvider, RecordingTransport(refuse))
        with pytest.raises(ProviderError) as exc:
            await provider.send(_request("openai/gpt-4o"))
        assert exc.value.code == TRANSPORT_ERROR_CODE
        assert isinstance(exc.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_unparseable_success_body(self):
        transport = RecordingTransport([httpx.Response(200, content=b"<html>")])
        provider = _provider(OpenAIProvider, transport)
        with pytest.raises(ProviderError, match="parse error"):
            await provider.send(_request("openai/gpt-4o"))

    @pytest.mark.asyncio
    async def test_stream_non_2xx_never_decoded(self):
        transport = RecordingTransport([json_response(
            {"error": {"message": "overloaded", "code": "busy"}}, status=503,
        )])
        provider = _provider(OpenAIProvider, transport)
        received = []
        with pytest.raises(ProviderError) as exc:
            await provider.send_stream(_request("openai/gpt-4o"), received.append)
        assert exc.value.code == "503"
        assert received == []

    @pytest.mark.asyncio
    async def test_cancelled_scope_abandons_call(self):
        async def hang(request):
            await asyncio.sleep(10)
            return json_response(chat_completion())

        provider = _provider(OpenAIProvider, httpx.MockTransport(hang))
        scope = Scope()
        asyncio.get_running_loop().call_later(0.02, scope.cancel, "user aborted")
        with pytest.raises(OperationCancelled, match="user aborted"):
            await provider.send(_request("openai/gpt-4o"), scope)

    @pytest.mark.asyncio
    async def test_extra_headers_sent(self):
        transport = RecordingTransport([json_response(chat_completion())])
        provider = _provider(OpenAIProvider, transport, headers={"X-Team": "search"})
        await provider.send(_request("openai/gpt-4o"))
        assert transport.requests[0].headers["X-Team"] == "search"

    @pytest.mark.asyncio
    async def test_shared_client_used(self):
        transport = RecordingTransport([json_response(chat_completion())])
        async with httpx.AsyncClient(transport=transport) as client:
            provider = OpenAIProvider(ProviderConfig(api_key="k"), client=client)
            await provider.send(_request("openai/gpt-4o"))
        assert len(transport.requests) == 1


# ===========================================================================
# OpenRouter
# ===========================================================================

class TestOpenRouter:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        transport = RecordingTransport([json_response(chat_completion("Hi!"))])
        provider = _provider(OpenRouterProvider, transport)
        response = await provider.send(_request(
            "anthropic/claude-sonnet-4.5",
            temperature=0.3,
            reasoning="high",
            json_mode=True,
            tools=[WEATHER_TOOL],
        ))

        sent = transport.requests[0]
        assert str(sent.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert sent.headers["Authorization"] == "Bearer sk-test"
        assert sent.headers["X-Title"] == "llmcore"
        assert "HTTP-Referer" in sent.headers

        body = transport.last_json
        assert body["model"] == "anthropic/claude-sonnet-4.5"
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["temperature"] == 0.3
        assert body["reasoning"] == "high"
        assert body["response_format"] == {"type": "json_object"}
        assert body["tools"][0]["function"]["name"] == "get_weather"
        assert body["tool_choice"] == "auto"

        assert response.content == "Hi!"
        assert response.provider == "openrouter"
        assert response.prompt_tokens == 10
        assert response.total_tokens == 15

    @pytest.mark.asyncio
    async def test_optional_fields_omitted(self):
        transport = RecordingTransport([json_response(chat_completion())])
        await _provider(OpenRouterProvider, transport).send(_request("x/y"))
        body = transport.last_json
        for key in ("temperature", "reasoning", "tools", "response_format", "stream"):
            assert key not in body

    @pytest.mark.asyncio
    async def test_stream(self):
        transport = RecordingTransport([sse_response([
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            "[DONE]",
        ])])
        received = []
        response = await _provider(OpenRouterProvider, transport).send_stream(
            _request("x/y"), received.append,
        )
        assert received == ["Hel", "lo"]
        assert response.content == "Hello"
        assert transport.last_json["stream"] is True

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        transport = RecordingTransport([json_response({"choices": []})])
        with pytest.raises(ProviderError, match="no response choices"):
            await _provider(OpenRouterProvider, transport).send(_request("x/y"))


# ===========================================================================
# OpenAI
# ===========================================================================

class TestOpenAI:

    @pytest.mark.asyncio
    async def test_chat_completions(self):
        transport = RecordingTransport([json_response(chat_completion())])
        provider = _provider(OpenAIProvider, transport)
        await provider.send(_request("openai/gpt-4o", reasoning="low"))
        assert str(transport.requests[0].url) == "https://api.openai.com/v1/chat/completions"
        body = transport.last_json
        assert body["model"] == "gpt-4o"
        assert body["reasoning_effort"] == "low"

    @pytest.mark.asyncio
    async def test_stream_requests_usage(self):
        transport = RecordingTransport([sse_response([
            {"choices": [{"delta": {"content": "ok"}}]},
            {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 1}},
            "[DONE]",
        ])])
        response = await _provider(OpenAIProvider, transport).send_stream(
            _request("openai/gpt-4o"), lambda _: None,
        )
        assert transport.last_json["stream_options"] == {"include_usage": True}
        assert response.prompt_tokens == 3
        assert response.completion_tokens == 1

    def test_multimodal_content(self):
        provider = OpenAIProvider(ProviderConfig(api_key="k"))
        request = _request("openai/gpt-4o", messages=[Message.user([
            TextPart("Describe"),
            ImagePart("https://example.com/cat.png", detail="high"),
            DocumentPart(data="JVBERi0=", name="report.pdf"),
        ])])
        content = provider.build_body(request, stream=False)["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "Describe"}
        assert content[1] == {
            "type": "image_url",
            "image_url": {"url": "https://example.com/cat.png", "detail": "high"},
        }
        assert content[2]["file"] == {
            "filename": "report.pdf",
            "file_data": "data:application/pdf;base64,JVBERi0=",
        }

    def test_tool_turns_round_trip(self):
        provider = OpenAIProvider(ProviderConfig(api_key="k"))
        call = ToolCall(id="call_1", name="get_weather", arguments='{"city": "Oslo"}')
        request = _request("openai/gpt-4o", messages=[
            Message.user("Weather in Oslo?"),
            Message.assistant("", tool_calls=[call]),
            Message.tool("call_1", "cloudy"),
        ])
        messages = provider.build_body(request, stream=False)["messages"]
        assert messages[1]["tool_calls"][0]["function"]["name"] == "get_weather"
        assert messages[2] == {"role": "tool", "content": "cloudy", "tool_call_id": "call_1"}

    @pytest.mark.asyncio
    async def test_parses_tool_calls(self):
        payload = {
            "choices": [{
                "message": {"content": None, "tool_calls": [{
                    "id": "call_9", "type": "function",
                    "function": {"name": "get_weather", "arguments": '{"city":"Oslo"}'},
                }]},
                "finish_reason": "tool_calls",
            }],
            "usage": {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12},
        }
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(OpenAIProvider, transport).send(
            _request("openai/gpt-4o", tools=[WEATHER_TOOL]),
        )
        assert response.content == ""
        assert response.has_tool_calls
        assert response.tool_calls[0].parsed_arguments() == {"city": "Oslo"}
        assert response.finish_reason == "tool_calls"


class TestOpenAIResponses:

    @pytest.mark.asyncio
    async def test_builtin_tools_use_responses_api(self):
        payload = {
            "status": "completed",
            "output": [
                {
                    "type": "web_search_call", "id": "ws_1", "status": "completed",
                    "action": {"sources": [{"url": "https://news.example/a", "title": "A"}]},
                },
                {
                    "type": "message",
                    "content": [{
                        "type": "output_text",
                        "text": "It rained.",
                        "annotations": [{
                            "type": "url_citation", "url": "https://news.example/a",
                            "title": "A", "start_index": 0, "end_index": 9,
                        }],
                    }],
                },
            ],
            "usage": {"input_tokens": 20, "output_tokens": 4, "total_tokens": 24},
        }
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(OpenAIProvider, transport).send(_request(
            "openai/gpt-4o",
            builtin_tools=[BuiltinTool("web_search")],
            tools=[WEATHER_TOOL],
            reasoning="medium",
            json_mode=True,
        ))

        assert str(transport.requests[0].url) == "https://api.openai.com/v1/responses"
        body = transport.last_json
        assert body["instructions"] == "Be brief."
        assert body["input"] == [{"role": "user", "content": [{"type": "input_text", "text": "Hello"}]}]
        assert body["tools"][0] == {"type": "web_search"}
        assert body["tools"][1]["name"] == "get_weather"
        assert body["reasoning"] == {"effort": "medium"}
        assert body["text"] == {"format": {"type": "json_object"}}

        assert response.content == "It rained."
        assert response.finish_reason == "completed"
        assert response.total_tokens == 24
        ext = response.extended
        assert ext.citations[0].url == "https://news.example/a"
        assert ext.citations[0].end_index == 9
        assert ext.sources[0].title == "A"
        assert ext.tool_calls[0].type == "web_search_call"

    def test_responses_input_translation(self):
        call = ToolCall(id="c1", name="lookup", arguments="{}")
        instructions, items = to_responses_input((
            Message.system("Sys"),
            Message.user([TextPart("see"), ImagePart(PNG_URI)]),
            Message.assistant("checking", tool_calls=[call]),
            Message.tool("c1", "found"),
        ))
        assert instructions == "Sys"
        assert items[0]["content"][1] == {"type": "input_image", "image_url": PNG_URI}
        assert items[1]["content"][0]["type"] == "output_text"
        assert items[2] == {"type": "function_call", "call_id": "c1", "name": "lookup", "arguments": "{}"}
        assert items[3] == {"type": "function_call_output", "call_id": "c1", "output": "found"}

    @pytest.mark.asyncio
    async def test_responses_stream(self):
        transport = RecordingTransport([sse_response([
            {"type": "response.created"},
            {"type": "response.output_text.delta", "delta": "A"},
            {"type": "response.output_text.delta", "delta": "B"},
            {"type": "response.completed", "response": {"usage": {"input_tokens": 2, "output_tokens": 2}}},
        ])])
        received = []
        response = await _provider(OpenAIProvider, transport).send_stream(
            _request("openai/gpt-4o", builtin_tools=[BuiltinTool("web_search")]),
            received.append,
        )
        assert received == ["A", "B"]
        assert response.total_tokens == 4


class TestAzure:

    @pytest.mark.asyncio
    async def test_deployment_url_and_api_key_header(self):
        transport = RecordingTransport([json_response(chat_completion())])
        provider = _provider(
            AzureOpenAIProvider, transport,
            base_url="https://acme.openai.azure.com/openai/deployments/gpt4o",
        )
        await provider.send(_request("openai/gpt-4o", builtin_tools=[BuiltinTool("web_search")]))

        sent = transport.requests[0]
        assert str(sent.url) == (
            "https://acme.openai.azure.com/openai/deployments/gpt4o"
            f"/chat/completions?api-version={AZURE_API_VERSION}"
        )
        assert sent.headers["api-key"] == "sk-test"
        assert "Authorization" not in sent.headers

    def test_no_builtin_tool_capabilities(self):
        caps = AzureOpenAIProvider().capabilities()
        assert caps.tools and caps.streaming
        assert not caps.web_search


# ===========================================================================
# Anthropic
# ===========================================================================

class TestAnthropic:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        payload = {
            "content": [{"type": "text", "text": "Hi there"}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 12, "output_tokens": 3},
        }
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(AnthropicProvider, transport).send(_request(
            "anthropic/claude-sonnet-4.5",
            reasoning="medium",
            tools=[WEATHER_TOOL],
        ))

        sent = transport.requests[0]
        assert str(sent.url) == "https://api.anthropic.com/v1/messages"
        assert sent.headers["x-api-key"] == "sk-test"
        assert sent.headers["anthropic-version"] == "2023-06-01"

        body = transport.last_json
        assert body["model"] == "claude-sonnet-4-5-20250929"
        assert body["system"] == "Be brief."
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["max_tokens"] == 8192
        assert body["thinking"] == {"type": "enabled", "budget_tokens": 4096}
        assert body["tools"][0]["input_schema"]["properties"]["city"] == {"type": "string"}

        assert response.content == "Hi there"
        assert response.finish_reason == "end_turn"
        assert response.total_tokens == 15

    def test_thinking_budgets(self):
        assert thinking_budget("low") == 1024
        assert thinking_budget("high") == 16384
        assert thinking_budget("minimal") == 1024

    def test_message_translation(self):
        call = ToolCall(id="toolu_1", name="get_weather", arguments='{"city": "Oslo"}')
        system, wire = to_anthropic_messages((
            Message.system("A"),
            Message.system("B"),
            Message.user([TextPart("Look"), ImagePart(PNG_URI), ImagePart("https://x/y.jpg")]),
            Message.assistant("", tool_calls=[call]),
            Message.tool("toolu_1", "sunny"),
        ))
        assert system == "A\n\nB"
        blocks = wire[0]["content"]
        assert blocks[1]["source"] == {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="}
        assert blocks[2]["source"] == {"type": "url", "url": "https://x/y.jpg"}
        assert wire[1]["content"] == [
            {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Oslo"}},
        ]
        assert wire[2] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "sunny"}],
        }

    @pytest.mark.asyncio
    async def test_parses_tool_use(self):
        payload = {
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool_use", "id": "toolu_2", "name": "get_weather", "input": {"city": "Rome"}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 1, "output_tokens": 1},
        }
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(AnthropicProvider, transport).send(_request("anthropic/claude-haiku-4.5"))
        assert response.tool_calls[0].id == "toolu_2"
        assert response.tool_calls[0].parsed_arguments() == {"city": "Rome"}

    @pytest.mark.asyncio
    async def test_error_type_is_vendor_code(self):
        transport = RecordingTransport([json_response(
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
            status=529,
        )])
        with pytest.raises(ProviderError) as exc:
            await _provider(AnthropicProvider, transport).send(_request("anthropic/claude-haiku-4.5"))
        assert exc.value.code == "529"
        assert exc.value.details["vendor_code"] == "overloaded_error"

    @pytest.mark.asyncio
    async def test_stream(self):
        transport = RecordingTransport([sse_response([
            {"type": "message_start", "message": {"usage": {"input_tokens": 8}}},
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hey"}},
            {"type": "message_delta", "usage": {"output_tokens": 1}},
            {"type": "message_stop"},
        ])])
        received = []
        response = await _provider(AnthropicProvider, transport).send_stream(
            _request("anthropic/claude-haiku-4.5"), received.append,
        )
        assert received == ["Hey"]
        assert response.prompt_tokens == 8
        assert transport.last_json["stream"] is True


# ===========================================================================
# Google
# ===========================================================================

class TestGoogle:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        payload = {
            "candidates": [{"content": {"parts": [{"text": "Ciao"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 1, "totalTokenCount": 5},
        }
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(GoogleProvider, transport).send(_request(
            "google/gemini-2.5-flash",
            temperature=0.1,
            json_mode=True,
            reasoning="low",
            tools=[WEATHER_TOOL],
        ))

        sent = transport.requests[0]
        assert sent.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert sent.url.params["key"] == "sk-test"
        assert "Authorization" not in sent.headers

        body = transport.last_json
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["contents"] == [{"role": "user", "parts": [{"text": "Hello"}]}]
        assert body["generationConfig"] == {
            "temperature": 0.1,
            "responseMimeType": "application/json",
            "thinkingConfig": {"thinkingLevel": "low"},
        }
        assert body["tools"][0]["functionDeclarations"][0]["name"] == "get_weather"

        assert response.content == "Ciao"
        assert response.finish_reason == "STOP"
        assert response.total_tokens == 5

    def test_contents_translation(self):
        call = ToolCall(id="x", name="get_weather", arguments='{"city": "Oslo"}')
        instruction, contents = to_gemini_contents((
            Message.user([TextPart("see"), ImagePart(PNG_URI), ImagePart("https://remote/img.png")]),
            Message.assistant("", tool_calls=[call]),
            Message.tool("get_weather", "cloudy"),
            Message.assistant(""),
        ))
        assert instruction is None
        assert contents[0]["parts"] == [
            {"text": "see"},
            {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}},
        ]
        assert contents[1] == {
            "role": "model",
            "parts": [{"functionCall": {"name": "get_weather", "args": {"city": "Oslo"}}}],
        }
        assert contents[2]["parts"][0]["functionResponse"]["response"] == {"content": "cloudy"}
        assert len(contents) == 3

    @pytest.mark.asyncio
    async def test_function_call_response(self):
        payload = {"candidates": [{"content": {"parts": [
            {"functionCall": {"name": "get_weather", "args": {"city": "Lima"}}},
        ]}}]}
        transport = RecordingTransport([json_response(payload)])
        response = await _provider(GoogleProvider, transport).send(_request("google/gemini-2.5-flash"))
        assert response.tool_calls[0].id == "call_0"
        assert response.tool_calls[0].parsed_arguments() == {"city": "Lima"}

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        transport = RecordingTransport([json_response({"candidates": []})])
        with pytest.raises(ProviderError, match="no response candidates"):
            await _provider(GoogleProvider, transport).send(_request("google/gemini-2.5-flash"))

    @pytest.mark.asyncio
    async def test_error_status_is_vendor_code(self):
        transport = RecordingTransport([json_response(
            {"error": {"code": 400, "message": "bad", "status": "INVALID_ARGUMENT"}}, status=400,
        )])
        with pytest.raises(ProviderError) as exc:
            await _provider(GoogleProvider, transport).send(_request("google/gemini-2.5-flash"))
        assert exc.value.code == "400"
        assert exc.value.details["vendor_code"] == "INVALID_ARGUMENT"

    @pytest.mark.asyncio
    async def test_stream(self):
        transport = RecordingTransport([sse_response([
            {"candidates": [{"content": {"parts": [{"text": "Buon"}]}}]},
            {"candidates": [{"content": {"parts": [{"text": "giorno"}]}}],
             "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2}},
        ])])
        received = []
        response = await _provider(GoogleProvider, transport).send_stream(
            _request("google/gemini-2.5-flash"), received.append,
        )
        sent = transport.requests[0]
        assert sent.url.path.endswith(":streamGenerateContent")
        assert sent.url.params["alt"] == "sse"
        assert received == ["Buon", "giorno"]
        assert response.completion_tokens == 2


# ===========================================================================
# Ollama
# ===========================================================================

class TestOllama:

    @pytest.mark.asyncio
    async def test_no_key_required(self):
        payload = {
            "message": {"role": "assistant", "content": "local answer"},
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 9,
            "eval_count": 3,
        }
        transport = RecordingTransport([json_response(payload)])
        provider = OllamaProvider(transport=transport)
        response = await provider.send(_request("llama3:8b", temperature=0.5, json_mode=True))

        sent = transport.requests[0]
        assert str(sent.url) == "http://localhost:11434/api/chat"
        assert "Authorization" not in sent.headers
        body = transport.last_json
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.5}
        assert body["format"] == "json"

        assert response.content == "local answer"
        assert response.total_tokens == 12
        assert response.finish_reason == "stop"

    def test_images_and_text_flattened(self):
        provider = OllamaProvider()
        request = _request("llava", messages=[Message.user([
            TextPart("what"), TextPart("is this"), ImagePart(PNG_URI),
        ])])
        message = provider.build_body(request, stream=False)["messages"][0]
        assert message == {"role": "user", "content": "what\nis this", "images": ["iVBORw0KGgo="]}

    @pytest.mark.asyncio
    async def test_tool_call_arguments_object(self):
        payload = {"message": {"content": "", "tool_calls": [
            {"function": {"name": "get_weather", "arguments": {"city": "Kyiv"}}},
        ]}, "done": True}
        transport = RecordingTransport([json_response(payload)])
        response = await OllamaProvider(transport=transport).send(_request("llama3:8b"))
        assert response.tool_calls[0].id == "call_0"
        assert json.loads(response.tool_calls[0].arguments) == {"city": "Kyiv"}

    @pytest.mark.asyncio
    async def test_ndjson_stream(self):
        transport = RecordingTransport([ndjson_response([
            {"message": {"content": "one "}, "done": False},
            {"message": {"content": "two"}, "done": False},
            {"message": {"content": ""}, "done": True, "prompt_eval_count": 4, "eval_count": 2},
        ])])
        received = []
        response = await OllamaProvider(transport=transport).send_stream(
            _request("llama3:8b"), received.append,
        )
        assert received == ["one ", "two"]
        assert response.content == "one two"
        assert response.total_tokens == 6
        assert transport.last_json["stream"] is True
