"""
Normalized request/response types shared by every provider adapter.

A ChatRequest is frozen: sequences are stored as tuples, and adapters
translate it into vendor JSON without ever mutating it. A ChatResponse
is the single result shape every adapter parses back into.

Usage:
    from llmcore.llm.types import ChatRequest, Message, ImagePart, TextPart

    request = ChatRequest(
        model="anthropic/claude-sonnet-4.5",
        messages=[
            Message.system("You are terse."),
            Message.user([TextPart("What is this?"), ImagePart("data:image/png;base64,...")]),
        ],
        temperature=0.2,
    )
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ReasoningEffort(str, Enum):
    """
    Reasoning/thinking effort level.

    Gemini Flash accepts minimal/low/medium/high, Gemini Pro low/high,
    Anthropic maps low/medium/high to a thinking token budget.
    """

    NONE = "none"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Union[str, "ReasoningEffort", None]) -> Optional["ReasoningEffort"]:
        if value is None or value == "":
            return None
        if isinstance(value, ReasoningEffort):
            return value
        return cls(value.lower().strip())


def effective_reasoning(value: Optional[ReasoningEffort]) -> Optional[str]:
    """The wire value for a reasoning level, or None when reasoning is off."""
    if value is None or value is ReasoningEffort.NONE:
        return None
    return value.value


# ---------------------------------------------------------------------------
# Content Parts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    """An image by URL; inline images use a `data:<mime>;base64,<data>` URL."""

    url: str
    detail: str = ""

    @property
    def is_data_uri(self) -> bool:
        return self.url.startswith("data:")


@dataclass(frozen=True)
class DocumentPart:
    """A document (usually a PDF), either inline base64 data or a URL."""

    data: str = ""
    url: str = ""
    mime_type: str = "application/pdf"
    name: str = ""


ContentPart = Union[TextPart, ImagePart, DocumentPart]


def split_data_uri(uri: str) -> tuple[str, str]:
    """
    Split `data:<mime>;base64,<data>` into (mime, data).

    Returns ("", "") for anything that is not a base64 data URI.
    """
    if not uri.startswith("data:") or "," not in uri:
        return "", ""
    header, data = uri[len("data:"):].split(",", 1)
    mime = header.split(";", 1)[0]
    return mime, data


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolSpec:
    """A function the model may call; `parameters` is a JSON Schema object."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_openai(self) -> dict[str, Any]:
        function: dict[str, Any] = {"name": self.name}
        if self.description:
            function["description"] = self.description
        if self.parameters:
            function["parameters"] = self.parameters
        return {"type": "function", "function": function}


@dataclass(frozen=True)
class BuiltinTool:
    """
    A vendor-hosted tool (Responses API): web_search, file_search,
    code_interpreter or mcp. `options` is merged into the wire object.
    """

    type: str
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.options}


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model; `arguments` is JSON text."""

    id: str
    name: str
    arguments: str = "{}"
    type: str = "function"

    def parsed_arguments(self) -> dict[str, Any]:
        if not self.arguments:
            return {}
        return json.loads(self.arguments)

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Message:
    """
    One chat turn. `content` is plain text or an ordered tuple of parts.

    Lists passed in are converted to tuples so the message stays immutable.
    """

    role: Role
    content: Union[str, tuple[ContentPart, ...]] = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if isinstance(self.tool_calls, list):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def is_multipart(self) -> bool:
        return not isinstance(self.content, str)

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        if isinstance(self.content, str):
            return (TextPart(self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        """All text in this message; text parts are joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    def to_dict(self) -> dict[str, Any]:
        """A plain, JSON-friendly form used for cache keys and logging."""
        data: dict[str, Any] = {"role": self.role.value}
        if isinstance(self.content, str):
            data["content"] = self.content
        else:
            data["content"] = [
                {"kind": type(p).__name__, **dataclasses.asdict(p)}
                for p in self.content
            ]
        if self.tool_calls:
            data["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(Role.SYSTEM, text)

    @classmethod
    def user(cls, content: Union[str, Sequence[ContentPart]]) -> "Message":
        return cls(Role.USER, content if isinstance(content, str) else tuple(content))

    @classmethod
    def assistant(cls, text: str, tool_calls: Sequence[ToolCall] = ()) -> "Message":
        return cls(Role.ASSISTANT, text, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChatRequest:
    """The vendor-neutral request handed to a provider adapter."""

    model: str
    messages: tuple[Message, ...] = ()
    temperature: Optional[float] = None
    reasoning: Optional[ReasoningEffort] = None
    tools: tuple[ToolSpec, ...] = ()
    builtin_tools: tuple[BuiltinTool, ...] = ()
    json_mode: bool = False

    def __post_init__(self) -> None:
        for name in ("messages", "tools", "builtin_tools"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))
        if self.reasoning is not None and not isinstance(self.reasoning, ReasoningEffort):
            object.__setattr__(self, "reasoning", ReasoningEffort.parse(self.reasoning))

    def with_model(self, model: str) -> "ChatRequest":
        """A copy of this request targeting another model."""
        return dataclasses.replace(self, model=model)

    @property
    def reasoning_value(self) -> Optional[str]:
        return effective_reasoning(self.reasoning)


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass
class Citation:
    type: str                   # "url_citation" or "file_citation"
    url: str = ""
    title: str = ""
    file_id: str = ""
    filename: str = ""
    start_index: int = 0
    end_index: int = 0


@dataclass
class Source:
    url: str
    title: str = ""


@dataclass
class HostedToolCall:
    """A built-in tool invocation reported by the Responses API."""

    id: str
    type: str                   # web_search_call, file_search_call, mcp_call, ...
    status: str = ""
    server_label: str = ""
    name: str = ""
    arguments: str = ""
    output: str = ""
    error: str = ""


@dataclass
class ExtendedOutput:
    """Search-augmented output: citations, consulted sources, hosted tool calls."""

    citations: list[Citation] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    tool_calls: list[HostedToolCall] = field(default_factory=list)
    output_items: list[Any] = field(default_factory=list)


@dataclass
class ChatResponse:
    """Unified response from any provider adapter."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    finish_reason: str = ""
    model: str = ""             # Model actually used (set by the executor)
    provider: str = ""
    latency_ms: float = 0.0
    retries: int = 0            # Retry attempts across every model tried
    cached: bool = False
    extended: Optional[ExtendedOutput] = None
    raw: Any = None

    def __post_init__(self) -> None:
        if not self.total_tokens and (self.prompt_tokens or self.completion_tokens):
            self.total_tokens = self.prompt_tokens + self.completion_tokens

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


StreamCallback = Callable[[str], None]
