"""
llmcore — provider-agnostic LLM execution core.

Usage:
    from llmcore import ChatRequest, Executor, Message, create_provider

    executor = Executor(create_provider("anthropic"))
    response = await executor.send(
        ChatRequest(model="anthropic/claude-sonnet-4.5", messages=[Message.user("Hello")])
    )
"""

from llmcore.context import ExecutionContext
from llmcore.exceptions import (
    CapabilityWarning,
    ConfigurationError,
    DeadlineExceeded,
    FallbackExhaustedError,
    LLMCoreError,
    OperationCancelled,
    ProviderError,
    RetryExhaustedError,
    StreamInterruptedError,
)
from llmcore.llm.batch import (
    BatchExecutor,
    BatchOp,
    BatchOptions,
    BatchResult,
    BatchResults,
    batch_models,
    batch_prompts,
    fan_out,
    race,
)
from llmcore.llm.cache import ResponseCache
from llmcore.llm.providers import ProviderConfig, ProviderType, create_provider
from llmcore.llm.ratelimit import TokenBucket
from llmcore.llm.retry import RetryPolicy, with_retry
from llmcore.llm.router import Executor
from llmcore.llm.types import (
    BuiltinTool,
    ChatRequest,
    ChatResponse,
    DocumentPart,
    ImagePart,
    Message,
    ReasoningEffort,
    Role,
    TextPart,
    ToolCall,
    ToolSpec,
)
from llmcore.scope import Scope

__version__ = "0.1.0"

__all__ = [
    "BatchExecutor",
    "BatchOp",
    "BatchOptions",
    "BatchResult",
    "BatchResults",
    "BuiltinTool",
    "CapabilityWarning",
    "ChatRequest",
    "ChatResponse",
    "ConfigurationError",
    "DeadlineExceeded",
    "DocumentPart",
    "ExecutionContext",
    "Executor",
    "FallbackExhaustedError",
    "ImagePart",
    "LLMCoreError",
    "Message",
    "OperationCancelled",
    "ProviderConfig",
    "ProviderError",
    "ProviderType",
    "ReasoningEffort",
    "ResponseCache",
    "RetryExhaustedError",
    "RetryPolicy",
    "Role",
    "Scope",
    "StreamInterruptedError",
    "TextPart",
    "TokenBucket",
    "ToolCall",
    "ToolSpec",
    "batch_models",
    "batch_prompts",
    "create_provider",
    "fan_out",
    "race",
    "with_retry",
]
