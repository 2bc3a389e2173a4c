"""
Provider capability sets and soft capability warnings.

Capability tables are best-effort: vendors ship features faster than any
static table can track. A request that uses a feature its provider does
not advertise therefore gets a CapabilityWarning (and a log line), never
an exception.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, fields

from llmcore.exceptions import CapabilityWarning
from llmcore.llm.types import ChatRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """What a provider adapter supports."""

    tools: bool = False
    vision: bool = False
    streaming: bool = False
    json: bool = False
    reasoning: bool = False
    pdf: bool = False

    # Built-in (vendor-hosted) tool families
    web_search: bool = False
    file_search: bool = False
    code_interpreter: bool = False
    mcp: bool = False
    image_generation: bool = False
    computer_use: bool = False
    shell: bool = False
    apply_patch: bool = False

    def supported(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]


# Built-in tool wire type → capability attribute.
BUILTIN_TOOL_CAPABILITIES: dict[str, str] = {
    "web_search": "web_search",
    "file_search": "file_search",
    "code_interpreter": "code_interpreter",
    "mcp": "mcp",
    "image_generation": "image_generation",
    "computer_use_preview": "computer_use",
    "shell": "shell",
    "apply_patch": "apply_patch",
}


def missing_capabilities(request: ChatRequest, caps: Capabilities) -> list[str]:
    """Names of features `request` uses that `caps` does not advertise."""
    missing: list[str] = []
    if request.tools and not caps.tools:
        missing.append("tools")
    if request.reasoning_value and not caps.reasoning:
        missing.append("reasoning")
    if request.json_mode and not caps.json:
        missing.append("json")
    for tool in request.builtin_tools:
        attr = BUILTIN_TOOL_CAPABILITIES.get(tool.type)
        if attr is not None and not getattr(caps, attr):
            missing.append(attr)
    return missing


def check_capabilities(provider: str, request: ChatRequest, caps: Capabilities) -> list[str]:
    """Warn once per unsupported feature; returns the feature names."""
    missing = missing_capabilities(request, caps)
    for feature in missing:
        logger.warning(
            "llm_capability_unsupported",
            extra={"provider": provider, "feature": feature, "model": request.model},
        )
        warnings.warn(
            f"{provider} may not support {feature}",
            CapabilityWarning,
            stacklevel=3,
        )
    return missing
