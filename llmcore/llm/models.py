"""
Model identifiers and per-vendor model-id resolution.

Normalized model ids are OpenRouter-style slugs (`vendor/model`). Each
vendor's native API wants its own string: Anthropic wants dated snapshot
ids, OpenAI and Google want the bare name, OpenRouter and Ollama take
the id as-is. `resolve_model` is a pure, total function of
(vendor, normalized id) that falls back to passthrough.

Usage:
    from llmcore.llm.models import resolve_model, CLAUDE_SONNET

    resolve_model("anthropic", CLAUDE_SONNET)   # "claude-sonnet-4-5-20250929"
    resolve_model("openrouter", CLAUDE_SONNET)  # "anthropic/claude-sonnet-4.5"
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Well-known model ids
# ---------------------------------------------------------------------------

# --- Anthropic ---
CLAUDE_OPUS = "anthropic/claude-opus-4.5"
CLAUDE_SONNET = "anthropic/claude-sonnet-4.5"
CLAUDE_HAIKU = "anthropic/claude-haiku-4.5"
CLAUDE_SONNET_37 = "anthropic/claude-3.7-sonnet"

# --- OpenAI ---
GPT_4O = "openai/gpt-4o"
GPT_4O_MINI = "openai/gpt-4o-mini"
GPT_5 = "openai/gpt-5.2"

# --- Google ---
GEMINI_3_FLASH = "google/gemini-3-flash-preview"
GEMINI_3_PRO = "google/gemini-3-pro-preview"
GEMINI_25_FLASH = "google/gemini-2.5-flash"

# --- Local ---
LLAMA_3 = "llama3:8b"


@dataclass(frozen=True)
class ModelInfo:
    """Descriptive metadata for a known model (used by the CLI listing)."""

    id: str
    name: str
    vendor: str
    description: str = ""


MODELS: dict[str, ModelInfo] = {
    m.id: m
    for m in (
        ModelInfo(CLAUDE_OPUS, "Claude Opus 4.5", "Anthropic", "Maximum intelligence"),
        ModelInfo(CLAUDE_SONNET, "Claude Sonnet 4.5", "Anthropic", "Balanced intelligence, speed and cost"),
        ModelInfo(CLAUDE_HAIKU, "Claude Haiku 4.5", "Anthropic", "Fastest Claude"),
        ModelInfo(GPT_5, "GPT-5.2", "OpenAI", "General purpose, long context"),
        ModelInfo(GPT_4O, "GPT-4o", "OpenAI", "Multimodal flagship"),
        ModelInfo(GPT_4O_MINI, "GPT-4o mini", "OpenAI", "Small and cheap"),
        ModelInfo(GEMINI_3_PRO, "Gemini 3 Pro (Preview)", "Google", "Flagship reasoning"),
        ModelInfo(GEMINI_3_FLASH, "Gemini 3 Flash (Preview)", "Google", "Fast with strong reasoning"),
        ModelInfo(GEMINI_25_FLASH, "Gemini 2.5 Flash", "Google", "Price-performance workhorse"),
    )
}


# ---------------------------------------------------------------------------
# Resolution tables
# ---------------------------------------------------------------------------

# OpenRouter-style Claude slug (prefix and ":variant" removed) → dated snapshot.
ANTHROPIC_SNAPSHOTS: dict[str, str] = {
    "claude-opus-4.5": "claude-opus-4-5-20251101",
    "claude-sonnet-4.5": "claude-sonnet-4-5-20250929",
    "claude-haiku-4.5": "claude-haiku-4-5-20251001",
    "claude-opus-4.1": "claude-opus-4-1-20250805",
    "claude-opus-4": "claude-opus-4-20250514",
    "claude-sonnet-4": "claude-sonnet-4-20250514",
    "claude-3.7-sonnet": "claude-3-7-sonnet-20250219",
    "claude-3.5-haiku": "claude-3-5-haiku-20241022",
    "claude-3-haiku": "claude-3-haiku-20240307",
    "claude-3-opus": "claude-3-opus-20240229",
}

_PREFIXES: dict[str, str] = {
    "anthropic": "anthropic/",
    "openai": "openai/",
    "azure": "openai/",
    "google": "google/",
}


def _strip_prefix(model: str, prefix: str) -> str:
    return model[len(prefix):] if model.startswith(prefix) else model


def resolve_model(vendor: str, model: str) -> str:
    """
    Map a normalized model id to the vendor's on-wire model string.

    Unknown vendors and unmapped ids pass through unchanged.
    """
    vendor = str(getattr(vendor, "value", vendor))
    prefix = _PREFIXES.get(vendor)
    if prefix is None:
        return model

    bare = _strip_prefix(model, prefix)
    if vendor == "anthropic":
        slug = bare.split(":", 1)[0]
        return ANTHROPIC_SNAPSHOTS.get(slug, slug)
    return bare
