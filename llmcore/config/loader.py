"""
Settings loader.

Order of precedence (later wins):
1. Schema defaults
2. YAML file (explicit path, else $LLMCORE_CONFIG, else none)
3. LLMCORE_* environment variables (a `.env` file is loaded first)

Recognised environment variables:
    LLMCORE_CONFIG            path to the YAML file
    LLMCORE_DEBUG             1/true/yes/on
    LLMCORE_CACHE             enable the response cache
    LLMCORE_CACHE_MAX_ENTRIES
    LLMCORE_CACHE_TTL
    LLMCORE_RATE_LIMIT        requests per second
    LLMCORE_PROVIDER          default provider
    LLMCORE_MODEL             default model
    LLMCORE_MAX_RETRIES
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from llmcore.config.schema import CoreSettings
from llmcore.exceptions import ConfigurationError

CONFIG_ENV_VAR = "LLMCORE_CONFIG"

_TRUE = {"1", "true", "yes", "on"}

# Module-level cache: resolved config path ("" for none) -> CoreSettings
_loaded_settings: dict[str, CoreSettings] = {}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping, raising ConfigurationError for anything else."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config not found: {path}", config_path=str(path))

    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML in {path}: {e}", config_path=str(path)
        ) from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Config root must be a mapping: {path}", config_path=str(path)
        )
    return raw


def apply_env_overrides(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Overlay LLMCORE_* variables onto a raw settings dict (returns a copy)."""
    data = dict(raw)

    def section(name: str) -> dict[str, Any]:
        data[name] = dict(data.get(name) or {})
        return data[name]

    if "LLMCORE_DEBUG" in env:
        data["debug"] = _as_bool(env["LLMCORE_DEBUG"])
    if "LLMCORE_PROVIDER" in env:
        data["default_provider"] = env["LLMCORE_PROVIDER"]
    if "LLMCORE_MODEL" in env:
        data["default_model"] = env["LLMCORE_MODEL"]
    if "LLMCORE_CACHE" in env:
        section("cache")["enabled"] = _as_bool(env["LLMCORE_CACHE"])
    if "LLMCORE_CACHE_MAX_ENTRIES" in env:
        section("cache")["max_entries"] = env["LLMCORE_CACHE_MAX_ENTRIES"]
    if "LLMCORE_CACHE_TTL" in env:
        section("cache")["ttl_seconds"] = env["LLMCORE_CACHE_TTL"]
    if "LLMCORE_RATE_LIMIT" in env:
        section("rate_limit")["requests_per_second"] = env["LLMCORE_RATE_LIMIT"]
    if "LLMCORE_MAX_RETRIES" in env:
        section("retry")["max_retries"] = env["LLMCORE_MAX_RETRIES"]
    return data


def load_settings(
    config_path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
    *,
    load_env_file: bool = True,
) -> CoreSettings:
    """
    Load and validate settings.

    Args:
        config_path: Optional explicit YAML path; falls back to $LLMCORE_CONFIG.
        env: Environment mapping (default: os.environ). When given, results
             are not memoized.
        load_env_file: Load a `.env` file into os.environ first.

    Raises:
        ConfigurationError: The file is missing or malformed, or validation failed.
    """
    if load_env_file and env is None:
        load_dotenv()
    memoize = env is None
    env = os.environ if env is None else env

    if config_path is None:
        config_path = env.get(CONFIG_ENV_VAR) or None
    cache_key = str(config_path or "")
    if memoize and cache_key in _loaded_settings:
        return _loaded_settings[cache_key]

    raw = read_yaml(config_path) if config_path else {}
    raw = apply_env_overrides(raw, env)

    try:
        settings = CoreSettings(**raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid llmcore settings:\n{e}",
            config_path=str(config_path) if config_path else None,
        ) from e

    if memoize:
        _loaded_settings[cache_key] = settings
    return settings


def clear_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    _loaded_settings.clear()
