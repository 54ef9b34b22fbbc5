"""Shared dagflow configuration utilities.

Reads ~/.dagflow/configuration.json and lets environment variables
override individual settings:

    DAGFLOW_MAX_CONCURRENCY   max node tasks in flight per run
    DAGFLOW_RUN_TIMEOUT       overall run budget in seconds
    DAGFLOW_NODE_TIMEOUT      default per-node timeout in seconds
    DAGFLOW_HTTP_TIMEOUT      HTTP client timeout in seconds
    DAGFLOW_MODEL             default model for LLM nodes
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

DAGFLOW_CONFIG_FILE = Path.home() / ".dagflow" / "configuration.json"

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_RUN_TIMEOUT = 300.0
DEFAULT_NODE_TIMEOUT = 60.0
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_MODEL = "anthropic/claude-sonnet-4-20250514"


def get_dagflow_config() -> dict[str, Any]:
    """Load dagflow configuration from ~/.dagflow/configuration.json."""
    if not DAGFLOW_CONFIG_FILE.exists():
        return {}
    try:
        with open(DAGFLOW_CONFIG_FILE, encoding="utf-8-sig") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config file {DAGFLOW_CONFIG_FILE}: {e}")
        return {}


def _setting(env_var: str, key: str, default: Any, cast: type) -> Any:
    raw = os.environ.get(env_var)
    if raw is None:
        raw = get_dagflow_config().get("engine", {}).get(key)
    if raw is None:
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {key}: {raw!r}, using {default}")
        return default


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_max_concurrency() -> int:
    value = _setting("DAGFLOW_MAX_CONCURRENCY", "max_concurrency", DEFAULT_MAX_CONCURRENCY, int)
    return max(1, value)


def get_run_timeout() -> float:
    return _setting("DAGFLOW_RUN_TIMEOUT", "run_timeout_seconds", DEFAULT_RUN_TIMEOUT, float)


def get_node_timeout() -> float:
    return _setting("DAGFLOW_NODE_TIMEOUT", "node_timeout_seconds", DEFAULT_NODE_TIMEOUT, float)


def get_http_timeout() -> float:
    return _setting("DAGFLOW_HTTP_TIMEOUT", "http_timeout_seconds", DEFAULT_HTTP_TIMEOUT, float)


def get_default_model() -> str:
    """Return the default model reference (e.g. 'anthropic/claude-sonnet-4-20250514')."""
    model = os.environ.get("DAGFLOW_MODEL")
    if model:
        return model
    llm = get_dagflow_config().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return DEFAULT_MODEL


# ---------------------------------------------------------------------------
# EngineConfig
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Execution limits and defaults loaded from configuration and environment."""

    max_concurrency: int = field(default_factory=get_max_concurrency)
    run_timeout_seconds: float = field(default_factory=get_run_timeout)
    node_timeout_seconds: float = field(default_factory=get_node_timeout)
    http_timeout_seconds: float = field(default_factory=get_http_timeout)
    default_model: str = field(default_factory=get_default_model)
    validate_input: bool = True
