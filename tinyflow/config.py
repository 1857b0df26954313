"""Shared tinyflow configuration utilities.

Centralises reading of ~/.tinyflow/configuration.json so the runtime, the
executor and the testing harness share one set of engine defaults.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tinyflow.graph.shared_store import MemoryLimits

DEFAULT_MAX_ITERATIONS = 1000

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

TINYFLOW_CONFIG_FILE = Path.home() / ".tinyflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration file path (TINYFLOW_CONFIG overrides the default)."""
    override = os.environ.get("TINYFLOW_CONFIG")
    return Path(override) if override else TINYFLOW_CONFIG_FILE


def get_tinyflow_config() -> dict[str, Any]:
    """Load tinyflow configuration; a missing or unreadable file yields {}."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _engine_section() -> dict[str, Any]:
    section = get_tinyflow_config().get("engine", {})
    return section if isinstance(section, dict) else {}


def get_max_iterations() -> int:
    """Return the configured iteration cap, falling back to DEFAULT_MAX_ITERATIONS."""
    return int(_engine_section().get("max_iterations", DEFAULT_MAX_ITERATIONS))


def get_memory_limits() -> "MemoryLimits":
    """Return memory limits from the `engine.memory_limits` section, or defaults."""
    from tinyflow.graph.shared_store import MemoryLimits

    raw = _engine_section().get("memory_limits", {})
    if not isinstance(raw, dict):
        return MemoryLimits()
    known = {k: v for k, v in raw.items() if k in MemoryLimits.__dataclass_fields__}
    return MemoryLimits(**known)


def get_profile_enabled() -> bool:
    return bool(_engine_section().get("profile", False))


# ---------------------------------------------------------------------------
# EngineConfig
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Engine configuration loaded from ~/.tinyflow/configuration.json."""

    max_iterations: int = field(default_factory=get_max_iterations)
    memory_limits: "MemoryLimits" = field(default_factory=get_memory_limits)
    profile: bool = field(default_factory=get_profile_enabled)
