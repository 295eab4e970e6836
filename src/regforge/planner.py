"""End-to-end planning: raw config in, resource graph out."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from regforge.config import RunContext
from regforge.errors import ConfigError
from regforge.graph import ResourceGraph, build_graph
from regforge.logging import bind_run
from regforge.toggles import ResolvedConfig, resolve_toggles


def load_config(path: Path) -> dict[str, Any]:
    try:
        decoded = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc.strerror or exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path}: invalid JSON at line {exc.lineno}: {exc.msg}") from exc
    if not isinstance(decoded, dict):
        raise ConfigError(f"{path}: top-level value must be an object")
    return decoded


def plan_registry(
    raw: Mapping[str, Any],
    context: RunContext,
) -> tuple[ResolvedConfig, ResourceGraph]:
    """Validate ``raw`` and build its graph; fails before any graph on bad input."""
    config = resolve_toggles(raw)
    bind_run(config.name, config.env_abbr)
    return config, build_graph(config, context)
