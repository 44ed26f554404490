"""Preview policy settings: defaults, optional config file, env overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".mdpreview.cfg"
RENDER_CACHE_MAX_ENTRIES = 100
DIAGRAM_SVG_CACHE_MAX_ENTRIES = 256
DIAGRAM_SVG_MAX_CHARS = 250_000
DIAGRAM_SETTLE_DELAY_MS = 100
DIAGRAM_MAX_CONCURRENT_RENDERS = 3
DIAGRAM_MAX_WIDTH = 800
DIAGRAM_RENDER_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class PreviewSettings:
    """Tunable policy values for the preview pipeline."""

    render_cache_capacity: int = RENDER_CACHE_MAX_ENTRIES
    diagram_cache_capacity: int = DIAGRAM_SVG_CACHE_MAX_ENTRIES
    settle_delay_ms: int = DIAGRAM_SETTLE_DELAY_MS
    max_concurrent_diagrams: int = DIAGRAM_MAX_CONCURRENT_RENDERS
    diagram_max_width: int = DIAGRAM_MAX_WIDTH
    render_timeout_seconds: float = DIAGRAM_RENDER_TIMEOUT_SECONDS
    mermaid_cli: str | None = None
    plantuml_jar: str | None = None

    @property
    def settle_delay_seconds(self) -> float:
        return max(0, self.settle_delay_ms) / 1000.0


def config_file_path() -> Path:
    return Path.home() / CONFIG_FILE_NAME


def _coerce(name: str, raw: object, default: object) -> object:
    """Convert a raw config value to the type of the field default."""
    if default is None and raw is None:
        return raw
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"{name} cannot be {raw!r}")
    if isinstance(default, int):
        value = int(raw)  # type: ignore[arg-type]
        if value < 1 and name != "settle_delay_ms":
            raise ValueError(f"{name} must be positive")
        if value < 0:
            raise ValueError(f"{name} must not be negative")
        return value
    if isinstance(default, float):
        value = float(raw)  # type: ignore[arg-type]
        if value <= 0:
            raise ValueError(f"{name} must be positive")
        return value
    return str(raw)


def _read_config_file(path: Path) -> dict[str, object]:
    try:
        if not path.exists():
            return {}
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    return payload


def _env_overrides() -> dict[str, object]:
    overrides: dict[str, object] = {}
    mmdc = os.environ.get("MDPREVIEW_MMDC", "").strip()
    if mmdc:
        overrides["mermaid_cli"] = mmdc
    jar = os.environ.get("PLANTUML_JAR", "").strip()
    if jar:
        overrides["plantuml_jar"] = jar
    delay = os.environ.get("MDPREVIEW_SETTLE_DELAY_MS", "").strip()
    if delay:
        overrides["settle_delay_ms"] = delay
    concurrency = os.environ.get("MDPREVIEW_MAX_CONCURRENT_DIAGRAMS", "").strip()
    if concurrency:
        overrides["max_concurrent_diagrams"] = concurrency
    return overrides


def load_settings(path: Path | None = None) -> PreviewSettings:
    """Resolve settings from defaults, then the config file, then the environment.

    Bad values are logged and the default for that field is kept, so a broken
    config never prevents the preview from rendering.
    """
    settings = PreviewSettings()
    defaults = {field.name: field.default for field in fields(PreviewSettings)}
    raw_values = _read_config_file(path if path is not None else config_file_path())
    raw_values.update(_env_overrides())

    changes: dict[str, object] = {}
    for name, raw in raw_values.items():
        if name not in defaults:
            logger.debug("Ignoring unknown setting %r", name)
            continue
        try:
            changes[name] = _coerce(name, raw, defaults[name])
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid value for %s (%r): %s", name, raw, exc)
    return replace(settings, **changes)
