"""Tests for settings resolution from defaults, config file and environment."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from mdpreview.config import PreviewSettings, load_settings

ENV_VARS = ("MDPREVIEW_MMDC", "PLANTUML_JAR", "MDPREVIEW_SETTLE_DELAY_MS", "MDPREVIEW_MAX_CONCURRENT_DIAGRAMS")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / ".mdpreview.cfg"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "missing.cfg")
    assert settings == PreviewSettings()
    assert settings.render_cache_capacity == 100
    assert settings.settle_delay_ms == 100
    assert settings.settle_delay_seconds == pytest.approx(0.1)
    assert settings.max_concurrent_diagrams == 3
    assert settings.diagram_max_width == 800


def test_config_file_values_are_applied(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {"settle_delay_ms": 250, "diagram_max_width": 640, "render_timeout_seconds": 5, "mermaid_cli": "/opt/mmdc"},
    )
    settings = load_settings(path)
    assert settings.settle_delay_ms == 250
    assert settings.diagram_max_width == 640
    assert settings.render_timeout_seconds == 5.0
    assert settings.mermaid_cli == "/opt/mmdc"


def test_invalid_values_keep_defaults(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path, {"max_concurrent_diagrams": 0, "render_cache_capacity": "lots", "settle_delay_ms": 0})
    with caplog.at_level(logging.WARNING, logger="mdpreview.config"):
        settings = load_settings(path)
    assert settings.max_concurrent_diagrams == 3
    assert settings.render_cache_capacity == 100
    assert settings.settle_delay_ms == 0
    assert "max_concurrent_diagrams" in caplog.text
    assert "render_cache_capacity" in caplog.text


def test_malformed_config_file_is_ignored(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / ".mdpreview.cfg"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="mdpreview.config"):
        assert load_settings(path) == PreviewSettings()
    assert "unreadable" in caplog.text

    assert load_settings(_write(tmp_path, ["a", "list"])) == PreviewSettings()


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    assert load_settings(_write(tmp_path, {"colour_scheme": "solarized"})) == PreviewSettings()


def test_environment_overrides_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, {"settle_delay_ms": 250, "plantuml_jar": "/from/file.jar"})
    monkeypatch.setenv("MDPREVIEW_SETTLE_DELAY_MS", "40")
    monkeypatch.setenv("MDPREVIEW_MAX_CONCURRENT_DIAGRAMS", "2")
    monkeypatch.setenv("PLANTUML_JAR", "/from/env.jar")
    monkeypatch.setenv("MDPREVIEW_MMDC", "  ")

    settings = load_settings(path)
    assert settings.settle_delay_ms == 40
    assert settings.max_concurrent_diagrams == 2
    assert settings.plantuml_jar == "/from/env.jar"
    assert settings.mermaid_cli is None


def test_boolean_values_are_rejected(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(tmp_path, {"max_concurrent_diagrams": True, "settle_delay_ms": False, "render_timeout_seconds": True})
    with caplog.at_level(logging.WARNING, logger="mdpreview.config"):
        settings = load_settings(path)
    assert settings == PreviewSettings()
    assert "max_concurrent_diagrams" in caplog.text
    assert "settle_delay_ms" in caplog.text
    assert "render_timeout_seconds" in caplog.text
