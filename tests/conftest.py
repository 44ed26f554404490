"""Shared fixtures: a scriptable fake diagram engine and a renderer wired to it."""

from __future__ import annotations

import asyncio
import html
from html.parser import HTMLParser

import pytest

from mdpreview.config import PreviewSettings
from mdpreview.engines import DiagramEngines, DiagramRenderError
from mdpreview.models import Theme
from mdpreview.renderer import MarkdownRenderer

FAIL_MARKER = "FAIL"


class FakeEngine:
    """Stands in for mmdc/PlantUML: returns a small SVG, fails on FAIL_MARKER.

    Set `gate` to an asyncio.Event to hold every render until it is set.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, Theme]] = []
        self.active = 0
        self.max_active = 0

    async def render(self, source_text: str, theme: Theme) -> str:
        self.calls.append((source_text, theme))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
            if FAIL_MARKER in source_text:
                raise DiagramRenderError("syntax error in diagram")
            label = html.escape(source_text.strip())
            return (
                '<?xml version="1.0" encoding="UTF-8"?>\n'
                f'<svg xmlns="http://www.w3.org/2000/svg" width="640" style="max-width: 640px;" '
                f'data-theme="{theme.value}"><text>{label}</text></svg>'
            )
        finally:
            self.active -= 1


class AttributeCollector(HTMLParser):
    """Collect every (tag, attribute, value) triple in a markup string."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.attributes: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag, attrs):
        for name, value in attrs:
            self.attributes.append((tag, name, value or ""))

    handle_startendtag = handle_starttag


def collect_attributes(markup: str) -> list[tuple[str, str, str]]:
    collector = AttributeCollector()
    collector.feed(markup)
    collector.close()
    return collector.attributes


@pytest.fixture
def settings() -> PreviewSettings:
    return PreviewSettings(settle_delay_ms=5)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def renderer(settings: PreviewSettings, fake_engine: FakeEngine) -> MarkdownRenderer:
    engines = DiagramEngines.with_engines({"mermaid": fake_engine, "plantuml": fake_engine}, settings)
    return MarkdownRenderer(settings, engines=engines)


def diagram_doc(*sources: str, language: str = "mermaid") -> str:
    """Build a markdown document with one fenced diagram per source."""
    parts = ["# Diagrams", ""]
    for source in sources:
        parts.extend([f"```{language}", source, "```", ""])
    return "\n".join(parts)
