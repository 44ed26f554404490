"""Diagram placeholder extraction, validation, and per-block rendering."""

from __future__ import annotations

import asyncio
import html
import logging
import re
import uuid
from html.parser import HTMLParser
from typing import NamedTuple

from mdpreview.cache import DiagramCache
from mdpreview.config import DIAGRAM_MAX_WIDTH
from mdpreview.converter import DIAGRAM_CLASS, DIAGRAM_LANG_ATTR
from mdpreview.engines import DiagramEngines, DiagramRenderError
from mdpreview.models import DiagramEvent, DiagramPlaceholder, DiagramState, Theme

logger = logging.getLogger(__name__)

_SELECTOR_PREFIXES = (".", "#", "@")


class DiagramBlock(NamedTuple):
    start: int
    end: int
    language: str
    source_text: str


class _DiagramScanner(HTMLParser):
    """Collect the spans and text of diagram placeholder elements."""

    def __init__(self, markup: str) -> None:
        super().__init__(convert_charrefs=True)
        self._markup = markup
        self._line_offsets = [0] + [match.end() for match in re.finditer("\n", markup)]
        self._open: dict | None = None
        self.blocks: list[DiagramBlock] = []

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_offsets[line - 1] + column

    def handle_starttag(self, tag, attrs):
        if tag != "div":
            return
        if self._open is not None:
            self._open["depth"] += 1
            return
        attr_map = dict(attrs)
        if DIAGRAM_CLASS not in (attr_map.get("class") or "").split():
            return
        self._open = {
            "start": self._offset(),
            "language": (attr_map.get(DIAGRAM_LANG_ATTR) or "mermaid").strip().lower(),
            "depth": 0,
            "chunks": [],
        }

    def handle_data(self, data):
        if self._open is not None:
            self._open["chunks"].append(data)

    def handle_endtag(self, tag):
        if tag != "div" or self._open is None:
            return
        if self._open["depth"] > 0:
            self._open["depth"] -= 1
            return
        close = self._markup.find(">", self._offset())
        end = close + 1 if close != -1 else len(self._markup)
        self.blocks.append(
            DiagramBlock(self._open["start"], end, self._open["language"], "".join(self._open["chunks"]))
        )
        self._open = None


def scan_diagram_blocks(markup: str) -> list[DiagramBlock]:
    """Return every diagram placeholder element in `markup`, in document order."""
    scanner = _DiagramScanner(markup)
    scanner.feed(markup)
    scanner.close()
    return scanner.blocks


def looks_like_stylesheet(source_text: str) -> bool:
    """True for CSS fragments that ended up in a diagram fence."""
    trimmed = source_text.strip()
    return "{" in trimmed and "}" in trimmed and trimmed.startswith(_SELECTOR_PREFIXES)


def new_placeholder_id(generation: int, index: int) -> str:
    return f"mdpreview-diagram-{generation}-{index}-{uuid.uuid4().hex[:8]}"


def extract_placeholders(sanitized_markup: str, generation: int) -> list[DiagramPlaceholder]:
    placeholders: list[DiagramPlaceholder] = []
    for index, block in enumerate(scan_diagram_blocks(sanitized_markup)):
        placeholder = DiagramPlaceholder(
            id=new_placeholder_id(generation, index),
            source_text=block.source_text,
            language=block.language,
            index=index,
        )
        if not block.source_text.strip():
            logger.debug("Skipping empty diagram block %d (generation %d)", index, generation)
            placeholder.mark_skipped("empty diagram definition")
        elif looks_like_stylesheet(block.source_text):
            logger.debug("Skipping diagram block %d that looks like CSS: %.50s", index, block.source_text.strip())
            placeholder.mark_skipped("stylesheet content, not a diagram")
        placeholders.append(placeholder)
    return placeholders


_SVG_START_RE = re.compile(r"<svg\b", re.IGNORECASE)
_SVG_END_RE = re.compile(r"</svg\s*>", re.IGNORECASE)
_SVG_OPEN_TAG_RE = re.compile(r"<svg\b[^>]*>", re.IGNORECASE)
_STYLE_ATTR_RE = re.compile(r"""\sstyle\s*=\s*("[^"]*"|'[^']*')""", re.IGNORECASE)
_LAYOUT_PROPERTIES = {"display", "margin", "width", "max-width", "height", "position", "z-index", "float"}


def constrain_svg(svg_markup: str, max_width: int = DIAGRAM_MAX_WIDTH) -> str:
    """Pin the root <svg> to centered block layout in normal document flow.

    Keeps whatever the engine put in the root style except the layout
    properties this function owns.
    """
    start_match = _SVG_START_RE.search(svg_markup)
    if start_match is None:
        raise DiagramRenderError("rendered output contains no <svg> element")
    end = None
    for end_match in _SVG_END_RE.finditer(svg_markup, start_match.start()):
        end = end_match.end()
    svg_markup = svg_markup[start_match.start() : end]

    match = _SVG_OPEN_TAG_RE.match(svg_markup)
    if match is None:
        raise DiagramRenderError("rendered output has a malformed <svg> tag")
    open_tag = match.group(0)

    kept: list[str] = []
    style_match = _STYLE_ATTR_RE.search(open_tag)
    if style_match is not None:
        for declaration in html.unescape(style_match.group(1)[1:-1]).split(";"):
            name, _, value = declaration.partition(":")
            if name.strip() and value.strip() and name.strip().lower() not in _LAYOUT_PROPERTIES:
                kept.append(f"{name.strip()}: {value.strip()}")
        open_tag = open_tag[: style_match.start()] + open_tag[style_match.end() :]

    layout = [
        "display: block",
        "margin: 0 auto",
        "width: 100%",
        f"max-width: {int(max_width)}px",
        "height: auto",
        "position: static",
        "z-index: auto",
        "float: none",
    ]
    style_value = html.escape("; ".join(kept + layout), quote=True)
    self_closing = open_tag.endswith("/>")
    head = open_tag[: -2 if self_closing else -1].rstrip()
    new_tag = f'{head} style="{style_value}"{" />" if self_closing else ">"}'
    return new_tag + svg_markup[match.end() :]


def failure_markup(message: str) -> str:
    return f'<div class="mdpreview-diagram-error">Diagram rendering failed: {html.escape(message)}</div>'


class DiagramRenderer:
    """Turns one pending placeholder into SVG, or into a localized failure.

    `render` never raises for rendering problems: every error ends up in the
    placeholder as the FAILED state so sibling blocks carry on.
    """

    def __init__(
        self,
        engines: DiagramEngines,
        cache: DiagramCache,
        max_width: int = DIAGRAM_MAX_WIDTH,
    ) -> None:
        self.engines = engines
        self.cache = cache
        self.max_width = max_width
        self._inflight: dict[tuple[str, str, Theme], asyncio.Future] = {}

    async def _produce(self, language: str, source_text: str, theme: Theme) -> str:
        cached = self.cache.get(source_text, theme, language)
        if cached is not None:
            return cached

        key = (language, source_text, theme)
        inflight = self._inflight.get(key)
        if inflight is not None and inflight.get_loop() is asyncio.get_running_loop():
            # Identical blocks render once; later ones wait for the first.
            return await asyncio.shield(inflight)

        future = asyncio.ensure_future(self._render_uncached(language, source_text, theme))
        self._inflight[key] = future
        future.add_done_callback(lambda done, key=key: self._forget(key, done))
        return await asyncio.shield(future)

    def _forget(self, key: tuple[str, str, Theme], future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    async def _render_uncached(self, language: str, source_text: str, theme: Theme) -> str:
        engine = self.engines.acquire(language)
        svg_markup = constrain_svg(await engine.render(source_text, theme), self.max_width)
        self.cache.put(source_text, theme, svg_markup, language)
        return svg_markup

    async def render(self, placeholder: DiagramPlaceholder, theme: Theme, generation: int = 0) -> DiagramEvent:
        placeholder.mark_rendering()
        try:
            markup = await self._produce(placeholder.language, placeholder.source_text, theme)
        except DiagramRenderError as exc:
            logger.warning("Diagram %s failed: %s", placeholder.id, exc)
            placeholder.mark_failed(str(exc), failure_markup(str(exc)))
        except Exception as exc:
            logger.exception("Unexpected error rendering diagram %s", placeholder.id)
            message = str(exc) or type(exc).__name__
            placeholder.mark_failed(message, failure_markup(message))
        else:
            placeholder.mark_rendered(markup)

        if placeholder.state is DiagramState.RENDERED:
            return DiagramEvent(generation, placeholder.id, placeholder.state, markup=placeholder.rendered_markup)
        return DiagramEvent(
            generation,
            placeholder.id,
            placeholder.state,
            markup=placeholder.rendered_markup,
            error_message=placeholder.error_message,
        )
