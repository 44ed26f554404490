"""Core preview API: synchronous document render plus the async diagram fill pass."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator

from mdpreview.cache import DiagramCache, RenderCache
from mdpreview.config import PreviewSettings
from mdpreview.converter import MarkdownConverter
from mdpreview.diagrams import DiagramRenderer, extract_placeholders
from mdpreview.engines import DiagramEngines
from mdpreview.models import DiagramEvent, RenderedDocument, Theme
from mdpreview.sanitizer import sanitize_markup

logger = logging.getLogger(__name__)


class MarkdownRenderer:
    """Converts markdown to sanitized HTML with asynchronously rendered diagrams.

    Every `render` call issues a new generation; only the latest one is
    authoritative. Diagram results for older generations still land in
    their (discarded) placeholder objects but are never streamed out.
    """

    def __init__(
        self,
        settings: PreviewSettings | None = None,
        *,
        engines: DiagramEngines | None = None,
        render_cache: RenderCache | None = None,
        diagram_cache: DiagramCache | None = None,
        converter: MarkdownConverter | None = None,
    ) -> None:
        self.settings = settings or PreviewSettings()
        self.converter = converter or MarkdownConverter()
        self.render_cache = render_cache or RenderCache(self.settings.render_cache_capacity)
        self.diagram_cache = diagram_cache or DiagramCache(self.settings.diagram_cache_capacity)
        self.engines = engines or DiagramEngines(self.settings)
        self.diagram_renderer = DiagramRenderer(self.engines, self.diagram_cache, self.settings.diagram_max_width)
        self._generation = 0
        self._generation_lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, document: RenderedDocument) -> bool:
        return document.generation == self._generation

    def _sanitized_markup(self, source_text: str) -> str:
        cached = self.render_cache.get(source_text)
        if cached is not None:
            return cached
        markup = sanitize_markup(self.converter.convert(source_text))
        self.render_cache.put(source_text, markup)
        return markup

    def render(self, source_text: str) -> RenderedDocument:
        """Render `source_text` immediately; diagrams come back PENDING or SKIPPED."""
        with self._generation_lock:
            self._generation += 1
            generation = self._generation
        markup = self._sanitized_markup(source_text)
        return RenderedDocument(
            generation=generation,
            sanitized_markup=markup,
            diagram_placeholders=extract_placeholders(markup, generation),
        )

    async def fill_diagrams(self, document: RenderedDocument, theme: Theme) -> AsyncIterator[DiagramEvent]:
        """Render the document's pending diagrams, yielding one event per block as it completes.

        At most `max_concurrent_diagrams` engines run at once. Once a newer
        generation exists, remaining results are dropped instead of yielded.
        """
        pending = document.pending()
        if not pending:
            return

        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_diagrams))

        async def _render_one(placeholder):
            async with semaphore:
                return await self.diagram_renderer.render(placeholder, theme, document.generation)

        tasks = [asyncio.ensure_future(_render_one(placeholder)) for placeholder in pending]
        try:
            for next_done in asyncio.as_completed(tasks):
                event = await next_done
                if not self.is_current(document):
                    logger.debug(
                        "Dropping diagram result %s from stale generation %d (current %d)",
                        event.placeholder_id,
                        document.generation,
                        self._generation,
                    )
                    continue
                yield event
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    def invalidate_theme_cache(self, theme: Theme) -> None:
        removed = self.diagram_cache.retain_theme(theme)
        if removed:
            logger.debug("Dropped %d cached diagrams rendered for other themes", removed)
