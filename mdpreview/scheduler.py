"""Settle-delayed, generation-fenced scheduling of the diagram fill pass."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from mdpreview.models import DiagramEvent, RenderedDocument, Theme
from mdpreview.renderer import MarkdownRenderer

logger = logging.getLogger(__name__)

RenderCallback = Callable[[RenderedDocument], None]
DiagramCallback = Callable[[RenderedDocument, DiagramEvent], None]


class RenderScheduler:
    """Drives a MarkdownRenderer from document and theme changes.

    Text is rendered and handed to `on_render` synchronously. The diagram
    pass starts after the settle delay, and only for the generation that is
    still current at that point. Results reach `on_diagram` only while their
    generation is current.
    """

    def __init__(
        self,
        renderer: MarkdownRenderer,
        on_render: RenderCallback,
        on_diagram: DiagramCallback,
        *,
        theme: Theme = Theme.LIGHT,
        settle_delay: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.renderer = renderer
        self.on_render = on_render
        self.on_diagram = on_diagram
        self.theme = theme
        self.settle_delay = renderer.settings.settle_delay_seconds if settle_delay is None else settle_delay
        self._loop = loop
        self._source_text: str | None = None
        self._document: RenderedDocument | None = None
        self._settle_handle: asyncio.TimerHandle | None = None
        self._fill_tasks: set[asyncio.Task] = set()

    @property
    def document(self) -> RenderedDocument | None:
        return self._document

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def document_changed(self, source_text: str, theme: Theme | None = None) -> RenderedDocument:
        if theme is not None:
            self.theme = theme
        self._source_text = source_text
        document = self.renderer.render(source_text)
        self._document = document
        self.on_render(document)

        # Debounce: a change inside the settle window replaces the pending pass.
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        if document.pending():
            self._settle_handle = self._event_loop().call_later(
                self.settle_delay, self._start_fill, document, self.theme
            )
        return document

    def theme_changed(self, theme: Theme) -> RenderedDocument | None:
        self.theme = theme
        self.renderer.invalidate_theme_cache(theme)
        if self._source_text is None:
            return None
        return self.document_changed(self._source_text, theme)

    def _start_fill(self, document: RenderedDocument, theme: Theme) -> None:
        self._settle_handle = None
        if not self.renderer.is_current(document):
            return
        task = self._event_loop().create_task(self._fill(document, theme))
        self._fill_tasks.add(task)
        task.add_done_callback(self._fill_tasks.discard)

    async def _fill(self, document: RenderedDocument, theme: Theme) -> None:
        async for event in self.renderer.fill_diagrams(document, theme):
            if self._document is not document:
                logger.debug("Discarding diagram %s for superseded generation %d", event.placeholder_id, document.generation)
                continue
            try:
                self.on_diagram(document, event)
            except Exception:
                logger.exception("Diagram callback failed for %s", event.placeholder_id)

    async def wait_idle(self) -> None:
        """Wait until no settle timer is armed and every fill pass has finished."""
        while self._settle_handle is not None or self._fill_tasks:
            if self._fill_tasks:
                await asyncio.gather(*list(self._fill_tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.settle_delay / 2 or 0.001)

    async def aclose(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None
        tasks = list(self._fill_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
