"""PySide6 bridge: drive the preview pipeline from a Qt event loop."""

from __future__ import annotations

import asyncio
import logging

from PySide6.QtCore import QObject, QRunnable, QThreadPool, QTimer, Signal

from mdpreview.models import RenderedDocument, Theme
from mdpreview.renderer import MarkdownRenderer

logger = logging.getLogger(__name__)


class DiagramFillWorkerSignals(QObject):
    """Signals emitted by background diagram fill workers."""

    diagram = Signal(int, str, str, str)
    finished = Signal(int)


class DiagramFillWorker(QRunnable):
    """Run one generation's diagram pass on a private event loop off the GUI thread."""

    def __init__(self, renderer: MarkdownRenderer, document: RenderedDocument, theme: Theme):
        super().__init__()
        self.renderer = renderer
        self.document = document
        self.theme = theme
        self.signals = DiagramFillWorkerSignals()

    async def _drain(self) -> None:
        async for event in self.renderer.fill_diagrams(self.document, self.theme):
            payload = event.markup or event.error_message or ""
            self.signals.diagram.emit(event.generation, event.placeholder_id, event.state.value, payload)

    def run(self) -> None:
        if not self.renderer.is_current(self.document):
            self.signals.finished.emit(self.document.generation)
            return
        try:
            asyncio.run(self._drain())
        except Exception:
            logger.exception("Diagram fill pass for generation %d crashed", self.document.generation)
        self.signals.finished.emit(self.document.generation)


class PreviewController(QObject):
    """Qt-side scheduler: immediate text render, delayed diagram pass, stale results dropped.

    `rendered` carries the RenderedDocument; `diagram_updated` carries
    (generation, placeholder id, state, markup or error message).
    """

    rendered = Signal(object)
    diagram_updated = Signal(int, str, str, str)
    idle = Signal()

    def __init__(self, renderer: MarkdownRenderer | None = None, theme: Theme = Theme.LIGHT, parent=None):
        super().__init__(parent)
        self.renderer = renderer or MarkdownRenderer()
        self.theme = theme
        self.document: RenderedDocument | None = None
        self._source_text: str | None = None
        self._fill_pool = QThreadPool(self)
        # Concurrency inside a pass is bounded by the renderer; passes
        # themselves run one at a time.
        self._fill_pool.setMaxThreadCount(1)
        self._active_workers: set[DiagramFillWorker] = set()
        self._settle_timer = QTimer(self)
        self._settle_timer.setSingleShot(True)
        self._settle_timer.setInterval(max(0, int(self.renderer.settings.settle_delay_ms)))
        self._settle_timer.timeout.connect(self._start_diagram_fill)

    def set_document(self, source_text: str) -> RenderedDocument:
        self._source_text = source_text
        self.document = self.renderer.render(source_text)
        self.rendered.emit(self.document)
        if self.document.pending():
            self._settle_timer.start()
        else:
            self._settle_timer.stop()
            if not self._active_workers:
                self.idle.emit()
        return self.document

    def set_theme(self, theme: Theme) -> RenderedDocument | None:
        self.theme = theme
        self.renderer.invalidate_theme_cache(theme)
        if self._source_text is None:
            return None
        return self.set_document(self._source_text)

    def _start_diagram_fill(self) -> None:
        if self.document is None or not self.renderer.is_current(self.document):
            return
        worker = DiagramFillWorker(self.renderer, self.document, self.theme)
        self._active_workers.add(worker)
        worker.signals.diagram.connect(self._on_worker_diagram)
        worker.signals.finished.connect(self._on_worker_finished)
        self._fill_pool.start(worker)

    def _on_worker_diagram(self, generation: int, placeholder_id: str, state: str, payload: str) -> None:
        if self.document is None or generation != self.document.generation:
            logger.debug("Ignoring diagram %s from stale generation %d", placeholder_id, generation)
            return
        self.diagram_updated.emit(generation, placeholder_id, state, payload)

    def _on_worker_finished(self, generation: int) -> None:
        worker_to_remove = None
        for worker in self._active_workers:
            if worker.document.generation == generation:
                worker_to_remove = worker
                break
        if worker_to_remove is not None:
            self._active_workers.remove(worker_to_remove)
        if not self._active_workers and not self._settle_timer.isActive():
            self.idle.emit()
