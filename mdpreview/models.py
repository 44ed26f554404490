"""Data types shared by the conversion and diagram passes."""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from enum import Enum


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"

    @property
    def mermaid_theme(self) -> str:
        return "dark" if self is Theme.DARK else "default"


class DiagramState(str, Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    RENDERED = "rendered"
    FAILED = "failed"
    SKIPPED = "skipped"


_ALLOWED_TRANSITIONS = {
    DiagramState.PENDING: {DiagramState.RENDERING, DiagramState.SKIPPED},
    DiagramState.RENDERING: {DiagramState.RENDERED, DiagramState.FAILED},
}


class InvalidTransitionError(RuntimeError):
    """Raised when a placeholder is moved along an edge its lifecycle forbids."""


@dataclass
class DiagramPlaceholder:
    """One diagram block found in a rendered document."""

    id: str
    source_text: str
    language: str = "mermaid"
    index: int = 0
    state: DiagramState = DiagramState.PENDING
    rendered_markup: str | None = None
    error_message: str | None = None

    def transition(self, new_state: DiagramState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(f"{self.id}: cannot move from {self.state.value} to {new_state.value}")
        self.state = new_state

    def mark_rendering(self) -> None:
        self.transition(DiagramState.RENDERING)

    def mark_rendered(self, markup: str) -> None:
        self.transition(DiagramState.RENDERED)
        self.rendered_markup = markup
        self.error_message = None

    def mark_failed(self, message: str, fallback_markup: str) -> None:
        self.transition(DiagramState.FAILED)
        self.rendered_markup = fallback_markup
        self.error_message = message

    def mark_skipped(self, reason: str) -> None:
        self.transition(DiagramState.SKIPPED)
        self.error_message = reason

    def to_markup(self) -> str:
        """Return the element that stands in for this block in composed output."""
        classes = f"mdpreview-diagram mdpreview-diagram-{self.state.value}"
        lang = html.escape(self.language, quote=True)
        if self.state in {DiagramState.RENDERED, DiagramState.FAILED} and self.rendered_markup is not None:
            inner = self.rendered_markup
        else:
            inner = html.escape(self.source_text)
        return f'<div class="{classes}" id="{html.escape(self.id, quote=True)}" data-diagram-lang="{lang}">{inner}</div>'


@dataclass(frozen=True)
class DiagramEvent:
    """Completion of one placeholder during a diagram fill pass."""

    generation: int
    placeholder_id: str
    state: DiagramState
    markup: str | None = None
    error_message: str | None = None


@dataclass
class RenderedDocument:
    """Sanitized output of one render call plus its diagram placeholders.

    `sanitized_markup` is never rewritten; `compose()` inlines the current
    placeholder state when the caller attaches the document to a display.
    """

    generation: int
    sanitized_markup: str
    diagram_placeholders: list[DiagramPlaceholder] = field(default_factory=list)

    def placeholder(self, placeholder_id: str) -> DiagramPlaceholder | None:
        for placeholder in self.diagram_placeholders:
            if placeholder.id == placeholder_id:
                return placeholder
        return None

    def pending(self) -> list[DiagramPlaceholder]:
        return [p for p in self.diagram_placeholders if p.state is DiagramState.PENDING]

    def compose(self) -> str:
        # Local import: diagrams imports this module for the placeholder types.
        from mdpreview.diagrams import scan_diagram_blocks

        markup = self.sanitized_markup
        parts: list[str] = []
        cursor = 0
        for block, placeholder in zip(scan_diagram_blocks(markup), self.diagram_placeholders):
            parts.append(markup[cursor : block.start])
            parts.append(placeholder.to_markup())
            cursor = block.end
        parts.append(markup[cursor:])
        return "".join(parts)
