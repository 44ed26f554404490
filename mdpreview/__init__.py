"""mdpreview: markdown to safe HTML with asynchronously rendered diagrams."""

from mdpreview.cache import DiagramCache, RenderCache
from mdpreview.config import PreviewSettings, load_settings
from mdpreview.converter import MarkdownConverter
from mdpreview.engines import DiagramEngines, DiagramRenderError
from mdpreview.models import (
    DiagramEvent,
    DiagramPlaceholder,
    DiagramState,
    InvalidTransitionError,
    RenderedDocument,
    Theme,
)
from mdpreview.renderer import MarkdownRenderer
from mdpreview.sanitizer import sanitize_markup
from mdpreview.scheduler import RenderScheduler

__all__ = [
    "DiagramCache",
    "DiagramEngines",
    "DiagramEvent",
    "DiagramPlaceholder",
    "DiagramRenderError",
    "DiagramState",
    "InvalidTransitionError",
    "MarkdownConverter",
    "MarkdownRenderer",
    "PreviewSettings",
    "RenderCache",
    "RenderScheduler",
    "RenderedDocument",
    "Theme",
    "load_settings",
    "sanitize_markup",
]
