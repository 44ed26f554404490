"""Bounded in-process caches for sanitized documents and rendered diagrams."""

from __future__ import annotations

import hashlib
import threading

from mdpreview.config import DIAGRAM_SVG_CACHE_MAX_ENTRIES, DIAGRAM_SVG_MAX_CHARS, RENDER_CACHE_MAX_ENTRIES
from mdpreview.models import Theme


class RenderCache:
    """Source text -> sanitized markup, evicting the oldest insertion first.

    Reads do not refresh an entry's position: this is FIFO, not LRU.
    """

    def __init__(self, capacity: int = RENDER_CACHE_MAX_ENTRIES) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, source_text: str) -> str | None:
        with self._lock:
            return self._entries.get(source_text)

    def put(self, source_text: str, sanitized_markup: str) -> None:
        with self._lock:
            if source_text not in self._entries:
                while len(self._entries) >= self.capacity:
                    self._entries.pop(next(iter(self._entries)))
            self._entries[source_text] = sanitized_markup

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, source_text: object) -> bool:
        with self._lock:
            return source_text in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def diagram_hash(source_text: str, language: str = "mermaid") -> str:
    key = f"{language}\0{source_text}"
    return hashlib.sha1(key.encode("utf-8", errors="replace")).hexdigest()


class DiagramCache:
    """Rendered diagram markup keyed by (language, source text, theme).

    Colors are baked into the SVG, so each theme gets its own partition.
    """

    def __init__(
        self,
        capacity_per_theme: int = DIAGRAM_SVG_CACHE_MAX_ENTRIES,
        max_chars: int = DIAGRAM_SVG_MAX_CHARS,
    ) -> None:
        self.capacity_per_theme = capacity_per_theme
        self.max_chars = max_chars
        self._by_theme: dict[Theme, dict[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, source_text: str, theme: Theme, language: str = "mermaid") -> str | None:
        with self._lock:
            return self._by_theme.get(theme, {}).get(diagram_hash(source_text, language))

    def put(self, source_text: str, theme: Theme, markup: str, language: str = "mermaid") -> bool:
        """Store `markup`; oversized payloads are refused and False is returned."""
        if len(markup) > self.max_chars:
            return False
        with self._lock:
            target = self._by_theme.setdefault(theme, {})
            target[diagram_hash(source_text, language)] = markup
            while len(target) > self.capacity_per_theme:
                target.pop(next(iter(target)))
        return True

    def retain_theme(self, theme: Theme) -> int:
        """Drop every partition except `theme`'s and return the number of entries removed."""
        with self._lock:
            removed = 0
            for other in [t for t in self._by_theme if t is not theme]:
                removed += len(self._by_theme.pop(other))
            return removed

    def clear(self) -> None:
        with self._lock:
            self._by_theme.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._by_theme.values())
