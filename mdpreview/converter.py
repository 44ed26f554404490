"""Markdown to raw HTML conversion with math and diagram fence support."""

from __future__ import annotations

import html
import logging

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

logger = logging.getLogger(__name__)

DIAGRAM_CLASS = "mdpreview-diagram"
DIAGRAM_LANG_ATTR = "data-diagram-lang"
# Fence info string -> diagram dialect handed to the engine registry.
DIAGRAM_FENCE_LANGUAGES = {
    "mermaid": "mermaid",
    "diagram": "mermaid",
    "plantuml": "plantuml",
    "puml": "plantuml",
    "uml": "plantuml",
}


def _line_attrs(token) -> str:
    if token.map and len(token.map) == 2:
        return f' data-md-line-start="{token.map[0]}" data-md-line-end="{token.map[1]}"'
    return ""


class MarkdownConverter:
    """Converts markdown to raw (unsanitized) HTML.

    Diagram fences are not interpreted here: they become placeholder
    elements whose text content is the literal diagram source.
    """

    def __init__(self) -> None:
        self._md = MarkdownIt(
            "commonmark",
            {"html": True, "typographer": True},
        ).enable("table").enable("strikethrough")
        # Parse $...$ / $$...$$ as dedicated math tokens before markdown
        # emphasis/underscore rules run, preventing TeX corruption.
        self._md.use(dollarmath_plugin)
        self._md.use(tasklists_plugin)
        # URL policy belongs to the sanitizer; unsafe links become inert
        # anchors there instead of literal markdown text here.
        self._md.validateLink = lambda url: True

        default_fence = self._md.renderer.rules["fence"]
        default_render_token = self._md.renderer.renderToken

        def custom_math_inline(tokens, idx, options, env):
            # Keep TeX content raw for the math typesetter, only HTML-escape unsafe chars.
            return f'<span class="math-inline">${html.escape(tokens[idx].content)}$</span>'

        def custom_math_block(tokens, idx, options, env):
            token = tokens[idx]
            math_body = (token.content or "").strip("\n")
            return f'<div class="math-block"{_line_attrs(token)}>$$\n{html.escape(math_body)}\n$$</div>\n'

        def custom_fence(tokens, idx, options, env):
            token = tokens[idx]
            info = token.info.strip().split(maxsplit=1)[0].lower() if token.info else ""
            language = DIAGRAM_FENCE_LANGUAGES.get(info)
            if language is None:
                return default_fence(tokens, idx, options, env)
            return (
                f'<div class="{DIAGRAM_CLASS}" {DIAGRAM_LANG_ATTR}="{language}"{_line_attrs(token)}>'
                f"{html.escape(token.content)}</div>\n"
            )

        def custom_render_token(tokens, idx, options, env):
            # Attach source-line metadata so a preview can map back to
            # source markdown ranges.
            token = tokens[idx]
            if token.nesting == 1 and token.type.endswith("_open") and token.map and len(token.map) == 2:
                token.attrSet("data-md-line-start", str(token.map[0]))
                token.attrSet("data-md-line-end", str(token.map[1]))
            return default_render_token(tokens, idx, options, env)

        self._md.renderer.rules["fence"] = custom_fence
        self._md.renderer.rules["math_inline"] = custom_math_inline
        self._md.renderer.rules["math_block"] = custom_math_block
        self._md.renderer.rules["math_block_label"] = custom_math_block
        self._md.renderer.renderToken = custom_render_token

    def convert(self, source_text: str) -> str:
        try:
            return self._md.render(source_text)
        except Exception:
            logger.warning("Markdown conversion failed; showing source as literal text", exc_info=True)
            return f'<pre class="mdpreview-literal">{html.escape(source_text)}</pre>\n'
