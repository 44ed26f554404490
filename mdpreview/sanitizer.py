"""Allow-list HTML sanitization for converter output.

Security model:
- The converter may emit anything, including raw HTML passed through
  from the source text.
- Only the tags and attributes listed here survive. Unknown tags are
  stripped and their text is kept; event-handler attributes are never
  listed, and URL attributes are limited to safe protocols.
"""

from __future__ import annotations

import html
import logging

import bleach

from mdpreview.converter import DIAGRAM_LANG_ATTR

logger = logging.getLogger(__name__)

_DOCUMENT_TAGS = [
    "a",
    "abbr",
    "b",
    "blockquote",
    "br",
    "code",
    "del",
    "details",
    "div",
    "em",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "hr",
    "i",
    "img",
    "input",
    "kbd",
    "li",
    "ol",
    "p",
    "pre",
    "s",
    "span",
    "strong",
    "sub",
    "summary",
    "sup",
    "table",
    "tbody",
    "td",
    "th",
    "thead",
    "tr",
    "ul",
]

_MATH_TAGS = [
    "math",
    "annotation",
    "menclose",
    "merror",
    "mfrac",
    "mi",
    "mn",
    "mo",
    "mover",
    "mpadded",
    "mroot",
    "mrow",
    "ms",
    "mspace",
    "msqrt",
    "mstyle",
    "msub",
    "msubsup",
    "msup",
    "mtable",
    "mtd",
    "mtext",
    "mtr",
    "munder",
    "munderover",
    "semantics",
]

_SVG_TAGS = [
    "svg",
    "circle",
    "clippath",
    "clipPath",
    "defs",
    "desc",
    "ellipse",
    "g",
    "line",
    "lineargradient",
    "linearGradient",
    "marker",
    "path",
    "polygon",
    "polyline",
    "radialgradient",
    "radialGradient",
    "rect",
    "stop",
    "text",
    "textpath",
    "textPath",
    "title",
    "tspan",
]

_SVG_ATTRIBUTES = [
    "class",
    "clip-path",
    "cx",
    "cy",
    "d",
    "dx",
    "dy",
    "fill",
    "fill-opacity",
    "font-family",
    "font-size",
    "font-weight",
    "gradientTransform",
    "gradientUnits",
    "height",
    "id",
    "marker-end",
    "marker-start",
    "markerHeight",
    "markerUnits",
    "markerWidth",
    "offset",
    "opacity",
    "orient",
    "points",
    "preserveAspectRatio",
    "r",
    "refX",
    "refY",
    "role",
    "rx",
    "ry",
    "stop-color",
    "stroke",
    "stroke-dasharray",
    "stroke-linecap",
    "stroke-linejoin",
    "stroke-opacity",
    "stroke-width",
    "text-anchor",
    "transform",
    "version",
    "viewBox",
    "viewbox",
    "width",
    "x",
    "x1",
    "x2",
    "xmlns",
    "y",
    "y1",
    "y2",
]

_LINE_ATTRIBUTES = ["data-md-line-start", "data-md-line-end"]

ALLOWED_TAGS = frozenset(_DOCUMENT_TAGS + _MATH_TAGS + _SVG_TAGS)

ALLOWED_ATTRIBUTES: dict[str, list[str]] = {
    "*": ["class", "title", *_LINE_ATTRIBUTES],
    "a": ["href", "title", "target", "rel", "name"],
    "abbr": ["title"],
    "code": ["class"],
    "div": ["class", DIAGRAM_LANG_ATTR],
    "img": ["src", "alt", "title", "width", "height"],
    "input": ["type", "checked", "disabled", "class"],
    "math": ["display", "xmlns"],
    "annotation": ["encoding"],
    "mo": ["stretchy", "fence", "separator", "lspace", "rspace"],
    "mstyle": ["displaystyle", "scriptlevel"],
    "mtd": ["columnspan", "rowspan"],
    "ol": ["start", "type"],
    "td": ["align", "colspan", "rowspan"],
    "th": ["align", "colspan", "rowspan", "scope"],
    "details": ["open"],
}
for _svg_tag in _SVG_TAGS:
    ALLOWED_ATTRIBUTES[_svg_tag] = list(_SVG_ATTRIBUTES)

ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})


def sanitize_markup(raw_markup: str) -> str:
    """Return `raw_markup` restricted to the allow-list; never raises."""
    if not raw_markup:
        return ""
    try:
        return bleach.clean(
            raw_markup,
            tags=ALLOWED_TAGS,
            attributes=ALLOWED_ATTRIBUTES,
            protocols=ALLOWED_PROTOCOLS,
            strip=True,
            strip_comments=True,
        )
    except Exception:
        # Escaping everything is always safe, just not pretty.
        logger.warning("Sanitizer failed; falling back to escaped text", exc_info=True)
        return f"<pre>{html.escape(raw_markup)}</pre>"
