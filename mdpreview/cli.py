"""Command-line entry point: render one markdown file to an HTML fragment."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mdpreview.config import load_settings
from mdpreview.models import RenderedDocument, Theme
from mdpreview.renderer import MarkdownRenderer


async def _fill_all(renderer: MarkdownRenderer, document: RenderedDocument, theme: Theme) -> int:
    failures = 0
    async for event in renderer.fill_diagrams(document, theme):
        if event.error_message:
            failures += 1
    return failures


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mdpreview",
        description="Render markdown to sanitized HTML with diagrams converted to inline SVG.",
    )
    parser.add_argument("path", help="Markdown file to render, or '-' to read standard input.")
    parser.add_argument("-o", "--output", default=None, help="Write the HTML fragment here (default: stdout).")
    parser.add_argument("--theme", choices=[theme.value for theme in Theme], default=Theme.LIGHT.value)
    parser.add_argument("--no-diagrams", action="store_true", help="Leave diagram blocks as placeholders.")
    parser.add_argument("--config", default=None, help="Settings file (default: ~/.mdpreview.cfg).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.path == "-":
        markdown_text = sys.stdin.read()
    else:
        source = Path(args.path).expanduser()
        if not source.is_file():
            print(f"Path is not a file: {source}", file=sys.stderr)
            return 2
        markdown_text = source.read_text(encoding="utf-8", errors="replace")

    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    renderer = MarkdownRenderer(settings)
    theme = Theme(args.theme)
    document = renderer.render(markdown_text)
    if not args.no_diagrams and document.pending():
        failures = asyncio.run(_fill_all(renderer, document, theme))
        if failures:
            print(f"{failures} diagram(s) could not be rendered", file=sys.stderr)

    output = document.compose()
    if args.output:
        Path(args.output).expanduser().write_text(output, encoding="utf-8")
    else:
        sys.stdout.write(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
