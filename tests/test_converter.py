"""Tests for markdown to raw HTML conversion."""

from __future__ import annotations

import pytest

from mdpreview.converter import MarkdownConverter


@pytest.fixture
def converter() -> MarkdownConverter:
    return MarkdownConverter()


def test_headings_and_emphasis(converter: MarkdownConverter) -> None:
    raw = converter.convert("# Title\n\nSome *soft* and **strong** ~~old~~ text.")
    assert ">Title</h1>" in raw
    assert "<em>soft</em>" in raw
    assert "<strong>strong</strong>" in raw
    assert "<s>old</s>" in raw


def test_block_elements_carry_source_lines(converter: MarkdownConverter) -> None:
    raw = converter.convert("intro\n\n## Second\n")
    assert '<h2 data-md-line-start="2" data-md-line-end="3">' in raw


def test_lists_and_task_lists(converter: MarkdownConverter) -> None:
    raw = converter.convert("1. one\n2. two\n\n- [ ] todo\n- [x] done\n")
    assert "<ol" in raw
    assert "<ul" in raw
    assert 'type="checkbox"' in raw
    assert "checked" in raw


def test_links_images_quotes_rules_tables(converter: MarkdownConverter) -> None:
    source = (
        "[site](https://example.com) ![logo](https://example.com/logo.png)\n\n"
        "> quoted\n\n"
        "---\n\n"
        "| a | b |\n|---|---|\n| 1 | 2 |\n"
    )
    raw = converter.convert(source)
    assert 'href="https://example.com"' in raw
    assert '<img src="https://example.com/logo.png" alt="logo"' in raw
    assert "<blockquote" in raw
    assert "<hr" in raw
    assert "<table" in raw
    assert ">2</td>" in raw


def test_code_fence_keeps_language_class(converter: MarkdownConverter) -> None:
    raw = converter.convert("```python\nprint('hi')\n```\n")
    assert '<code class="language-python">' in raw
    assert "print(&#x27;hi&#x27;)" in raw or "print('hi')" in raw


def test_math_inline_and_block(converter: MarkdownConverter) -> None:
    raw = converter.convert("Euler: $e^{i\\pi} + 1 = 0$\n\n$$\na < b\n$$\n")
    assert '<span class="math-inline">$e^{i\\pi} + 1 = 0$</span>' in raw
    assert '<div class="math-block"' in raw
    assert "a &lt; b" in raw


def test_math_keeps_underscores_out_of_emphasis(converter: MarkdownConverter) -> None:
    raw = converter.convert("$a_1 + b_2$")
    assert "<em>" not in raw


@pytest.mark.parametrize(
    ("info", "language"),
    [("mermaid", "mermaid"), ("diagram", "mermaid"), ("plantuml", "plantuml"), ("puml", "plantuml")],
)
def test_diagram_fences_become_placeholders(converter: MarkdownConverter, info: str, language: str) -> None:
    raw = converter.convert(f"```{info}\nA-->B\n```\n")
    assert f'<div class="mdpreview-diagram" data-diagram-lang="{language}"' in raw
    assert "A--&gt;B" in raw
    assert "<pre" not in raw


def test_unsafe_links_are_left_for_the_sanitizer(converter: MarkdownConverter) -> None:
    raw = converter.convert("[x](javascript:alert(1))")
    assert "<a href=" in raw
    assert "[x]" not in raw


def test_conversion_is_deterministic(converter: MarkdownConverter) -> None:
    source = "# A\n\n```mermaid\ngraph TD\nA-->B\n```\n\n$x$ and *y*\n"
    assert converter.convert(source) == converter.convert(source)
    assert MarkdownConverter().convert(source) == converter.convert(source)


def test_parser_failure_degrades_to_literal_text(converter: MarkdownConverter, monkeypatch) -> None:
    def explode(*_args, **_kwargs):
        raise RecursionError("nested too deep")

    monkeypatch.setattr(converter._md, "render", explode)
    raw = converter.convert("# <b>x</b>")
    assert raw.startswith('<pre class="mdpreview-literal">')
    assert "&lt;b&gt;" in raw


def test_only_explicit_links_become_anchors(converter: MarkdownConverter) -> None:
    raw = converter.convert("See https://example.com/docs or <https://example.com/auto>.\n")
    assert raw.count("<a href=") == 1
    assert 'href="https://example.com/auto"' in raw
    assert "See https://example.com/docs or" in raw
