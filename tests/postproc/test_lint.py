"""Tests for markdown normalisation."""

from __future__ import annotations

from autodoc.postproc.lint import MarkdownLinter


def test_markdown_linter_normalises_whitespace() -> None:
    markdown = "# Title\r\n\r\nText\r\n\r\n\r\n## Section\r\nContent  \r\n"
    linted = MarkdownLinter().lint(markdown)
    assert linted.endswith("\n")
    assert "\r" not in linted
    assert "  \n" not in linted
    assert "\n\n\n" not in linted


def test_markdown_linter_separates_headings() -> None:
    linted = MarkdownLinter().lint("\n\n# Title\nIntro\n## Next\nBody\n\n\n")

    assert linted == "# Title\nIntro\n\n## Next\nBody\n"


def test_markdown_linter_folds_typographic_punctuation() -> None:
    linted = MarkdownLinter().lint("# T\n\n\u201cQuoted\u201d \u2014 it\u2019s 1\u20132\u00a0items\n")

    assert linted == "# T\n\n\"Quoted\" - it's 1-2 items\n"


def test_markdown_linter_keeps_code_blocks_verbatim() -> None:
    markdown = "# T\n\n```python\n# comment\n\n\n\nx = \"\u2014\"   \n```\n"
    linted = MarkdownLinter().lint(markdown)

    assert "```python\n# comment\n\n\n\nx = \"\u2014\"\n```" in linted
