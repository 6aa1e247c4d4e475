"""Markdown export of generated scripts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping

from .utils.files import write_text


@dataclass(frozen=True, slots=True)
class MarkdownSection:
    title: str
    content: str


def render_markdown(sections: Iterable[MarkdownSection]) -> str:
    return "\n".join(f"# {section.title}\n\n{section.content.strip()}\n" for section in sections)


def sections_from_results(results: Mapping[int, str], label: str = "Page") -> List[MarkdownSection]:
    """Build one section per generated page, ordered by page index."""
    return [MarkdownSection(title=f"{label} {index + 1}", content=results[index]) for index in sorted(results)]


def export_markdown(path: str | Path, sections: Iterable[MarkdownSection]) -> Path:
    """Write ``sections`` to ``path``, adding the ``.md`` suffix when missing."""
    target = Path(path)
    if target.suffix != ".md":
        target = target.with_name(target.name + ".md")
    return write_text(target, render_markdown(sections))
