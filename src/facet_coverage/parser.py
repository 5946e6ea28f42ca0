"""Markdown parser for facet requirement documents.

Splits a requirement document into sections (one per heading) with stable
slugs, and collects sub-facet markers found inside each section.

Supported syntax:
    ## Guest Checkout            -> slug "guest-checkout"
    ## Guest Checkout            -> slug "guest" (explicit anchor on the
    [](#guest)                      first non-blank line after the heading)
    <!-- @facet:tls -->          -> sub-facet marker "tls" (type "comment")
    [](#card-masking)            -> sub-facet marker "card-masking" (type "link")

Usage:
    >>> from facet_coverage.parser import FacetParser
    >>> parsed = FacetParser().parse_content("# Checkout\\n\\n## Guest Flow\\n", "business.md")
    >>> [s.slug for s in parsed.sections]
    ['checkout', 'guest-flow']
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from facet_coverage.errors import MarkdownNotFoundError
from facet_coverage.models import (
    MarkdownSection,
    ParsedMarkdown,
    SubFacetMarker,
)

logger = structlog.get_logger(__name__)

# Regex patterns for parsing
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)(?:\s*\{#([\w-]+)\})?\s*$")
"""Matches headings, with an optional trailing ``{#id}`` anchor."""

ANCHOR_LINE_PATTERN = re.compile(r"^\s*\[\]\(#([\w-]+)\)\s*$")
"""Matches a line holding only an empty anchor link ``[](#id)``."""

COMMENT_MARKER_PATTERN = re.compile(r"<!--\s*@facet:([\w-]+)\s*-->")
"""Matches ``<!-- @facet:id -->`` sub-facet markers."""

LINK_MARKER_PATTERN = re.compile(r"\[\]\(#([\w-]+)\)")
"""Matches ``[](#id)`` sub-facet markers."""

_SLUG_STRIP = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_HYPHENS = re.compile(r"-+")


def slugify(title: str) -> str:
    """Convert a heading title to a URL-friendly slug.

    Idempotent: ``slugify(slugify(x)) == slugify(x)``.

    Example:
        >>> slugify("PCI-DSS  Requirements!")
        'pci-dss-requirements'
    """
    slug = title.lower().strip()
    slug = _SLUG_STRIP.sub("", slug)
    slug = _SLUG_SPACES.sub("-", slug)
    slug = _SLUG_HYPHENS.sub("-", slug)
    return slug.strip("-")


def _find_sub_facet_markers(
    lines: list[str],
    start: int,
    end: int,
    skip: int | None,
) -> list[SubFacetMarker]:
    """Collect sub-facet markers from ``lines[start:end]``.

    Args:
        lines: All document lines.
        start: First 0-indexed line to scan.
        end: Index one past the last line to scan.
        skip: 0-indexed line to ignore (the consumed explicit anchor).

    Returns:
        Markers in discovery order with 1-indexed line numbers.
    """
    markers: list[SubFacetMarker] = []
    for index in range(start, end):
        if index == skip:
            continue
        line = lines[index]
        for match in COMMENT_MARKER_PATTERN.finditer(line):
            markers.append(SubFacetMarker(id=match.group(1), line=index + 1, type="comment"))
        for match in LINK_MARKER_PATTERN.finditer(line):
            markers.append(SubFacetMarker(id=match.group(1), line=index + 1, type="link"))
    return markers


class FacetParser:
    """Parses facet markdown documents into sections."""

    def parse_file(self, file_path: Path | str) -> ParsedMarkdown:
        """Parse a markdown file.

        Raises:
            MarkdownNotFoundError: If the file does not exist.
        """
        path = Path(file_path)
        if not path.is_file():
            raise MarkdownNotFoundError(path)
        return self.parse_content(path.read_text(encoding="utf-8"), str(file_path))

    def parse_content(self, content: str, file_path: str = "") -> ParsedMarkdown:
        """Parse markdown content and extract sections.

        Two passes: the first finds headings (and their explicit anchors), the
        second assembles each section from its heading to the line before the
        next heading. Content without headings yields no sections.

        Args:
            content: Markdown text.
            file_path: Path recorded on the result.

        Returns:
            ParsedMarkdown with sections in document order.
        """
        lines = content.split("\n")

        # (level, title, 0-indexed line, explicit id, 0-indexed anchor line)
        headings: list[tuple[int, str, int, str | None, int | None]] = []
        for index, line in enumerate(lines):
            match = HEADING_PATTERN.match(line)
            if not match:
                continue
            explicit_id = match.group(3)
            anchor_index = self._find_anchor_line(lines, index)
            if anchor_index is not None:
                anchor = ANCHOR_LINE_PATTERN.match(lines[anchor_index])
                if anchor:
                    explicit_id = anchor.group(1)
            headings.append(
                (len(match.group(1)), match.group(2).strip(), index, explicit_id, anchor_index)
            )

        sections: list[MarkdownSection] = []
        for position, (level, title, index, explicit_id, anchor_index) in enumerate(headings):
            next_index = headings[position + 1][2] if position + 1 < len(headings) else len(lines)
            body_start = (anchor_index if anchor_index is not None else index) + 1

            sections.append(
                MarkdownSection(
                    title=title,
                    slug=explicit_id or slugify(title),
                    level=level,
                    start_line=index + 1,
                    end_line=next_index,
                    content="\n".join(lines[body_start:next_index]).strip(),
                    explicit_id=explicit_id,
                    sub_facets=_find_sub_facet_markers(lines, index + 1, next_index, anchor_index),
                )
            )

        logger.debug("markdown_parsed", file=file_path, sections=len(sections))
        return ParsedMarkdown(file=file_path, sections=sections)

    @staticmethod
    def _find_anchor_line(lines: list[str], heading_index: int) -> int | None:
        """Return the index of an explicit anchor line following a heading."""
        for index in range(heading_index + 1, len(lines)):
            line = lines[index]
            if not line.strip():
                continue
            if ANCHOR_LINE_PATTERN.match(line):
                return index
            return None
        return None

    def find_section(self, parsed: ParsedMarkdown, slug: str) -> MarkdownSection | None:
        """Find the first section with the given slug."""
        return next((s for s in parsed.sections if s.slug == slug), None)

    def section_exists(self, file_path: Path | str, section_slug: str) -> bool:
        """Check if a section exists in a file. Missing files have no sections."""
        try:
            parsed = self.parse_file(file_path)
        except MarkdownNotFoundError:
            return False
        return self.find_section(parsed, section_slug) is not None

    def get_section_slugs(self, file_path: Path | str) -> list[str]:
        """Get all section slugs from a file, in document order."""
        return [s.slug for s in self.parse_file(file_path).sections]


__all__ = [
    "ANCHOR_LINE_PATTERN",
    "COMMENT_MARKER_PATTERN",
    "HEADING_PATTERN",
    "LINK_MARKER_PATTERN",
    "FacetParser",
    "slugify",
]
