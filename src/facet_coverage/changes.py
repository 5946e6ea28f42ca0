"""Facet ID change detection between structure generations.

Compares a previously written ``structure.json`` with freshly parsed facets
and classifies each difference:
- Renamed: same source location (``file#section``, plus the local ID for
  sub-facets), different ID
- Removed: ID and source location both gone
- Added: new ID that is not the new half of a rename

A missing or unreadable previous structure is treated as first-time
generation and yields an empty report.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from facet_coverage.models import (
    Facet,
    FacetStructure,
    IDChange,
    IDChangeReport,
    TestLink,
)

if TYPE_CHECKING:
    from facet_coverage.scanner import TestScanner

logger = structlog.get_logger(__name__)


def _load_previous(existing_path: Path) -> FacetStructure | None:
    try:
        return FacetStructure.model_validate_json(existing_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as e:
        logger.debug("previous_structure_unreadable", path=str(existing_path), error=str(e))
        return None


def _source_key(facet: Facet) -> str:
    """Match key across runs; sub-facets add their local ID to the parent section key."""
    if facet.is_sub_facet:
        return f"{facet.source.key}/{facet.id.rsplit('/', 1)[-1]}"
    return facet.source.key


def detect_changes(existing_path: Path | str, new_facets: list[Facet]) -> IDChangeReport:
    """Compare new facets with an existing structure file.

    Args:
        existing_path: Path to the previously written structure.json.
        new_facets: Facets about to be written.

    Returns:
        IDChangeReport; empty when there is no usable previous structure.

    Example:
        >>> report = detect_changes("features/checkout/.facet/structure.json", facets)
        >>> [(c.old_id, c.new_id) for c in report.renamed]
        [('business:guest-flow', 'business:guest-purchase-flow')]
    """
    path = Path(existing_path)
    if not path.exists():
        return IDChangeReport()

    existing = _load_previous(path)
    if existing is None:
        return IDChangeReport()

    existing_by_id = {facet.id: facet for facet in existing.facets}
    new_by_id = {facet.id: facet for facet in new_facets}
    new_by_source = {_source_key(facet): facet for facet in new_facets}

    renamed: list[IDChange] = []
    removed: list[IDChange] = []

    for facet_id, facet in existing_by_id.items():
        if facet_id in new_by_id:
            continue
        new_facet = new_by_source.get(_source_key(facet))
        if new_facet is not None and new_facet.id != facet_id:
            renamed.append(
                IDChange(
                    type="renamed",
                    old_id=facet_id,
                    new_id=new_facet.id,
                    file=facet.source.file,
                    section=facet.source.section,
                    title=new_facet.title or "",
                )
            )
        elif new_facet is None:
            removed.append(
                IDChange(
                    type="removed",
                    old_id=facet_id,
                    file=facet.source.file,
                    section=facet.source.section,
                    title=facet.title or "",
                )
            )

    renamed_new_ids = {change.new_id for change in renamed}
    added = [
        IDChange(
            type="added",
            new_id=facet_id,
            file=facet.source.file,
            section=facet.source.section,
            title=facet.title or "",
        )
        for facet_id, facet in new_by_id.items()
        if facet_id not in existing_by_id and facet_id not in renamed_new_ids
    ]

    return IDChangeReport(
        has_changes=bool(added or removed or renamed),
        added=added,
        removed=removed,
        renamed=renamed,
    )


def find_affected_tests(
    report: IDChangeReport,
    scanner: TestScanner,
    cwd: Path | str | None = None,
) -> dict[str, list[TestLink]]:
    """Find tests still referencing removed or renamed (old) facet IDs.

    Args:
        report: Change report from :func:`detect_changes`.
        scanner: Scanner used to collect test links.
        cwd: Base directory for test discovery.

    Returns:
        Mapping of old facet ID to the tests referencing it; IDs with no
        referencing tests are omitted.
    """
    changed_ids = [c.old_id for c in [*report.removed, *report.renamed] if c.old_id]
    if not changed_ids:
        return {}

    links = scanner.scan_all_tests(cwd).linked_tests
    affected: dict[str, list[TestLink]] = {}
    for facet_id in changed_ids:
        tests = [link for link in links if facet_id in link.facet_ids]
        if tests:
            affected[facet_id] = tests
    return affected


def format_report(report: IDChangeReport) -> list[str]:
    """Format a change report as display lines.

    Returns:
        Lines for renamed, removed and added IDs; empty for an empty report.
    """
    lines: list[str] = []

    if report.renamed:
        lines.append("Renamed (tests may break):")
        for change in report.renamed:
            lines.append(f"  {change.old_id} -> {change.new_id}")
            if change.title:
                lines.append(f'    Title: "{change.title}"')
            old_section = (change.old_id or "").partition(":")[2] or change.section
            lines.append(f"    To keep the old ID, add [](#{old_section}) below the heading")

    if report.removed:
        lines.append("Removed:")
        lines.extend(f"  - {change.old_id}" for change in report.removed)

    if report.added:
        lines.append("Added:")
        lines.extend(f"  + {change.new_id}" for change in report.added)

    return lines


__all__ = [
    "detect_changes",
    "find_affected_tests",
    "format_report",
]
