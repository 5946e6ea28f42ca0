"""Integrity validation for structures and test links.

Errors (must fix):
    missing-source: facet source document does not exist
    missing-section: section slug not found in the source document
    duplicate-id: facet ID appears in more than one structure
    orphan-subfacet: sub-facet parent is not in the same structure

Warnings (should review):
    invalid-facet-id: ID does not follow ``[path/]*type:section[/sub-id]``
    orphan-test: test references an unknown facet, a facet has no tests,
        or (optionally) a test has no facet annotations
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from facet_coverage.config import FacetConfig
from facet_coverage.ids import is_valid_facet_id
from facet_coverage.models import (
    FacetStructure,
    TestLink,
    UnlinkedTest,
    ValidationIssue,
    ValidationResult,
)
from facet_coverage.parser import FacetParser
from facet_coverage.scanner import TestScanner
from facet_coverage.structure import StructureReader, feature_dir_for

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = structlog.get_logger(__name__)

PATH_REFERENCE_PATTERN = re.compile(r"^(.+\.md)#(.+)$")
"""Matches ``document.md#section`` references used instead of facet IDs."""


def collect_facet_locations(
    structures: Mapping[str, FacetStructure],
) -> tuple[dict[str, str], list[ValidationIssue]]:
    """Fold all structures into one facet ID -> structure file map.

    Returns:
        The map (first occurrence wins) and a duplicate-id error for each
        repeat, attributed to the structure where the repeat occurs.
    """
    locations: dict[str, str] = {}
    duplicates: list[ValidationIssue] = []
    for structure_file, structure in structures.items():
        for facet in structure.facets:
            if facet.id in locations:
                duplicates.append(
                    ValidationIssue(
                        type="duplicate-id",
                        message=f"Duplicate facet ID '{facet.id}' found in multiple structure files",
                        file=structure_file,
                        facet_id=facet.id,
                    )
                )
                continue
            locations[facet.id] = structure_file
    return locations, duplicates


def is_valid_path_reference(ref: str, structures: Mapping[str, FacetStructure]) -> bool:
    """Check a ``document.md#section`` reference against recorded sources."""
    match = PATH_REFERENCE_PATTERN.match(ref)
    if not match:
        return False
    file_path, section = match.groups()
    return any(
        facet.source.file.endswith(file_path) and facet.source.section == section
        for structure in structures.values()
        for facet in structure.facets
    )


class Validator:
    """Validates facet structures, source documents and test links.

    Attributes:
        config: Configuration with validation toggles.
    """

    def __init__(
        self,
        config: FacetConfig | None = None,
        *,
        structure_reader: StructureReader | None = None,
        test_scanner: TestScanner | None = None,
        parser: FacetParser | None = None,
    ) -> None:
        self.config = config or FacetConfig()
        self.structure_reader = structure_reader or StructureReader(self.config)
        self.test_scanner = test_scanner or TestScanner(self.config)
        self.parser = parser or FacetParser()
        self._log = logger.bind(component="Validator")

    def validate(self, cwd: Path | str | None = None) -> ValidationResult:
        """Read structures, scan tests and run every check."""
        structures = self.structure_reader.read_all_structures(cwd)
        scan_result = self.test_scanner.scan_all_tests(cwd)
        return self.validate_structures(
            structures,
            scan_result.linked_tests,
            scan_result.unlinked_tests,
        )

    def is_valid(self, cwd: Path | str | None = None) -> bool:
        """Quick validation check."""
        return self.validate(cwd).valid

    def validate_structures(
        self,
        structures: Mapping[str, FacetStructure],
        test_links: list[TestLink],
        unlinked_tests: list[UnlinkedTest] | None = None,
    ) -> ValidationResult:
        """Validate already-loaded structures against test links.

        Args:
            structures: Structure file path -> structure.
            test_links: Linked tests from the scanner.
            unlinked_tests: Tests without annotations; reported only when
                ``require_all_tests_linked`` is enabled.

        Returns:
            ValidationResult; valid when there are no errors.
        """
        locations, errors = collect_facet_locations(structures)
        warnings: list[ValidationIssue] = []

        for structure_file, structure in structures.items():
            result = self.validate_structure(structure, structure_file)
            errors.extend(result.errors)
            warnings.extend(result.warnings)

        referenced: set[str] = set()
        for link in test_links:
            for facet_id in link.facet_ids:
                referenced.add(facet_id)
                if facet_id in locations or is_valid_path_reference(facet_id, structures):
                    continue
                warnings.append(
                    ValidationIssue(
                        type="orphan-test",
                        message=f"Test references unknown facet ID '{facet_id}'",
                        file=link.file,
                        line=link.line,
                        facet_id=facet_id,
                    )
                )

        for facet_id, structure_file in locations.items():
            if facet_id not in referenced:
                warnings.append(
                    ValidationIssue(
                        type="orphan-test",
                        message=f"Facet '{facet_id}' is not covered by any test",
                        file=structure_file,
                        facet_id=facet_id,
                    )
                )

        if self.config.validation.require_all_tests_linked:
            for test in unlinked_tests or []:
                warnings.append(
                    ValidationIssue(
                        type="orphan-test",
                        message=f"Test '{test.full_title}' is not linked to any facet",
                        file=test.file,
                        line=test.line,
                    )
                )

        self._log.info("validation_complete", errors=len(errors), warnings=len(warnings))
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def validate_structure(
        self,
        structure: FacetStructure,
        structure_file: Path | str,
    ) -> ValidationResult:
        """Run the per-facet checks for one structure.

        Source documents resolve relative to the feature directory, two levels
        above the structure file.
        """
        options = self.config.validation
        feature_dir = feature_dir_for(structure_file)
        file_label = str(structure_file)
        facet_ids = {facet.id for facet in structure.facets}
        slug_cache: dict[Path, set[str]] = {}

        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        for facet in structure.facets:
            if options.require_source_exists:
                source_path = feature_dir / facet.source.file
                if not source_path.is_file():
                    errors.append(
                        ValidationIssue(
                            type="missing-source",
                            message=f"Source file not found: {facet.source.file}",
                            file=file_label,
                            facet_id=facet.id,
                        )
                    )
                    continue

                if options.require_section_exists and not facet.is_sub_facet:
                    if source_path not in slug_cache:
                        slug_cache[source_path] = self._section_slugs(source_path)
                    if facet.source.section not in slug_cache[source_path]:
                        errors.append(
                            ValidationIssue(
                                type="missing-section",
                                message=(
                                    f"Section '{facet.source.section}' not found in "
                                    f"{facet.source.file}"
                                ),
                                file=file_label,
                                facet_id=facet.id,
                            )
                        )

            if not is_valid_facet_id(facet.id):
                warnings.append(
                    ValidationIssue(
                        type="invalid-facet-id",
                        message=f"Facet ID '{facet.id}' uses non-standard format",
                        file=file_label,
                        facet_id=facet.id,
                    )
                )

            if facet.is_sub_facet and facet.parent_id and facet.parent_id not in facet_ids:
                errors.append(
                    ValidationIssue(
                        type="orphan-subfacet",
                        message=(
                            f"Sub-facet '{facet.id}' references non-existent parent "
                            f"'{facet.parent_id}'"
                        ),
                        file=file_label,
                        facet_id=facet.id,
                    )
                )

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _section_slugs(self, source_path: Path) -> set[str]:
        """Section slugs of a source document; empty if it cannot be read."""
        try:
            return set(self.parser.get_section_slugs(source_path))
        except (OSError, UnicodeDecodeError) as e:
            self._log.warning("source_unreadable", path=str(source_path), error=str(e))
            return set()


__all__ = [
    "PATH_REFERENCE_PATTERN",
    "Validator",
    "collect_facet_locations",
    "is_valid_path_reference",
]
