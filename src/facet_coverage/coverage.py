"""Coverage calculation for facets.

Joins structures with scanned test links into a CoverageReport and
evaluates configured thresholds.

Coverage Formula: round(facets_with_at_least_one_test / total_facets * 100),
defined as 100 when there are no facets.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from facet_coverage.config import FacetConfig
from facet_coverage.models import (
    CoverageReport,
    CoverageSummary,
    Facet,
    FacetCoverage,
    FacetStructure,
    FeatureCoverage,
    ScanResult,
    TestLink,
    ThresholdResult,
    TypeCoverage,
)
from facet_coverage.scanner import TestScanner
from facet_coverage.structure import StructureReader, feature_dir_for

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = structlog.get_logger(__name__)


def coverage_percentage(covered: int, total: int) -> int:
    """Percentage rounded half up; 100 when ``total`` is 0."""
    if total == 0:
        return 100
    return math.floor(covered / total * 100 + 0.5)


def index_tests_by_facet(test_links: list[TestLink]) -> dict[str, list[TestLink]]:
    """Build a facet ID -> referencing test links index."""
    index: dict[str, list[TestLink]] = {}
    for link in test_links:
        for facet_id in link.facet_ids:
            index.setdefault(facet_id, []).append(link)
    return index


def calculate_type_coverage(facet_coverages: list[FacetCoverage]) -> list[TypeCoverage]:
    """Aggregate coverage per facet type, sorted by type name."""
    totals: dict[str, list[int]] = {}
    for fc in facet_coverages:
        stats = totals.setdefault(fc.facet.type, [0, 0])
        stats[0] += 1
        if fc.covered:
            stats[1] += 1

    return [
        TypeCoverage(
            type=facet_type,
            total=total,
            covered=covered,
            percentage=coverage_percentage(covered, total),
        )
        for facet_type, (total, covered) in sorted(totals.items())
    ]


def calculate_feature_coverage(
    structure: FacetStructure,
    structure_file: str,
    facet_to_tests: Mapping[str, list[TestLink]],
) -> FeatureCoverage:
    """Calculate coverage for a single feature."""
    facets = [
        FacetCoverage(
            facet=facet,
            covered=facet.id in facet_to_tests,
            covered_by=list(facet_to_tests.get(facet.id, [])),
        )
        for facet in structure.facets
    ]
    covered = sum(1 for fc in facets if fc.covered)

    return FeatureCoverage(
        feature=structure.feature,
        path=str(feature_dir_for(structure_file)),
        total_facets=len(facets),
        covered_facets=covered,
        percentage=coverage_percentage(covered, len(facets)),
        by_type=calculate_type_coverage(facets),
        facets=facets,
    )


def build_report(
    structures: Mapping[str, FacetStructure],
    scan_result: ScanResult,
) -> CoverageReport:
    """Combine structures and scanned tests into a coverage report.

    Args:
        structures: Structure file path -> structure, in the order to report.
        scan_result: Linked and unlinked tests.

    Returns:
        CoverageReport stamped with the current UTC time.
    """
    facet_to_tests = index_tests_by_facet(scan_result.linked_tests)

    features: list[FeatureCoverage] = []
    all_facets: list[FacetCoverage] = []
    uncovered: list[Facet] = []

    for structure_file, structure in structures.items():
        feature = calculate_feature_coverage(structure, structure_file, facet_to_tests)
        features.append(feature)
        all_facets.extend(feature.facets)
        uncovered.extend(fc.facet for fc in feature.facets if not fc.covered)

    total = len(all_facets)
    covered = total - len(uncovered)

    return CoverageReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        summary=CoverageSummary(
            total_facets=total,
            covered_facets=covered,
            uncovered_facets=total - covered,
            percentage=coverage_percentage(covered, total),
        ),
        by_type=calculate_type_coverage(all_facets),
        features=features,
        tests=list(scan_result.linked_tests),
        uncovered=uncovered,
        unlinked_tests=list(scan_result.unlinked_tests),
    )


class CoverageCalculator:
    """Calculates coverage metrics for facets.

    Attributes:
        config: Configuration with structure/test locations and thresholds.

    Example:
        >>> calculator = CoverageCalculator(get_config())
        >>> report = calculator.calculate_coverage(Path("."))
        >>> calculator.check_thresholds(report).passed
        True
    """

    def __init__(
        self,
        config: FacetConfig | None = None,
        *,
        structure_reader: StructureReader | None = None,
        test_scanner: TestScanner | None = None,
    ) -> None:
        self.config = config or FacetConfig()
        self.structure_reader = structure_reader or StructureReader(self.config)
        self.test_scanner = test_scanner or TestScanner(self.config)
        self._log = logger.bind(
            component="CoverageCalculator",
            global_threshold=self.config.thresholds.global_,
        )

    def calculate_coverage(self, cwd: Path | str | None = None) -> CoverageReport:
        """Read structures, scan tests and build the coverage report."""
        structures = self.structure_reader.read_all_structures(cwd)
        scan_result = self.test_scanner.scan_all_tests(cwd)
        report = build_report(structures, scan_result)

        self._log.info(
            "coverage_calculated",
            features=len(report.features),
            total=report.summary.total_facets,
            covered=report.summary.covered_facets,
            percentage=report.summary.percentage,
        )
        return report

    def check_thresholds(self, report: CoverageReport) -> ThresholdResult:
        """Check a report against the configured thresholds.

        The global percentage passes when it is at least the global threshold.
        Each per-type threshold is compared with that type's percentage;
        types absent from the report are not checked.
        """
        thresholds = self.config.thresholds
        failures: list[str] = []

        if report.summary.percentage < thresholds.global_:
            failures.append(
                f"Global coverage {report.summary.percentage}% is below threshold "
                f"of {thresholds.global_:g}%"
            )

        by_type = {tc.type: tc for tc in report.by_type}
        for facet_type, threshold in thresholds.by_type.items():
            type_coverage = by_type.get(facet_type)
            if type_coverage is not None and type_coverage.percentage < threshold:
                failures.append(
                    f"{facet_type} coverage {type_coverage.percentage}% is below threshold "
                    f"of {threshold:g}%"
                )

        return ThresholdResult(passed=not failures, failures=failures)

    def get_facet_coverage(
        self,
        facet_id: str,
        cwd: Path | str | None = None,
    ) -> FacetCoverage | None:
        """Get coverage for a specific facet, or None if it is unknown."""
        report = self.calculate_coverage(cwd)
        for feature in report.features:
            for fc in feature.facets:
                if fc.facet.id == facet_id:
                    return fc
        return None


__all__ = [
    "CoverageCalculator",
    "build_report",
    "calculate_feature_coverage",
    "calculate_type_coverage",
    "coverage_percentage",
    "index_tests_by_facet",
]
