"""Unit tests for coverage calculation and thresholds."""

from __future__ import annotations

from pathlib import Path

import pytest

from facet_coverage.config import FacetConfig, Thresholds
from facet_coverage.coverage import CoverageCalculator, build_report, coverage_percentage
from facet_coverage.models import (
    CoverageReport,
    CoverageSummary,
    Facet,
    FacetSource,
    FacetStructure,
    ScanResult,
    TestLink,
    TypeCoverage,
)


def _report(percentage: int, by_type: list[TypeCoverage] | None = None) -> CoverageReport:
    return CoverageReport(
        timestamp="2026-01-01T00:00:00+00:00",
        summary=CoverageSummary(
            total_facets=100,
            covered_facets=percentage,
            uncovered_facets=100 - percentage,
            percentage=percentage,
        ),
        by_type=by_type or [],
    )


class TestCoveragePercentage:
    """Tests for coverage_percentage()."""

    @pytest.mark.requirement("FR-030")
    @pytest.mark.parametrize(
        ("covered", "total", "expected"),
        [(0, 0, 100), (0, 3, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100)],
    )
    def test_rounding(self, covered: int, total: int, expected: int) -> None:
        """Test percentages round half up and an empty set is 100%."""
        assert coverage_percentage(covered, total) == expected


class TestBuildReport:
    """Tests for build_report()."""

    @pytest.mark.requirement("FR-031")
    def test_build_report_from_models(self) -> None:
        """Test facets referenced by at least one test count as covered."""
        source = FacetSource(file="facets/ux.md", section="nav")
        structure = FacetStructure(
            feature="shell",
            facets=[
                Facet(id="ux:nav", source=source, type="ux"),
                Facet(id="ux:footer", source=source, type="ux"),
            ],
        )
        link = TestLink(
            file="tests/shell.spec.ts",
            title="nav",
            full_title="nav",
            line=3,
            facet_ids=["ux:nav", "ux:unknown"],
        )

        report = build_report(
            {"features/shell/.facet/structure.json": structure},
            ScanResult(linked_tests=[link]),
        )

        assert report.summary.percentage == 50
        assert [f.id for f in report.uncovered] == ["ux:footer"]
        feature = report.features[0]
        assert feature.path == "features/shell"
        assert feature.facets[0].covered_by == [link]
        assert feature.facets[1].covered_by == []

    @pytest.mark.requirement("FR-031")
    def test_empty_inputs(self) -> None:
        """Test no structures and no tests give a 100% report."""
        report = build_report({}, ScanResult())

        assert report.summary.total_facets == 0
        assert report.summary.percentage == 100
        assert report.features == []


class TestCoverageCalculator:
    """Tests for CoverageCalculator against the fixture project."""

    @pytest.mark.requirement("FR-032")
    def test_calculate_coverage(self, facet_project: Path) -> None:
        """Test summary, per-type and per-feature numbers."""
        report = CoverageCalculator(FacetConfig()).calculate_coverage(facet_project)

        assert report.summary == CoverageSummary(
            total_facets=5, covered_facets=3, uncovered_facets=2, percentage=60
        )
        assert [(t.type, t.total, t.covered, t.percentage) for t in report.by_type] == [
            ("business", 4, 2, 50),
            ("compliance", 1, 1, 100),
        ]
        assert [f.id for f in report.uncovered] == [
            "business:checkout",
            "business:guest-checkout/no-signup",
        ]
        assert [t.title for t in report.unlinked_tests] == ["loads page"]
        assert len(report.tests) == 2

    @pytest.mark.requirement("FR-032")
    def test_deterministic(self, facet_project: Path) -> None:
        """Test two runs on unchanged inputs agree apart from the timestamp."""
        calculator = CoverageCalculator(FacetConfig())

        first = calculator.calculate_coverage(facet_project)
        second = calculator.calculate_coverage(facet_project)

        assert first.summary == second.summary
        assert first.by_type == second.by_type
        assert first.features == second.features

    @pytest.mark.requirement("FR-032")
    def test_get_facet_coverage(self, facet_project: Path) -> None:
        """Test single-facet lookup."""
        calculator = CoverageCalculator(FacetConfig())

        coverage = calculator.get_facet_coverage("compliance:pci-dss", facet_project)

        assert coverage is not None
        assert coverage.covered is True
        assert [t.title for t in coverage.covered_by] == ["payment options"]
        assert calculator.get_facet_coverage("ux:missing", facet_project) is None


class TestCheckThresholds:
    """Tests for CoverageCalculator.check_thresholds()."""

    @pytest.mark.requirement("FR-033")
    def test_equal_to_threshold_passes(self) -> None:
        """Test a percentage exactly at the threshold passes."""
        calculator = CoverageCalculator(FacetConfig(thresholds=Thresholds(global_=75)))

        assert calculator.check_thresholds(_report(75)).passed is True

    @pytest.mark.requirement("FR-033")
    def test_one_below_threshold_fails(self) -> None:
        """Test one unit below the threshold fails with a message."""
        calculator = CoverageCalculator(FacetConfig(thresholds=Thresholds(global_=75)))

        result = calculator.check_thresholds(_report(74))

        assert result.passed is False
        assert result.failures == ["Global coverage 74% is below threshold of 75%"]

    @pytest.mark.requirement("FR-033")
    def test_type_thresholds(self) -> None:
        """Test per-type thresholds apply only to types in the report."""
        config = FacetConfig(
            thresholds=Thresholds(global_=0, by_type={"compliance": 100, "ux": 90})
        )
        report = _report(
            80,
            [TypeCoverage(type="compliance", total=4, covered=3, percentage=75)],
        )

        result = CoverageCalculator(config).check_thresholds(report)

        assert result.failures == ["compliance coverage 75% is below threshold of 100%"]
