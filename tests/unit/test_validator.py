"""Unit tests for the integrity validator.

Tests the error checks (missing source/section, duplicate ID, orphan
sub-facet) and the warning checks (invalid ID, orphan tests).
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from facet_coverage.config import FacetConfig, ValidationOptions
from facet_coverage.models import Facet, FacetSource, FacetStructure, TestLink, UnlinkedTest
from facet_coverage.validator import Validator, collect_facet_locations, is_valid_path_reference

StructureWriter = Callable[[Path, Any], Path]


def _facet(facet_id: str, section: str = "checkout", **kwargs: Any) -> Facet:
    return Facet(
        id=facet_id,
        source=FacetSource(file="facets/business.md", section=section),
        type="business",
        **kwargs,
    )


def _link(*facet_ids: str) -> TestLink:
    return TestLink(
        file="tests/a.spec.ts",
        title="t",
        full_title="t",
        line=1,
        facet_ids=list(facet_ids),
    )


@pytest.fixture
def validator() -> Validator:
    """Create a validator with default configuration."""
    return Validator(FacetConfig())


class TestValidateProject:
    """Tests for Validator.validate() on the fixture project."""

    @pytest.mark.requirement("FR-040")
    def test_fixture_project_is_valid(self, validator: Validator, facet_project: Path) -> None:
        """Test the fixture has no errors and warns about untested facets."""
        result = validator.validate(facet_project)

        assert result.valid is True
        assert result.errors == []
        assert sorted(w.facet_id or "" for w in result.warnings) == [
            "business:checkout",
            "business:guest-checkout/no-signup",
        ]
        assert {w.type for w in result.warnings} == {"orphan-test"}
        assert validator.is_valid(facet_project) is True

    @pytest.mark.requirement("FR-040")
    def test_missing_source_and_section(
        self,
        validator: Validator,
        facet_project: Path,
        structure_writer: StructureWriter,
    ) -> None:
        """Test unknown documents and sections are errors."""
        structure_writer(
            facet_project / "features" / "checkout",
            {
                "feature": "checkout",
                "facets": [
                    {
                        "id": "business:gone",
                        "source": {"file": "facets/gone.md", "section": "gone"},
                        "type": "business",
                    },
                    {
                        "id": "business:payment-options",
                        "source": {"file": "facets/business.md", "section": "payment-options"},
                        "type": "business",
                    },
                ],
            },
        )

        result = validator.validate(facet_project)

        assert result.valid is False
        assert [(e.type, e.facet_id) for e in result.errors] == [
            ("missing-source", "business:gone"),
            ("missing-section", "business:payment-options"),
        ]

    @pytest.mark.requirement("FR-040")
    def test_undecodable_source_reports_missing_sections(
        self, validator: Validator, facet_project: Path
    ) -> None:
        """Test a source document that is not UTF-8 yields missing-section errors."""
        business = facet_project / "features" / "checkout" / "facets" / "business.md"
        business.write_bytes(b"## Flow\n\xff\xfe bad\n")

        result = validator.validate(facet_project)

        assert result.valid is False
        assert [(e.type, e.facet_id) for e in result.errors] == [
            ("missing-section", "business:checkout"),
            ("missing-section", "business:guest-checkout"),
            ("missing-section", "business:payments"),
        ]

    @pytest.mark.requirement("FR-040")
    def test_source_checks_can_be_disabled(
        self,
        facet_project: Path,
        structure_writer: StructureWriter,
    ) -> None:
        """Test require_source_exists=False skips document checks."""
        structure_writer(
            facet_project / "features" / "checkout",
            {
                "feature": "checkout",
                "facets": [
                    {
                        "id": "business:gone",
                        "source": {"file": "facets/gone.md", "section": "gone"},
                        "type": "business",
                    }
                ],
            },
        )
        config = FacetConfig(validation=ValidationOptions(require_source_exists=False))

        assert Validator(config).validate(facet_project).valid is True


class TestValidateStructures:
    """Tests for Validator.validate_structures() on in-memory data."""

    @pytest.fixture
    def validator(self) -> Validator:
        """Validator that does not touch the filesystem."""
        return Validator(FacetConfig(validation=ValidationOptions(require_source_exists=False)))

    @pytest.mark.requirement("FR-041")
    def test_duplicate_id_across_structures(self, validator: Validator) -> None:
        """Test an ID in two structures is one error on the second structure."""
        structures = {
            "a/.facet/structure.json": FacetStructure(feature="a", facets=[_facet("business:x")]),
            "b/.facet/structure.json": FacetStructure(feature="b", facets=[_facet("business:x")]),
        }

        result = validator.validate_structures(structures, [_link("business:x")])

        assert [(e.type, e.file) for e in result.errors] == [
            ("duplicate-id", "b/.facet/structure.json")
        ]

    @pytest.mark.requirement("FR-041")
    def test_orphan_sub_facet_single_error(self, validator: Validator) -> None:
        """Test a sub-facet whose parent is absent is one error naming the sub-facet."""
        structure = FacetStructure(
            feature="a",
            facets=[
                _facet("business:checkout"),
                _facet(
                    "business:missing/child",
                    parent_id="business:missing",
                    is_sub_facet=True,
                ),
            ],
        )

        result = validator.validate_structures(
            {"a/.facet/structure.json": structure},
            [_link("business:checkout", "business:missing/child")],
        )

        orphans = [e for e in result.errors if e.type == "orphan-subfacet"]
        assert len(orphans) == 1
        assert orphans[0].facet_id == "business:missing/child"
        assert "business:missing/child" in orphans[0].message
        assert result.valid is False

    @pytest.mark.requirement("FR-041")
    def test_invalid_facet_id_warning(self, validator: Validator) -> None:
        """Test non-standard IDs are warnings, not errors."""
        structure = FacetStructure(feature="a", facets=[_facet("Checkout Flow")])

        result = validator.validate_structures({"s.json": structure}, [_link("Checkout Flow")])

        assert result.valid is True
        assert [w.type for w in result.warnings] == ["invalid-facet-id"]

    @pytest.mark.requirement("FR-042")
    def test_unknown_reference_warning(self, validator: Validator) -> None:
        """Test a test referencing an unknown ID is an orphan-test warning."""
        structure = FacetStructure(feature="a", facets=[_facet("business:checkout")])

        result = validator.validate_structures(
            {"s.json": structure},
            [_link("business:checkout", "business:nope")],
        )

        assert [(w.type, w.facet_id, w.line) for w in result.warnings] == [
            ("orphan-test", "business:nope", 1)
        ]

    @pytest.mark.requirement("FR-042")
    def test_path_reference_is_accepted(self, validator: Validator) -> None:
        """Test document.md#section references resolve against facet sources."""
        structures = {"s.json": FacetStructure(feature="a", facets=[_facet("business:checkout")])}

        assert is_valid_path_reference("business.md#checkout", structures) is True
        assert is_valid_path_reference("business.md#other", structures) is False
        result = validator.validate_structures(
            structures, [_link("business:checkout", "business.md#checkout")]
        )
        assert result.warnings == []

    @pytest.mark.requirement("FR-042")
    def test_unlinked_tests_reported_when_required(self) -> None:
        """Test require_all_tests_linked reports tests without annotations."""
        config = FacetConfig(
            validation=ValidationOptions(
                require_source_exists=False,
                require_all_tests_linked=True,
            )
        )
        structures = {"s.json": FacetStructure(feature="a", facets=[_facet("business:checkout")])}
        unlinked = UnlinkedTest(file="tests/a.spec.ts", title="plain", full_title="S > plain", line=7)

        result = Validator(config).validate_structures(
            structures, [_link("business:checkout")], [unlinked]
        )

        assert [(w.type, w.line) for w in result.warnings] == [("orphan-test", 7)]
        assert "S > plain" in result.warnings[0].message

    @pytest.mark.requirement("FR-041")
    def test_collect_facet_locations(self) -> None:
        """Test the first structure wins the location of a repeated ID."""
        structures = {
            "a.json": FacetStructure(feature="a", facets=[_facet("business:x")]),
            "b.json": FacetStructure(
                feature="b", facets=[_facet("business:x"), _facet("business:y", "y")]
            ),
        }

        locations, duplicates = collect_facet_locations(structures)

        assert locations == {"business:x": "a.json", "business:y": "b.json"}
        assert [d.facet_id for d in duplicates] == ["business:x"]
