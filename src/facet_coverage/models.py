"""Pydantic models for facet-coverage.

Defines the durable structure schema (``structure.json``), the parser's
intermediate section types, scanner output, and the coverage, validation
and ID-change reports handed to the CLI and other consumers.

All models serialize with the camelCase keys of the durable schema while
keeping snake_case attribute names in Python:

    >>> facet = Facet.model_validate({
    ...     "id": "business:guest-checkout",
    ...     "source": {"file": "facets/business.md", "section": "guest-checkout"},
    ...     "type": "business",
    ... })
    >>> facet.is_sub_facet
    False
    >>> facet.to_json_dict()["source"]
    {'file': 'facets/business.md', 'section': 'guest-checkout'}
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
)


class _SchemaModel(BaseModel):
    """Base for models that serialize with camelCase keys."""

    model_config = _MODEL_CONFIG

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict with schema keys, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


# =============================================================================
# Durable structure schema
# =============================================================================


class FacetSource(_SchemaModel):
    """Location of a facet inside its requirement document.

    Attributes:
        file: Path of the document, relative to the feature directory.
        section: Section slug within the document.
        line: Line number, set for sub-facets.
    """

    file: str = Field(..., min_length=1)
    section: str = Field(..., min_length=1)
    line: int | None = Field(default=None, ge=1)

    @property
    def key(self) -> str:
        """Source key ``file#section`` used to match facets across runs."""
        return f"{self.file}#{self.section}"


class Facet(_SchemaModel):
    """A single trackable requirement.

    Attributes:
        id: Globally unique identifier (e.g., ``compliance:pci-dss``).
        source: Document and section the facet is declared in.
        type: Free-form category label (business, compliance, ux, ...).
        title: Human-readable title (the section heading).
        description: Optional description.
        parent_id: Parent facet ID for sub-facets.
        is_sub_facet: Whether the facet came from a sub-facet marker.
    """

    id: str = Field(..., min_length=1)
    source: FacetSource
    type: str = Field(..., min_length=1)
    title: str | None = None
    description: str | None = None
    parent_id: str | None = None
    is_sub_facet: bool = False


class FacetStructure(_SchemaModel):
    """Persisted list of facets for one feature."""

    feature: str = Field(..., min_length=1)
    facets: list[Facet]
    metadata: dict[str, Any] | None = None


# =============================================================================
# Document parser output
# =============================================================================


class SubFacetMarker(_SchemaModel):
    """Sub-facet marker found inside a section.

    Attributes:
        id: Local marker ID; combined with the parent ID as ``parent/id``.
        line: Absolute 1-indexed line number of the marker.
        type: ``comment`` for ``<!-- @facet:id -->``, ``link`` for ``[](#id)``.
    """

    id: str
    line: int
    type: Literal["comment", "link"]


class MarkdownSection(_SchemaModel):
    """A heading and the content up to the next heading."""

    title: str
    slug: str
    level: int = Field(..., ge=1, le=6)
    start_line: int
    end_line: int
    content: str = ""
    explicit_id: str | None = None
    sub_facets: list[SubFacetMarker] = Field(default_factory=list)


class ParsedMarkdown(_SchemaModel):
    """All sections of one requirement document."""

    file: str
    sections: list[MarkdownSection] = Field(default_factory=list)


# =============================================================================
# Scanner output
# =============================================================================


class UnlinkedTest(_SchemaModel):
    """A test that declares no facets."""

    __test__ = False

    file: str
    title: str
    full_title: str
    line: int


class TestLink(UnlinkedTest):
    """A test and the facet IDs it declares coverage for."""

    __test__ = False

    facet_ids: list[str] = Field(default_factory=list)


class ScanResult(_SchemaModel):
    """Aggregate scanner output for a set of test files."""

    linked_tests: list[TestLink] = Field(default_factory=list)
    unlinked_tests: list[UnlinkedTest] = Field(default_factory=list)


# =============================================================================
# Coverage report
# =============================================================================


class FacetCoverage(_SchemaModel):
    """Coverage of a single facet."""

    facet: Facet
    covered: bool
    covered_by: list[TestLink] = Field(default_factory=list)


class TypeCoverage(_SchemaModel):
    """Coverage aggregated over one facet type."""

    type: str
    total: int = Field(..., ge=0)
    covered: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)


class FeatureCoverage(_SchemaModel):
    """Coverage of one feature (one structure file)."""

    feature: str
    path: str
    total_facets: int = Field(..., ge=0)
    covered_facets: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    by_type: list[TypeCoverage] = Field(default_factory=list)
    facets: list[FacetCoverage] = Field(default_factory=list)


class CoverageSummary(_SchemaModel):
    """Global coverage statistics."""

    total_facets: int = Field(..., ge=0)
    covered_facets: int = Field(..., ge=0)
    uncovered_facets: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)


class CoverageReport(_SchemaModel):
    """Complete coverage report.

    Attributes:
        timestamp: ISO-8601 UTC timestamp of report generation.
        summary: Global statistics.
        by_type: Coverage per facet type across all features, sorted by type.
        features: Per-feature coverage details.
        tests: All linked tests found.
        uncovered: Facets without any linked test.
        unlinked_tests: Tests without facet annotations.
    """

    timestamp: str
    summary: CoverageSummary
    by_type: list[TypeCoverage] = Field(default_factory=list)
    features: list[FeatureCoverage] = Field(default_factory=list)
    tests: list[TestLink] = Field(default_factory=list)
    uncovered: list[Facet] = Field(default_factory=list)
    unlinked_tests: list[UnlinkedTest] = Field(default_factory=list)


class ThresholdResult(_SchemaModel):
    """Outcome of comparing a report against configured thresholds."""

    passed: bool
    failures: list[str] = Field(default_factory=list)


# =============================================================================
# Validation
# =============================================================================

IssueType = Literal[
    "missing-source",
    "missing-section",
    "invalid-facet-id",
    "orphan-test",
    "duplicate-id",
    "orphan-subfacet",
]


class ValidationIssue(_SchemaModel):
    """A single validation error or warning."""

    type: IssueType
    message: str
    file: str | None = None
    line: int | None = None
    facet_id: str | None = None


class ValidationResult(_SchemaModel):
    """Validation outcome: valid when there are no errors."""

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)


# =============================================================================
# ID changes
# =============================================================================


class IDChange(_SchemaModel):
    """One facet ID change between two structure generations."""

    type: Literal["added", "removed", "renamed"]
    old_id: str | None = None
    new_id: str | None = None
    file: str
    section: str
    title: str = ""


class IDChangeReport(_SchemaModel):
    """All ID changes detected between two generations."""

    has_changes: bool = False
    added: list[IDChange] = Field(default_factory=list)
    removed: list[IDChange] = Field(default_factory=list)
    renamed: list[IDChange] = Field(default_factory=list)


__all__ = [
    "CoverageReport",
    "CoverageSummary",
    "Facet",
    "FacetCoverage",
    "FacetSource",
    "FacetStructure",
    "FeatureCoverage",
    "IDChange",
    "IDChangeReport",
    "IssueType",
    "MarkdownSection",
    "ParsedMarkdown",
    "ScanResult",
    "SubFacetMarker",
    "TestLink",
    "ThresholdResult",
    "TypeCoverage",
    "UnlinkedTest",
    "ValidationIssue",
    "ValidationResult",
]
