"""Error types for facet-coverage.

Structural errors (unreadable or malformed structure files) are raised as
exceptions carrying the offending path. Validation findings are not
exceptions; see ``facet_coverage.models.ValidationIssue``.

Exit Code Mapping (CLI):
    1: Threshold or validation failure
    2: Structural or configuration error
"""

from __future__ import annotations

from pathlib import Path


class FacetCoverageError(Exception):
    """Base class for all facet-coverage errors."""

    exit_code: int = 2


class ConfigError(FacetCoverageError):
    """Configuration file could not be read or is invalid.

    Attributes:
        path: Path to the configuration file.
    """

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{message}: {self.path}")


class StructureError(FacetCoverageError):
    """A structure file could not be loaded.

    Attributes:
        path: Path to the structure file.

    Example:
        >>> raise StructureError("features/a/.facet/structure.json", "Missing 'feature' field")
        Traceback (most recent call last):
        ...
        StructureError: Missing 'feature' field in structure file: features/a/.facet/structure.json
    """

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        self.reason = message
        super().__init__(f"{message} in structure file: {self.path}")


class StructureNotFoundError(StructureError):
    """Structure file does not exist."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "File not found")


class StructureParseError(StructureError):
    """Structure file is not valid JSON."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "Invalid JSON")


class StructureReadError(StructureError):
    """Structure file exists but could not be read."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "Cannot read file")


class StructureValidationError(StructureError):
    """Structure file is valid JSON but has the wrong shape."""


class MarkdownNotFoundError(FacetCoverageError, FileNotFoundError):
    """Requirement document does not exist."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"Markdown file not found: {self.path}")


__all__ = [
    "ConfigError",
    "FacetCoverageError",
    "MarkdownNotFoundError",
    "StructureError",
    "StructureNotFoundError",
    "StructureParseError",
    "StructureReadError",
    "StructureValidationError",
]
