"""Structure store: read, write and generate ``structure.json`` files.

A structure file lists the facets of one feature. By convention it lives
at ``<feature>/.facet/structure.json`` and facet source paths are relative
to the feature directory (two levels above the structure file).

Example:
    >>> reader = StructureReader(config)
    >>> structures = reader.read_all_structures(Path("."))
    >>> sum(len(s.facets) for s in structures.values())
    12
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from facet_coverage.changes import detect_changes
from facet_coverage.config import FacetConfig
from facet_coverage.errors import (
    FacetCoverageError,
    StructureError,
    StructureNotFoundError,
    StructureParseError,
    StructureReadError,
    StructureValidationError,
)
from facet_coverage.ids import (
    generate_facet_id,
    generate_hierarchical_facet_id,
    generate_sub_facet_id,
    get_file_prefix,
)
from facet_coverage.models import (
    Facet,
    FacetSource,
    FacetStructure,
    IDChangeReport,
    MarkdownSection,
)
from facet_coverage.parser import (
    COMMENT_MARKER_PATTERN,
    LINK_MARKER_PATTERN,
    FacetParser,
)

logger = structlog.get_logger(__name__)

STRUCTURE_DIR = ".facet"
STRUCTURE_FILENAME = "structure.json"

TOP_LEVEL_HEADING = 2
"""Sections at this heading level or above become facets."""

_LIST_PREFIX = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")


def feature_dir_for(structure_file: Path | str) -> Path:
    """Return the feature directory of a structure file (two levels up)."""
    return Path(structure_file).parent.parent


class StructureReader:
    """Reads and validates structure files.

    Attributes:
        config: Configuration with structure file patterns.
        skipped: Structure files skipped by a non-strict read, with their errors.
    """

    def __init__(self, config: FacetConfig | None = None) -> None:
        self.config = config or FacetConfig()
        self.skipped: dict[str, StructureError] = {}
        self._log = logger.bind(component="StructureReader")

    def find_structure_files(self, cwd: Path | str | None = None) -> list[Path]:
        """Find all structure files matching the configured patterns.

        Returns:
            Sorted, de-duplicated absolute paths.
        """
        base = Path(cwd) if cwd is not None else Path.cwd()
        files: set[Path] = set()
        for pattern in self.config.structure_files:
            files.update(match.resolve() for match in base.glob(pattern) if match.is_file())
        return sorted(files)

    def read_structure(self, file_path: Path | str) -> FacetStructure:
        """Read and validate a single structure file.

        Raises:
            StructureNotFoundError: If the file does not exist.
            StructureReadError: If the file cannot be read.
            StructureParseError: If the file is not valid JSON.
            StructureValidationError: If required fields are missing or IDs repeat.
        """
        path = Path(file_path)
        if not path.is_file():
            raise StructureNotFoundError(path)

        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise StructureParseError(path) from e
        except OSError as e:
            raise StructureReadError(path) from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StructureParseError(path) from e

        _validate_shape(data, path)

        try:
            structure = FacetStructure.model_validate(data)
        except ValidationError as e:
            raise StructureValidationError(
                path, f"Invalid structure ({e.error_count()} validation errors)"
            ) from e

        self._log.debug("structure_loaded", path=str(path), facets=len(structure.facets))
        return structure

    def read_all_structures(
        self,
        cwd: Path | str | None = None,
        *,
        strict: bool | None = None,
    ) -> dict[str, FacetStructure]:
        """Read every configured structure file.

        Args:
            cwd: Base directory for the glob patterns.
            strict: Abort on the first malformed file (default). When False,
                malformed files are logged, recorded in ``skipped`` and
                left out. Defaults to ``not config.structures.skip_invalid``.

        Returns:
            Mapping of structure file path to structure, in path order.

        Raises:
            StructureError: In strict mode, for the first malformed file.
        """
        if strict is None:
            strict = not self.config.structures.skip_invalid

        self.skipped = {}
        structures: dict[str, FacetStructure] = {}
        for file_path in self.find_structure_files(cwd):
            try:
                structures[str(file_path)] = self.read_structure(file_path)
            except StructureError as e:
                if strict:
                    raise
                self.skipped[str(file_path)] = e
                self._log.warning("structure_skipped", path=str(file_path), error=str(e))
        return structures

    def get_all_facets(self, cwd: Path | str | None = None) -> list[Facet]:
        """Get all facets from all structure files."""
        return [
            facet
            for structure in self.read_all_structures(cwd).values()
            for facet in structure.facets
        ]

    def get_facet_by_id(self, facet_id: str, cwd: Path | str | None = None) -> Facet | None:
        """Get a facet by ID, or None."""
        return next((f for f in self.get_all_facets(cwd) if f.id == facet_id), None)

    def resolve_source_path(self, facet: Facet, structure_file: Path | str) -> Path:
        """Resolve the absolute path to a facet's source document."""
        return (feature_dir_for(structure_file) / facet.source.file).resolve()


def _validate_shape(data: Any, path: Path) -> None:
    """Check required structure fields, raising with a specific message."""
    if not isinstance(data, dict) or not data.get("feature"):
        raise StructureValidationError(path, "Missing 'feature' field")

    facets = data.get("facets")
    if not isinstance(facets, list):
        raise StructureValidationError(path, "Missing or invalid 'facets' array")

    seen_ids: set[str] = set()
    for facet in facets:
        if not isinstance(facet, dict) or not facet.get("id"):
            raise StructureValidationError(path, "Facet missing 'id' field")

        facet_id = facet["id"]
        if facet_id in seen_ids:
            raise StructureValidationError(path, f"Duplicate facet ID '{facet_id}'")
        seen_ids.add(facet_id)

        source = facet.get("source")
        if not isinstance(source, dict) or not source.get("file"):
            raise StructureValidationError(path, f"Facet '{facet_id}' missing 'source.file'")
        if not source.get("section"):
            raise StructureValidationError(path, f"Facet '{facet_id}' missing 'source.section'")
        if not facet.get("type"):
            raise StructureValidationError(path, f"Facet '{facet_id}' missing 'type'")


def write_structure(structure: FacetStructure, file_path: Path | str) -> Path:
    """Write a structure file with the durable camelCase schema.

    Returns:
        The path written.
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(structure.to_json_dict(), indent=2) + "\n", encoding="utf-8")
    return path


# =============================================================================
# Generation
# =============================================================================


@dataclass(frozen=True)
class GenerateResult:
    """Outcome of generating a structure file.

    Attributes:
        path: Structure file written.
        structure: Structure written.
        changes: ID changes relative to the previous structure file.
    """

    path: Path
    structure: FacetStructure
    changes: IDChangeReport


def _marker_title(line: str) -> str | None:
    """Derive a sub-facet title from its marker line (markers and bullets removed)."""
    text = COMMENT_MARKER_PATTERN.sub("", line)
    text = LINK_MARKER_PATTERN.sub("", text)
    text = _LIST_PREFIX.sub("", text).strip()
    return text or None


class StructureGenerator:
    """Builds structure files from a directory of facet documents."""

    def __init__(self, parser: FacetParser | None = None) -> None:
        self.parser = parser or FacetParser()
        self._log = logger.bind(component="StructureGenerator")

    def build_facets(
        self,
        facets_dir: Path | str,
        *,
        facet_type: str | None = None,
        root_dir: Path | str | None = None,
    ) -> list[Facet]:
        """Parse every markdown document in a directory into facets.

        Sections at heading level 1-2 become facets. Sub-facet markers in
        a facet's section, or in deeper sections below it, become child
        facets with ``parent_id`` set.

        Args:
            facets_dir: Directory holding ``*.md`` facet documents.
            facet_type: Type for every facet; defaults to the filename prefix.
            root_dir: Features root; when given, IDs include the path from it.

        Raises:
            FileNotFoundError: If the directory does not exist.
            FacetCoverageError: If it holds no markdown files.
        """
        directory = Path(facets_dir)
        if not directory.is_dir():
            msg = f"Directory not found: {directory}"
            raise FileNotFoundError(msg)

        documents = sorted(p for p in directory.glob("*.md") if p.is_file())
        if not documents:
            msg = f"No markdown files found in: {directory}"
            raise FacetCoverageError(msg)

        feature_dir = directory.parent
        facets: list[Facet] = []
        seen_ids: set[str] = set()

        for document in documents:
            content = document.read_text(encoding="utf-8")
            parsed = self.parser.parse_content(content, str(document))
            lines = content.split("\n")
            source_file = document.relative_to(feature_dir).as_posix()
            doc_type = facet_type or get_file_prefix(document)

            parent: Facet | None = None
            for section in parsed.sections:
                if section.level <= TOP_LEVEL_HEADING:
                    facet_id = self._facet_id(document, section, root_dir)
                    parent = Facet(
                        id=facet_id,
                        source=FacetSource(file=source_file, section=section.slug),
                        type=doc_type,
                        title=section.title,
                    )
                    if not self._add(facets, seen_ids, parent, document):
                        parent = None
                        continue
                if parent is None:
                    continue

                for marker in section.sub_facets:
                    sub_facet = Facet(
                        id=generate_sub_facet_id(parent.id, marker.id),
                        source=FacetSource(
                            file=source_file,
                            section=parent.source.section,
                            line=marker.line,
                        ),
                        type=doc_type,
                        title=_marker_title(lines[marker.line - 1]),
                        parent_id=parent.id,
                        is_sub_facet=True,
                    )
                    self._add(facets, seen_ids, sub_facet, document)

        return facets

    def generate(
        self,
        facets_dir: Path | str,
        *,
        output_dir: Path | str | None = None,
        facet_type: str | None = None,
        root_dir: Path | str | None = None,
    ) -> GenerateResult:
        """Generate ``structure.json`` for the feature owning ``facets_dir``.

        The feature is named after the parent directory of ``facets_dir``.
        ID changes are detected against the previous file before it is
        overwritten.

        Args:
            facets_dir: Directory holding facet documents.
            output_dir: Directory for structure.json; defaults to
                ``<feature>/.facet``.
            facet_type: Type for every facet; defaults to filename prefixes.
            root_dir: Features root for hierarchical IDs.

        Returns:
            GenerateResult with the path, structure and ID changes.
        """
        directory = Path(facets_dir)
        facets = self.build_facets(directory, facet_type=facet_type, root_dir=root_dir)

        feature_dir = directory.resolve().parent
        out_dir = Path(output_dir) if output_dir is not None else feature_dir / STRUCTURE_DIR
        output_path = out_dir / STRUCTURE_FILENAME

        changes = detect_changes(output_path, facets)
        structure = FacetStructure(feature=feature_dir.name, facets=facets)
        write_structure(structure, output_path)

        self._log.info(
            "structure_generated",
            path=str(output_path),
            feature=structure.feature,
            facets=len(facets),
            id_changes=changes.has_changes,
        )
        return GenerateResult(path=output_path, structure=structure, changes=changes)

    @staticmethod
    def _facet_id(document: Path, section: MarkdownSection, root_dir: Path | str | None) -> str:
        if root_dir is not None:
            return generate_hierarchical_facet_id(root_dir, document, section.slug)
        return generate_facet_id(document.name, section.slug)

    def _add(self, facets: list[Facet], seen_ids: set[str], facet: Facet, document: Path) -> bool:
        if facet.id in seen_ids:
            self._log.warning(
                "duplicate_facet_id_skipped",
                facet_id=facet.id,
                file=str(document),
            )
            return False
        seen_ids.add(facet.id)
        facets.append(facet)
        return True


__all__ = [
    "STRUCTURE_DIR",
    "STRUCTURE_FILENAME",
    "GenerateResult",
    "StructureGenerator",
    "StructureReader",
    "feature_dir_for",
    "write_structure",
]
