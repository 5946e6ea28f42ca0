"""Facet identifier forms and helpers.

A facet ID takes one of three shapes, modeled as a closed tagged union
produced by :func:`parse_facet_id`:

- ``SimpleFacetId``: ``type:section`` (``business:guest-checkout``)
- ``PathFacetId``: ``path/type:section`` (``checkout/payments/pci:card-masking``)
- ``SubFacetId``: ``<simple-or-path>/local`` (``compliance:pci-dss/tls``)

Example:
    >>> parsed = parse_facet_id("compliance:pci-dss/tls")
    >>> parsed.kind
    'sub'
    >>> str(parsed.parent)
    'compliance:pci-dss'
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal, Union

FACET_ID_PATTERN = re.compile(r"^[a-zA-Z0-9/_-]+:[a-zA-Z0-9_-]+(?:/[a-zA-Z0-9_-]+)?$")
"""Accepted format: ``[path/]*type:section[/sub-id]``."""

CONTAINER_DIR = "facets"
"""Conventional directory holding facet documents; dropped from hierarchical IDs."""

_FACET_MD_SUFFIX = re.compile(r"\.facet\.md$", re.IGNORECASE)
_MD_SUFFIX = re.compile(r"\.md$", re.IGNORECASE)


@dataclass(frozen=True)
class SimpleFacetId:
    """``type:section``."""

    type: str
    section: str
    kind: Literal["simple"] = "simple"

    def __str__(self) -> str:
        return f"{self.type}:{self.section}"


@dataclass(frozen=True)
class PathFacetId:
    """``path/type:section``, used for nested feature layouts."""

    path: str
    type: str
    section: str
    kind: Literal["path"] = "path"

    def __str__(self) -> str:
        return f"{self.path}/{self.type}:{self.section}"


@dataclass(frozen=True)
class SubFacetId:
    """``<parent>/local`` where the parent is a simple or path ID."""

    parent: SimpleFacetId | PathFacetId
    local_id: str
    kind: Literal["sub"] = "sub"

    def __str__(self) -> str:
        return f"{self.parent}/{self.local_id}"


FacetId = Union[SimpleFacetId, PathFacetId, SubFacetId]


def parse_facet_id(raw: str) -> FacetId | None:
    """Parse a facet ID string into its structured form.

    Everything before the first ``:`` is the (optional) path plus the type;
    everything after it is the section plus an optional ``/local`` suffix.

    Args:
        raw: Facet ID string.

    Returns:
        The parsed ID, or None if the string has no ``type:section`` core.
    """
    head, sep, tail = raw.partition(":")
    if not sep or not head or not tail:
        return None

    path, _, facet_type = head.rpartition("/")
    section, slash, local_id = tail.partition("/")
    if not facet_type or not section:
        return None

    parent: SimpleFacetId | PathFacetId
    if path:
        parent = PathFacetId(path=path, type=facet_type, section=section)
    else:
        parent = SimpleFacetId(type=facet_type, section=section)

    if slash:
        if not local_id:
            return None
        return SubFacetId(parent=parent, local_id=local_id)
    return parent


def is_valid_facet_id(facet_id: str) -> bool:
    """Check whether an ID matches the standard facet ID grammar."""
    return FACET_ID_PATTERN.match(facet_id) is not None


def is_sub_facet_id(facet_id: str) -> bool:
    """Check whether an ID names a sub-facet (``/`` after the first ``:``)."""
    return isinstance(parse_facet_id(facet_id), SubFacetId)


def get_parent_id(facet_id: str) -> str | None:
    """Return the parent ID of a sub-facet ID, or None for other IDs.

    Example:
        >>> get_parent_id("compliance:pci-dss/tls")
        'compliance:pci-dss'
    """
    parsed = parse_facet_id(facet_id)
    if isinstance(parsed, SubFacetId):
        return str(parsed.parent)
    return None


def is_facet_md_file(file_path: str | PurePath) -> bool:
    """Check if a file uses the ``.facet.md`` naming convention."""
    return str(file_path).lower().endswith(".facet.md")


def get_file_prefix(file_path: str | PurePath) -> str:
    """Derive the facet type prefix from a document's filename.

    Handles both naming conventions:
    - ``business.facet.md`` -> ``business``
    - ``business.md`` -> ``business``
    """
    basename = PurePath(file_path).name
    if is_facet_md_file(basename):
        return _FACET_MD_SUFFIX.sub("", basename).lower()
    return _MD_SUFFIX.sub("", basename).lower()


def generate_facet_id(file_path: str | PurePath, section_slug: str) -> str:
    """Generate a simple ``type:section`` ID from a document path and slug."""
    return str(SimpleFacetId(type=get_file_prefix(file_path), section=section_slug))


def generate_hierarchical_facet_id(
    root_dir: str | PurePath,
    facet_file: str | PurePath,
    section_slug: str,
) -> str:
    """Generate an ID that includes the directory path from the root.

    Args:
        root_dir: Root features directory.
        facet_file: Facet markdown file path.
        section_slug: Section slug.

    Returns:
        ID like ``checkout/payments/pci:section-slug``, or ``business:section-slug``
        when the document sits directly under the root.
    """
    facet_dir = os.path.dirname(os.fspath(facet_file))
    relative_path = os.path.relpath(facet_dir or ".", os.fspath(root_dir))

    segments = [
        part
        for part in PurePath(relative_path).parts
        if part not in (CONTAINER_DIR, ".")
    ]
    prefix = get_file_prefix(facet_file)

    if segments:
        return str(PathFacetId(path="/".join(segments), type=prefix, section=section_slug))
    return str(SimpleFacetId(type=prefix, section=section_slug))


def generate_sub_facet_id(parent_id: str, local_id: str) -> str:
    """Combine a parent facet ID with a local sub-facet ID."""
    return f"{parent_id}/{local_id}"


def constant_to_facet_id(constant: str, facet_types: Iterable[str]) -> str | None:
    """Convert a ``Namespace.SOME_CONSTANT`` reference into a facet ID.

    The member name is lowercased and split on underscores. If the first
    segment is a known type, it is the type and the rest is the section.
    Otherwise, the first known type found after it splits the segments into
    a path prefix and a section.

    Args:
        constant: Constant reference (``Facets.PRODUCT_GUEST_CHECKOUT``).
        facet_types: Known facet types.

    Returns:
        Facet ID, or None if the name has fewer than two segments.

    Example:
        >>> constant_to_facet_id(
        ...     "Facets.FEATURES_CHECKOUT_BUSINESS_GUEST_PURCHASE_FLOW",
        ...     ["business", "ux"],
        ... )
        'features/checkout/business:guest-purchase-flow'
        >>> constant_to_facet_id("Facets.PRODUCT_STRUCTURE_READING", [])
        'product:structure-reading'
    """
    name = constant.rsplit(".", 1)[-1]
    segments = [s for s in name.lower().split("_") if s]
    if len(segments) < 2:
        return None

    known = {t.lower() for t in facet_types}
    if segments[0] not in known:
        for index in range(1, len(segments) - 1):
            if segments[index] in known:
                return str(
                    PathFacetId(
                        path="/".join(segments[:index]),
                        type=segments[index],
                        section="-".join(segments[index + 1 :]),
                    )
                )

    return str(SimpleFacetId(type=segments[0], section="-".join(segments[1:])))


__all__ = [
    "CONTAINER_DIR",
    "FACET_ID_PATTERN",
    "FacetId",
    "PathFacetId",
    "SimpleFacetId",
    "SubFacetId",
    "constant_to_facet_id",
    "generate_facet_id",
    "generate_hierarchical_facet_id",
    "generate_sub_facet_id",
    "get_file_prefix",
    "get_parent_id",
    "is_facet_md_file",
    "is_sub_facet_id",
    "is_valid_facet_id",
    "parse_facet_id",
]
