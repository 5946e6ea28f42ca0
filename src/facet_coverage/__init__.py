"""Facet Coverage - requirement-to-test traceability for prose specifications.

Facets are sections of feature documents (product, dx, technical, ...)
identified by stable IDs. Tests reference facet IDs through annotations,
and this package reports which facets are covered, validates the links,
and detects ID changes when documents are regenerated.
"""

from __future__ import annotations

__version__ = "0.1.0"
