"""Shared pytest configuration and fixtures for facet-coverage tests.

Provides a small but complete project tree in ``tmp_path``:

    features/checkout/
        facets/business.md       # 3 sections, 1 sub-facet marker
        facets/compliance.md     # 1 section
        .facet/structure.json    # 5 facets
        tests/checkout.spec.ts   # 2 linked tests, 1 unlinked test
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog

BUSINESS_MD = """# Checkout

Overview of the checkout feature.

## Guest Checkout

Guests can buy without an account.

- <!-- @facet:no-signup --> No signup required

## Payment Options
[](#payments)

Cards and wallets are accepted.
"""

COMPLIANCE_MD = """## PCI DSS

Card data is never stored.
"""

CHECKOUT_SPEC = """import { test } from '@playwright/test';

test.describe('Checkout', () => {
  // @facet business:guest-checkout
  test('guest can pay', async ({ page }) => {
    await page.goto('/checkout');
  });

  test('payment options', async ({ page }) => {
    facet('business:payments', 'compliance:pci-dss');
  });

  test('loads page', async ({ page }) => {
    await page.goto('/');
  });
});
"""

CHECKOUT_FACETS: list[dict[str, Any]] = [
    {
        "id": "business:checkout",
        "source": {"file": "facets/business.md", "section": "checkout"},
        "type": "business",
        "title": "Checkout",
    },
    {
        "id": "business:guest-checkout",
        "source": {"file": "facets/business.md", "section": "guest-checkout"},
        "type": "business",
        "title": "Guest Checkout",
    },
    {
        "id": "business:guest-checkout/no-signup",
        "source": {"file": "facets/business.md", "section": "guest-checkout", "line": 9},
        "type": "business",
        "title": "No signup required",
        "parentId": "business:guest-checkout",
        "isSubFacet": True,
    },
    {
        "id": "business:payments",
        "source": {"file": "facets/business.md", "section": "payments"},
        "type": "business",
        "title": "Payment Options",
    },
    {
        "id": "compliance:pci-dss",
        "source": {"file": "facets/compliance.md", "section": "pci-dss"},
        "type": "compliance",
        "title": "PCI DSS",
    },
]


def write_structure_file(feature_dir: Path, data: Any) -> Path:
    """Write raw structure data to ``<feature_dir>/.facet/structure.json``."""
    path = feature_dir / ".facet" / "structure.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _clear_facet_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep FACET_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("FACET_"):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo CLI logging configuration after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def facet_project(tmp_path: Path) -> Path:
    """Create the checkout feature project tree.

    Returns:
        Resolved project root (use as ``cwd``).
    """
    root = tmp_path.resolve()
    feature_dir = root / "features" / "checkout"

    facets_dir = feature_dir / "facets"
    facets_dir.mkdir(parents=True)
    (facets_dir / "business.md").write_text(BUSINESS_MD, encoding="utf-8")
    (facets_dir / "compliance.md").write_text(COMPLIANCE_MD, encoding="utf-8")

    tests_dir = feature_dir / "tests"
    tests_dir.mkdir()
    (tests_dir / "checkout.spec.ts").write_text(CHECKOUT_SPEC, encoding="utf-8")

    write_structure_file(feature_dir, {"feature": "checkout", "facets": CHECKOUT_FACETS})
    return root


@pytest.fixture
def structure_writer() -> Callable[[Path, Any], Path]:
    """Writer for ad-hoc structure files: ``structure_writer(feature_dir, data)``."""
    return write_structure_file


@pytest.fixture
def deny_reads(monkeypatch: pytest.MonkeyPatch) -> Callable[[Path], None]:
    """Make ``Path.read_text`` raise PermissionError for the given files.

    ``chmod 0`` does not block reads for root.
    """
    denied: set[Path] = set()
    original = Path.read_text

    def read_text(self: Path, *args: Any, **kwargs: Any) -> str:
        if self.resolve() in denied:
            raise PermissionError(13, "Permission denied", str(self))
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Path, "read_text", read_text)
    return lambda path: denied.add(path.resolve())


@pytest.fixture
def checkout_dir(facet_project: Path) -> Path:
    """Feature directory of the checkout project."""
    return facet_project / "features" / "checkout"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): Mark test as covering a specific requirement",
    )
