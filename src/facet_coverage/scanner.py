"""Static scanner for facet annotations in test sources.

Test files are scanned as plain text so any framework with
``describe``/``test``/``it``-style declarations works. A test declares the
facets it covers in one of three ways, checked in priority order:

1. Leading comment, at most 3 lines before the declaration::

       // @facet business:guest-checkout, compliance:pci-dss
       test('guest can pay', () => { ... });

2. Inline annotation in the options object (10-line lookahead)::

       test('guest can pay', {
         annotation: facet('business:guest-checkout')
       }, async () => { ... });

3. ``facet()`` calls anywhere in the test body, with string literals or
   generated constants::

       test('guest can pay', () => {
         facet(Facets.BUSINESS_GUEST_CHECKOUT);
       });

   A call may spread its arguments over up to 10 lines.

Lexical scope is approximated by counting braces per line; the enclosing
suites and the open test live on an explicit stack of scope frames.

Example:
    >>> result = TestScanner().scan_content(source, "tests/checkout.spec.ts")
    >>> [link.facet_ids for link in result.linked_tests]
    [['business:guest-checkout']]
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import structlog

from facet_coverage.config import FacetConfig
from facet_coverage.ids import constant_to_facet_id
from facet_coverage.models import ScanResult, TestLink, UnlinkedTest

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = structlog.get_logger(__name__)

COMMENT_LOOKAHEAD = 3
"""Max lines between a ``@facet`` comment and the test declaration it annotates."""

ANNOTATION_LOOKAHEAD = 10
"""Lines searched from a test declaration for an inline annotation."""

FULL_TITLE_SEPARATOR = " > "

# Regex patterns for scanning
COMMENT_ANNOTATION_PATTERN = re.compile(r"^\s*(?://|#)\s*@facet\s+(.+?)\s*$")
"""Matches ``// @facet id1, id2`` (or ``# @facet ...``) comment lines."""

SUITE_PATTERN = re.compile(
    r"(?<![\w.$])(?:(?:test|it)\.)?(?:describe|context)"
    r"(?:\.(?:only|skip|serial|parallel))?\s*\(\s*(['\"`])(.+?)\1"
)
"""Matches suite declarations: ``describe('title'`` or ``test.describe('title'``."""

TEST_PATTERN = re.compile(
    r"(?<![\w.$])(?:test|it)(?:\.(?:only|skip))?\s*\(\s*(['\"`])(.+?)\1\s*,"
)
"""Matches test declarations: ``test('title',`` or ``it('title',``."""

INLINE_ANNOTATION_PATTERN = re.compile(r"annotation\s*:\s*facet\s*\(([^)]*)\)")
"""Matches ``annotation: facet(...)`` inside a test options object."""

FACET_CALL_PATTERN = re.compile(r"(?<![\w.$])facet\s*\(([^)]*)\)")
"""Matches standalone ``facet(...)`` calls."""

FACET_OPEN_PATTERN = re.compile(r"(?<![\w.$])facet\s*\(")
"""Matches the start of a ``facet(`` call whose arguments continue on later lines."""

ARGUMENT_PATTERN = re.compile(
    r"(['\"`])((?:(?!\1).)+)\1|\b([A-Za-z_$][\w$]*\.[A-Z][A-Z0-9_]*)\b"
)
"""Matches string literal or ``Namespace.CONSTANT`` call arguments, in order."""


@dataclass
class ScopeFrame:
    """An open suite or test on the scope stack.

    Attributes:
        kind: ``suite`` or ``test``.
        start_depth: Brace depth before the declaration line.
        title: Suite or test title.
        line: 1-indexed declaration line.
        full_title: Enclosing suite titles plus this title (tests only).
        declared_ids: IDs from a leading comment or inline annotation; when
            set, the body is not scanned.
        body_ids: IDs collected from ``facet()`` calls in the body.
        opened: Whether depth has risen above ``start_depth`` yet.
        paren_balance: Open parentheses since the declaration, used to close
            declarations that never open a brace.
        open_call: Text of a body ``facet(`` call still waiting for its closing
            parenthesis.
    """

    kind: Literal["suite", "test"]
    start_depth: int
    title: str
    line: int
    full_title: str = ""
    declared_ids: list[str] | None = None
    body_ids: list[str] = field(default_factory=list)
    opened: bool = False
    paren_balance: int = 0
    open_call: str = ""

    def should_close(self, depth: int) -> bool:
        """Check whether the frame's scope has ended at the given depth."""
        if depth < self.start_depth:
            return True
        if self.opened:
            return depth <= self.start_depth
        return self.paren_balance <= 0


@dataclass
class _PendingComment:
    ids: list[str]
    line: int


def _count_braces(text: str) -> int:
    return text.count("{") - text.count("}")


def _count_parens(text: str) -> int:
    return text.count("(") - text.count(")")


def _dedupe(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def parse_comment_ids(raw: str) -> list[str]:
    """Split a ``@facet`` comment payload into IDs.

    Example:
        >>> parse_comment_ids("business:a, 'ux:b' ,")
        ['business:a', 'ux:b']
    """
    ids: list[str] = []
    for part in raw.split(","):
        facet_id = part.strip().strip("'\"`").strip()
        if facet_id:
            ids.append(facet_id)
    return ids


class TestScanner:
    """Scans test files for facet annotations.

    Attributes:
        config: Configuration with test locations and known facet types.
    """

    __test__ = False

    def __init__(self, config: FacetConfig | None = None) -> None:
        self.config = config or FacetConfig()
        self._log = logger.bind(component="TestScanner")

    # ---------- File discovery ----------

    def find_test_files(self, cwd: Path | str | None = None) -> list[Path]:
        """Find all test files matching the configured directory and patterns.

        Args:
            cwd: Base directory for the glob patterns. Defaults to cwd.

        Returns:
            Sorted, de-duplicated absolute file paths.
        """
        base = Path(cwd) if cwd is not None else Path.cwd()
        files: set[Path] = set()

        for test_dir in base.glob(self.config.test_dir):
            if not test_dir.is_dir():
                continue
            for pattern in self.config.test_patterns:
                for match in test_dir.glob(pattern):
                    if match.is_file():
                        files.add(match.resolve())

        return sorted(files)

    # ---------- Scanning ----------

    def scan_file(self, file_path: Path | str, cwd: Path | str | None = None) -> ScanResult:
        """Scan a single test file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        path = Path(file_path)
        if not path.is_file():
            msg = f"Test file not found: {path}"
            raise FileNotFoundError(msg)
        return self.scan_content(path.read_text(encoding="utf-8"), path, cwd)

    def scan_content(
        self,
        content: str,
        file_path: Path | str,
        cwd: Path | str | None = None,
    ) -> ScanResult:
        """Scan test source text for facet annotations.

        Args:
            content: Test source text.
            file_path: Path of the file. Absolute paths are reported relative
                to ``cwd``; relative paths are reported as given.
            cwd: Base directory for relative paths. Defaults to cwd.

        Returns:
            ScanResult with one entry per test declaration.
        """
        path = Path(file_path)
        if path.is_absolute():
            base = Path(cwd) if cwd is not None else Path.cwd()
            path = Path(os.path.relpath(path, base))
        scan = _FileScan(path.as_posix(), self.config.facet_types)
        return scan.run(content)

    def scan_all_tests(self, cwd: Path | str | None = None) -> ScanResult:
        """Scan every configured test file.

        Unreadable files are logged and skipped; the remaining files are still
        scanned.
        """
        linked: list[TestLink] = []
        unlinked: list[UnlinkedTest] = []

        for file_path in self.find_test_files(cwd):
            try:
                result = self.scan_file(file_path, cwd)
            except (OSError, UnicodeDecodeError) as e:
                self._log.warning("scan_file_failed", file=str(file_path), error=str(e))
                continue
            linked.extend(result.linked_tests)
            unlinked.extend(result.unlinked_tests)

        self._log.debug("tests_scanned", linked=len(linked), unlinked=len(unlinked))
        return ScanResult(linked_tests=linked, unlinked_tests=unlinked)

    def get_all_referenced_facet_ids(self, cwd: Path | str | None = None) -> set[str]:
        """Get all facet IDs referenced by any test."""
        return {
            facet_id
            for link in self.scan_all_tests(cwd).linked_tests
            for facet_id in link.facet_ids
        }

    def get_tests_for_facet(
        self,
        facet_id: str,
        cwd: Path | str | None = None,
    ) -> list[TestLink]:
        """Get the tests that reference a specific facet ID."""
        return [
            link for link in self.scan_all_tests(cwd).linked_tests if facet_id in link.facet_ids
        ]


class _FileScan:
    """Single forward pass over one file's lines."""

    def __init__(self, file: str, facet_types: list[str]) -> None:
        self.file = file
        self.facet_types = facet_types
        self.stack: list[ScopeFrame] = []
        self.depth = 0
        self.pending: _PendingComment | None = None
        self.linked: list[TestLink] = []
        self.unlinked: list[UnlinkedTest] = []

    def run(self, content: str) -> ScanResult:
        lines = content.split("\n")
        for index, line in enumerate(lines):
            self._scan_line(lines, index, line)

        # Flush tests left open at end of file
        while self.stack:
            self._close(self.stack.pop())

        self.linked.sort(key=lambda link: link.line)
        self.unlinked.sort(key=lambda test: test.line)
        return ScanResult(linked_tests=self.linked, unlinked_tests=self.unlinked)

    def _scan_line(self, lines: list[str], index: int, line: str) -> None:
        line_number = index + 1

        comment = COMMENT_ANNOTATION_PATTERN.match(line)
        if comment:
            self.pending = _PendingComment(parse_comment_ids(comment.group(1)), line_number)
            return

        current_test = self._innermost_test()
        if current_test is not None:
            self._collect_body_ids(current_test, line)

        declared: ScopeFrame | None = None
        suite_match = SUITE_PATTERN.search(line)
        test_match = None if suite_match else TEST_PATTERN.search(line)

        if suite_match:
            declared = ScopeFrame(
                kind="suite",
                start_depth=self.depth,
                title=suite_match.group(2),
                line=line_number,
                paren_balance=_count_parens(line[suite_match.start() :]),
            )
        elif test_match:
            declared = self._declare_test(lines, index, test_match)
            if declared.declared_ids is None:
                # One-line bodies: calls after the declaration on the same line
                self._collect_body_ids(declared, line[test_match.end() :])

        for frame in self.stack:
            if not frame.opened:
                frame.paren_balance += _count_parens(line)
        if declared is not None:
            self.stack.append(declared)

        self.depth += _count_braces(line)

        for frame in self.stack:
            if self.depth > frame.start_depth:
                frame.opened = True
        while self.stack and self.stack[-1].should_close(self.depth):
            self._close(self.stack.pop())

        if self.pending is not None and line_number - self.pending.line > COMMENT_LOOKAHEAD:
            self.pending = None

    def _declare_test(self, lines: list[str], index: int, match: re.Match[str]) -> ScopeFrame:
        line_number = index + 1
        title = match.group(2)
        suites = [frame.title for frame in self.stack if frame.kind == "suite"]

        declared_ids: list[str] | None = None
        if self.pending is not None and line_number - self.pending.line <= COMMENT_LOOKAHEAD:
            declared_ids = self.pending.ids or None
            self.pending = None
        if declared_ids is None:
            declared_ids = self._inline_annotation_ids(lines, index, match.end())

        return ScopeFrame(
            kind="test",
            start_depth=self.depth,
            title=title,
            line=line_number,
            full_title=FULL_TITLE_SEPARATOR.join([*suites, title]),
            declared_ids=declared_ids,
            paren_balance=_count_parens(lines[index][match.start() :]),
        )

    def _inline_annotation_ids(self, lines: list[str], index: int, column: int) -> list[str] | None:
        """Read ``annotation: facet(...)`` from the options object, if any.

        Only the object literal passed as the second argument is searched, up to
        ``ANNOTATION_LOOKAHEAD`` lines from the declaration.
        """
        window = lines[index : index + ANNOTATION_LOOKAHEAD]
        text = "\n".join(window)[column:].lstrip()
        if not text.startswith("{"):
            return None

        depth = 0
        for position, char in enumerate(text):
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    text = text[: position + 1]
                    break

        match = INLINE_ANNOTATION_PATTERN.search(text)
        if not match:
            return None
        ids = self._argument_ids(match.group(1), literals_only=True)
        return ids or None

    def _collect_body_ids(self, frame: ScopeFrame, text: str) -> None:
        if frame.declared_ids is not None:
            return
        if frame.open_call:
            text = f"{frame.open_call}\n{text}"
            frame.open_call = ""

        end = 0
        for call in FACET_CALL_PATTERN.finditer(text):
            frame.body_ids.extend(self._argument_ids(call.group(1)))
            end = call.end()

        # Arguments continue on the next lines
        unclosed = FACET_OPEN_PATTERN.search(text, end)
        if unclosed and text.count("\n", unclosed.start()) < ANNOTATION_LOOKAHEAD:
            frame.open_call = text[unclosed.start() :]

    def _argument_ids(self, arguments: str, *, literals_only: bool = False) -> list[str]:
        ids: list[str] = []
        for match in ARGUMENT_PATTERN.finditer(arguments):
            if match.group(2) is not None:
                ids.append(match.group(2))
            elif not literals_only:
                facet_id = constant_to_facet_id(match.group(3), self.facet_types)
                if facet_id is not None:
                    ids.append(facet_id)
        return ids

    def _innermost_test(self) -> ScopeFrame | None:
        for frame in reversed(self.stack):
            if frame.kind == "test":
                return frame
        return None

    def _close(self, frame: ScopeFrame) -> None:
        if frame.kind != "test":
            return
        ids = _dedupe(frame.declared_ids if frame.declared_ids is not None else frame.body_ids)
        if ids:
            self.linked.append(
                TestLink(
                    file=self.file,
                    title=frame.title,
                    full_title=frame.full_title,
                    facet_ids=ids,
                    line=frame.line,
                )
            )
        else:
            self.unlinked.append(
                UnlinkedTest(
                    file=self.file,
                    title=frame.title,
                    full_title=frame.full_title,
                    line=frame.line,
                )
            )


__all__ = [
    "ANNOTATION_LOOKAHEAD",
    "COMMENT_LOOKAHEAD",
    "ScopeFrame",
    "TestScanner",
    "parse_comment_ids",
]
