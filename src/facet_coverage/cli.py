"""CLI entry point for facet-coverage commands.

Provides a thin Typer-based CLI over the core pipeline.

Usage:
    facet-coverage --help
    facet-coverage generate DIR [--output DIR] [--type TYPE] [--root DIR] [--quiet]
    facet-coverage analyze [--json] [--threshold PCT]
    facet-coverage validate [--json] [--strict]

Exit codes:
    0: Success
    1: Coverage below threshold, or validation errors
    2: Configuration or structure file error
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated

import structlog
import typer
from pydantic import ValidationError

from facet_coverage.changes import find_affected_tests, format_report
from facet_coverage.config import FacetConfig, get_config
from facet_coverage.coverage import CoverageCalculator
from facet_coverage.errors import FacetCoverageError
from facet_coverage.scanner import TestScanner
from facet_coverage.structure import StructureGenerator
from facet_coverage.validator import Validator

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="facet-coverage",
    help="Track which prose requirements (facets) are covered by tests.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _exit_with_error(message: str, code: int = 2) -> None:
    """Print error message and exit.

    Args:
        message: Error message to display.
        code: Exit code (default 2).
    """
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _load_config(ctx: typer.Context) -> FacetConfig | None:
    """Load configuration from the path given to the root command.

    Returns:
        Validated config or None if loading fails.
    """
    config_path: Path | None = (ctx.obj or {}).get("config_path")
    try:
        return get_config(config_path)
    except (FacetCoverageError, ValidationError) as e:
        typer.secho(f"Configuration error: {e}", fg=typer.colors.RED, err=True)
        return None


def _coverage_color(percentage: int, threshold: float) -> str:
    return typer.colors.GREEN if percentage >= threshold else typer.colors.RED


@app.command()
def generate(
    ctx: typer.Context,
    facets_dir: Annotated[Path, typer.Argument(help="Directory containing facet markdown files")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory for structure.json"),
    ] = None,
    facet_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Facet type for all facets (default: filename)"),
    ] = None,
    root: Annotated[
        Path | None,
        typer.Option("--root", help="Features root; enables path-prefixed IDs"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress ID change warnings"),
    ] = False,
) -> None:
    """Generate structure.json from facet markdown files."""
    config = _load_config(ctx)
    if config is None:
        raise typer.Exit(code=2)
    generator = StructureGenerator()

    try:
        result = generator.generate(
            facets_dir,
            output_dir=output,
            facet_type=facet_type,
            root_dir=root,
        )
    except (FacetCoverageError, OSError, UnicodeDecodeError) as e:
        _exit_with_error(str(e))
        return

    typer.secho(f"Generated: {result.path}", fg=typer.colors.GREEN)
    typer.echo(f"  Feature: {result.structure.feature}")
    typer.echo(f"  Facets: {len(result.structure.facets)}")

    if result.changes.has_changes and not quiet:
        typer.secho("Facet ID changes detected:", fg=typer.colors.YELLOW)
        for line in format_report(result.changes):
            typer.echo(f"  {line}")

        affected = find_affected_tests(result.changes, TestScanner(config))
        for facet_id, tests in affected.items():
            typer.secho(
                f"  {len(tests)} test(s) still reference '{facet_id}'",
                fg=typer.colors.YELLOW,
            )
            for test in tests:
                typer.echo(f"    {test.file}:{test.line} {test.full_title}")


@app.command()
def analyze(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the full report as JSON"),
    ] = False,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0, max=100, help="Override the global threshold"),
    ] = None,
) -> None:
    """Calculate facet coverage and check thresholds."""
    config = _load_config(ctx)
    if config is None:
        raise typer.Exit(code=2)
    if threshold is not None:
        config = config.model_copy(
            update={"thresholds": config.thresholds.model_copy(update={"global_": threshold})}
        )

    calculator = CoverageCalculator(config)
    try:
        report = calculator.calculate_coverage()
    except FacetCoverageError as e:
        _exit_with_error(str(e), code=e.exit_code)
        return

    result = calculator.check_thresholds(report)

    if json_output:
        typer.echo(report.model_dump_json(by_alias=True, indent=2))
    else:
        summary = report.summary
        typer.secho(
            f"Coverage: {summary.percentage}% "
            f"({summary.covered_facets}/{summary.total_facets} facets)",
            fg=_coverage_color(summary.percentage, config.thresholds.global_),
        )
        for type_coverage in report.by_type:
            typer.echo(
                f"  {type_coverage.type}: {type_coverage.percentage}% "
                f"({type_coverage.covered}/{type_coverage.total})"
            )
        if report.uncovered:
            typer.echo()
            typer.echo("Uncovered facets:")
            for facet in report.uncovered:
                typer.echo(f"  - {facet.id}")
        if report.unlinked_tests:
            typer.echo()
            typer.echo(f"Tests without facet links: {len(report.unlinked_tests)}")

    if not result.passed:
        for failure in result.failures:
            typer.secho(failure, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def validate(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the validation result as JSON"),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Also report tests without facet links"),
    ] = False,
) -> None:
    """Validate structures, source documents and test links."""
    config = _load_config(ctx)
    if config is None:
        raise typer.Exit(code=2)
    if strict:
        config = config.model_copy(
            update={
                "validation": config.validation.model_copy(
                    update={"require_all_tests_linked": True}
                )
            }
        )
    validator = Validator(config)

    try:
        result = validator.validate()
    except FacetCoverageError as e:
        _exit_with_error(str(e), code=e.exit_code)
        return

    if json_output:
        typer.echo(result.model_dump_json(by_alias=True, indent=2))
    else:
        for issue in result.errors:
            typer.secho(f"[{issue.type}] {issue.message}", fg=typer.colors.RED)
        for issue in result.warnings:
            typer.secho(f"[{issue.type}] {issue.message}", fg=typer.colors.YELLOW)
        typer.echo(f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)")

    if not result.valid:
        raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to facet.config.yaml"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Track which prose requirements (facets) are covered by tests."""
    ctx.obj = {"config_path": config_path}
    # stdout carries command output only
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


if __name__ == "__main__":
    app()
