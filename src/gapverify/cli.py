"""gapverify command-line interface.

Commands:
    gapverify iterate   Run the gap-closure loop over a scope (always exits 0)
    gapverify validate  Validate gaps and print a report (exit 1 on any failure)
    gapverify catalog   List the gap catalog
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gapverify import __version__
from gapverify.catalog import GapCatalog
from gapverify.ci.gate_runner import GateRunner
from gapverify.ci.pytest_executor import PytestExecutor
from gapverify.config import Settings, get_settings
from gapverify.determinism import DeterminismScorer
from gapverify.exceptions import GapVerifyError
from gapverify.iteration import (
    ArtifactPresenceProbe,
    IterationController,
    IterationEvidenceWriter,
    IterationState,
)
from gapverify.logging_config import configure_logging
from gapverify.orchestrator import GapOrchestrator
from gapverify.reporting import ReportFormat, TestReporter, render
from gapverify.validators import build_default_validators

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)


def _load_catalog(catalog_path: Optional[Path], settings: Settings) -> GapCatalog:
    path = catalog_path or (Path(settings.catalog_path) if settings.catalog_path else None)
    return GapCatalog.load(path) if path else GapCatalog.default()


def _with_runs(catalog: GapCatalog, runs: int) -> GapCatalog:
    """Apply a command-line determinism run count to every catalog gap."""
    for definition in catalog.definitions():
        thresholds = definition.thresholds.model_copy(update={"determinism_runs": runs})
        catalog.register(definition.model_copy(update={"thresholds": thresholds}))
    return catalog


def build_orchestrator(
    repo_root: Path,
    settings: Settings,
    catalog: GapCatalog,
    persist: bool = True,
) -> GapOrchestrator:
    """Wire the orchestrator around the pytest executor for ``repo_root``."""
    evidence_dir = repo_root / settings.evidence_dir
    executor = PytestExecutor(repo_root, settings=settings, log_dir=evidence_dir / "logs" if persist else None)
    scorer = DeterminismScorer(trial_delay_seconds=settings.trial_delay_seconds)
    reporter = TestReporter(evidence_dir, stream=None) if persist else None
    return GapOrchestrator(
        build_default_validators(executor, scorer, settings),
        catalog=catalog,
        reporter=reporter,
        max_concurrency=settings.max_concurrent_gaps,
    )


@click.group()
@click.version_option(__version__, prog_name="gapverify")
def cli():
    """Gap-closure verification engine."""


@cli.command()
@click.option(
    "--repo-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository to verify",
)
@click.option("--scope", type=click.Choice(["mvp", "full"]), default="mvp", show_default=True)
@click.option("--max-iterations", type=click.IntRange(min=1), default=5, show_default=True)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Gap catalog YAML (defaults to the bundled catalog)",
)
@click.option(
    "--revalidate/--no-revalidate",
    default=True,
    show_default=True,
    help="Re-run the orchestrator over the scope's gaps each iteration",
)
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr as well as to the log file")
def iterate(
    repo_root: Path,
    scope: str,
    max_iterations: int,
    catalog_path: Optional[Path],
    revalidate: bool,
    verbose: bool,
):
    """Run the gap-closure loop until convergence or the iteration budget.

    The exit code is always 0; the outcome is in the printed summary and the
    iteration records.
    """
    settings = get_settings()
    repo_root = repo_root.resolve()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    try:
        configure_logging(
            run_id=f"iterate-{scope}",
            workspace=repo_root,
            log_level=settings.log_level,
            log_to_console=verbose,
        )
        catalog = _load_catalog(catalog_path, settings)
        scope_ids = catalog.scope(scope)
        evidence_writer = IterationEvidenceWriter.for_new_run(repo_root / settings.iterations_dir, timestamp)
        run_dir = evidence_writer.run_dir
        controller = IterationController(
            scope_ids=scope_ids,
            catalog=catalog,
            presence_probe=ArtifactPresenceProbe(repo_root, catalog),
            gate_runner=GateRunner(repo_root, settings),
            evidence_writer=evidence_writer,
            max_iterations=max_iterations,
            orchestrator=build_orchestrator(repo_root, settings, catalog) if revalidate else None,
        )
        outcome = controller.run()
    except (GapVerifyError, OSError) as e:
        logger.error(f"[CLI] iterate failed: {e}")
        err_console.print(f"[red]Error:[/red] {e}")
        return

    last = outcome.records[-1]
    colour = "green" if outcome.final_state is IterationState.CONVERGED else "yellow"
    console.print(
        Panel(
            f"Final state: [{colour}]{outcome.final_state.value}[/{colour}]\n"
            f"Iterations: {outcome.iterations}/{max_iterations}\n"
            f"Open gaps: {last.open_gap_count}\n"
            f"Closed gaps: {last.closed_gap_count}\n"
            f"Evidence: {run_dir}",
            title=f"Gap Closure ({scope})",
        )
    )

    table = Table(title="Iterations")
    table.add_column("#", justify="right")
    table.add_column("Open", justify="right")
    table.add_column("Closed", justify="right")
    table.add_column("Build")
    table.add_column("Tests")
    table.add_column("Next State")
    for record in outcome.records:
        table.add_row(
            str(record.iteration_number),
            str(record.open_gap_count),
            str(record.closed_gap_count),
            _gate_label(record.build_passed),
            _gate_label(record.tests_passed),
            record.state,
        )
    console.print(table)

    if last.open_gap_ids:
        console.print(f"[yellow]Still open:[/yellow] {', '.join(last.open_gap_ids)}")


def _gate_label(passed: Optional[bool]) -> str:
    if passed is None:
        return "-"
    return "[green]PASS[/green]" if passed else "[red]FAIL[/red]"


@cli.command()
@click.option("--gap", "gap_ids", multiple=True, help="Gap id to validate (repeatable)")
@click.option("--all", "all_gaps", is_flag=True, help="Validate every catalog gap")
@click.option("--scope", default=None, help="Validate a named catalog scope")
@click.option(
    "--format",
    "report_format",
    type=click.Choice([f.value for f in ReportFormat]),
    default=ReportFormat.CONSOLE.value,
    show_default=True,
)
@click.option("--runs", type=click.IntRange(min=1), default=None, help="Determinism trials per gap")
@click.option(
    "--repo-root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
)
@click.option("--no-persist", is_flag=True, help="Do not write evidence or log files")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr")
def validate(
    gap_ids: tuple,
    all_gaps: bool,
    scope: Optional[str],
    report_format: str,
    runs: Optional[int],
    repo_root: Path,
    catalog_path: Optional[Path],
    no_persist: bool,
    verbose: bool,
):
    """Validate gaps and print the report. Exits 1 if any gap did not pass."""
    selectors = sum([bool(gap_ids), all_gaps, scope is not None])
    if selectors != 1:
        raise click.UsageError("Use exactly one of --gap, --all or --scope")

    settings = get_settings()
    repo_root = repo_root.resolve()
    configure_logging(
        run_id="validate",
        workspace=repo_root,
        log_level=settings.log_level,
        log_to_console=verbose,
        log_to_file=not no_persist,
    )

    try:
        catalog = _load_catalog(catalog_path, settings)
        if runs is not None:
            catalog = _with_runs(catalog, runs)

        if gap_ids:
            selected = list(gap_ids)
        elif all_gaps:
            selected = catalog.ids()
        else:
            selected = catalog.scope(scope)

        orchestrator = build_orchestrator(repo_root, settings, catalog, persist=not no_persist)
        entries = [(gap_id, catalog.description_for(gap_id)) for gap_id in selected]
        results = asyncio.run(orchestrator.validate_gaps(entries))
    except GapVerifyError as e:
        logger.error(f"[CLI] validate failed: {e}")
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    click.echo(render(results, ReportFormat(report_format)))

    if not all(result.is_success for result in results):
        sys.exit(1)


@cli.command(name="catalog")
@click.option("--scope", default=None, help="Only list gaps in this scope")
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
)
def catalog_cmd(scope: Optional[str], catalog_path: Optional[Path]):
    """List catalog gaps with their categories and dependencies."""
    settings = get_settings()
    try:
        catalog = _load_catalog(catalog_path, settings)
        gap_ids = catalog.scope(scope) if scope else catalog.ids()
    except GapVerifyError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"Gap Catalog ({scope or 'all'})")
    table.add_column("ID", style="cyan")
    table.add_column("Priority")
    table.add_column("Kind")
    table.add_column("Categories")
    table.add_column("Depends On")
    table.add_column("Description")
    for gap_id in gap_ids:
        definition = catalog.get(gap_id)
        table.add_row(
            gap_id,
            definition.priority.value,
            definition.kind.value,
            ", ".join(c.value for c in definition.categories),
            ", ".join(definition.depends_on) or "-",
            definition.description,
        )
    console.print(table)
    console.print(f"Scopes: {', '.join(catalog.scope_names())}")


if __name__ == "__main__":
    cli()
