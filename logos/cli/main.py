"""
Typer CLI for the LOGOS learning engine.

Commands:
    logos init-db                        - Create snapshot tables
    logos index corpus.txt               - Build (or extend) a collocation snapshot
    logos collocations word              - Top collocations of a word
    logos ability responses.json         - Estimate ability from scored item responses
    logos diagnose responses.json        - Bottleneck report from response records
    logos version                        - Show version information

Usage:
    logos --help
    logos index corpus.txt --name medical --window 5
    logos collocations patient --name medical --top 10
    logos ability responses.json --method eap
    logos diagnose responses.json --window 200
"""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from logos import __version__
from logos.ability.irt import EstimationMethod, IRTConfig, ItemParameters, ItemResponse, estimate_ability
from logos.collocation.builder import CollocationIndexBuilder, tokenize
from logos.collocation.pmi import CollocationIndex, CollocationStatistics
from logos.core.errors import IndexBuildCancelled, LogosError
from logos.diagnosis.bottleneck import BottleneckConfig, BottleneckDetector

app = typer.Typer(
    help="LOGOS adaptive learning engine: ability, memory, priority and diagnosis",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging sinks for every command."""
    configure_logging("DEBUG" if verbose else None)


def configure_logging(level: str | None = None) -> None:
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format="<level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention=5)


# ========================================
# Helpers
# ========================================


def _repository(database_url: str | None):
    from logos.persistence import SnapshotRepository, create_database_engine, create_session_factory, init_db

    engine = create_database_engine(database_url)
    init_db(engine)
    return SnapshotRepository(create_session_factory(engine))


def _load_json_list(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        logger.error(f"File not found: {path}")
        raise typer.Exit(code=1)
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "responses" in data:
        data = data["responses"]
    if not isinstance(data, list):
        logger.error(f"{path} must contain a JSON list of records")
        raise typer.Exit(code=1)
    return data


def _build_in_background(
    builder: CollocationIndexBuilder,
    tokens: list[str],
    base: CollocationStatistics | None,
    cancel: threading.Event,
) -> CollocationStatistics:
    """
    Run the build on a worker thread.

    The main thread waits in short joins so Ctrl+C lands here; it sets
    `cancel`, the worker stops at the next chunk boundary, and the
    KeyboardInterrupt is re-raised.
    """
    outcome: dict[str, Any] = {}

    def work() -> None:
        try:
            if base is not None:
                outcome["stats"] = builder.extend(base, tokens, cancel=cancel)
            else:
                outcome["stats"] = builder.build(tokens, cancel=cancel)
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=work, name="logos-indexer", daemon=True)
    try:
        worker.start()
        while worker.is_alive():
            worker.join(timeout=0.2)
    except KeyboardInterrupt:
        cancel.set()
        if worker.is_alive():
            worker.join(timeout=5.0)
        logger.warning("Index build interrupted")
        raise

    if "error" in outcome:
        raise outcome["error"]
    return outcome["stats"]


# ========================================
# Commands
# ========================================


@app.command("init-db")
def init_database(
    database_url: str | None = typer.Option(None, "--db", help="Database URL (default: from config)"),
) -> None:
    """Create snapshot tables. Safe to run multiple times."""
    _repository(database_url)
    rprint("[green]✓[/green] Database initialized!")


@app.command("index")
def index_corpus(
    corpus: Path = typer.Argument(..., help="Plain-text corpus file"),
    name: str = typer.Option("default", "--name", "-n", help="Snapshot name"),
    window: int | None = typer.Option(None, "--window", "-w", help="Co-occurrence window (tokens ahead)"),
    append: bool = typer.Option(False, "--append", help="Extend the existing snapshot instead of rebuilding"),
    database_url: str | None = typer.Option(None, "--db", help="Database URL (default: from config)"),
) -> None:
    """Build a collocation snapshot from a text file and store it."""
    if not corpus.exists():
        logger.error(f"Corpus not found: {corpus}")
        raise typer.Exit(code=1)

    tokens = tokenize(corpus.read_text(encoding="utf-8"))
    repo = _repository(database_url)
    existing = repo.load_collocations(name)
    version = existing[1] if existing else 0

    builder = CollocationIndexBuilder(window_size=window or (existing[0].window_size if existing else None))
    cancel = threading.Event()
    base = existing[0] if append and existing else None

    try:
        with console.status(f"Indexing {len(tokens)} tokens..."):
            stats = _build_in_background(builder, tokens, base, cancel)
    except KeyboardInterrupt:
        rprint("[yellow]Indexing interrupted; existing snapshot left unchanged[/yellow]")
        raise typer.Exit(code=130)
    except IndexBuildCancelled as exc:
        rprint(f"[yellow]{exc}[/yellow]")
        raise typer.Exit(code=1)
    except LogosError as exc:
        rprint(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)

    try:
        new_version = repo.save_collocations(name, stats, expected_version=version)
    except LogosError as exc:
        rprint(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=f"Collocation snapshot '{name}' v{new_version}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Tokens", str(stats.total_tokens))
    table.add_row("Types", str(len(stats.word_counts)))
    table.add_row("Pairs", str(len(stats.pair_counts)))
    table.add_row("Window", str(stats.window_size))
    console.print(table)


@app.command("collocations")
def show_collocations(
    word: str = typer.Argument(..., help="Word to look up"),
    name: str = typer.Option("default", "--name", "-n", help="Snapshot name"),
    corpus: Path | None = typer.Option(None, "--corpus", help="Index this file on the fly instead of loading"),
    top: int = typer.Option(10, "--top", "-k", help="Number of collocations"),
    database_url: str | None = typer.Option(None, "--db", help="Database URL (default: from config)"),
) -> None:
    """Show the top significant collocations of a word, by PMI."""
    settings = get_settings()

    if corpus is not None:
        if not corpus.exists():
            logger.error(f"Corpus not found: {corpus}")
            raise typer.Exit(code=1)
        stats = CollocationIndexBuilder().build(tokenize(corpus.read_text(encoding="utf-8")))
    else:
        loaded = _repository(database_url).load_collocations(name)
        if loaded is None:
            rprint(f"[yellow]No collocation snapshot named '{name}'. Run 'logos index' first.[/yellow]")
            raise typer.Exit(code=1)
        stats = loaded[0]

    index = CollocationIndex(stats, settings.collocation_significance)
    results = index.top_collocations(word, top)

    if not results:
        rprint(f"[yellow]No significant collocations for '{word}'[/yellow]")
        return

    table = Table(title=f"Collocations of '{word.lower()}'")
    table.add_column("Partner", style="cyan")
    table.add_column("PMI", justify="right")
    table.add_column("NPMI", justify="right")
    table.add_column("G2", justify="right")
    table.add_column("Count", justify="right")
    for r in results:
        partner = r.word2 if r.word1 == word.lower() else r.word1
        table.add_row(partner, f"{r.pmi:.3f}", f"{r.npmi:.3f}", f"{r.significance:.2f}", str(r.cooccurrence))
    console.print(table)


@app.command("ability")
def estimate(
    responses_file: Path = typer.Argument(..., help="JSON list of {a, b, c, correct} objects"),
    method: EstimationMethod = typer.Option(EstimationMethod.AUTO, "--method", "-m", help="mle, eap or auto"),
) -> None:
    """Estimate ability (theta) from scored item responses."""
    rows = _load_json_list(responses_file)
    try:
        responses = [
            ItemResponse(
                item=ItemParameters(
                    item_id=str(row.get("item_id", i)),
                    a=float(row.get("a", 1.0)),
                    b=float(row.get("b", 0.0)),
                    c=float(row.get("c", 0.0)),
                ),
                correct=bool(row["correct"]),
            )
            for i, row in enumerate(rows)
        ]
        result = estimate_ability(responses, method, IRTConfig.from_settings())
    except (KeyError, ValueError, TypeError, LogosError) as exc:
        rprint(f"[red]✗[/red] Invalid response file: {exc}")
        raise typer.Exit(code=1)

    table = Table(title="Ability estimate")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Theta", f"{result.theta:.4f}")
    table.add_row("Standard error", f"{result.standard_error:.4f}")
    table.add_row("Method", result.method.value)
    table.add_row("Responses", str(result.n_responses))
    table.add_row("Converged", "yes" if result.converged else "no")
    table.add_row("Boundary", "yes" if result.boundary else "no")
    table.add_row("Low confidence", "[yellow]yes[/yellow]" if result.low_confidence else "no")
    console.print(table)


@app.command("diagnose")
def diagnose(
    responses_file: Path = typer.Argument(..., help="JSON list of response records"),
    window: int | None = typer.Option(None, "--window", "-w", help="Only the most recent N responses"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Find the primary bottleneck component from a response history."""
    rows = _load_json_list(responses_file)
    try:
        report = BottleneckDetector(BottleneckConfig.from_settings()).analyze(rows, window=window)
    except LogosError as exc:
        rprint(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(report.to_dict()))
        return

    table = Table(title="Component error rates")
    table.add_column("Component", style="cyan")
    table.add_column("Error rate", justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Status")
    table.add_column("Error patterns", style="dim")
    for d in report.components:
        rate = "-" if d.error_rate is None else f"{d.error_rate:.0%}"
        if d.component == report.primary_bottleneck:
            status = "[red]bottleneck[/red]"
        elif not d.sufficient_data:
            status = "[dim]insufficient data[/dim]"
        elif d.component in report.affected_components:
            status = "[yellow]affected[/yellow]"
        else:
            status = "ok"
        table.add_row(d.component.value, rate, str(d.sample_size), status, ", ".join(d.error_patterns[:2]))
    console.print(table)

    if report.primary_bottleneck:
        rprint(
            f"\n[bold]Primary bottleneck:[/bold] {report.summary()} "
            f"(confidence {report.confidence:.2f})"
        )
    rprint(f"[bold]Recommendation:[/bold] {report.recommendation}")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]logos-engine[/bold] v{__version__}")
    rprint("  IRT ability estimation, FSRS scheduling, PMI collocations, bottleneck diagnosis")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
