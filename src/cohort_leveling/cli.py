"""Command-line interface for cohort leveling."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="cohort-leveling",
    help="Cohort Leveling - class placement for a grade cohort",
    add_completion=False,
)

console = Console()

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    from cohort_leveling.config import get_settings

    level = get_settings().app.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_path: Optional[Path]):
    from cohort_leveling.config import LevelingConfig, get_settings

    if config_path:
        return LevelingConfig.from_yaml(config_path)
    return get_settings().leveling


def _build_store():
    """Store used by every command; tests replace this."""
    from database import PostgresPlacementStore

    return PostgresPlacementStore()


def _run(coro):
    async def runner():
        from database import close_database_pool

        try:
            return await coro
        finally:
            await close_database_pool()

    return asyncio.run(runner())


def _parse_moves(moves: List[str]) -> List[tuple]:
    parsed = []
    for move in moves:
        student_id, sep, section = move.partition("=")
        if not sep or not student_id or not section:
            raise typer.BadParameter(f"Expected STUDENT_ID=SECTION, got '{move}'")
        parsed.append((student_id.strip(), section.strip()))
    return parsed


def _print_counts(session) -> None:
    table = Table(title="Section counts")
    for section in session.sections:
        table.add_column(section, justify="right")
    table.add_column("Total", justify="right")
    counts = session.section_counts()
    table.add_row(*[str(counts[s]) for s in session.sections], str(len(session)))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    from cohort_leveling import __version__

    console.print(Panel.fit(
        f"[bold blue]Cohort Leveling[/bold blue]\n"
        f"Version: [green]{__version__}[/green]",
        title="Version Info"
    ))


@app.command()
def test_db(
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Database URL (defaults to DATABASE_URL env var)"
    )
):
    """Test database connectivity."""
    from database import DatabasePool, create_pool_config_from_settings, pool_config_from_url

    console.print("[yellow]Testing database connection...[/yellow]")

    async def check() -> bool:
        config = pool_config_from_url(url) if url else create_pool_config_from_settings()
        pool = DatabasePool(config)
        try:
            await pool.initialize()
            return await pool.health_check()
        finally:
            await pool.close()

    try:
        ok = asyncio.run(check())
    except Exception as e:
        console.print(f"[red]❌ Database connection failed: {e}[/red]")
        raise typer.Exit(code=1)

    if ok:
        console.print("[green]✅ Database connection successful![/green]")
    else:
        console.print("[red]❌ Database health check failed[/red]")
        raise typer.Exit(code=1)


@app.command()
def results(
    cycle_id: str = typer.Argument(..., help="Leveling cycle id"),
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Only students currently in this section"),
    borderline: bool = typer.Option(False, "--borderline", help="Only students whose suggested section differs"),
    sort: str = typer.Option("composite", "--sort", help="composite, cwpm, writing or name"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Leveling YAML config"),
):
    """Show the cohort results report for a cycle."""
    from placement import LevelingError, PlacementWorkflow, ReportSort, build_report, filter_rows

    _configure_logging()
    config = _load_config(config_path)

    try:
        sort_by = ReportSort(sort)
    except ValueError:
        raise typer.BadParameter(f"Unknown sort '{sort}'")

    async def load():
        workflow = PlacementWorkflow(_build_store(), config)
        snapshot = await workflow.load_snapshot(cycle_id)
        placements = workflow.engine.run(snapshot)
        return build_report(placements, snapshot)

    try:
        report_rows = _run(load())
    except LevelingError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    rows = filter_rows(report_rows, section=section, borderline_only=borderline, sort_by=sort_by)

    table = Table(title=f"Results: {cycle_id}")
    for column in ("Student", "Current", "Test", "Grades", "Anecdotal", "Composite", "Pct", "Suggested", ""):
        table.add_column(column)
    for row in rows:
        flags = []
        if row.safety_floor_applied:
            flags.append("floor")
        if row.is_watchlist:
            flags.append("watch")
        suggested = f"[bold yellow]{row.suggested_section}[/bold yellow]" if row.is_borderline else row.suggested_section
        table.add_row(
            row.student_name,
            row.current_section,
            f"{row.test_ratio:.2f}",
            f"{row.grade_ratio:.2f}",
            f"{row.anecdotal_ratio:.2f}",
            f"{row.composite:.3f}",
            f"{row.percentile:.2f}",
            suggested,
            ", ".join(flags),
        )
    console.print(table)
    console.print(f"{len(rows)} student(s)")


@app.command()
def meeting(
    cycle_id: str = typer.Argument(..., help="Leveling cycle id"),
    move: List[str] = typer.Option([], "--move", "-m", help="Reassign a student: STUDENT_ID=SECTION"),
    save: bool = typer.Option(False, "--save", help="Save placements after applying moves"),
    operator: Optional[str] = typer.Option(None, "--operator", help="Operator id recorded on overrides"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Leveling YAML config"),
):
    """Open the placement meeting, apply reassignments and optionally save."""
    from placement import LevelingError, PlacementWorkflow

    _configure_logging()
    config = _load_config(config_path)
    moves = _parse_moves(move)

    async def run():
        workflow = PlacementWorkflow(_build_store(), config)
        session = await workflow.enter_meeting(cycle_id)
        for student_id, section in moves:
            session.reassign(student_id, section)
        report = await session.save(workflow.store, operator) if save else None
        return session, report

    try:
        session, report = _run(run())
    except LevelingError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    _print_counts(session)
    if session.read_only:
        console.print("[yellow]Cycle is finalized; placements are read-only[/yellow]")
    if session.unplaced:
        console.print(f"[yellow]Unplaced students: {', '.join(session.unplaced)}[/yellow]")

    overrides = session.overrides()
    if overrides:
        table = Table(title="Overrides")
        table.add_column("Student")
        table.add_column("Auto")
        table.add_column("Final")
        for student_id in overrides:
            table.add_row(student_id, session.auto_section(student_id), session.final_section(student_id))
        console.print(table)

    if report is not None:
        color = "green" if report.ok else "red"
        console.print(f"[{color}]{report.message('Placements saved')}[/{color}]")


@app.command()
def finalize(
    cycle_id: str = typer.Argument(..., help="Leveling cycle id"),
    operator: Optional[str] = typer.Option(None, "--operator", help="Operator id recorded on overrides"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Leveling YAML config"),
):
    """Finalize a cycle: save placements and update every student's section."""
    from placement import LevelingError, PlacementWorkflow

    _configure_logging()
    config = _load_config(config_path)

    confirmed = yes or typer.confirm("Finalize placements? This will update all student class assignments.")
    if not confirmed:
        console.print("[yellow]Finalize cancelled[/yellow]")
        raise typer.Exit(code=1)

    async def run():
        workflow = PlacementWorkflow(_build_store(), config)
        session = await workflow.enter_meeting(cycle_id)
        return await workflow.finalize(session, operator_id=operator, confirmed=True)

    try:
        report = _run(run())
    except LevelingError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    color = "green" if not report.errors else "red"
    console.print(Panel.fit(
        f"[{color}]{report.message()}[/{color}]\n"
        f"Placements saved: {report.placements.saved}/{report.placements.attempted}\n"
        f"Roster updated: {report.roster.saved}/{report.roster.attempted}\n"
        f"Finalized at: {report.finalized_at:%Y-%m-%d %H:%M}",
        title=f"Cycle {cycle_id}"
    ))


@app.command()
def emergency_move(
    student_id: str = typer.Argument(..., help="Student id"),
    section: str = typer.Argument(..., help="Target section"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the student is being moved"),
    operator: Optional[str] = typer.Option(None, "--operator", help="Operator id recorded on the note"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Leveling YAML config"),
):
    """Move a student to another section outside of a leveling cycle."""
    from placement import LevelingError, PlacementWorkflow

    _configure_logging()
    config = _load_config(config_path)

    async def run():
        workflow = PlacementWorkflow(_build_store(), config)
        return await workflow.emergency_move(student_id, section, reason, operator_id=operator)

    try:
        note = _run(run())
    except LevelingError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]✅ {note.note}[/green]")


@app.command()
def analyze(
    cycle_id: str = typer.Argument(..., help="Leveling cycle id"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Leveling YAML config"),
):
    """Compare automatic and final placements of a cycle."""
    from placement import LevelingError, OverrideAnalyzer, PlacementWorkflow

    _configure_logging()
    config = _load_config(config_path)

    async def load():
        store = _build_store()
        workflow = PlacementWorkflow(store, config)
        cycle = await workflow.get_cycle(cycle_id)
        records = await store.get_placement_records(cycle.id)
        ratings = await store.get_anecdotal_ratings(cycle.id)
        scores = await store.get_score_records(cycle.id)
        return records, ratings, {s.student_id: s.previous_section for s in scores if s.previous_section}

    try:
        records, ratings, previous = _run(load())
    except LevelingError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1)

    if not records:
        console.print("[yellow]No saved placements for this cycle[/yellow]")
        raise typer.Exit(code=1)

    analyzer = OverrideAnalyzer(config.sections)
    metrics = analyzer.analyze(records, ratings, previous)

    spearman = f"{metrics.spearman:.2f}" if metrics.spearman is not None else "n/a"
    agreement = metrics.recommendation_agreement
    console.print(Panel.fit(
        f"Students: {metrics.n_students}\n"
        f"Overrides: {metrics.override_count} ({metrics.override_rate:.0%}), "
        f"up {metrics.moved_up}, down {metrics.moved_down}\n"
        f"Mean shift: {metrics.mean_absolute_shift:.2f} sections (max {metrics.max_shift})\n"
        f"Spearman (auto vs final): {spearman}\n"
        f"Teacher recommendations followed: "
        f"{f'{agreement:.0%}' if agreement is not None else 'n/a'}",
        title="Override Analysis"
    ))
    for note in analyzer.concerns(metrics):
        console.print(f"[yellow]• {note}[/yellow]")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
