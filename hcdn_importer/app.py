"""Typer CLI entrypoint for the HCDN bill importer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, ImporterConfig, ScheduleConfig, ScheduleType
from .engine import JobAlreadyRunningError, PageStats, RunState, RunStatus
from .importer import ImportJob
from .infra import CheckpointStore, SQLiteManager
from .logging_conf import available_run_logs, configure_logging, log_dir, tail_log

app = typer.Typer(
    help="Import bills from the HCDN search results into a document store.",
    no_args_is_help=True,
)
checkpoint_app = typer.Typer(name="checkpoint", help="Inspect or move the import checkpoint.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Browse importer logs.", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: ImporterConfig
    checkpoint: CheckpointStore
    job_factory: Callable[[ImporterConfig], ImportJob]
    _job: ImportJob | None = field(default=None, repr=False)

    def job(self, **pool_overrides: int) -> ImportJob:
        if self._job is None:
            config = self.config
            if pool_overrides:
                config = config.model_copy(
                    update={"pool": config.pool.model_copy(update=pool_overrides)}
                )
            self._job = self.job_factory(config)
        return self._job


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load()
    checkpoint = CheckpointStore(
        SQLiteManager(),
        repository.resolve(config.checkpoint.path),
        default_page=config.checkpoint.default_page,
    )
    return AppState(
        repository=repository,
        config=config,
        checkpoint=checkpoint,
        job_factory=lambda cfg: ImportJob.from_config(cfg, repository.home),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _render_pages_table(pages: Iterable[PageStats]) -> Table:
    table = Table(title="Imported pages", box=box.SIMPLE_HEAD)
    table.add_column("Page", style="cyan", justify="right")
    table.add_column("Succeeded", style="green", justify="right")
    table.add_column("Failed", style="red", justify="right")
    table.add_column("Error", style="yellow", overflow="fold")
    for page in sorted(pages, key=lambda item: item.page_number):
        table.add_row(str(page.page_number), str(page.succeeded), str(page.failed), page.error or "")
    return table


def _render_summary(state: RunState) -> Table:
    summary = state.summary()
    table = Table(title="Run result", box=box.MINIMAL_DOUBLE_HEAD, show_header=False)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="cyan")
    for key in ("run_id", "status", "pages", "succeeded", "failed", "checkpoint", "error"):
        value = summary.get(key)
        table.add_row(key, "-" if value is None else str(value))
    return table


def _format_schedule(schedule: ScheduleConfig) -> str:
    if schedule.value in (None, "", {}):
        return schedule.type.value
    return f"{schedule.type.value} ({schedule.value})"


app.add_typer(checkpoint_app, name="checkpoint")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Run the import now, resuming after the checkpoint.")
def run_command(
    ctx: typer.Context,
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Stop after N pages."),
    pool_size: Optional[int] = typer.Option(None, "--pool-size", min=1, max=32, help="Concurrent page workers."),
    quiet: bool = typer.Option(False, "--quiet", help="Only print the run summary."),
) -> None:
    state = _get_state(ctx)
    overrides = {"pool_size": pool_size} if pool_size else {}
    job = state.job(**overrides)

    def _report(stats: PageStats) -> None:
        if quiet:
            return
        label = f"page {stats.page_number}: {stats.succeeded} ok, {stats.failed} failed"
        console.print(label if stats.error is None else f"{label} ({stats.error})", style="dim")

    try:
        result = job.run(max_pages=max_pages, on_page=_report)
    except JobAlreadyRunningError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)
    finally:
        job.close()
    if not quiet and result.pages:
        console.print(_render_pages_table(result.pages))
    console.print(_render_summary(result))
    if result.status is RunStatus.HALTED:
        raise typer.Exit(code=2)


@app.command("schedule", help="Run the import periodically until interrupted.")
def schedule_command(
    ctx: typer.Context,
    cron: Optional[str] = typer.Option(None, "--cron", help="Cron expression overriding the configured schedule."),
) -> None:
    state = _get_state(ctx)
    schedule = (
        ScheduleConfig(type=ScheduleType.CRON, value=cron) if cron else state.config.schedule
    )
    job = state.job()
    job.schedule(schedule)
    console.print(f"Import scheduled: {_format_schedule(schedule)}. Press Ctrl+C to stop.", style="green")
    next_run = job.scheduler.next_run_time() if job.scheduler is not None else None
    if next_run is not None:
        console.print(f"Next run: {next_run:%Y-%m-%d %H:%M %Z}")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="yellow")
        job.stop()
    finally:
        job.close()


@checkpoint_app.command("show", help="Print the last committed page.")
def checkpoint_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(f"Last committed page: {state.checkpoint.get()}")


@checkpoint_app.command("reset", help="Move the checkpoint, possibly backwards.")
def checkpoint_reset(
    ctx: typer.Context,
    page: Optional[int] = typer.Argument(None, min=0, help="New checkpoint (defaults to the configured default page)."),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation."),
) -> None:
    state = _get_state(ctx)
    if not yes and not typer.confirm("Reset the import checkpoint?", default=False):
        console.print("Checkpoint unchanged.", style="yellow")
        raise typer.Exit(code=0)
    value = state.checkpoint.reset(page)
    console.print(f"Checkpoint set to {value}.", style="green")


@app.command("history", help="Show recently imported pages.")
def history_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1, help="Number of pages to list."),
) -> None:
    state = _get_state(ctx)
    rows = state.checkpoint.history(limit)
    if not rows:
        console.print("No pages imported yet.", style="yellow")
        raise typer.Exit(code=0)
    table = Table(title="Page history", box=box.SIMPLE_HEAD)
    columns = ("run_id", "page", "succeeded", "failed", "error", "timestamp")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if row.get(column) is None else str(row[column]) for column in columns))
    console.print(table)


@log_app.command("list", help="List available log files.")
def log_list() -> None:
    base = log_dir()
    paths = [base / "importer.log", base / "error.log", *available_run_logs()]
    table = Table(title="Log files", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Path", overflow="fold")
    for path in paths:
        if path.exists():
            table.add_row(path.stem, str(path))
    console.print(table)


@log_app.command("show", help="Print the tail of a log file.")
def log_show(
    name: str = typer.Argument("importer", help="Log name: importer, error or a run id."),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines."),
) -> None:
    base = log_dir()
    candidates = [base / f"{name}.log", base / "runs" / f"{name}.log"]
    path: Path | None = next((candidate for candidate in candidates if candidate.exists()), None)
    if path is None:
        console.print(f"Log `{name}` not found.", style="red")
        raise typer.Exit(code=1)
    for line in tail_log(path, tail):
        console.print(line.rstrip("\n"), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
