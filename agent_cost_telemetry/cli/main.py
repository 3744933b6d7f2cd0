"""
CLI interface for agent cost telemetry.

Provides command-line access to recording, listings, analytics and anomalies.
"""

import json
import logging
import sqlite3
import sys
from dataclasses import dataclass
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from agent_cost_telemetry.config.loader import TelemetryConfig, load_telemetry_config
from agent_cost_telemetry.core.analytics import AnalyticsResult, AnomalyReport, TelemetryAnalytics
from agent_cost_telemetry.core.anomaly import AnomalySeverity
from agent_cost_telemetry.core.errors import TelemetryError
from agent_cost_telemetry.core.identity import StaticIdentityProvider
from agent_cost_telemetry.core.validation import list_by_run, list_by_task, record_telemetry
from agent_cost_telemetry.demo.seed_demo_data import seed_demo_data
from agent_cost_telemetry.storage.repository import (
    SQLiteProjectResolver,
    SQLiteTelemetryRepository,
    initialize_schema,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

USER_ENVVAR = "AGENT_COST_TELEMETRY_USER"

_SEVERITY_STYLE = {
    AnomalySeverity.LOW: "yellow",
    AnomalySeverity.MEDIUM: "dark_orange",
    AnomalySeverity.HIGH: "red",
}


@dataclass
class CLIState:
    config: TelemetryConfig
    db_path: str

    def repository(self) -> SQLiteTelemetryRepository:
        return SQLiteTelemetryRepository(self.db_path)

    def resolver(self) -> SQLiteProjectResolver:
        return SQLiteProjectResolver(self.db_path)

    def analytics(self) -> TelemetryAnalytics:
        return TelemetryAnalytics(
            self.repository(),
            self.resolver(),
            thresholds=self.config.anomaly,
            default_window_days=self.config.analytics.default_window_days,
            default_granularity=self.config.analytics.default_granularity,
            default_category_type=self.config.analytics.default_category_type,
        )


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Agent cost telemetry CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        loaded = load_telemetry_config(config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        _fail(str(e))
    ctx.obj = CLIState(config=loaded, db_path=db or loaded.storage.db_path)
    if ctx.invoked_subcommand is None:
        console.print("Agent Cost Telemetry - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the telemetry database."""
    try:
        initialize_schema(ctx.obj.db_path)
    except sqlite3.Error as e:
        _fail(f"initializing database: {e}")
    console.print("[green]✓[/] Database initialized successfully")


@app.command()
def record(
    ctx: typer.Context,
    task_id: str = typer.Option(..., "--task-id", "-t", help="Task the run belongs to"),
    agent: str = typer.Option(..., "--agent", "-a", help="Agent name"),
    model: str = typer.Option(..., "--model", "-m", help="Model name"),
    input_tokens: int = typer.Option(..., "--input-tokens", help="Input token count"),
    output_tokens: int = typer.Option(..., "--output-tokens", help="Output token count"),
    cost: float = typer.Option(..., "--cost", help="Estimated cost in USD"),
    timestamp: Optional[int] = typer.Option(None, "--timestamp", help="Epoch milliseconds (default: now)"),
    run_id: Optional[str] = typer.Option(None, "--run-id", help="Run identifier"),
    session_key: Optional[str] = typer.Option(None, "--session-key", help="Session key"),
    user: Optional[str] = typer.Option(None, "--user", "-u", envvar=USER_ENVVAR, help="Caller identity"),
):
    """Record telemetry for one agent run."""
    try:
        result = record_telemetry(
            StaticIdentityProvider(user),
            ctx.obj.repository(),
            task_id=task_id,
            agent=agent,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=cost,
            timestamp=timestamp,
            run_id=run_id,
            session_key=session_key,
        )
    except (TelemetryError, sqlite3.Error, OverflowError) as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Recorded telemetry {result.id}")


@app.command("assign-task")
def assign_task(ctx: typer.Context, task_id: str, project: str):
    """Register the project a task belongs to."""
    try:
        ctx.obj.resolver().assign(task_id, project)
    except sqlite3.Error as e:
        _fail(str(e))
    console.print(f"[green]✓[/] {task_id} → {project}")


def _print_rows(rows, title: str) -> None:
    if not rows:
        console.print(f"[dim]No telemetry found for {title}.[/]")
        return
    table = Table(title=title)
    for column in ("Id", "Timestamp", "Task", "Agent", "Model", "In", "Out", "Cost", "Run"):
        table.add_column(column)
    for row in rows:
        table.add_row(
            row.id,
            str(row.timestamp),
            row.task_id,
            row.agent,
            row.model,
            f"{row.input_tokens:,}",
            f"{row.output_tokens:,}",
            _format_currency(row.estimated_cost_usd),
            row.run_id or "",
        )
    console.print(table)


@app.command("list-task")
def list_task(
    ctx: typer.Context,
    task_id: str,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum rows (default 50, max 200)"),
):
    """Show the newest telemetry rows for a task."""
    try:
        rows = list_by_task(ctx.obj.repository(), task_id, limit)
    except (TelemetryError, sqlite3.Error) as e:
        _fail(str(e))
    _print_rows(rows, f"task {task_id}")


@app.command("list-run")
def list_run(
    ctx: typer.Context,
    run_id: str,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum rows (default 50, max 200)"),
):
    """Show the newest telemetry rows for a run."""
    try:
        rows = list_by_run(ctx.obj.repository(), run_id, limit)
    except (TelemetryError, sqlite3.Error) as e:
        _fail(str(e))
    _print_rows(rows, f"run {run_id.strip()}")


_START_OPTION = typer.Option(None, "--start-ms", help="Window start, epoch ms (default: end - window)")
_END_OPTION = typer.Option(None, "--end-ms", help="Window end, epoch ms (default: now)")
_GRANULARITY_OPTION = typer.Option(None, "--granularity", "-g", help="hour, day or week")
_CATEGORY_OPTION = typer.Option(None, "--category-type", help="agent or model")
_JSON_OPTION = typer.Option(False, "--json", help="Print the raw response as JSON")


@app.command()
def analytics(
    ctx: typer.Context,
    start_ms: Optional[int] = _START_OPTION,
    end_ms: Optional[int] = _END_OPTION,
    granularity: Optional[str] = _GRANULARITY_OPTION,
    category_type: Optional[str] = _CATEGORY_OPTION,
    as_json: bool = _JSON_OPTION,
):
    """Show cost over time, by project and by agent/model."""
    try:
        result = ctx.obj.analytics().get_analytics(start_ms, end_ms, granularity, category_type)
    except (TelemetryError, sqlite3.Error) as e:
        _fail(str(e))
    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return
    _display_analytics(result)


@app.command()
def anomalies(
    ctx: typer.Context,
    start_ms: Optional[int] = _START_OPTION,
    end_ms: Optional[int] = _END_OPTION,
    granularity: Optional[str] = _GRANULARITY_OPTION,
    category_type: Optional[str] = _CATEGORY_OPTION,
    as_json: bool = _JSON_OPTION,
):
    """Show statistical cost anomalies for a window."""
    try:
        report = ctx.obj.analytics().get_anomaly_primitives(start_ms, end_ms, granularity, category_type)
    except (TelemetryError, sqlite3.Error) as e:
        _fail(str(e))
    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
        return
    _display_anomalies(report)


@app.command("seed-demo")
def seed_demo(ctx: typer.Context):
    """Insert demo telemetry that ends with a cost spike."""
    try:
        initialize_schema(ctx.obj.db_path)
        ids = seed_demo_data(ctx.obj.repository(), ctx.obj.resolver())
    except (TelemetryError, sqlite3.Error) as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Inserted {len(ids)} demo telemetry rows")


def _format_currency(amount: float) -> str:
    """Format currency with symbol and thousands separators."""
    return f"${amount:,.4f}" if 0 < amount < 1 else f"${amount:,.2f}"


def _display_analytics(result: AnalyticsResult) -> None:
    totals = result.totals
    console.print("\n[bold]Agent Cost Analytics[/bold]")
    console.print("-" * 40)
    console.print(f"Entries: {totals.entries:,}")
    console.print(f"Tokens: {totals.input_tokens:,} in / {totals.output_tokens:,} out")
    console.print(f"Total cost: {_format_currency(totals.cost_usd)}")
    console.print(f"Projects: {totals.unique_projects}")

    period_table = Table(title=f"Cost per {result.window.granularity.value}")
    period_table.add_column("Period")
    period_table.add_column("Entries", justify="right")
    period_table.add_column("Cost", justify="right")
    for bucket in result.period:
        period_table.add_row(bucket.label, str(bucket.entries), _format_currency(bucket.cost_usd))
    console.print(period_table)

    project_table = Table(title="Cost by project")
    project_table.add_column("Project")
    project_table.add_column("Entries", justify="right")
    project_table.add_column("Cost", justify="right")
    for bucket in result.projects:
        project_table.add_row(bucket.project, str(bucket.entries), _format_currency(bucket.cost_usd))
    console.print(project_table)

    category_table = Table(title=f"Cost by {result.window.category_type.value}")
    category_table.add_column(result.window.category_type.value.capitalize())
    category_table.add_column("Entries", justify="right")
    category_table.add_column("Tokens", justify="right")
    category_table.add_column("Cost", justify="right")
    for bucket in result.categories:
        category_table.add_row(
            bucket.category,
            str(bucket.entries),
            f"{bucket.input_tokens + bucket.output_tokens:,}",
            _format_currency(bucket.cost_usd),
        )
    console.print(category_table)


def _display_anomalies(report: AnomalyReport) -> None:
    if not report.anomalies:
        console.print("[green]✓[/] No cost anomalies detected")
        return
    console.print(f"\n[bold]⚠ {len(report.anomalies)} cost anomalies detected[/bold]")
    for anomaly in report.anomalies:
        style = _SEVERITY_STYLE[anomaly.severity]
        console.print(
            f"[{style}]{anomaly.severity.value.upper()}[/] "
            f"{anomaly.kind.value} (score {anomaly.score:.2f}): {anomaly.message}"
        )


if __name__ == "__main__":
    app()
