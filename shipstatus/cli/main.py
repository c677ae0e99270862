"""shipstatus CLI: operate the shipment status engine from a terminal.

Usage:
    shipstatus db init                         Create the database tables
    shipstatus status show <id>                Explain the current status
    shipstatus status override <id> sailed -r "..." -a ops
    shipstatus reconcile run                   Run the date-based batch once
    shipstatus scheduler run                   Run the reconciliation schedule
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shipstatus.cli.config import ShipStatusConfig, load_config
from shipstatus.cli.output import (
    format_explanation,
    format_history_table,
    format_result,
    format_summary,
)
from shipstatus.errors import DomainError, NotFoundError
from shipstatus.services.clock import Clock, SystemClock
from shipstatus.services.reconciliation import reconcile_date_based_statuses
from shipstatus.services.status_audit_service import StatusAuditService
from shipstatus.services.status_service import ShipmentStatusService

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="shipstatus",
    help="Shipment status engine CLI",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
db_app = typer.Typer(help="Database management")
status_app = typer.Typer(help="Inspect and change shipment status")
reconcile_app = typer.Typer(help="Date-based status reconciliation")
scheduler_app = typer.Typer(help="Reconciliation scheduler")

app.add_typer(config_app, name="config")
app.add_typer(db_app, name="db")
app.add_typer(status_app, name="status")
app.add_typer(reconcile_app, name="reconcile")
app.add_typer(scheduler_app, name="scheduler")

console = Console()

# --- Global state ---
_config_path: str | None = None
_config: ShipStatusConfig | None = None
_clock: Clock | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to shipstatus.yaml config file"
    ),
):
    """Shipment status engine: rule-derived status with audited overrides."""
    global _config_path, _config, _clock
    _config_path = config
    _config = None
    _clock = None


def _get_config() -> ShipStatusConfig:
    """Load config once per invocation and apply logging/database settings."""
    global _config
    if _config is None:
        try:
            _config = load_config(config_path=_config_path) or ShipStatusConfig()
        except FileNotFoundError as e:
            console.print(f"[red]Config file not found:[/red] {escape(str(e))}")
            raise typer.Exit(1)
        except (ValueError, TypeError) as e:
            console.print(f"[red]Config validation failed:[/red] {escape(str(e))}")
            raise typer.Exit(1)

        logging.basicConfig(level=_config.logging.level, format=_config.logging.format)

        from shipstatus.db.connection import configure_database
        url = configure_database(_config.database.url or None, _config.database.echo)
        _log.debug("Using database %s", url)
    return _config


def _get_clock() -> Clock:
    """One clock per invocation, in the configured business timezone."""
    global _clock
    if _clock is None:
        _clock = SystemClock(_get_config().scheduler.timezone)
    return _clock


def _status_service(db: Session) -> ShipmentStatusService:
    return ShipmentStatusService(db, clock=_get_clock())


@contextmanager
def _session() -> Generator[Session, None, None]:
    """Open a session, reporting domain and database errors as CLI failures."""
    _get_config()
    from shipstatus.db.connection import get_db_context

    try:
        with get_db_context() as db:
            yield db
    except DomainError as e:
        console.print(f"[red]{escape(f'[{e.code}]')}[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except SQLAlchemyError as e:
        console.print(f"[red]Database error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _print(text: str, as_json: bool) -> None:
    # JSON goes out verbatim so it stays machine-parseable
    if as_json:
        typer.echo(text)
    else:
        console.print(text)


# --- Version ---


@app.command()
def version():
    """Show shipstatus version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("shipstatus")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]shipstatus[/bold] v{v}")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _get_config()

    console.print("[bold]Database:[/bold]")
    console.print(f"  url: {cfg.database.url or '(environment / default)'}")
    console.print(f"  echo: {cfg.database.echo}")

    console.print("\n[bold]Scheduler:[/bold]")
    console.print(f"  timezone: {cfg.scheduler.timezone}")
    console.print(
        "  run hours: " + ", ".join(f"{h:02d}:00" for h in cfg.scheduler.run_hours)
    )
    console.print(f"  run_on_startup: {cfg.scheduler.run_on_startup}")

    console.print("\n[bold]Reconciliation:[/bold]")
    console.print(f"  batch_limit: {cfg.reconciliation.batch_limit}")
    console.print(f"  actor: {cfg.reconciliation.actor}")

    console.print("\n[bold]Logging:[/bold]")
    console.print(f"  level: {cfg.logging.level}")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file."""
    path = config or _config_path
    try:
        cfg = load_config(config_path=path)
        if cfg is None:
            console.print("[red]No config file found.[/red]")
            console.print("Searched: ./shipstatus.yaml, ~/.shipstatus/config.yaml")
            raise typer.Exit(1)
        console.print("[green]Config is valid.[/green]")
        console.print(f"  Timezone: {cfg.scheduler.timezone}")
        console.print(f"  Batch limit: {cfg.reconciliation.batch_limit}")
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {escape(str(e))}")
        raise typer.Exit(1)


# --- Database commands ---


@db_app.command("init")
def db_init():
    """Create database tables (safe to run repeatedly)."""
    _get_config()
    from shipstatus.db import connection

    connection.init_db()
    console.print(f"[green]Database ready:[/green] {escape(connection.DATABASE_URL)}")


# --- Status commands ---


@status_app.command("show")
def status_show(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Explain what the status would be right now (no changes are written)."""
    with _session() as db:
        explanation = _status_service(db).describe_status(shipment_id)
        if explanation is None:
            raise NotFoundError("Shipment", shipment_id)
        _print(format_explanation(explanation, as_json=json_output), json_output)


@status_app.command("recalc")
def status_recalc(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    actor: str = typer.Option("cli", "--actor", "-a", help="Actor for the audit trail"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Recalculate and persist a shipment's status."""
    with _session() as db:
        result = _status_service(db).recalculate(shipment_id, actor)
        if result is None:
            raise NotFoundError("Shipment", shipment_id)
        _print(format_result(result, as_json=json_output), json_output)


@status_app.command("history")
def status_history(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries"),
    text: bool = typer.Option(False, "--text", help="Plain text export with snapshots"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show status transitions, newest first."""
    with _session() as db:
        audit = StatusAuditService(db)
        if text:
            typer.echo(audit.export_history_text(shipment_id, limit=limit))
            return
        entries = audit.get_history(shipment_id, limit=limit)
        _print(format_history_table(entries, as_json=json_output), json_output)


@status_app.command("override")
def status_override(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    status: str = typer.Argument(help="Status to force"),
    reason: str = typer.Option(..., "--reason", "-r", help="Justification (10+ chars)"),
    actor: str = typer.Option(..., "--actor", "-a", help="Operator setting the override"),
):
    """Force a status, bypassing the rules."""
    with _session() as db:
        result = _status_service(db).override(shipment_id, status, reason, actor)
        console.print(f"Override set: {format_result(result)}")


@status_app.command("clear-override")
def status_clear_override(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    actor: str = typer.Option("cli", "--actor", "-a", help="Operator clearing it"),
):
    """Clear a manual override and recalculate from the rules."""
    with _session() as db:
        result = _status_service(db).clear_override(shipment_id, actor)
        console.print(f"Override cleared: {format_result(result)}")


@status_app.command("confirm-receipt")
def status_confirm_receipt(
    shipment_id: str = typer.Argument(help="Shipment ID"),
    issues: bool = typer.Option(False, "--issues", help="Goods arrived with quality issues"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Receipt notes"),
    actor: str = typer.Option("cli", "--actor", "-a", help="Who confirmed receipt"),
):
    """Record warehouse receipt (one-shot) and recalculate."""
    with _session() as db:
        result = _status_service(db).confirm_receipt(
            shipment_id, has_issues=issues, actor=actor, notes=notes
        )
        console.print(f"Receipt confirmed: {format_result(result)}")


# --- Reconciliation commands ---


@reconcile_app.command("run")
def reconcile_run(
    limit: Optional[int] = typer.Option(None, "--limit", help="Override batch limit"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Run the date-based reconciliation batch once."""
    cfg = _get_config()
    with _session() as db:
        summary = reconcile_date_based_statuses(
            db,
            clock=_get_clock(),
            limit=limit or cfg.reconciliation.batch_limit,
            actor=cfg.reconciliation.actor,
        )
        _print(format_summary(summary, as_json=json_output), json_output)


# --- Scheduler commands ---


@scheduler_app.command("run")
def scheduler_run(
    now: bool = typer.Option(False, "--now", help="Also run once immediately"),
):
    """Run the reconciliation schedule in the foreground until interrupted."""
    cfg = _get_config()
    from shipstatus.db.connection import SessionLocal
    from shipstatus.services.scheduler import ReconciliationScheduler

    scheduler = ReconciliationScheduler(
        session_factory=SessionLocal,
        hours=cfg.scheduler.run_hours,
        timezone=cfg.scheduler.timezone,
        run_on_startup=now or cfg.scheduler.run_on_startup,
        batch_limit=cfg.reconciliation.batch_limit,
        actor=cfg.reconciliation.actor,
    )
    console.print(
        f"[bold]Scheduler running[/bold] ({cfg.scheduler.timezone}); "
        f"next run at {scheduler.next_run().isoformat()}. Ctrl+C to stop."
    )
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
        console.print("Scheduler stopped.")


if __name__ == "__main__":
    app()
