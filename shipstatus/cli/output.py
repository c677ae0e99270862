"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable JSON
output (--json flag). All formatting goes through these functions so the
CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.table import Table

from shipstatus.db.models import ShipmentStatusAudit
from shipstatus.services.reconciliation import ReconciliationSummary
from shipstatus.services.status_config import get_status_display_info
from shipstatus.services.status_models import StatusComputationResult
from shipstatus.services.status_service import StatusExplanation

console = Console()

# Status display colors mapped onto Rich color names
STATUS_COLORS = {
    "gray": "bright_black",
    "red": "red",
    "blue": "blue",
    "amber": "yellow",
    "indigo": "bright_blue",
    "purple": "magenta",
    "green": "green",
    "orange": "dark_orange",
}


def format_status(status: str) -> str:
    """Render a status value as Rich markup using its display color."""
    info = get_status_display_info(status)
    color = STATUS_COLORS.get(info.color, "white")
    return f"[{color}]{status}[/{color}]"


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_explanation(explanation: StatusExplanation, as_json: bool = False) -> str:
    """Format a display-only status evaluation.

    Args:
        explanation: Result of describe_status().
        as_json: If True, return JSON string instead of Rich output.

    Returns:
        Formatted string output.
    """
    result = explanation.result
    if as_json:
        return json.dumps(
            {
                "shipment_id": explanation.shipment_id,
                "stored_status": explanation.stored_status,
                "computed_status": result.status.value,
                "reason": result.reason,
                "reason_ar": result.reason_ar,
                "trigger": result.trigger.value,
                "label": explanation.display.label,
                "label_ar": explanation.display.label_ar,
                "override_active": explanation.override_active,
                "override_by": explanation.override_by,
                "override_reason": explanation.override_reason,
                "snapshot": result.snapshot.model_dump(mode="json"),
            },
            indent=2,
            ensure_ascii=False,
        )

    lines = [
        f"[bold]Shipment:[/bold]  {explanation.shipment_id}",
        f"[bold]Stored:[/bold]    {format_status(explanation.stored_status)}",
        f"[bold]Computed:[/bold]  {format_status(result.status.value)} "
        f"({explanation.display.label})",
        f"[bold]Reason:[/bold]    {result.reason}",
        f"[bold]Trigger:[/bold]   {result.trigger.value}",
    ]
    if explanation.override_active:
        lines.append(
            f"[bold]Override:[/bold]  by {explanation.override_by}: "
            f"{explanation.override_reason}"
        )
    return "\n".join(lines)


def format_result(result: StatusComputationResult, as_json: bool = False) -> str:
    """Format the outcome of a recalculation, override or confirmation."""
    if as_json:
        return json.dumps(
            {
                "status": result.status.value,
                "reason": result.reason,
                "reason_ar": result.reason_ar,
                "trigger": result.trigger.value,
            },
            indent=2,
            ensure_ascii=False,
        )
    return f"{format_status(result.status.value)}: {result.reason}"


def format_history_table(
    entries: list[ShipmentStatusAudit], as_json: bool = False
) -> str:
    """Format status audit entries as a Rich table or JSON.

    Args:
        entries: Audit entries, newest first.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(
            [
                {
                    "calculated_at": e.calculated_at,
                    "previous_status": e.previous_status,
                    "new_status": e.new_status,
                    "trigger_type": e.trigger_type,
                    "calculated_by": e.calculated_by,
                    "status_reason": e.status_reason,
                }
                for e in entries
            ],
            indent=2,
            ensure_ascii=False,
        )

    if not entries:
        return "No status history."

    table = Table(title="Status History", show_lines=True)
    table.add_column("When", no_wrap=True)
    table.add_column("From")
    table.add_column("To")
    table.add_column("Trigger", style="cyan")
    table.add_column("By")
    table.add_column("Reason")

    for entry in entries:
        table.add_row(
            entry.calculated_at[:19],
            format_status(entry.previous_status) if entry.previous_status else "—",
            format_status(entry.new_status),
            entry.trigger_type,
            entry.calculated_by,
            entry.status_reason or "—",
        )

    return _render(table)


def format_summary(summary: ReconciliationSummary, as_json: bool = False) -> str:
    """Format a reconciliation run summary."""
    if as_json:
        return json.dumps(summary.as_dict(), indent=2)
    error_color = "red" if summary.errors else "green"
    return (
        f"Processed: {summary.processed}  "
        f"Updated: [cyan]{summary.updated}[/cyan]  "
        f"Errors: [{error_color}]{summary.errors}[/{error_color}]"
    )
