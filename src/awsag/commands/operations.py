"""Operation history commands for awsag.

This module provides read-only commands over the operation history written by
the orchestrator, plus retention cleanup.

Commands:
    list: List recorded operations with filtering options
    show: Show one operation with its assignments and errors
    cleanup: Apply the history retention rules

Examples:
    # List recent operations
    $ awsag operations list

    # List failed operations for the Prod account
    $ awsag operations list --status FAILED --environment Prod

    # Show one operation as JSON
    $ awsag operations show 3f1c2d4e-... --format json
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..exceptions import AccessGrantError
from ..models import AssignmentOperation, AssignmentStatus, OperationKind, OperationStatus
from ..storage.history import JsonOperationHistoryStore, OperationFilter, OperationHistoryStore
from ..utils.config import Config
from ..utils.validators import validate_environment

console = Console()

app = typer.Typer(
    help="Inspect access grant and assignment operations. List, show, and clean up operation history."
)

STATUS_STYLES = {
    OperationStatus.IN_PROGRESS: "blue",
    OperationStatus.COMPLETED: "green",
    OperationStatus.FAILED: "red",
    OperationStatus.ROLLED_BACK: "yellow",
}


def get_history_store(config: Optional[Config] = None) -> OperationHistoryStore:
    """Build the history store from the history section of the configuration."""
    history = (config or Config()).get_history_config()
    return JsonOperationHistoryStore(
        storage_directory=history.get("storage_directory"),
        max_entries=int(history.get("max_entries", 1000)),
        retention_days=int(history.get("retention_days", 30)),
    )


def _format_status(status: OperationStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _summarize_assignments(operation: AssignmentOperation) -> str:
    total = len(operation.assignments)
    if total == 0:
        return "-"
    active = sum(1 for a in operation.assignments if a.status == AssignmentStatus.ACTIVE)
    return f"{active}/{total} active"


@app.command("list")
def list_operations(
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter by status (IN_PROGRESS, COMPLETED, FAILED, ROLLED_BACK)"
    ),
    kind: Optional[str] = typer.Option(
        None, "--kind", "-k", help="Filter by kind (CREATE, DELETE, UPDATE)"
    ),
    environment: Optional[str] = typer.Option(
        None, "--environment", "-e", help="Filter by environment (Dev, QA, Staging, Prod)"
    ),
    days: Optional[int] = typer.Option(
        None, "--days", "-d", help="Show operations from the last N days"
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", help="Maximum number of operations to show"
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table or json)"),
):
    """List recorded operations, newest first."""
    if format.lower() not in ["table", "json"]:
        console.print(f"[red]Error: Invalid format '{format}'.[/red]")
        console.print("[yellow]Format must be either 'table' or 'json'.[/yellow]")
        raise typer.Exit(1)

    if days is not None and days <= 0:
        console.print("[red]Error: Days must be a positive integer.[/red]")
        raise typer.Exit(1)

    if limit is not None and limit <= 0:
        console.print("[red]Error: Limit must be a positive integer.[/red]")
        raise typer.Exit(1)

    operation_filter = OperationFilter(limit=limit)
    try:
        if status:
            operation_filter.status = OperationStatus(status.upper())
        if kind:
            operation_filter.kind = OperationKind(kind.upper())
    except ValueError as e:
        console.print(f"[red]Error: {str(e)}[/red]")
        raise typer.Exit(1)

    if days is not None:
        operation_filter.start_date = datetime.now(timezone.utc) - timedelta(days=days)

    config = Config()
    if environment:
        try:
            env = validate_environment(environment)
            operation_filter.account_id = config.get_orchestrator_config().account_for(env)
        except AccessGrantError as e:
            console.print(f"[red]Error: {e.message}[/red]")
            raise typer.Exit(1)

    try:
        operations = get_history_store(config).get_operations(operation_filter)
    except Exception as e:
        console.print(f"[red]Error: Failed to retrieve operations: {str(e)}[/red]")
        raise typer.Exit(1)

    if not operations:
        console.print("[yellow]No operations found.[/yellow]")
        raise typer.Exit(0)

    if format.lower() == "json":
        console.print(
            json.dumps(
                {"operations": [op.to_dict() for op in operations], "total_count": len(operations)},
                indent=2,
                default=str,
            )
        )
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Operation ID", style="cyan", no_wrap=True)
    table.add_column("Started", style="green")
    table.add_column("Kind", style="magenta")
    table.add_column("Status")
    table.add_column("Group", style="yellow")
    table.add_column("Assignments")
    table.add_column("Errors", justify="right")

    for operation in operations:
        group = operation.metadata.get("group_name") or (
            operation.assignments[0].group_name if operation.assignments else "-"
        )
        table.add_row(
            operation.operation_id,
            operation.start_time.strftime("%Y-%m-%d %H:%M"),
            operation.kind.value,
            _format_status(operation.status),
            group or "-",
            _summarize_assignments(operation),
            str(len(operation.errors)),
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(operations)} operations[/dim]")


@app.command("show")
def show_operation(
    operation_id: str = typer.Argument(..., help="Operation ID to show"),
    format: str = typer.Option("table", "--format", "-f", help="Output format (table or json)"),
):
    """Show one operation with its assignments and errors."""
    operation = get_history_store().get_operation(operation_id)
    if operation is None:
        console.print(f"[red]Error: Operation {operation_id} not found[/red]")
        raise typer.Exit(1)

    if format.lower() == "json":
        console.print(json.dumps(operation.to_dict(), indent=2, default=str))
        return

    duration = f"{operation.duration_ms} ms" if operation.duration_ms is not None else "-"
    details = [
        f"[bold]Kind:[/bold] {operation.kind.value}",
        f"[bold]Status:[/bold] {_format_status(operation.status)}",
        f"[bold]Started:[/bold] {operation.start_time.isoformat()}",
        f"[bold]Duration:[/bold] {duration}",
    ]
    for key, value in sorted(operation.metadata.items()):
        details.append(f"[bold]{key}:[/bold] {value}")
    console.print(Panel("\n".join(details), title=f"Operation {operation.operation_id}"))

    if operation.assignments:
        table = Table(title="Assignments", show_header=True, header_style="bold blue")
        table.add_column("Group", style="yellow")
        table.add_column("Account", style="green")
        table.add_column("Permission Set", style="magenta")
        table.add_column("Status")
        for assignment in operation.assignments:
            table.add_row(
                assignment.group_name or assignment.group_id,
                assignment.account_id,
                assignment.permission_set_arn.split("/")[-1],
                assignment.status.value,
            )
        console.print(table)

    if operation.errors:
        table = Table(title="Errors", show_header=True, header_style="bold red")
        table.add_column("Code", style="red")
        table.add_column("Phase")
        table.add_column("Message")
        for error in operation.errors:
            table.add_row(error.code, error.phase or "-", error.message)
        console.print(table)


@app.command("cleanup")
def cleanup_operations(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Remove operations past the retention period or beyond the entry limit."""
    if not yes and not typer.confirm("Apply history retention and delete old operations?"):
        console.print("[yellow]Cleanup cancelled.[/yellow]")
        raise typer.Exit(0)

    try:
        removed = get_history_store().cleanup()
    except Exception as e:
        console.print(f"[red]Error: Failed to clean up operation history: {str(e)}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]Removed {removed} operations from history.[/green]")
