"""Permission template commands for awsag.

Commands:
    list: List built-in and custom permission templates
    show: Show the policies and settings of one template
    recommend: Suggest templates for a use case description

Custom templates are YAML files placed in the directory configured under
``templates.directory`` (default ``~/.awsag/templates``); the file name
without extension becomes the template key.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..permission_sets.catalog import TemplateCatalog
from ..permission_sets.models import PermissionSetConfig
from ..permission_sets.validator import PermissionSetValidator
from ..utils.config import Config

console = Console()

app = typer.Typer(help="Browse permission templates used to build access grant permission sets.")


def get_catalog(config: Optional[Config] = None) -> TemplateCatalog:
    """Return the built-in catalog extended with templates from the configured directory."""
    catalog = TemplateCatalog()
    directory = (config or Config()).get("templates.directory")
    if directory and Path(directory).expanduser().is_dir():
        catalog.load_directory(directory)
    return catalog


@app.command("list")
def list_templates(
    format: str = typer.Option("table", "--format", "-f", help="Output format (table or json)"),
):
    """List available permission templates."""
    try:
        catalog = get_catalog()
    except Exception as e:
        console.print(f"[red]Error: Failed to load templates: {str(e)}[/red]")
        raise typer.Exit(1)

    if format.lower() == "json":
        console.print(
            json.dumps({key: template.to_dict() for key, template in catalog.items()}, indent=2)
        )
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Template", style="cyan", no_wrap=True)
    table.add_column("Permission Set", style="magenta")
    table.add_column("Session", style="green")
    table.add_column("Description")
    for key, template in catalog.items():
        table.add_row(key, template.name, template.session_duration, template.description)
    console.print(table)


@app.command("show")
def show_template(
    name: str = typer.Argument(..., help="Template key, e.g. readonly"),
):
    """Show one permission template and its validation result."""
    catalog = get_catalog()
    template = catalog.get(name)
    if template is None:
        console.print(f"[red]Error: Template '{name}' not found.[/red]")
        console.print(f"[yellow]Available templates: {', '.join(catalog.names())}[/yellow]")
        raise typer.Exit(1)

    lines = [
        f"[bold]Permission set name:[/bold] {template.name}",
        f"[bold]Description:[/bold] {template.description}",
        f"[bold]Session duration:[/bold] {template.session_duration}",
        "[bold]Managed policies:[/bold]",
    ]
    lines.extend(f"  - {arn}" for arn in template.managed_policies or ["(none)"])
    if template.inline_policy:
        lines.append("[bold]Inline policy:[/bold]")
        lines.append(json.dumps(json.loads(template.inline_policy), indent=2))
    if template.tags:
        lines.append(
            "[bold]Tags:[/bold] " + ", ".join(f"{k}={v}" for k, v in sorted(template.tags.items()))
        )
    console.print(Panel("\n".join(lines), title=f"Template {name}"))

    validation = PermissionSetValidator().validate(
        PermissionSetConfig(
            name=template.name,
            description=template.description,
            session_duration=template.session_duration,
            managed_policies=list(template.managed_policies),
            inline_policy=template.inline_policy,
            tags=dict(template.tags),
        )
    )
    for error in validation.errors:
        console.print(f"[red]✗ {error}[/red]")
    for warning in validation.warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@app.command("recommend")
def recommend_templates(
    use_case: str = typer.Argument(..., help="Free-text description of the access needed"),
):
    """Suggest permission templates for a use case."""
    catalog = get_catalog()
    recommendations = catalog.recommend(use_case)
    if not recommendations:
        console.print("[yellow]No matching templates found.[/yellow]")
        raise typer.Exit(0)

    console.print(f"[bold blue]Recommended templates for:[/bold blue] {use_case}")
    for key in recommendations:
        template = catalog.get(key)
        console.print(f"  [cyan]{key}[/cyan] - {template.description}")
