"""Configuration management commands for awsag."""

import json

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from ..utils.config import Config

app = typer.Typer(
    help="Inspect awsag configuration: Azure enterprise app, AWS account mapping, retry, workflow and history settings."
)
console = Console()


@app.command("show")
def show_config(
    section: str = typer.Option(
        None,
        "--section",
        "-s",
        help="Show specific configuration section (azure, aws, retry, workflow, history, logging, templates)",
    ),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, yaml, json"),
) -> None:
    """Show the effective configuration (defaults, file and environment overrides merged)."""
    config = Config()
    config_data = config.get_all()

    if section:
        if section not in config_data:
            console.print(f"[red]Configuration section '{section}' not found.[/red]")
            console.print(f"Available sections: {', '.join(config_data.keys())}")
            raise typer.Exit(1)
        config_data = {section: config_data[section]}

    if format == "yaml":
        yaml_output = yaml.dump(config_data, default_flow_style=False, indent=2, sort_keys=False)
        console.print(Syntax(yaml_output, "yaml", theme="monokai", line_numbers=True))
    elif format == "json":
        json_output = json.dumps(config_data, indent=2)
        console.print(Syntax(json_output, "json", theme="monokai", line_numbers=True))
    else:
        console.print(f"[dim]Configuration file: {config.config_file}[/dim]")
        table = Table(show_header=True, header_style="bold blue")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        for section_name, section_data in config_data.items():
            if isinstance(section_data, dict):
                for key, value in section_data.items():
                    if isinstance(value, dict):
                        for sub_key, sub_value in value.items():
                            table.add_row(f"{section_name}.{key}.{sub_key}", str(sub_value))
                    else:
                        table.add_row(f"{section_name}.{key}", str(value))
            else:
                table.add_row(section_name, str(section_data))
        console.print(table)


@app.command("validate")
def validate_config():
    """Validate the current configuration."""
    config = Config()
    console.print("[blue]Validating configuration...[/blue]")

    errors, warnings = config.validate()

    if errors:
        console.print(f"[red]✗ Configuration validation failed with {len(errors)} error(s):[/red]")
        for error in errors:
            console.print(f"  [red]• {error}[/red]")
    else:
        console.print("[green]✓ Configuration validation passed[/green]")

    if warnings:
        console.print(f"[yellow]⚠ {len(warnings)} warning(s):[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]• {warning}[/yellow]")

    if errors:
        raise typer.Exit(1)
