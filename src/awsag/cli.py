#!/usr/bin/env python3
"""
awsag - access grant orchestration

A CLI tool for inspecting access grant operations, permission templates and
configuration for Azure AD groups granted access through AWS IAM Identity Center.
"""
import typer
from rich.console import Console

from . import __version__
from .commands import config, operations, templates
from .utils.config import Config
from .utils.logging_config import LoggingConfig, LogLevel, setup_logging

app = typer.Typer(
    help="Access grant orchestration - inspect operations, permission templates and configuration.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

# Add subcommands
app.add_typer(operations.app, name="operations")
app.add_typer(templates.app, name="templates")
app.add_typer(config.app, name="config")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging from the logging section of the configuration."""
    logging_config = LoggingConfig.from_dict(Config().get_logging_config())
    if verbose:
        logging_config.level = LogLevel.DEBUG
    setup_logging(logging_config)


# Add version command
@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"awsag version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()
