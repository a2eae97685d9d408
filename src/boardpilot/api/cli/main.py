"""BoardPilot CLI entry point."""

import typer
from rich.console import Console

from boardpilot.api.cli.commands import items, workflow
from boardpilot.api.cli.logging_config import configure_logging

app = typer.Typer(
    name="boardpilot",
    help="BoardPilot - specify, plan and create Azure DevOps work items",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(items.app, name="item", help="Read work items")
app.add_typer(workflow.app, name="workflow", help="Specify, plan and execute")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", help="Profile directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """BoardPilot CLI."""
    configure_logging(verbose)
    ctx.obj = {"profile": profile, "config_dir": config_dir, "verbose": verbose}


@app.command()
def version():
    """Show BoardPilot version."""
    from boardpilot import __version__

    console.print(f"[bold blue]BoardPilot[/bold blue] version [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
