"""CLI commands for launchbridge.

Registers the command groups (plugins, venv) on a single typer app.
"""

import typer
from rich.console import Console

from launchbridge import __logo__, __version__
from launchbridge.cli.command_groups.plugins_command import register_plugins_commands
from launchbridge.cli.command_groups.venv_command import register_venv_commands
from launchbridge.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file

app = typer.Typer(
    name="launchbridge",
    help=f"{__logo__} launchbridge - Python plugins for the launcher host",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} launchbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Console log level"),
    log_file: bool = typer.Option(False, "--log-file", help="Also write a rotating log file"),
):
    """launchbridge - Python plugins for the launcher host."""
    configure_console_logging(log_level)
    if log_file:
        ensure_rotating_log_file("launchbridge", level="DEBUG")


register_plugins_commands(app=app, console=console)
register_venv_commands(app=app, console=console)


if __name__ == "__main__":
    app()
