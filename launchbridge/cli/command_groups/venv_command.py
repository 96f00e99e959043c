"""Venv command group: the isolated package environment for plugin dependencies."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from launchbridge.config.loader import load_config
from launchbridge.plugins.manager import get_plugin_provider
from launchbridge.utils.exceptions import ProcessError


def register_venv_commands(app: typer.Typer, console: Console) -> None:
    """Register venv command group."""
    venv_app = typer.Typer(help="Manage the plugin package environment")
    app.add_typer(venv_app, name="venv")

    @venv_app.command("path")
    def venv_path() -> None:
        env = get_plugin_provider(load_config()).environment
        table = Table(title="Package Environment", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("venv", str(env.venv_path))
        table.add_row("site-packages", str(env.site_packages_path))
        table.add_row("exists", str(env.venv_path.is_dir()))
        table.add_row("stale", str(env.is_stale()))
        console.print(table)

    @venv_app.command("check")
    def venv_check(packages: list[str] = typer.Argument(..., help="Package names")) -> None:
        provider = get_plugin_provider(load_config())
        try:
            ok = provider.check_packages(packages)
        except ProcessError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(1)
        if ok:
            console.print("[green]All packages installed[/green]")
            return
        console.print("[yellow]Missing packages[/yellow]")
        raise typer.Exit(1)

    @venv_app.command("install")
    def venv_install(packages: list[str] = typer.Argument(..., help="Package names")) -> None:
        provider = get_plugin_provider(load_config())
        try:
            error = provider.install_packages(packages)
        except ProcessError as exc:
            error = exc.output
        if error is not None:
            console.print(f"[red]Install failed[/red]\n{error}")
            raise typer.Exit(1)
        console.print(f"[green]Installed {', '.join(packages)}[/green]")

    @venv_app.command("reset")
    def venv_reset(
        yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    ) -> None:
        env = get_plugin_provider(load_config()).environment
        if not yes and not typer.confirm(f"Delete {env.venv_path}?"):
            raise typer.Exit(1)
        env.reset()
        console.print(f"[green]Removed {env.venv_path}[/green]")
