"""Plugins command group: inspect, load and query Python plugins."""

from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from launchbridge.config.loader import load_config
from launchbridge.host import FallbackHandler, GeneratorQueryHandler, IndexQueryHandler, Item, Query
from launchbridge.plugins.core.types import LoaderState, PluginRecord
from launchbridge.plugins.manager import PythonPluginProvider, get_plugin_provider
from launchbridge.utils.exceptions import BridgeError

DEFAULT_LOAD_TIMEOUT_SECONDS = 600.0


def _provider(prepare: bool = False) -> PythonPluginProvider:
    provider = get_plugin_provider(load_config())
    if prepare:
        provider.initialize().result()
    else:
        provider.scan()
    return provider


def _state_style(state: str) -> str:
    return {
        LoaderState.LOADED.value: "green",
        LoaderState.VALIDATED.value: "cyan",
        LoaderState.REJECTED.value: "yellow",
        LoaderState.LOAD_FAILED.value: "red",
    }.get(state, "white")


def _record_row(record: PluginRecord) -> tuple[str, ...]:
    style = _state_style(record.state)
    return (
        record.id,
        record.name,
        record.version or "-",
        record.iid or "-",
        f"[{style}]{record.state}[/{style}]",
        record.source,
    )


def _info_fields(record: PluginRecord) -> list[tuple[str, str]]:
    return [
        ("ID", record.id),
        ("Name", record.name),
        ("Version", record.version or "-"),
        ("Interface", record.iid or "-"),
        ("Description", record.description or "-"),
        ("State", record.state),
        ("Source", record.source),
        ("Runtime deps", ", ".join(record.runtime_dependencies) or "-"),
        ("Binary deps", ", ".join(record.binary_dependencies) or "-"),
        ("Extensions", ", ".join(record.extension_ids) or "-"),
        ("Error", record.error or "-"),
    ]


def _items_table(title: str, items: list[Item]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Text")
    table.add_column("Subtext")
    table.add_column("Actions")
    for item in items:
        table.add_row(item.id(), item.text(), item.subtext(), ", ".join(a.text for a in item.actions()))
    return table


def _load_plugin(console: Console, provider: PythonPluginProvider, plugin_id: str, timeout: float) -> Any:
    loader = provider.loader(plugin_id)
    if loader is None:
        console.print(f"[red]Plugin not found: {plugin_id}[/red]")
        raise typer.Exit(1)
    if loader.state is not LoaderState.LOADED:
        try:
            message = loader.load().result(timeout=timeout)
        except FutureTimeoutError:
            console.print(f"[red]Loading {loader.id} timed out after {timeout:g}s[/red]")
            raise typer.Exit(1)
        except BridgeError as exc:
            console.print(f"[red]Failed to load {loader.id}:[/red] {exc}")
            raise typer.Exit(1)
        console.print(f"[green]{message}[/green]")
    return loader


def register_plugins_commands(app: typer.Typer, console: Console) -> None:
    """Register plugins command group."""
    plugins_app = typer.Typer(help="Manage Python plugins")
    app.add_typer(plugins_app, name="plugins")

    @plugins_app.command("list")
    def plugins_list(
        keyword: str = typer.Option("", "--keyword", "-k", help="Filter by id/name/source"),
    ) -> None:
        provider = _provider()
        records = provider.status().plugins
        if keyword:
            needle = keyword.lower()
            records = [r for r in records if needle in f"{r.id} {r.name} {r.source}".lower()]
        table = Table(title=f"Python Plugins ({len(records)})")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Version")
        table.add_column("IID")
        table.add_column("State")
        table.add_column("Source")
        for record in records:
            table.add_row(*_record_row(record))
        console.print(table)
        if not records:
            dirs = ", ".join(str(d) for d in provider.plugin_dirs())
            console.print(f"No Python plugins discovered. Plugin directories: {dirs}")
        for diag in provider.diagnostics:
            console.print(f"[yellow]{diag.get('path')}: {diag.get('message')}[/yellow]")

    @plugins_app.command("info")
    def plugins_info(plugin_id: str = typer.Argument(..., help="Plugin id or module name")) -> None:
        provider = _provider()
        loader = provider.loader(plugin_id)
        if loader is None:
            console.print(f"[red]Plugin not found: {plugin_id}[/red]")
            raise typer.Exit(1)
        table = Table(title=f"Plugin {loader.id}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for name, value in _info_fields(loader.to_record()):
            table.add_row(name, value)
        console.print(table)

    @plugins_app.command("load")
    def plugins_load(
        plugin_id: str = typer.Argument(..., help="Plugin id or module name"),
        timeout: float = typer.Option(DEFAULT_LOAD_TIMEOUT_SECONDS, "--timeout", help="Seconds to wait"),
    ) -> None:
        provider = _provider(prepare=True)
        loader = _load_plugin(console, provider, plugin_id, timeout)
        table = Table(title=f"Extensions of {loader.id}")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Kind")
        for ext in loader.instance().extensions():
            table.add_row(ext.id(), ext.name(), type(ext).__name__.replace("Trampoline", ""))
        console.print(table)

    @plugins_app.command("query")
    def plugins_query(
        plugin_id: str = typer.Argument(..., help="Plugin id or module name"),
        query: str = typer.Argument("", help="Query string"),
        batches: int = typer.Option(1, "--batches", "-n", min=1, help="Batches to fetch per handler"),
        timeout: float = typer.Option(DEFAULT_LOAD_TIMEOUT_SECONDS, "--timeout", help="Seconds to wait for loading"),
    ) -> None:
        provider = _provider(prepare=True)
        loader = _load_plugin(console, provider, plugin_id, timeout)
        try:
            extensions = loader.instance().extensions()
            for ext in extensions:
                if isinstance(ext, IndexQueryHandler):
                    ext.update_index_items()
                if isinstance(ext, GeneratorQueryHandler):
                    context = Query(query, ext.trigger())
                    stream = ext.items(context)
                    try:
                        for index, batch in zip(range(batches), stream):
                            console.print(_items_table(f"{ext.id()} batch {index + 1}", batch))
                    finally:
                        close = getattr(stream, "close", None)
                        if callable(close):
                            close()
                if isinstance(ext, FallbackHandler):
                    console.print(_items_table(f"{ext.id()} fallbacks", ext.fallbacks(query)))
        except BridgeError as exc:
            console.print(f"[red]{exc.code}:[/red] {exc}")
            raise typer.Exit(1)
        finally:
            loader.unload()
