"""Brokkr CLI - install and update host plugins."""

import asyncio
from pathlib import Path
import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from brokkr import __version__
from brokkr.config import BrokkrConfig, validate_config
from brokkr.logging import get_logger, setup_logging
from brokkr.marketplace.fetcher import InstallProgress
from brokkr.marketplace.results import InstallSuccess
from brokkr.plugins.delegate import load_delegate
from brokkr.plugins.manager import PluginManager

log = get_logger(__name__)

console = Console()


def _run(ctx: click.Context, operation):
    """Run ``operation(manager)`` inside a started manager."""
    config: BrokkrConfig = ctx.obj["config"]
    delegate = None
    if ctx.obj.get("delegate"):
        try:
            delegate = load_delegate(ctx.obj["delegate"])
        except ValueError as e:
            log.error("delegate_load_failed", target=ctx.obj["delegate"], error=str(e))
            console.print(f"[red]✗ {e}[/red]")
            raise SystemExit(1)

    async def main():
        async with PluginManager(config, delegate=delegate) as manager:
            return await operation(manager)

    return asyncio.run(main())


def _print_outcome(outcome) -> None:
    if outcome.success:
        console.print(f"[green]✓ {outcome.message}[/green]")
    else:
        console.print(f"[red]✗ {outcome.message}[/red]")


def _with_progress(operation):
    """Wrap an install-style call with a rich progress bar."""
    async def run(manager: PluginManager):
        with Progress(
            TextColumn("[bold]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("resolving", total=1.0)

            def on_progress(update: InstallProgress):
                progress.update(task, completed=update.fraction, description=update.stage)

            return await operation(manager, on_progress)

    return run


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(), help="Path to config file")
@click.option("--delegate", help="Host loader as module:factory")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str = None, delegate: str = None, verbose: bool = False):
    """Brokkr - plugin install and update orchestration"""
    config = BrokkrConfig.load(config_path)
    setup_logging(
        level="DEBUG" if verbose else config.log_level,
        log_file=str(config.log_file) if config.log_file else None,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["delegate"] = delegate


@cli.command()
@click.argument("query", required=False, default="")
@click.option("--category", "-c", help="Filter by category")
@click.option("--page", "-p", default=1, help="Result page (1-based)")
@click.pass_context
def search(ctx: click.Context, query: str = "", category: str = None, page: int = 1):
    """Search the plugin store.

    Examples:
        brokkr search terminal
        brokkr search --category devtools
    """
    result = _run(ctx, lambda m: m.search(query or None, category, page))

    if not result.success:
        console.print(f"[red]✗ Search failed: {result.error}[/red]")
        raise SystemExit(1)

    if not result.value:
        console.print("[yellow]No plugins found matching your criteria.[/yellow]")
        return

    table = Table(
        title=f"Plugin Store ({len(result.value)})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Id", style="cyan", width=24)
    table.add_column("Version", width=10)
    table.add_column("Downloads", justify="right", width=10)
    table.add_column("Source", width=10)
    table.add_column("Description", width=40)

    for entry in result.value:
        desc = entry.description[:37] + "..." if len(entry.description) > 40 else entry.description
        source = "store" if entry.store_hosted else "github"
        name = f"{entry.plugin_id} [green]✓[/green]" if entry.verified else entry.plugin_id
        table.add_row(name, entry.version, str(entry.download_count), source, desc)

    console.print(table)


@cli.command()
@click.argument("plugin_id")
@click.option("--json", "as_json", is_flag=True, help="Print the raw catalog entry")
@click.pass_context
def info(ctx: click.Context, plugin_id: str, as_json: bool = False):
    """Show store details for a plugin.

    Example:
        brokkr info terminal
    """
    async def lookup(manager: PluginManager):
        return await manager.details(plugin_id), manager.get_installed_plugin(plugin_id)

    result, installed = _run(ctx, lookup)

    if not result.success:
        console.print(f"[red]Plugin '{plugin_id}' not found: {result.error}[/red]")
        raise SystemExit(1)

    entry = result.value
    if as_json:
        console.print_json(data=entry.to_dict())
        return

    console.print(f"[bold cyan]Plugin: {entry.display_name}[/bold cyan] ({entry.plugin_id})\n")
    console.print(f"  [bold]Version:[/bold]     {entry.version}")
    console.print(f"  [bold]Author:[/bold]      {entry.author or '-'}")
    console.print(f"  [bold]Type:[/bold]        {entry.kind}")
    if entry.min_host_version:
        console.print(f"  [bold]Requires:[/bold]    host {entry.min_host_version}+")
    if installed:
        console.print(f"  [bold]Status:[/bold]      [green]Installed v{installed.version}[/green]")
    else:
        console.print("  [bold]Status:[/bold]      [dim]Not installed[/dim]")

    if entry.description:
        console.print(f"\n  [bold]Description:[/bold]\n  {entry.description}")
    if entry.tags:
        console.print(f"\n  [bold]Tags:[/bold]        {', '.join(entry.tags)}")
    if entry.source_url:
        console.print(f"  [bold]Source:[/bold]      {entry.source_url}")
    if entry.changelog:
        console.print(f"\n  [bold]Changelog:[/bold]\n  {entry.changelog}")


@cli.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show artifact paths")
@click.option("--json", "as_json", is_flag=True, help="Print records as JSON")
@click.pass_context
def list_installed(ctx: click.Context, verbose: bool = False, as_json: bool = False):
    """List installed plugins."""
    async def installed(manager: PluginManager):
        return manager.get_installed()

    records = _run(ctx, installed)

    if as_json:
        console.print_json(data=[record.to_dict() for record in records])
        return

    if not records:
        console.print("[yellow]No plugins installed.[/yellow]")
        return

    table = Table(title=f"Installed Plugins ({len(records)})", header_style="bold cyan")
    table.add_column("Id", style="cyan")
    table.add_column("Version")
    table.add_column("Source")
    table.add_column("Status")
    if verbose:
        table.add_column("Path", style="dim")

    for record in records:
        status = "[green]enabled[/green]" if record.enabled else "[dim]disabled[/dim]"
        if record.is_system:
            status += " [yellow](system)[/yellow]"
        row = [
            record.plugin_id,
            record.version,
            record.source.value if record.source else "-",
            status,
        ]
        if verbose:
            row.append(record.artifact_path)
        table.add_row(*row)

    console.print(table)


@cli.command()
@click.argument("target")
@click.option("--from-source", is_flag=True, help="TARGET is a GitHub repository URL")
@click.option("--file", "from_file", is_flag=True, help="TARGET is a local artifact file")
@click.pass_context
def install(ctx: click.Context, target: str, from_source: bool = False, from_file: bool = False):
    """Install a plugin.

    TARGET is a store plugin id, or with --from-source a repository URL,
    or with --file a local artifact.

    Examples:
        brokkr install terminal
        brokkr install --from-source https://github.com/acme/terminal-plugin
        brokkr install --file ./terminal-1.2.0.jar
    """
    if from_source and from_file:
        console.print("[red]Use only one of --from-source and --file.[/red]")
        raise SystemExit(2)

    if from_source:
        operation = lambda m, p: m.install_from_source(target, on_progress=p)
    elif from_file:
        operation = lambda m, p: m.install_from_local_artifact(Path(target), on_progress=p)
    else:
        operation = lambda m, p: m.install(target, on_progress=p)

    console.print(f"[bold]Installing: {target}[/bold]")
    outcome = _run(ctx, _with_progress(operation))
    _print_outcome(outcome)

    if isinstance(outcome, InstallSuccess):
        console.print(f"  [dim]Path: {outcome.record.artifact_path}[/dim]")
    elif not outcome.success:
        raise SystemExit(1)


@cli.command()
@click.argument("plugin_id")
@click.option("--force", "-f", is_flag=True, help="Uninstall without confirmation")
@click.pass_context
def uninstall(ctx: click.Context, plugin_id: str, force: bool = False):
    """Uninstall a plugin."""
    if not force and not click.confirm(f"Uninstall {plugin_id}?"):
        console.print("[yellow]Cancelled.[/yellow]")
        return

    outcome = _run(ctx, lambda m: m.uninstall(plugin_id))
    _print_outcome(outcome)
    if not outcome.success:
        raise SystemExit(1)


@cli.command()
@click.argument("plugin_id")
@click.pass_context
def update(ctx: click.Context, plugin_id: str):
    """Update a plugin to its latest version."""
    outcome = _run(ctx, _with_progress(lambda m, p: m.update(plugin_id, on_progress=p)))
    _print_outcome(outcome)
    if not outcome.success:
        raise SystemExit(1)


@cli.command()
@click.pass_context
def updates(ctx: click.Context):
    """List installed plugins with a newer store version."""
    candidates = _run(ctx, lambda m: m.check_for_updates())

    if not candidates:
        console.print("[green]All plugins are up to date.[/green]")
        return

    table = Table(title=f"Updates Available ({len(candidates)})", header_style="bold cyan")
    table.add_column("Id", style="cyan")
    table.add_column("Installed")
    table.add_column("Available", style="green")
    table.add_column("Notes")

    for candidate in candidates:
        notes = "[red]critical[/red] " if candidate.critical else ""
        notes += candidate.changelog.splitlines()[0] if candidate.changelog else ""
        table.add_row(
            candidate.plugin_id,
            candidate.installed_version,
            candidate.available_version,
            notes,
        )

    console.print(table)


@cli.command()
@click.argument("plugin_id")
@click.pass_context
def enable(ctx: click.Context, plugin_id: str):
    """Enable an installed plugin."""
    if _run(ctx, lambda m: m.enable(plugin_id)):
        console.print(f"[green]✓ Enabled {plugin_id}[/green]")
    else:
        console.print(f"[red]✗ Could not enable {plugin_id}[/red]")
        raise SystemExit(1)


@cli.command()
@click.argument("plugin_id")
@click.pass_context
def disable(ctx: click.Context, plugin_id: str):
    """Disable a plugin without uninstalling it."""
    if _run(ctx, lambda m: m.disable(plugin_id)):
        console.print(f"[green]✓ Disabled {plugin_id}[/green]")
    else:
        console.print(f"[red]✗ Could not disable {plugin_id}[/red]")
        raise SystemExit(1)


@cli.command()
@click.pass_context
def doctor(ctx: click.Context):
    """Check configuration and connectivity settings."""
    config: BrokkrConfig = ctx.obj["config"]

    console.print("[bold]Configuration[/bold]")
    console.print(f"  Catalog:     {config.catalog_url}")
    console.print(f"  GitHub API:  {config.github_api_url}")
    console.print(f"  Plugins dir: {config.plugins_dir}")

    warnings = validate_config(config)
    if warnings:
        console.print("\n[yellow]Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  ⚠ {warning}")
    else:
        console.print("\n[green]✓ Configuration looks good[/green]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
