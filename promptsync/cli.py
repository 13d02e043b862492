"""
CLI commands for promptsync.

Provides the `promptsync` command-line interface for scanning and syncing a
prompt vault, watching it for changes and managing configuration.
"""

import asyncio
import json
import logging
import sys
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config.loader import ConfigurationLoader
from .models.config import GlobalSettings, PromptSyncConfig
from .service import PromptFilter, PromptService, SortConfig
from .storage.sqlite import SqlitePromptCache
from .sync.engine import SyncOrchestrator
from .vault.errors import PromptSyncError

console = Console()
logger = logging.getLogger(__name__)

T = TypeVar('T')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _configure_logging(settings: GlobalSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    handlers = [logging.StreamHandler(sys.stderr)]

    log_file = settings.get_log_file()
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def _load_config(require_vault: bool = True) -> Tuple[ConfigurationLoader, PromptSyncConfig]:
    loader = ConfigurationLoader()
    config = loader.load_config()
    if require_vault and not config.is_vault_configured:
        console.print("[red]❌ Vault path not configured. Run 'promptsync config set-vault PATH' first.[/red]")
        sys.exit(1)
    return loader, config


def _run(operation: Callable[[SyncOrchestrator], Awaitable[T]]) -> T:
    """Run an operation against an orchestrator backed by the configured cache"""
    loader, config = _load_config()

    async def runner() -> T:
        async with SqlitePromptCache(loader.resolve_cache_path(config)) as cache:
            async with SyncOrchestrator(cache, config) as orchestrator:
                return await operation(orchestrator)

    try:
        return asyncio.run(runner())
    except PromptSyncError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="promptsync")
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def main(verbose: bool):
    """
    Prompt vault sync.

    Keep a folder of Markdown prompt files and a local cache in step.
    """
    _configure_logging(GlobalSettings(), verbose)


@main.command()
@click.option('--json', 'as_json', is_flag=True, help='Print scanned files as JSON')
def scan(as_json: bool):
    """Scan the vault without changing the cache."""
    files = _run(lambda orchestrator: orchestrator.scan_vault())

    if as_json:
        click.echo(json.dumps([
            {
                "file_path": f.file_path,
                "tags": f.normalized_tags,
                "created": f.created,
                "title": f.title,
                "content_hash": f.content_hash,
            }
            for f in files
        ], indent=2))
        return

    table = Table(title=f"Vault files ({len(files)})")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Tags", style="white")
    table.add_column("Created", style="dim")
    table.add_column("Hash", style="dim")
    for f in files:
        table.add_row(f.file_path, ", ".join(f.normalized_tags), f.created or "", f.content_hash[:12])
    console.print(table)


@main.command()
def sync():
    """Reconcile the cache with the vault once."""
    stats = _run(lambda orchestrator: orchestrator.sync_now())
    console.print(
        f"[green]✅ Sync complete[/green] "
        f"found={stats.found} updated={stats.updated} deleted={stats.deleted}"
    )
    if stats.skipped:
        console.print(f"[yellow]⚠️  {stats.skipped} file(s) skipped, see log for details[/yellow]")


async def _watch(orchestrator: SyncOrchestrator) -> None:
    stats = await orchestrator.sync_now()
    console.print(f"[blue]🔄 Initial sync: {stats}[/blue]")

    if not await orchestrator.start_watch():
        console.print(f"[red]❌ Watcher failed to start: {orchestrator.metrics.last_error_message}[/red]")
        return

    console.print(f"[green]👀 Watching {orchestrator.vault_path} (Ctrl+C to stop)[/green]")
    events = orchestrator.subscribe()
    while True:
        event = await events.get()
        if event.success:
            console.print(f"[blue]{event.name}[/blue] {event.stats}")
        else:
            console.print(f"[red]{event.name} failed: {event.error}[/red]")


@main.command()
def watch():
    """Sync, then keep syncing whenever vault files change."""
    try:
        _run(_watch)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped watching.[/yellow]")


@main.command()
def tags():
    """List the tag dictionary."""
    tag_names = _run(lambda orchestrator: orchestrator.cache.list_tags())
    for name in tag_names:
        click.echo(name)


@main.command(name='list')
@click.option('--tag', '-t', 'tag_filter', multiple=True, help='Required tag; prefix with - to exclude')
@click.option('--search', '-s', help='Case-insensitive text search')
@click.option('--sort', 'sort_by', type=click.Choice(['created', 'title']), default='created')
@click.option('--desc', is_flag=True, help='Sort descending')
def list_prompts(tag_filter: Tuple[str, ...], search: Optional[str], sort_by: str, desc: bool):
    """List cached prompts."""
    prompt_filter = PromptFilter(tags=list(tag_filter), search=search)
    sort = SortConfig(by=sort_by, order='desc' if desc else 'asc')

    prompts = _run(lambda orchestrator: PromptService(orchestrator).get_prompts(prompt_filter, sort))

    table = Table(title=f"Prompts ({len(prompts)})")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Tags", style="white")
    table.add_column("Created", style="dim")
    for prompt in prompts:
        table.add_row(prompt.id, prompt.title or "", ", ".join(prompt.tags), prompt.created or "")
    console.print(table)


@main.group()
def config():
    """Show or change configuration."""
    pass


@config.command(name='show')
def config_show():
    """Print the effective configuration."""
    loader, current = _load_config(require_vault=False)
    data = current.to_dict()
    data['effective_cache_path'] = str(loader.resolve_cache_path(current))
    data['config_file'] = str(loader.config_file)
    click.echo(json.dumps(data, indent=2))


@config.command(name='set-vault')
@click.argument('path', type=click.Path())
def config_set_vault(path: str):
    """Set the vault directory."""
    loader = ConfigurationLoader()
    try:
        updated = loader.set_vault_path(path)
    except PromptSyncError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✅ Vault set to {updated.vault_path}[/green]")


if __name__ == "__main__":
    main()
