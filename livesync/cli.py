"""CLI entry point for livesync."""

from __future__ import annotations

import asyncio
import signal
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Annotated
from urllib.parse import urlparse

import typer
from rich import print as rprint
from rich.table import Table

from livesync.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEMPLATE,
    LiveSyncConfig,
    load_config,
    validate_config,
)
from livesync.errors import LiveSyncError
from livesync.log import configure_logging
from livesync.store import DocumentStore
from livesync.sync import SyncEngine, SyncResult, client_from_config
from livesync.sync.git import DEFAULT_RANGE
from livesync.watcher import ChangeWatcher

app = typer.Typer(
    name="livesync",
    help="Bridge git pushes to Obsidian via CouchDB + Self-hosted LiveSync.",
)

hook_app = typer.Typer(help="Git post-receive hook integration.")
app.add_typer(hook_app, name="hook")

# Global state
_config: LiveSyncConfig | None = None
_config_path: str | None = None


def _get_config() -> LiveSyncConfig:
    if _config is None:
        return load_config()
    return _config


def _split_extensions(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [e.strip() for e in value.split(",") if e.strip()]


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help=f"Path to {CONFIG_FILENAME}")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Verbose logging")] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be synced without writing")
    ] = False,
    extensions: Annotated[
        str | None, typer.Option("--extensions", help="Comma-separated file extensions to sync")
    ] = None,
    debounce: Annotated[
        int | None, typer.Option("--debounce", min=0, help="Debounce interval in ms (watch mode)")
    ] = None,
) -> None:
    """Global options."""
    global _config, _config_path
    try:
        _config = load_config(
            config,
            verbose=verbose or None,
            dry_run=dry_run or None,
            extensions=_split_extensions(extensions),
            debounce_ms=debounce,
        )
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    _config_path = config
    configure_logging(_config.log_level, _config.log_format, _config.verbose)


def _require_valid(cfg: LiveSyncConfig) -> None:
    errors = validate_config(cfg)
    if errors:
        rprint("[red]Configuration errors:[/red]")
        for e in errors:
            rprint(f"  - {e}")
        raise typer.Exit(1)


def _render_result(title: str, result: SyncResult) -> None:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Synced", str(len(result.synced)))
    table.add_row("Deleted", str(len(result.deleted)))
    table.add_row("Errors", str(len(result.errors)))
    table.add_row("Duration", f"{result.duration:.2f}s")
    rprint(table)

    for err in result.errors:
        rprint(f"  [red]error:[/red] {err.path}: {err.error}")


# ---------------------------------------------------------------------------
# sync / watch
# ---------------------------------------------------------------------------


@app.command()
def sync(
    files: Annotated[list[str] | None, typer.Argument(help="Files relative to the vault root")] = None,
    git: Annotated[bool, typer.Option("--git", help="Sync files changed in the last git commit")] = False,
    revision_range: Annotated[
        str, typer.Option("--range", help="Revision range used with --git")
    ] = DEFAULT_RANGE,
    all_files: Annotated[bool, typer.Option("--all", help="Sync the entire vault directory")] = False,
    delete: Annotated[
        bool, typer.Option("--delete", help="Delete records for files no longer on disk")
    ] = False,
) -> None:
    """Sync files to CouchDB."""
    cfg = _get_config()
    _require_valid(cfg)
    if not git and not all_files and not files:
        typer.echo("Error: specify files, --git, or --all")
        raise typer.Exit(1)

    async def run() -> SyncResult:
        async with SyncEngine(cfg) as engine:
            if git:
                return await engine.sync_from_revision_diff(revision_range)
            if all_files:
                return await engine.sync_directory()
            return await engine.sync_paths(files or [], delete=delete)

    try:
        result = asyncio.run(run())
    except LiveSyncError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _render_result("Dry Run" if cfg.dry_run else "Sync", result)
    if result.errors:
        raise typer.Exit(1)


@app.command()
def watch(
    directory: Annotated[str | None, typer.Argument(help="Vault directory to watch")] = None,
) -> None:
    """Watch a directory for changes and sync them to CouchDB."""
    cfg = _get_config()
    if directory:
        cfg = cfg.model_copy(update={"vault_root": directory})
    _require_valid(cfg)

    async def run() -> None:
        async with SyncEngine(cfg) as engine:
            watcher = ChangeWatcher(engine)
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)
            await watcher.start()
            rprint(f"[bold]Watching[/bold] {watcher.root} (Ctrl+C to stop)")
            try:
                await stop.wait()
            finally:
                rprint("[bold]Shutting down...[/bold]")
                await watcher.close()

    asyncio.run(run())


# ---------------------------------------------------------------------------
# read / validate / provision / init
# ---------------------------------------------------------------------------


@app.command()
def read(path: Annotated[str, typer.Argument(help="Vault-relative path")]) -> None:
    """Print a file's content as stored in CouchDB."""
    cfg = _get_config()
    _require_valid(cfg)

    async def run() -> str | None:
        async with SyncEngine(cfg) as engine:
            return await engine.read_file(path)

    try:
        content = asyncio.run(run())
    except (LiveSyncError, ValueError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if content is None:
        rprint(f"[yellow]Not found:[/yellow] {path}")
        raise typer.Exit(1)
    typer.echo(content, nl=False)


@app.command()
def validate(
    roundtrip: Annotated[
        bool, typer.Option("--roundtrip", help="Also write, read back and delete a probe file")
    ] = False,
) -> None:
    """Validate the connection to CouchDB."""
    cfg = _get_config()
    _require_valid(cfg)
    target = f"{cfg.couchdb.url}/{cfg.couchdb.database}"

    async def run() -> bool:
        async with client_from_config(cfg) as client:
            if not await client.ping():
                rprint(f"[red]FAIL[/red] Could not connect to {target}")
                return False
            rprint(f"[green]OK[/green] Connected to {target}")
            listing = await client.all_docs()
            rprint(f"[green]OK[/green] Database has {listing.total} documents")
            if roundtrip:
                return await _roundtrip(cfg, client)
            return True

    try:
        ok = asyncio.run(run())
    except LiveSyncError as e:
        rprint(f"[red]FAIL[/red] {e}")
        raise typer.Exit(1)
    if not ok:
        raise typer.Exit(1)


async def _roundtrip(cfg: LiveSyncConfig, client: DocumentStore) -> bool:
    """Sync a probe file from a scratch vault, read it back, then delete it."""
    name = f"livesync-probe-{uuid.uuid4().hex[:8]}.md"
    content = f"# livesync probe\n\n{name} ✓\n"
    with tempfile.TemporaryDirectory() as tmp:
        probe_cfg = cfg.model_copy(update={"vault_root": tmp, "dry_run": False})
        engine = SyncEngine(probe_cfg, store=client)
        probe = Path(tmp) / name
        probe.write_bytes(content.encode("utf-8"))

        result = await engine.sync_paths([name])
        if result.errors:
            rprint(f"[red]FAIL[/red] Write probe: {result.errors[0].error}")
            return False
        try:
            read_back = await engine.read_file(name)
        finally:
            probe.unlink()
            await engine.sync_paths([name], delete=True)
        if read_back != content:
            rprint("[red]FAIL[/red] Probe content mismatch after round trip")
            return False
    rprint("[green]OK[/green] Write/read/delete round trip")
    return True


@app.command()
def provision(
    cluster: Annotated[
        bool, typer.Option("--cluster/--no-cluster", help="Run single-node cluster setup first")
    ] = True,
    cors: Annotated[bool, typer.Option("--cors/--no-cors", help="Configure CORS for Obsidian")] = True,
    node_settings: Annotated[
        bool,
        typer.Option(
            "--node-settings/--no-node-settings",
            help="Raise request/document size limits and require authentication",
        ),
    ] = True,
) -> None:
    """Prepare a CouchDB node and the LiveSync database."""
    cfg = _get_config()
    _require_valid(cfg)

    async def run() -> None:
        async with client_from_config(cfg) as client:
            if cluster:
                port = urlparse(cfg.couchdb.url).port or 5984
                if await client.setup_single_node(cfg.couchdb.username, cfg.couchdb.password, port=port):
                    rprint("[green]OK[/green] Single-node cluster configured")
                else:
                    rprint("[yellow]SKIP[/yellow] Cluster setup (node may already be configured)")
            created = await client.ensure_database()
            state = "Created" if created else "Exists"
            rprint(f"[green]OK[/green] {state}: {cfg.couchdb.database}")
            if cors:
                await client.configure_cors()
                rprint("[green]OK[/green] CORS configured")
            if node_settings:
                await client.configure_node()
                rprint("[green]OK[/green] Size limits and require_valid_user set")

    try:
        asyncio.run(run())
    except LiveSyncError as e:
        rprint(f"[red]FAIL[/red] {e}")
        raise typer.Exit(1)


@app.command()
def init(
    force: Annotated[bool, typer.Option("--force", help="Overwrite existing file")] = False,
) -> None:
    """Write a template config file in the current directory."""
    path = Path(CONFIG_FILENAME)
    if path.exists() and not force:
        rprint(f"[yellow]SKIP[/yellow] {path} already exists (use --force to overwrite)")
        raise typer.Exit(1)
    path.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]OK[/green] Created {path}")
    rprint("Set COUCHDB_USER and COUCHDB_PASSWORD, or edit the file.")


# ---------------------------------------------------------------------------
# hook
# ---------------------------------------------------------------------------


@hook_app.command("install")
def hook_install(
    git_dir: Annotated[str, typer.Argument(help="Bare repository or .git directory")],
) -> None:
    """Install a post-receive hook that runs `livesync hook run`."""
    from livesync.hooks import install_hook

    try:
        target = install_hook(Path(git_dir), config_path=_config_path)
    except (FileNotFoundError, FileExistsError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    rprint(f"[green]OK[/green] Installed {target}")


@hook_app.command("run")
def hook_run() -> None:
    """Read post-receive input from stdin and sync the pushed changes."""
    from livesync.hooks import run_post_receive

    cfg = _get_config()
    _require_valid(cfg)
    lines = sys.stdin.read().splitlines()

    async def run() -> SyncResult:
        async with SyncEngine(cfg) as engine:
            return await run_post_receive(engine, lines)

    try:
        result = asyncio.run(run())
    except LiveSyncError as e:
        rprint(f"[red]livesync:[/red] {e}")
        raise typer.Exit(1)
    rprint(f"livesync: {result.processed} files processed, {len(result.errors)} errors")
    if result.errors:
        raise typer.Exit(1)
