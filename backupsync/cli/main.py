"""backupsync CLI: cloud backup of the point-of-sale snapshot.

Usage:
    backupsync login                 Sign in (credentials prompted)
    backupsync backup                Run the auto-backup slot now
    backupsync backup --manual       Create a manual backup
    backupsync list                  List backups
    backupsync download ID ./out     Restore a backup to a local file
    backupsync watch                 Back up automatically on snapshot changes
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from backupsync.cli.config import (
    BackupSyncConfig,
    load_config,
    setup_instructions,
    validate_backend_config,
)
from backupsync.cli.factory import AppContext, build_app_context
from backupsync.cli.output import (
    format_backup_table,
    format_failure,
    format_usage,
    record_to_dict,
)
from backupsync.cli.snapshot_watcher import DEBOUNCE_SECONDS, SnapshotWatcher
from backupsync.errors import ConfigurationError, format_error
from backupsync.services.auto_backup_listener import AutoBackupListener
from backupsync.services.progress import ProgressState

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="backupsync",
    help="Cloud backup for the local point-of-sale database",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None
_verbose: bool = False


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to backupsync.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """backupsync: cloud backup synchronization."""
    global _config_path, _verbose
    _config_path = config
    _verbose = verbose


def _configure_logging(cfg: BackupSyncConfig) -> None:
    level_name = "DEBUG" if _verbose else cfg.logging.level.upper()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if cfg.logging.file:
        log_path = Path(cfg.logging.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(levelname)s:%(name)s:%(message)s",
        handlers=handlers,
        force=True,
    )


def _load() -> BackupSyncConfig:
    try:
        cfg = load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)
    _configure_logging(cfg)
    return cfg


def _context(cfg: BackupSyncConfig | None = None) -> AppContext:
    cfg = cfg or _load()
    try:
        return build_app_context(cfg)
    except ConfigurationError as e:
        console.print(format_error(e))
        console.print("Run [bold]backupsync config validate[/bold] for setup steps.")
        raise typer.Exit(1)


class _ConsoleProgress:
    """Prints progress transitions as plain lines."""

    def __init__(self) -> None:
        self._last: tuple[int, str] | None = None

    def on_progress(self, state: ProgressState) -> None:
        if not state.visible:
            return
        current = (state.percent, state.message)
        if current != self._last:
            console.print(f"[dim]{state.percent:>3}%[/dim] {state.message}")
            self._last = current


async def _require_session(ctx: AppContext) -> None:
    """Restore the stored session or exit."""
    result = await ctx.auth.verify_session()
    if not result.success:
        console.print(format_failure(result))
        console.print("Run [bold]backupsync login[/bold] first.")
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show backupsync version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("backupsync")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]backupsync[/bold] v{v}")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration (identifiers masked)."""
    cfg = _load()

    def _mask(value: str) -> str:
        if not value:
            return "[yellow]<unset>[/yellow]"
        return "***" + value[-4:] if len(value) > 4 else "***"

    console.print("[bold]Backend:[/bold]")
    console.print(f"  endpoint: {cfg.backend.endpoint or '[yellow]<unset>[/yellow]'}")
    console.print(f"  project_id: {_mask(cfg.backend.project_id)}")
    console.print(f"  database_id: {_mask(cfg.backend.database_id)}")
    console.print(f"  collection_id: {_mask(cfg.backend.collection_id)}")
    console.print(f"  bucket_id: {_mask(cfg.backend.bucket_id)}")

    console.print("\n[bold]Auth:[/bold]")
    console.print(f"  timeout: {cfg.auth.timeout_seconds:g}s")
    console.print(f"  renewal margin: {cfg.auth.renewal_margin_seconds}s")
    console.print(f"  keyring service: {cfg.auth.keyring_service}")

    console.print("\n[bold]Backup:[/bold]")
    console.print(f"  auto backup: {'enabled' if cfg.backup.auto_backup_enabled else 'disabled'}")
    console.print(f"  attempts: {cfg.backup.max_attempts} (base delay {cfg.backup.base_delay_seconds:g}s)")
    console.print(f"  snapshot: {cfg.backup.snapshot_path or '<default>'}")


@config_app.command("validate")
def config_validate():
    """Check backend settings and print setup steps if incomplete."""
    cfg = _load()
    try:
        validate_backend_config(cfg.backend)
    except ConfigurationError as e:
        console.print("[red]Configuration is incomplete:[/red]")
        for problem in e.problems:
            console.print(f"  - {problem}")
        console.print("\n[bold]Setup:[/bold]")
        for step in setup_instructions():
            console.print(f"  {step}")
        raise typer.Exit(1)
    console.print("[green]Config is valid.[/green]")


# --- Account commands ---


@app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Account password"),
):
    """Sign in and store the session in the system keychain."""
    ctx = _context()

    async def _run():
        async with ctx:
            result = await ctx.auth.login(email, password)
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(f"[green]Signed in as {result.user.email}.[/green]")

    asyncio.run(_run())


@app.command()
def register(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, confirmation_prompt=True,
        help="Account password (8+ characters)",
    ),
    name: str = typer.Option("", "--name", help="Display name"),
):
    """Create an account and sign in."""
    ctx = _context()

    async def _run():
        async with ctx:
            result = await ctx.auth.create_account(email, password, name)
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(f"[green]Account created; signed in as {result.user.email}.[/green]")

    asyncio.run(_run())


@app.command()
def logout():
    """Sign out and forget the stored session."""
    ctx = _context()

    async def _run():
        async with ctx:
            await ctx.auth.verify_session()
            await ctx.auth.logout()
        console.print("Signed out.")

    asyncio.run(_run())


@app.command()
def status():
    """Show sign-in state and the auto-backup slot."""
    ctx = _context()

    async def _run():
        async with ctx:
            result = await ctx.auth.verify_session()
            if not result.success:
                console.print("[yellow]Not signed in.[/yellow] Changes will NOT be backed up to the cloud.")
                return
            console.print(f"Signed in as [bold]{result.user.email}[/bold]")
            integrity = await ctx.engine.verify_backup_integrity()
            if not integrity.success:
                console.print(format_failure(integrity))
            elif integrity.record is not None:
                console.print(f"Last auto backup: {integrity.record.uploaded_at:%Y-%m-%d %H:%M:%S} UTC")
            else:
                console.print("No auto backup yet.")

    asyncio.run(_run())


@app.command("reset-password")
def reset_password(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    redirect_url: Optional[str] = typer.Option(None, "--redirect-url", help="Recovery page URL"),
):
    """Send a password recovery email."""
    cfg = _load()
    ctx = _context(cfg)
    url = redirect_url or cfg.auth.recovery_url
    if not url:
        console.print("[red]No recovery URL:[/red] pass --redirect-url or set auth.recovery_url.")
        raise typer.Exit(1)

    async def _run():
        async with ctx:
            result = await ctx.auth.reset_password(email, url)
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print("Recovery email sent.")

    asyncio.run(_run())


# --- Backup commands ---


@app.command()
def backup(
    manual: bool = typer.Option(False, "--manual", help="Create a manual backup instead of updating the auto slot"),
    description: str = typer.Option("", "--description", "-d", help="Backup description"),
    name: Optional[str] = typer.Option(None, "--name", help="File name for a manual backup"),
):
    """Back up the local snapshot now."""
    ctx = _context()
    ctx.reporter.add_observer(_ConsoleProgress())

    async def _run():
        async with ctx:
            await _require_session(ctx)
            if manual:
                result = await ctx.engine.run_manual_backup(description, file_name=name)
            else:
                result = await ctx.engine.run_auto_backup()
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(f"[green]Backed up as {result.record.file_name}[/green] ({result.record.id})")

    asyncio.run(_run())


@app.command("list")
def list_backups(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List your backups, newest first."""
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            result = await ctx.catalog.list_backups()
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(format_backup_table(result.backups, as_json=json_output))

    asyncio.run(_run())


@app.command()
def delete(
    backup_id: str = typer.Argument(help="Backup ID to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a backup and its stored snapshot."""
    if not yes:
        typer.confirm(f"Delete backup {backup_id}?", abort=True)
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            result = await ctx.catalog.delete_backup(backup_id)
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(f"[yellow]Backup {backup_id} deleted.[/yellow]")

    asyncio.run(_run())


@app.command()
def download(
    backup_id: str = typer.Argument(help="Backup ID to restore"),
    dest: Path = typer.Argument(help="Target file or directory"),
    url_only: bool = typer.Option(False, "--url", help="Print the download URL instead"),
):
    """Restore a backup to a local file."""
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            if url_only:
                ref = await ctx.catalog.get_download_reference(backup_id)
                if not ref.success:
                    console.print(format_failure(ref))
                    raise typer.Exit(1)
                console.print(ref.url)
                return
            result = await ctx.catalog.download_backup(backup_id, dest)
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(f"[green]Restored to {result.file_path}[/green] ({result.size_bytes} bytes)")

    asyncio.run(_run())


@app.command()
def usage(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show storage used by your backups."""
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            result = await ctx.catalog.get_storage_usage()
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        console.print(format_usage(result, as_json=json_output))

    asyncio.run(_run())


@app.command()
def verify():
    """Check the auto backup and remove it if its snapshot is missing."""
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            result = await ctx.engine.verify_backup_integrity()
        if not result.success:
            console.print(format_failure(result))
            raise typer.Exit(1)
        if result.repaired:
            console.print("[yellow]Removed an auto backup record whose snapshot was missing.[/yellow]")
        elif result.has_backup:
            console.print("[green]Auto backup is intact.[/green]")
        else:
            console.print("No auto backup yet.")

    asyncio.run(_run())


@app.command()
def cleanup(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Remove duplicate auto backup records, keeping the newest."""
    ctx = _context()

    async def _run():
        async with ctx:
            await _require_session(ctx)
            result = await ctx.engine.cleanup_orphaned_backups()
        if not result.success:
            if result.removed or result.failed:
                console.print(
                    f"Removed {len(result.removed)} duplicate record(s); "
                    f"{len(result.failed)} could not be removed."
                )
            console.print(format_failure(result))
            raise typer.Exit(1)
        if json_output:
            console.print(json.dumps({
                "kept": record_to_dict(result.kept) if result.kept else None,
                "removed": result.removed,
            }, indent=2))
            return
        console.print(f"Removed {len(result.removed)} duplicate record(s).")

    asyncio.run(_run())


@app.command()
def watch(
    debounce: float = typer.Option(
        DEBOUNCE_SECONDS, "--debounce", help="Quiet seconds after a change before backing up",
    ),
):
    """Watch the snapshot file and back it up after every change."""
    ctx = _context()

    def _notify(message: str, level: str) -> None:
        color = "red" if level == "error" else "yellow"
        console.print(f"[{color}]{message}[/{color}]")

    async def _run():
        async with ctx:
            path = ctx.host.snapshot_path
            if path is None:
                console.print("[red]No snapshot path configured.[/red]")
                raise typer.Exit(1)
            await ctx.auth.verify_session()
            listener = AutoBackupListener(ctx.engine, ctx.auth, ctx.bridge, notify=_notify)
            listener.start()
            watcher = SnapshotWatcher(path, debounce_seconds=debounce)
            try:
                await watcher.start(ctx.host.notify_data_changed)
            except FileNotFoundError as e:
                listener.stop()
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(1)
            console.print(f"Watching {path} (Ctrl+C to stop)")
            try:
                await asyncio.Event().wait()
            finally:
                await watcher.stop()
                listener.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


if __name__ == "__main__":
    app()
