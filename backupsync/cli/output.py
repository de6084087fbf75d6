"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json

from rich.console import Console
from rich.table import Table

from backupsync.services.backend_types import BackupRecord
from backupsync.services.backup_catalog import format_bytes
from backupsync.services.backup_kinds import AUTO
from backupsync.services.results import ServiceResult, StorageUsageResult

console = Console()


def record_to_dict(record: BackupRecord) -> dict:
    """JSON-safe view of a record."""
    return {
        "id": record.id,
        "owner_user_id": record.owner_user_id,
        "file_name": record.file_name,
        "blob_id": record.blob_id,
        "file_size_bytes": record.file_size_bytes,
        "uploaded_at": record.uploaded_at.isoformat(),
        "version": record.version,
        "description": record.description,
    }


def format_backup_table(records: list[BackupRecord], as_json: bool = False) -> str:
    """Format backup records as a Rich table or JSON.

    Args:
        records: Records to display, newest first.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps([record_to_dict(r) for r in records], indent=2)

    if not records:
        return "No backups found."

    table = Table(title="Backups", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("Uploaded")
    table.add_column("Description", style="dim")

    for record in records:
        kind = "[blue]auto[/blue]" if AUTO.matches(record.file_name) else "[green]manual[/green]"
        table.add_row(
            record.id,
            kind,
            record.file_name,
            format_bytes(record.file_size_bytes),
            record.uploaded_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.description or "—",
        )

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_usage(usage: StorageUsageResult, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(
            {"total_bytes": usage.total_bytes, "count": usage.count, "formatted": usage.formatted},
            indent=2,
        )
    return f"{usage.count} backup(s), {usage.formatted} used"


def format_failure(result: ServiceResult) -> str:
    """One-line error with its registry code."""
    if result.error_code:
        return f"[red]{result.error_code}:[/red] {result.error}"
    return f"[red]Error:[/red] {result.error}"
