"""
Main CLI entry point for the Backup Assistant.

This module provides the command-line interface using Click with Rich
formatting: creating, verifying, listing, restoring and deleting backups,
and generating encryption keys.
"""

import asyncio
import functools
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from backup_assistant import __version__
from backup_assistant.backup.manager import BackupManager
from backup_assistant.backup.storage import LocalFilesystemStorage
from backup_assistant.core.exceptions import BackupAssistantError
from backup_assistant.core.retry import RetryPolicy
from backup_assistant.database.base import DatabaseConnection
from backup_assistant.database.mysql import MySQLConnection
from backup_assistant.database.sqlite import SQLiteConnection
from backup_assistant.models.config import (
    ENCRYPTION_KEY_ENV,
    BackupConfig,
    CaptureType,
    CompressionMethod,
    load_settings,
)
from backup_assistant.security.encryption import DEFAULT_CIPHER, decode_key, encode_key, generate_key, supported_ciphers
from backup_assistant.utils.helpers import format_bytes
from backup_assistant.utils.logging import setup_logging

console = Console(soft_wrap=True)


def connection_options(func):
    """Options selecting the database to capture from or restore into."""
    options = [
        click.option('--sqlite', 'sqlite_path', type=click.Path(dir_okay=False), help='SQLite database file'),
        click.option('--host', default='localhost', show_default=True, help='MySQL host'),
        click.option('--port', default=3306, show_default=True, type=int, help='MySQL port'),
        click.option('--user', default='root', show_default=True, help='MySQL user'),
        click.option('--password', envvar='BACKUP_ASSISTANT_DB_PASSWORD', default='', help='MySQL password'),
        click.option('--database', '-d', help='MySQL database name'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_connection(params: Dict[str, Any], create: bool = False) -> DatabaseConnection:
    if params.get('sqlite_path'):
        return SQLiteConnection(params['sqlite_path'], create=create)
    if params.get('database'):
        return MySQLConnection(
            database=params['database'],
            host=params['host'],
            port=params['port'],
            user=params['user'],
            password=params['password'],
        )
    raise click.UsageError('Specify either --sqlite PATH or --database NAME')


def _database_name(params: Dict[str, Any]) -> str:
    if params.get('sqlite_path'):
        return Path(params['sqlite_path']).stem
    return params['database']


def _build_manager(ctx: click.Context) -> BackupManager:
    settings = ctx.obj['settings']
    return BackupManager(
        LocalFilesystemStorage(ctx.obj['storage_path']),
        database_retry=RetryPolicy(settings.database_retry.to_retry_config()),
        storage_retry=RetryPolicy(settings.storage_retry.to_retry_config()),
    )


def handle_errors(func):
    """Report package errors as a red message and a non-zero exit code."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BackupAssistantError as e:
            console.print(f"[red]Error:[/red] {escape(e.message)}")
            if e.details:
                console.print(f"[dim]{escape(str(e.details))}[/dim]")
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(__version__, prog_name='backup-assistant')
@click.option('--settings', 'settings_file', type=click.Path(exists=True, dir_okay=False),
              help='Settings file (YAML or JSON)')
@click.option('--storage', 'storage_path', type=click.Path(file_okay=False),
              help='Backup storage directory (overrides settings)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx: click.Context, settings_file: Optional[str], storage_path: Optional[str], verbose: bool):
    """
    Database Backup Assistant

    Capture, compress, encrypt, verify and restore SQL backups of SQLite and
    MySQL databases.
    """
    ctx.ensure_object(dict)
    try:
        settings = load_settings(settings_file)
    except BackupAssistantError as e:
        raise click.BadParameter(e.message, param_hint='--settings') from e

    setup_logging(
        level='DEBUG' if verbose else settings.log_level,
        log_file=settings.log_file,
        structured_logging=settings.structured_logging,
    )
    ctx.obj['settings'] = settings
    ctx.obj['storage_path'] = storage_path or settings.storage_path
    ctx.obj['verbose'] = verbose


@main.command()
@connection_options
@click.option('--config', '-c', 'config_file', type=click.Path(exists=True, dir_okay=False),
              help='Backup configuration file (YAML or JSON)')
@click.option('--name', '-n', help='Backup name')
@click.option('--type', 'capture_type', type=click.Choice([t.value for t in CaptureType]), help='What to capture')
@click.option('--include', 'include_tables', multiple=True, help='Only capture this table (repeatable)')
@click.option('--exclude', 'exclude_tables', multiple=True, help='Skip this table (repeatable)')
@click.option('--compress/--no-compress', default=None, help='Compress the backup')
@click.option('--compression', 'compression_method',
              type=click.Choice([m.value for m in CompressionMethod]), help='Compression method')
@click.option('--encrypt/--no-encrypt', default=None, help='Encrypt the backup')
@click.option('--key', 'encryption_key', envvar=ENCRYPTION_KEY_ENV, help='Base64 encryption key')
@click.option('--cipher', type=click.Choice(supported_ciphers()), help='Encryption cipher')
@click.option('--streaming/--no-streaming', default=None, help='Read tables in chunks')
@click.option('--chunk-size', type=int, help='Rows per chunk when streaming')
@click.option('--description', help='Free-form description stored with the backup')
@click.option('--tag', 'tags', multiple=True, help='Tag stored with the backup (repeatable)')
@click.option('--verify/--no-verify', 'verify_after_backup', default=None, help='Verify after writing')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
@click.pass_context
@handle_errors
def backup(ctx: click.Context, config_file: Optional[str], as_json: bool, **params):
    """Create a backup."""
    connection_params = {key: params.pop(key) for key in
                         ('sqlite_path', 'host', 'port', 'user', 'password', 'database')}
    connection = _build_connection(connection_params)

    data: Dict[str, Any] = {}
    if config_file:
        data.update(BackupConfig.read_file(config_file))

    for key, value in params.items():
        if value is None or value == ():
            continue
        data[key] = list(value) if isinstance(value, tuple) else value

    data.setdefault('database', _database_name(connection_params))
    data.setdefault('name', f"{data['database']}-backup")
    config = BackupConfig.from_dict(data)

    manager = _build_manager(ctx)

    async def run():
        async with connection:
            return await manager.create_backup(connection, config)

    with console.status(f"Backing up {config.database}..."):
        result = asyncio.run(run())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        console.print(f"[green]Backup created:[/green] {result.path}")
        console.print(f"  ID:       {result.id}")
        console.print(f"  Size:     {result.formatted_size}")
        console.print(f"  Duration: {result.formatted_duration}")
        console.print(f"  Checksum: {result.checksum}")
    else:
        console.print(f"[red]Backup failed:[/red] {result.error_message}")

    if not result.success:
        sys.exit(1)


@main.command()
@click.argument('backup_id')
@click.option('--checksum', help='Expected checksum (defaults to the recorded one)')
@click.pass_context
@handle_errors
def verify(ctx: click.Context, backup_id: str, checksum: Optional[str]):
    """Verify a stored backup against its checksum."""
    manager = _build_manager(ctx)
    if asyncio.run(manager.verify_backup(backup_id, checksum)):
        console.print(f"[green]✓[/green] {backup_id} is intact")
    else:
        console.print(f"[red]✗[/red] {backup_id} does not match its checksum")
        sys.exit(1)


@main.command()
@click.argument('backup_id')
@connection_options
@click.option('--checksum', help='Expected checksum (defaults to the recorded one)')
@click.option('--key', 'encryption_key', envvar=ENCRYPTION_KEY_ENV, help='Base64 encryption key')
@click.option('--dry-run', is_flag=True, help='Verify and parse without executing statements')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@handle_errors
def restore(ctx: click.Context, backup_id: str, checksum: Optional[str], encryption_key: Optional[str],
            dry_run: bool, yes: bool, **connection_params):
    """Restore a backup into a database."""
    connection = _build_connection(connection_params, create=True)
    if not dry_run and not yes:
        click.confirm(f"Restore {backup_id} into {_database_name(connection_params)}? Existing tables are dropped",
                      abort=True)

    key = decode_key(encryption_key) if encryption_key else None
    manager = _build_manager(ctx)

    async def run():
        async with connection:
            return await manager.restore_backup(
                backup_id, connection, expected_checksum=checksum, encryption_key=key, dry_run=dry_run
            )

    result = asyncio.run(run())
    if result.dry_run:
        console.print(f"[yellow]Dry run:[/yellow] {result.statements_total} statements verified")
    else:
        console.print(
            f"[green]Restored[/green] {backup_id}: {result.statements_executed} statements "
            f"in {result.formatted_duration}"
        )


@main.command(name='list')
@click.option('--json', 'as_json', is_flag=True, help='Print as JSON')
@click.pass_context
@handle_errors
def list_backups(ctx: click.Context, as_json: bool):
    """List stored backups."""
    backups = asyncio.run(_build_manager(ctx).list_backups())

    if as_json:
        click.echo(json.dumps(backups, indent=2, default=str))
        return

    if not backups:
        console.print("[yellow]No backups found[/yellow]")
        return

    table = Table(title="Backups")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Database", style="green")
    table.add_column("Strategy", style="blue")
    table.add_column("Created", style="magenta")
    table.add_column("Size", style="yellow", justify="right")
    table.add_column("Encrypted", justify="center")

    for item in backups:
        metadata = item["metadata"]
        table.add_row(
            item["id"],
            str(metadata.get("database", "-")),
            str(metadata.get("strategy", "-")),
            str(metadata.get("created_at", item["modified"]))[:19],
            format_bytes(item["size"]),
            "yes" if metadata.get("encrypted") else "no",
        )
    console.print(table)


@main.command()
@click.pass_context
@handle_errors
def stats(ctx: click.Context):
    """Show storage statistics."""
    data = asyncio.run(_build_manager(ctx).get_storage_stats())
    table = Table(title="Storage", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Path", data["storage_path"])
    table.add_row("Backups", str(data["total_files"]))
    table.add_row("Total size", data["formatted_size"])
    table.add_row("Disk free", format_bytes(data["disk_free"]))
    table.add_row("Disk used", f"{data['disk_used_percent']}%")
    console.print(table)


@main.command()
@click.argument('backup_id')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@handle_errors
def delete(ctx: click.Context, backup_id: str, yes: bool):
    """Delete a stored backup."""
    if not yes:
        click.confirm(f"Delete {backup_id}?", abort=True)
    asyncio.run(_build_manager(ctx).delete_backup(backup_id))
    console.print(f"[green]Deleted[/green] {backup_id}")


@main.command()
@click.option('--cipher', type=click.Choice(supported_ciphers()), default=DEFAULT_CIPHER, show_default=True)
def keygen(cipher: str):
    """Generate a base64 encryption key."""
    click.echo(encode_key(generate_key(cipher)))


if __name__ == '__main__':
    main()
