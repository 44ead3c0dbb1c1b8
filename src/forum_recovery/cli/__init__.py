"""Command-line entry point for tenant backup, restore, migration and cleanup.

Usage:
    forum-recovery backup <tenantId>
    forum-recovery restore <bundlePath> [targetTenantId]
    forum-recovery clean
    forum-recovery migrate <sourceTenantId> <targetTenantId> [content,users,categories]

    DB_PROFILE=prod forum-recovery backup cm123456
    forum-recovery --database-url postgresql://localhost/forum clean

Commands:
    backup   - Snapshot one tenant into backups/backup_<domain>_<ms>.json
    restore  - Rebuild a bundle into a tenant (new or explicit target)
    clean    - Quarantine and delete rows whose tenant no longer exists
    migrate  - Copy categories/users/content between two live tenants
    validate - Check a bundle file offline

Exit status is 0 when the operation completed (possibly with per-row
warnings), 1 when it aborted, 2 on invalid arguments.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from forum_recovery.adapters.base import TenantStore
from forum_recovery.backup.backup_restore import backup_tenant, restore_tenant, validate_bundle
from forum_recovery.config.loader import load_db_config
from forum_recovery.factory import ProfileNotFoundError, get_adapter
from forum_recovery.report import Report
from forum_recovery.tenants.migrate import (
    DEFAULT_KINDS,
    MIGRATABLE_KINDS,
    migrate_tenant,
    parse_kinds,
)
from forum_recovery.tenants.orphans import clean_orphans

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _kinds_arg(value: str) -> tuple[str, ...]:
    """argparse ``type=`` wrapper for the migrate kind list."""
    try:
        return parse_kinds(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _resolve_backups_dir(args: argparse.Namespace) -> Path | None:
    """``--backups-dir``, else ``[backup] dir`` from db.toml, else default."""
    if args.backups_dir:
        return Path(args.backups_dir)
    try:
        return Path(load_db_config().backups_dir)
    except FileNotFoundError:
        return None


def print_report(report: Report) -> None:
    """Print a report summary table, then any errors."""
    status = (
        "[green]completed[/green]"
        if report.success and not report.errors
        else "[yellow]completed with warnings[/yellow]"
        if report.success
        else "[bold red]failed[/bold red]"
    )

    table = Table(title=f"{report.operation.value} report", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", status)
    if report.tenant_id:
        table.add_row("Tenant", report.tenant_id)
    table.add_row("Items processed", str(report.items_processed))
    table.add_row("Items recovered", str(report.items_recovered))
    table.add_row("Duration", f"{report.duration:.0f} ms")
    if report.output_path:
        table.add_row("File", report.output_path)
    console.print(table)

    if report.errors:
        style = "yellow" if report.success else "red"
        console.print(f"\n[{style}]{len(report.errors)} error(s):[/{style}]")
        for error in report.errors:
            console.print(f"  - {error}", style=style, markup=False)


async def _run(
    args: argparse.Namespace,
    operation: Callable[[TenantStore], Awaitable[Report]],
) -> int:
    """Open a store, run one operation against it, print the report."""
    try:
        store = get_adapter(
            profile_name=args.profile,
            env_prefix=args.env_prefix,
            database_url=args.database_url,
        )
    except (ProfileNotFoundError, KeyError, FileNotFoundError) as e:
        console.print(f"[bold red]x[/bold red] {escape(str(e))}")
        return 1

    try:
        report = await operation(store)
    finally:
        await store.close()

    print_report(report)
    return 0 if report.success else 1


# ============================================================================
# Command implementations
# ============================================================================


def cmd_backup(args: argparse.Namespace) -> int:
    """Handle backup command."""
    backups_dir = _resolve_backups_dir(args)
    return asyncio.run(
        _run(args, lambda store: backup_tenant(store, args.tenant_id, backups_dir))
    )


def cmd_restore(args: argparse.Namespace) -> int:
    """Handle restore command."""
    return asyncio.run(
        _run(
            args,
            lambda store: restore_tenant(store, args.bundle_path, args.target_tenant_id),
        )
    )


def cmd_clean(args: argparse.Namespace) -> int:
    """Handle clean command."""
    backups_dir = _resolve_backups_dir(args)
    return asyncio.run(_run(args, lambda store: clean_orphans(store, backups_dir)))


def cmd_migrate(args: argparse.Namespace) -> int:
    """Handle migrate command."""
    return asyncio.run(
        _run(
            args,
            lambda store: migrate_tenant(
                store, args.source_tenant_id, args.target_tenant_id, args.kinds
            ),
        )
    )


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command (local file only, no database)."""
    result = validate_bundle(args.bundle_path)

    console.print(f"Validating: {escape(args.bundle_path)}")

    for error in result["errors"]:
        console.print(f"  - {error}", style="red", markup=False)
    if result["warnings"]:
        console.print(f"\n[yellow]{len(result['warnings'])} warning(s):[/yellow]")
        for warning in result["warnings"]:
            console.print(f"  - {warning}", style="yellow", markup=False)

    if result["valid"]:
        console.print("[green]Bundle is valid[/green]")
        return 0
    console.print("[bold red]Bundle is invalid[/bold red]")
    return 1


# ============================================================================
# Parser
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forum-recovery",
        description="Multi-tenant forum backup, restore, migration and cleanup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Snapshot a tenant
  forum-recovery backup cm123456

  # Restore into a brand-new tenant id (the bundle's domain must be free,
  # e.g. after the original tenant was deleted: domains are unique)
  forum-recovery restore backups/backup_shop_example_com_1700000000000.json cm999

  # Quarantine and delete orphaned rows
  forum-recovery clean

  # Copy categories and content between tenants
  forum-recovery migrate shop1 shop2 content,categories
        """,
    )
    parser.add_argument("--profile", help="Database profile from db.toml")
    parser.add_argument("--database-url", help="Connect directly, bypassing profiles")
    parser.add_argument(
        "--env-prefix",
        default="",
        help="Prefix for DB_PROFILE / DATABASE_URL env vars (default: none)",
    )
    parser.add_argument(
        "--backups-dir", help="Bundle/quarantine directory (default: ./backups)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.required = True

    backup_parser = subparsers.add_parser("backup", help="Snapshot one tenant")
    backup_parser.add_argument("tenant_id", help="Tenant to back up")
    backup_parser.set_defaults(func=cmd_backup)

    restore_parser = subparsers.add_parser("restore", help="Restore a bundle")
    restore_parser.add_argument("bundle_path", help="Path to bundle JSON file")
    restore_parser.add_argument(
        "target_tenant_id",
        nargs="?",
        default=None,
        help="Tenant to restore into (default: the bundle's own tenant id, "
        "which must not exist yet)",
    )
    restore_parser.set_defaults(func=cmd_restore)

    clean_parser = subparsers.add_parser(
        "clean", help="Quarantine and delete orphaned rows (all tenants)"
    )
    clean_parser.set_defaults(func=cmd_clean)

    migrate_parser = subparsers.add_parser("migrate", help="Copy data between tenants")
    migrate_parser.add_argument("source_tenant_id", help="Tenant to copy from")
    migrate_parser.add_argument("target_tenant_id", help="Tenant to copy into")
    migrate_parser.add_argument(
        "kinds",
        nargs="?",
        type=_kinds_arg,
        default=DEFAULT_KINDS,
        help=f"Comma-separated subset of {','.join(MIGRATABLE_KINDS)} "
        f"(default: {','.join(DEFAULT_KINDS)})",
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    validate_parser = subparsers.add_parser(
        "validate", help="Check a bundle file without touching the database"
    )
    validate_parser.add_argument("bundle_path", help="Path to bundle JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
