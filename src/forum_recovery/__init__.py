"""forum-recovery: multi-tenant data-integrity tools for a community forum.

Four async operations, each taking an explicit tenant store and returning
a ``Report``: tenant backup to a bundle file, restore from a bundle,
live migration between tenants, and orphan cleanup.

Usage:
    from forum_recovery import get_adapter, backup_tenant, restore_tenant
    from forum_recovery import migrate_tenant, clean_orphans

    store = get_adapter(profile_name="local")
    try:
        report = await backup_tenant(store, "tenant-1")
    finally:
        await store.close()
"""

__version__ = "0.1.0"

# Store
from forum_recovery.adapters.base import CreateResult, CreateStatus, TenantStore
from forum_recovery.adapters.postgres import AsyncPostgresAdapter

# Config / factory
from forum_recovery.config.loader import load_db_config
from forum_recovery.config.models import DatabaseConfig, DatabaseProfile
from forum_recovery.factory import ProfileNotFoundError, get_adapter, resolve_url

# Operations
from forum_recovery.backup.backup_restore import (
    backup_tenant,
    build_bundle,
    restore_tenant,
    validate_bundle,
)
from forum_recovery.backup.files import load_bundle, load_quarantine
from forum_recovery.backup.models import Bundle, QuarantineFile
from forum_recovery.tenants.migrate import migrate_tenant
from forum_recovery.tenants.orphans import clean_orphans

# Results and errors
from forum_recovery.errors import (
    BundleNotFoundError,
    InvalidBundleError,
    RecoveryError,
    TenantConflictError,
    TenantNotFoundError,
)
from forum_recovery.report import Operation, Report

__all__ = [
    # Store
    "TenantStore",
    "CreateResult",
    "CreateStatus",
    "AsyncPostgresAdapter",
    # Config / factory
    "load_db_config",
    "DatabaseConfig",
    "DatabaseProfile",
    "get_adapter",
    "resolve_url",
    "ProfileNotFoundError",
    # Operations
    "backup_tenant",
    "build_bundle",
    "restore_tenant",
    "validate_bundle",
    "migrate_tenant",
    "clean_orphans",
    "load_bundle",
    "load_quarantine",
    "Bundle",
    "QuarantineFile",
    # Results and errors
    "Operation",
    "Report",
    "RecoveryError",
    "TenantNotFoundError",
    "BundleNotFoundError",
    "InvalidBundleError",
    "TenantConflictError",
]
