"""Live cross-tenant maintenance: migration and orphan cleanup.

Usage:
    from forum_recovery.tenants import clean_orphans, migrate_tenant
"""

from forum_recovery.tenants.migrate import (
    DEFAULT_KINDS,
    MIGRATABLE_KINDS,
    migrate_tenant,
    parse_kinds,
)
from forum_recovery.tenants.orphans import clean_orphans, find_orphans

__all__ = [
    "DEFAULT_KINDS",
    "MIGRATABLE_KINDS",
    "migrate_tenant",
    "parse_kinds",
    "clean_orphans",
    "find_orphans",
]
