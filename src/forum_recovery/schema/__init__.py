"""Entity catalog for the forum's tenant-scoped tables.

Usage:
    >>> from forum_recovery.schema import FORUM_SCHEMA
    >>> FORUM_SCHEMA.get("content").table
    'posts'
"""

from forum_recovery.schema.models import EntitySchema, ForeignKey, TableDef
from forum_recovery.schema.tables import (
    FORUM_SCHEMA,
    ORPHAN_DELETE_ORDER,
    ORPHAN_SCAN_KINDS,
    TENANT_TABLE,
)

__all__ = [
    "EntitySchema",
    "ForeignKey",
    "TableDef",
    "FORUM_SCHEMA",
    "ORPHAN_DELETE_ORDER",
    "ORPHAN_SCAN_KINDS",
    "TENANT_TABLE",
]
