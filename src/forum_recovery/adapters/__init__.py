"""Tenant store adapters.

Provides the ``TenantStore`` Protocol, the ``create()`` result types and
the async PostgreSQL implementation.

Usage:
    from forum_recovery.adapters import AsyncPostgresAdapter, TenantStore
"""

from forum_recovery.adapters.base import CreateResult, CreateStatus, TenantStore
from forum_recovery.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "TenantStore",
    "CreateResult",
    "CreateStatus",
    "AsyncPostgresAdapter",
]
