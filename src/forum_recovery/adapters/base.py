"""Tenant store protocol definition.

Defines the ``TenantStore`` Protocol that every store implementation must
satisfy.  All methods are ``async def``.  Rows travel as plain dicts;
the recovery engine validates them into record models at its boundary.

``create()`` does not raise for row-level outcomes: it reports
``created``, ``duplicate`` (unique-constraint collision) or ``failed``
(any other constraint or data error) so callers branch on the result
instead of on a caught exception.

Usage:
    from forum_recovery.adapters.base import CreateStatus, TenantStore

    async def add_reaction(store: TenantStore, data: dict) -> bool:
        result = await store.create("reactions", data)
        return result.status is CreateStatus.CREATED
"""

from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel


class CreateStatus(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class CreateResult(BaseModel):
    """Outcome of ``TenantStore.create()``.

    Attributes:
        status: What happened to the row.
        row: The created row (``status == CREATED`` only).
        error: Store error text (``DUPLICATE`` / ``FAILED``).
    """

    status: CreateStatus
    row: dict[str, Any] | None = None
    error: str | None = None

    @property
    def created(self) -> bool:
        return self.status is CreateStatus.CREATED


class TenantStore(Protocol):
    """Relational store partitioned by tenant id.

    Filters are ANDed.  A list/tuple filter value matches any of its
    elements; ``None`` matches NULL.
    """

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names, or ``"*"``.
            filters: Optional dict of field=value filters.
            order_by: Optional column name to sort by.

        Returns:
            List of dicts, one per row.  Empty list if no matches.

        Example:
            users = await store.select(
                "users", filters={"tenant_id": "t1", "email": "alice@x"}
            )
        """
        ...

    async def create(self, table: str, data: dict) -> CreateResult:
        """Insert one row.

        The store assigns the primary key unless ``data`` carries one.

        Returns:
            ``CreateResult`` with the created row, or the duplicate/failed
            status and the store's error text.
        """
        ...

    async def upsert(
        self,
        table: str,
        keys: dict[str, Any],
        create: dict[str, Any],
        update: dict[str, Any],
    ) -> dict:
        """Insert or update the row identified by a natural key.

        Args:
            table: Table name.
            keys: Natural-key columns and values (e.g. tenant + email).
                Must match a unique constraint on the table.
            create: Extra columns written when the row is new.
            update: Columns overwritten when the row already exists.

        Returns:
            The created or updated row.

        Raises:
            Exception: On any constraint violation other than the
                natural-key collision itself.
        """
        ...

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        """Update rows in table and return the first updated row.

        Raises:
            ValueError: If no rows match filters.
        """
        ...

    async def delete_many(self, table: str, ids: list[str], pk: str = "id") -> int:
        """Delete rows by primary key.

        Returns:
            Number of rows actually deleted.
        """
        ...

    async def find_orphans(
        self,
        table: str,
        tenant_table: str = "tenants",
        tenant_field: str = "tenant_id",
    ) -> list[dict]:
        """Return rows whose tenant reference does not resolve.

        Anti-join of ``table`` against ``tenant_table``: a row is orphaned
        when its ``tenant_field`` is NULL or names no existing tenant.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        ...
