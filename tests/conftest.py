"""Shared fixtures: an in-memory ``TenantStore`` and a seeded forum tenant."""

import itertools
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import pytest

from forum_recovery.adapters.base import CreateResult, CreateStatus

# Unique constraints enforced on insert (NULLs compare equal).
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "tenants": [("domain",)],
    "users": [("tenant_id", "email")],
    "categories": [("tenant_id", "name")],
    "badges": [("tenant_id", "name")],
    "reactions": [("user_id", "post_id", "comment_id", "type")],
    "poll_votes": [("option_id", "user_id")],
}

# Foreign keys checked on insert; tenant_id is deliberately unchecked so
# tests can seed orphans.
FOREIGN_KEYS: dict[str, dict[str, str]] = {
    "posts": {"author_id": "users", "category_id": "categories"},
    "comments": {"post_id": "posts", "author_id": "users"},
    "reactions": {"user_id": "users", "post_id": "posts", "comment_id": "comments"},
    "polls": {"post_id": "posts"},
    "poll_options": {"poll_id": "polls"},
    "poll_votes": {"option_id": "poll_options", "user_id": "users"},
}


def _matches(row: dict, filters: dict[str, Any]) -> bool:
    for k, v in filters.items():
        if v is None:
            if row.get(k) is not None:
                return False
        elif isinstance(v, (list, tuple, set, frozenset)):
            if row.get(k) not in v:
                return False
        elif row.get(k) != v:
            return False
    return True


class MemoryTenantStore:
    """Dict-backed ``TenantStore`` with unique and foreign-key checks.

    Attributes:
        tables: Table name -> list of row dicts.
        calls: ``(method, table)`` for every mutating call, in order.
        reject: Optional predicate ``(table, data) -> bool``; ``create()``
            returns ``FAILED`` for matching rows.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self.reject: Callable[[str, dict], bool] | None = None
        self.closed = False
        self._ids = itertools.count(1)

    def seed(self, table: str, *rows: dict) -> None:
        """Insert rows directly, bypassing every check."""
        self.tables[table].extend(dict(r) for r in rows)

    def rows(self, table: str, **filters: Any) -> list[dict]:
        return [r for r in self.tables[table] if _matches(r, filters)]

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        rows = [dict(r) for r in self.tables[table] if _matches(r, filters or {})]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or 0))
        if columns != "*":
            names = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in names} for r in rows]
        return rows

    def _insert(self, table: str, data: dict) -> CreateResult:
        row = dict(data)
        row.setdefault("id", f"{table}-{next(self._ids)}")

        if any(r["id"] == row["id"] for r in self.tables[table]):
            return CreateResult(
                status=CreateStatus.DUPLICATE,
                error=f"duplicate key value violates unique constraint {table}_pkey",
            )
        for cols in UNIQUE_KEYS.get(table, []):
            key = tuple(row.get(c) for c in cols)
            if any(tuple(r.get(c) for c in cols) == key for r in self.tables[table]):
                return CreateResult(
                    status=CreateStatus.DUPLICATE,
                    error=f"duplicate key value violates unique constraint "
                    f"on {table} ({', '.join(cols)})",
                )
        for col, ref_table in FOREIGN_KEYS.get(table, {}).items():
            value = row.get(col)
            if value is not None and not any(r["id"] == value for r in self.tables[ref_table]):
                return CreateResult(
                    status=CreateStatus.FAILED,
                    error=f"insert on {table} violates foreign key {col} -> {ref_table}",
                )
        if self.reject is not None and self.reject(table, row):
            return CreateResult(status=CreateStatus.FAILED, error="rejected")

        self.tables[table].append(row)
        return CreateResult(status=CreateStatus.CREATED, row=dict(row))

    async def create(self, table: str, data: dict) -> CreateResult:
        self.calls.append(("create", table))
        return self._insert(table, data)

    async def upsert(
        self,
        table: str,
        keys: dict[str, Any],
        create: dict[str, Any],
        update: dict[str, Any],
    ) -> dict:
        self.calls.append(("upsert", table))
        for row in self.tables[table]:
            if _matches(row, keys):
                row.update(update)
                return dict(row)
        result = self._insert(table, {**keys, **create, **update})
        if not result.created:
            raise ValueError(result.error)
        return result.row

    async def update(self, table: str, data: dict, filters: dict[str, Any]) -> dict:
        self.calls.append(("update", table))
        matched = [r for r in self.tables[table] if _matches(r, filters)]
        if not matched:
            raise ValueError(f"No rows matched filters: {filters}")
        for row in matched:
            row.update(data)
        return dict(matched[0])

    async def delete_many(self, table: str, ids: list[str], pk: str = "id") -> int:
        self.calls.append(("delete_many", table))
        wanted = set(ids)
        before = len(self.tables[table])
        self.tables[table] = [r for r in self.tables[table] if r[pk] not in wanted]
        return before - len(self.tables[table])

    async def find_orphans(
        self,
        table: str,
        tenant_table: str = "tenants",
        tenant_field: str = "tenant_id",
    ) -> list[dict]:
        tenant_ids = {t["id"] for t in self.tables[tenant_table]}
        return [
            dict(r)
            for r in self.tables[table]
            if r.get(tenant_field) is None or r[tenant_field] not in tenant_ids
        ]

    async def close(self) -> None:
        self.closed = True


def seed_forum(store: MemoryTenantStore, tenant_id: str = "t1", domain: str = "shop.example.com") -> None:
    """One tenant: alice and bob, category General, a post by alice,
    bob's reply on it and bob's reaction on it."""
    store.seed(
        "tenants",
        {"id": tenant_id, "domain": domain, "name": "Shop", "settings": {"theme": "dark"}, "owner_id": "u-alice"},
    )
    store.seed(
        "users",
        {"id": "u-alice", "tenant_id": tenant_id, "email": "alice@x", "name": "Alice", "role": "ADMIN", "is_owner": True},
        {"id": "u-bob", "tenant_id": tenant_id, "email": "bob@x", "name": "Bob", "role": "MEMBER", "is_owner": False},
    )
    store.seed(
        "categories",
        {"id": "c-general", "tenant_id": tenant_id, "name": "General", "color": "#fff", "position": 0, "is_active": True},
    )
    store.seed(
        "posts",
        {
            "id": "p-1",
            "tenant_id": tenant_id,
            "author_id": "u-alice",
            "category_id": "c-general",
            "title": "Hello",
            "body": "First post",
            "status": "PUBLISHED",
            "created_at": "2026-01-01T10:00:00+00:00",
            "updated_at": "2026-01-01T10:00:00+00:00",
        },
    )
    store.seed(
        "comments",
        {"id": "r-1", "tenant_id": tenant_id, "post_id": "p-1", "author_id": "u-bob", "body": "Welcome"},
    )
    store.seed(
        "reactions",
        {"id": "x-1", "tenant_id": tenant_id, "user_id": "u-bob", "post_id": "p-1", "comment_id": None, "type": "LIKE"},
    )


@pytest.fixture
def store() -> MemoryTenantStore:
    return MemoryTenantStore()


@pytest.fixture
def seeded_store(store: MemoryTenantStore) -> MemoryTenantStore:
    seed_forum(store)
    return store
