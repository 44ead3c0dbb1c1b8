"""Live tenant-to-tenant migration (no bundle file involved).

Copies a selected subset of kinds from a source tenant into a target
tenant, resolving parents by natural key in the target:

- ``categories``: upserted by ``(target, name)``; color and description
  merged from the source.
- ``users``: upserted by ``(target, email)``; name and image merged, role
  copied only when the user is new.
- ``content``: always created fresh (re-running duplicates content).  The
  author is looked up by email in the target and provisioned as a
  ``MEMBER`` when absent, even when ``users`` is not selected: content
  cannot exist without an author.  The category is looked up by name and
  left unset when absent.

Usage:
    from forum_recovery.tenants.migrate import migrate_tenant, parse_kinds

    report = await migrate_tenant(store, "shop-a", "shop-b", parse_kinds("content,categories"))
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from forum_recovery.adapters.base import TenantStore
from forum_recovery.errors import TenantNotFoundError
from forum_recovery.report import Operation, Report, ReportBuilder
from forum_recovery.schema.tables import FORUM_SCHEMA, TENANT_TABLE

logger = logging.getLogger(__name__)

# Processing order: parents before content
MIGRATABLE_KINDS = ("categories", "users", "content")
DEFAULT_KINDS = ("content", "categories")

PROVISIONED_ROLE = "MEMBER"

USERS = FORUM_SCHEMA.get("users")
CATEGORIES = FORUM_SCHEMA.get("categories")
CONTENT = FORUM_SCHEMA.get("content")


def parse_kinds(value: str) -> tuple[str, ...]:
    """Parse a comma-separated kind list (e.g. ``"content,users"``).

    Raises:
        ValueError: If the list is empty or names an unknown kind.
    """
    kinds = tuple(k.strip() for k in value.split(",") if k.strip())
    if not kinds:
        raise ValueError("No kinds given")
    _check_kinds(kinds)
    return kinds


def _check_kinds(kinds: Iterable[str]) -> None:
    unknown = sorted(set(kinds) - set(MIGRATABLE_KINDS))
    if unknown:
        raise ValueError(
            f"Unknown kind(s): {', '.join(unknown)}. "
            f"Choose from: {', '.join(MIGRATABLE_KINDS)}"
        )


async def _migrate_categories(
    store: TenantStore, source_id: str, target_id: str, run: ReportBuilder
) -> None:
    categories = await store.select(CATEGORIES.table, filters={"tenant_id": source_id})
    run.items_processed += len(categories)

    for category in categories:
        try:
            await store.upsert(
                CATEGORIES.table,
                keys=CATEGORIES.key_for(target_id, category),
                create={
                    "position": category.get("position", 0),
                    "is_active": category.get("is_active", True),
                },
                update={
                    "color": category.get("color"),
                    "description": category.get("description"),
                },
            )
        except Exception as e:
            run.entity_failed(f"Failed to migrate category {category['name']}: {e}")
            continue
        run.items_recovered += 1


async def _migrate_users(
    store: TenantStore, source_id: str, target_id: str, run: ReportBuilder
) -> None:
    users = await store.select(USERS.table, filters={"tenant_id": source_id})
    run.items_processed += len(users)

    for user in users:
        try:
            await store.upsert(
                USERS.table,
                keys=USERS.key_for(target_id, user),
                create={"role": user.get("role") or PROVISIONED_ROLE, "is_owner": False},
                update={"name": user.get("name"), "image": user.get("image")},
            )
        except Exception as e:
            run.entity_failed(f"Failed to migrate user {user['email']}: {e}")
            continue
        run.items_recovered += 1


class _AuthorResolver:
    """Email -> target user id, provisioning missing authors once."""

    def __init__(self, store: TenantStore, target_id: str) -> None:
        self._store = store
        self._target_id = target_id
        self._ids: dict[str, str] = {}

    async def resolve(self, author: dict) -> str:
        email = author["email"]
        if email in self._ids:
            return self._ids[email]

        rows = await self._store.select(
            USERS.table, filters={"tenant_id": self._target_id, "email": email}
        )
        if rows:
            self._ids[email] = rows[0]["id"]
            return self._ids[email]

        result = await self._store.create(
            USERS.table,
            {
                "tenant_id": self._target_id,
                "email": email,
                "name": author.get("name"),
                "role": PROVISIONED_ROLE,
                "is_owner": False,
            },
        )
        if not result.created:
            raise RuntimeError(f"could not provision author {email}: {result.error}")
        logger.info(f"Provisioned {PROVISIONED_ROLE} {email} in tenant {self._target_id}")
        self._ids[email] = result.row["id"]
        return self._ids[email]


async def _migrate_content(
    store: TenantStore, source_id: str, target_id: str, run: ReportBuilder
) -> None:
    posts, source_users, source_categories, target_categories = await asyncio.gather(
        store.select(CONTENT.table, filters={"tenant_id": source_id}, order_by="id"),
        store.select(USERS.table, filters={"tenant_id": source_id}),
        store.select(CATEGORIES.table, filters={"tenant_id": source_id}),
        store.select(CATEGORIES.table, filters={"tenant_id": target_id}),
    )
    run.items_processed += len(posts)

    users_by_id = {u["id"]: u for u in source_users}
    category_names = {c["id"]: c["name"] for c in source_categories}
    target_category_ids = {c["name"]: c["id"] for c in target_categories}
    authors = _AuthorResolver(store, target_id)

    for post in posts:
        title = post.get("title", post["id"])
        try:
            author = users_by_id.get(post["author_id"])
            if author is None:
                rows = await store.select(USERS.table, filters={"id": post["author_id"]})
                if not rows:
                    raise LookupError(f"author {post['author_id']} not found")
                author = rows[0]
            author_id = await authors.resolve(author)

            category_id = target_category_ids.get(category_names.get(post.get("category_id")))

            data: dict[str, Any] = {
                "tenant_id": target_id,
                "author_id": author_id,
                "category_id": category_id,
                "title": post["title"],
                "body": post.get("body"),
                "slug": post.get("slug"),
                "image_url": post.get("image_url"),
                "status": post.get("status"),
            }
            result = await store.create(
                CONTENT.table, {k: v for k, v in data.items() if v is not None}
            )
            if not result.created:
                raise RuntimeError(result.error)
        except Exception as e:
            run.entity_failed(f"Failed to migrate content '{title}': {e}")
            continue
        run.items_recovered += 1


_STEPS = {
    "categories": _migrate_categories,
    "users": _migrate_users,
    "content": _migrate_content,
}


async def migrate_tenant(
    store: TenantStore,
    source_tenant_id: str,
    target_tenant_id: str,
    kinds: Iterable[str] = DEFAULT_KINDS,
) -> Report:
    """Copy selected kinds from one live tenant into another.

    Args:
        store: Tenant store holding both tenants.
        source_tenant_id: Tenant to copy from (left untouched).
        target_tenant_id: Tenant to copy into.
        kinds: Subset of ``MIGRATABLE_KINDS``.  Processed in the fixed
            order categories, users, content regardless of the order given.

    Returns:
        ``Report`` scoped to the source tenant.  ``items_processed`` counts
        source rows examined and ``items_recovered`` rows created or
        matched in the target.

    Raises:
        ValueError: If ``kinds`` names an unknown kind.
    """
    selected = set(kinds)
    _check_kinds(selected)

    run = ReportBuilder(Operation.MIGRATE, tenant_id=source_tenant_id)
    logger.info(
        f"Migrating {', '.join(k for k in MIGRATABLE_KINDS if k in selected)} "
        f"from {source_tenant_id} to {target_tenant_id}"
    )

    try:
        source, target = await asyncio.gather(
            store.select(TENANT_TABLE, filters={"id": source_tenant_id}),
            store.select(TENANT_TABLE, filters={"id": target_tenant_id}),
        )
        if not source:
            raise TenantNotFoundError(source_tenant_id, role="Source tenant")
        if not target:
            raise TenantNotFoundError(target_tenant_id, role="Target tenant")

        for kind in MIGRATABLE_KINDS:
            if kind in selected:
                await _STEPS[kind](store, source_tenant_id, target_tenant_id, run)
    except TenantNotFoundError as e:
        return run.fail(str(e))
    except Exception as e:
        logger.exception(f"Migration {source_tenant_id} -> {target_tenant_id} failed")
        return run.fail(f"Migration failed: {e}")

    return run.finish()
