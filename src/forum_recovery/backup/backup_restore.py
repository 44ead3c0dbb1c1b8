"""Tenant backup and restore.

``backup_tenant()`` snapshots one tenant's whole entity graph into a
bundle file.  ``restore_tenant()`` rebuilds a bundle into a target tenant,
creating rows in dependency order and remapping every foreign key through
an ``IdentityMap``: the target's id space is independent of the bundle's,
so bundle primary keys are never reused.

Restore order is fixed: tenant, users, categories, content, replies,
reactions, polls, badges.  Users, categories and badges are upserted by
natural key and converge on re-runs; content, replies, reactions and
polls are always created, so restoring the same bundle twice into one
tenant duplicates them.

Usage:
    from forum_recovery.backup.backup_restore import backup_tenant, restore_tenant

    report = await backup_tenant(store, "tenant-1")
    report = await restore_tenant(store, report.output_path, "tenant-2")
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from forum_recovery.adapters.base import CreateStatus, TenantStore
from forum_recovery.backup.files import load_bundle, write_bundle
from forum_recovery.backup.models import (
    BUNDLE_VERSION,
    BadgeRecord,
    Bundle,
    BundleMetadata,
    CategoryRecord,
    ContentRecord,
    PollRecord,
    ReactionRecord,
    ReplyRecord,
    TenantRecord,
    UserRecord,
    UserRef,
)
from forum_recovery.errors import RecoveryError, TenantConflictError, TenantNotFoundError
from forum_recovery.report import Operation, Report, ReportBuilder
from forum_recovery.schema.tables import (
    FORUM_SCHEMA,
    POLL_OPTIONS_TABLE,
    POLL_VOTES_TABLE,
    TENANT_TABLE,
)

logger = logging.getLogger(__name__)

USERS = FORUM_SCHEMA.get("users")
CATEGORIES = FORUM_SCHEMA.get("categories")
CONTENT = FORUM_SCHEMA.get("content")
REPLIES = FORUM_SCHEMA.get("replies")
REACTIONS = FORUM_SCHEMA.get("reactions")
POLLS = FORUM_SCHEMA.get("polls")
BADGES = FORUM_SCHEMA.get("badges")


async def _first(store: TenantStore, table: str, filters: dict[str, Any]) -> dict | None:
    rows = await store.select(table, filters=filters)
    return rows[0] if rows else None


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop ``None`` values so column defaults apply."""
    return {k: v for k, v in data.items() if v is not None}


# ============================================================================
# Snapshot Builder
# ============================================================================


def _user_ref(row: dict | None) -> dict | None:
    if row is None:
        return None
    return {"id": row["id"], "email": row["email"], "name": row.get("name")}


async def _poll_children(
    store: TenantStore, poll_ids: list[str]
) -> tuple[list[dict], list[dict]]:
    """Options of the given polls (by position) and the votes cast on them."""
    if not poll_ids:
        return [], []
    options = await store.select(
        POLL_OPTIONS_TABLE, filters={"poll_id": poll_ids}, order_by="position"
    )
    option_ids = [o["id"] for o in options]
    votes = (
        await store.select(POLL_VOTES_TABLE, filters={"option_id": option_ids})
        if option_ids
        else []
    )
    return options, votes


def _nest_poll_options(
    options: list[dict], votes: list[dict], users_by_id: dict[str, dict]
) -> dict[str, list[dict]]:
    votes_by_option: dict[str, list[dict]] = defaultdict(list)
    for v in votes:
        votes_by_option[v["option_id"]].append(
            {**v, "user": _user_ref(users_by_id.get(v["user_id"]))}
        )
    options_by_poll: dict[str, list[dict]] = defaultdict(list)
    for o in options:
        options_by_poll[o["poll_id"]].append({**o, "votes": votes_by_option[o["id"]]})
    return options_by_poll


async def load_polls(store: TenantStore, poll_rows: list[dict]) -> list[PollRecord]:
    """Turn raw poll rows into ``PollRecord`` with options, votes and voter refs."""
    options, votes = await _poll_children(store, [p["id"] for p in poll_rows])
    voter_ids = sorted({v["user_id"] for v in votes})
    voters = (
        await store.select(USERS.table, filters={"id": voter_ids}) if voter_ids else []
    )
    options_by_poll = _nest_poll_options(options, votes, {u["id"]: u for u in voters})
    return [
        PollRecord.model_validate({**r, "options": options_by_poll[r["id"]]})
        for r in poll_rows
    ]


async def build_bundle(store: TenantStore, tenant_id: str) -> Bundle:
    """Read one tenant's whole graph into a ``Bundle``.

    Independent per-kind reads run concurrently.  Authors, actors and
    voters are embedded as ``UserRef`` (email included) next to each row,
    and poll options carry their votes, so restore never needs the source
    store again.

    Raises:
        TenantNotFoundError: If ``tenant_id`` does not exist.
    """
    tenant_row = await _first(store, TENANT_TABLE, {"id": tenant_id})
    if tenant_row is None:
        raise TenantNotFoundError(tenant_id)

    results = await asyncio.gather(
        *(
            store.select(t.table, filters={t.tenant_field: tenant_id}, order_by=t.pk)
            for t in FORUM_SCHEMA.tables
        )
    )
    rows: dict[str, list[dict]] = dict(zip(FORUM_SCHEMA.kinds, results))

    options, votes = await _poll_children(store, [p["id"] for p in rows["polls"]])

    users_by_id = {u["id"]: u for u in rows["users"]}

    # Rows can reference users outside the tenant's own user list
    referenced = (
        {r["author_id"] for r in rows["content"]}
        | {r["author_id"] for r in rows["replies"]}
        | {r["user_id"] for r in rows["reactions"]}
        | {v["user_id"] for v in votes}
    )
    missing = sorted(uid for uid in referenced - users_by_id.keys() if uid is not None)
    if missing:
        for u in await store.select(USERS.table, filters={"id": missing}):
            users_by_id[u["id"]] = u

    categories_by_id = {c["id"]: c for c in rows["categories"]}

    options_by_poll = _nest_poll_options(options, votes, users_by_id)

    content = []
    for r in rows["content"]:
        category = categories_by_id.get(r.get("category_id"))
        content.append(
            ContentRecord.model_validate(
                {
                    **r,
                    "author": _user_ref(users_by_id.get(r["author_id"])),
                    "category": (
                        {"id": category["id"], "name": category["name"]}
                        if category
                        else None
                    ),
                }
            )
        )

    records: dict[str, Any] = {
        "users": [UserRecord.model_validate(r) for r in rows["users"]],
        "categories": [CategoryRecord.model_validate(r) for r in rows["categories"]],
        "content": content,
        "replies": [
            ReplyRecord.model_validate(
                {**r, "author": _user_ref(users_by_id.get(r["author_id"]))}
            )
            for r in rows["replies"]
        ],
        "reactions": [
            ReactionRecord.model_validate(
                {**r, "user": _user_ref(users_by_id.get(r["user_id"]))}
            )
            for r in rows["reactions"]
        ],
        "polls": [
            PollRecord.model_validate({**r, "options": options_by_poll[r["id"]]})
            for r in rows["polls"]
        ],
        "badges": [BadgeRecord.model_validate(r) for r in rows["badges"]],
    }

    return Bundle(
        tenant=TenantRecord.model_validate(tenant_row),
        **records,
        metadata=BundleMetadata(
            version=BUNDLE_VERSION,
            timestamp=datetime.now(timezone.utc),
            total_records=sum(len(v) for v in records.values()),
        ),
    )


async def backup_tenant(
    store: TenantStore,
    tenant_id: str,
    backups_dir: str | Path | None = None,
) -> Report:
    """Snapshot a tenant into ``backups/backup_<domain>_<unix-ms>.json``.

    Read-only against the store; writes exactly one file, and none at all
    when the tenant does not exist.

    Args:
        store: Tenant store to read from.
        tenant_id: Tenant to snapshot.
        backups_dir: Output directory.  Defaults to ``./backups``.

    Returns:
        ``Report`` with ``items_processed == items_recovered ==
        totalRecords`` and ``output_path`` set on success.
    """
    run = ReportBuilder(Operation.BACKUP, tenant_id=tenant_id)
    logger.info(f"Backing up tenant {tenant_id}")

    try:
        bundle = await build_bundle(store, tenant_id)
    except TenantNotFoundError as e:
        return run.fail(str(e))
    except Exception as e:
        logger.exception(f"Backup of tenant {tenant_id} failed")
        return run.fail(f"Backup failed: {e}")

    try:
        path = write_bundle(bundle, backups_dir)
    except OSError as e:
        return run.fail(f"Cannot write bundle: {e}")

    run.items_processed = bundle.metadata.total_records
    # itemsRecovered: records captured in the bundle
    run.items_recovered = bundle.metadata.total_records
    run.output_path = str(path)
    return run.finish()


# ============================================================================
# Restorer
# ============================================================================


class IdentityMap:
    """Bundle-local id -> target-store id, per kind, for one restore call."""

    def __init__(self) -> None:
        self._maps: dict[str, dict[str, str]] = defaultdict(dict)

    def record(self, kind: str, old_id: str, new_id: str) -> None:
        self._maps[kind][old_id] = new_id

    def get(self, kind: str, old_id: str | None) -> str | None:
        if old_id is None:
            return None
        return self._maps[kind].get(old_id)

    def count(self, kind: str) -> int:
        return len(self._maps[kind])


async def _resolve_target_tenant(
    store: TenantStore,
    bundle: Bundle,
    target_tenant_id: str | None,
) -> tuple[dict, bool]:
    """Find or create the tenant to restore into.

    Returns:
        Tuple of (tenant row, whether it was created by this call).

    Raises:
        TenantConflictError: If no explicit target was given and the
            bundle's tenant already exists, or if the bundle's domain is
            taken by another tenant.
        RecoveryError: If the tenant row cannot be created.
    """
    tenant_id = target_tenant_id or bundle.tenant.id
    existing = await _first(store, TENANT_TABLE, {"id": tenant_id})

    if existing is not None:
        if target_tenant_id is None:
            raise TenantConflictError(
                f"Tenant {tenant_id} already exists; supply an explicit "
                f"target tenant id to restore into it"
            )
        return existing, False

    result = await store.create(
        TENANT_TABLE,
        _compact(
            {
                "id": tenant_id,
                "domain": bundle.tenant.domain,
                "name": bundle.tenant.name,
                "settings": bundle.tenant.settings,
            }
        ),
    )
    if result.status is CreateStatus.DUPLICATE:
        raise TenantConflictError(
            f"Cannot create tenant {tenant_id}: domain "
            f"'{bundle.tenant.domain}' is already in use"
        )
    if not result.created:
        raise RecoveryError(f"Cannot create tenant {tenant_id}: {result.error}")
    return result.row, True


async def _resolve_user(
    store: TenantStore,
    tenant_id: str,
    ids: IdentityMap,
    user_id: str,
    ref: UserRef | None,
) -> str | None:
    """Map a bundle user id to a target user id, falling back to email."""
    mapped = ids.get("users", user_id)
    if mapped is not None:
        return mapped
    if ref is None:
        return None
    row = await _first(store, USERS.table, {"tenant_id": tenant_id, "email": ref.email})
    if row is None:
        return None
    ids.record("users", user_id, row["id"])
    return row["id"]


async def _restore_users(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for user in bundle.users:
        try:
            row = await store.upsert(
                USERS.table,
                keys=USERS.key_for(tenant_id, user),
                create={"is_owner": user.is_owner},
                update={"name": user.name, "role": user.role, "image": user.image},
            )
        except Exception as e:
            run.entity_failed(f"Failed to restore user {user.email}: {e}")
            continue
        ids.record("users", user.id, row["id"])
        run.items_recovered += 1


async def _restore_categories(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for category in bundle.categories:
        try:
            row = await store.upsert(
                CATEGORIES.table,
                keys=CATEGORIES.key_for(tenant_id, category),
                create={},
                update={
                    "color": category.color,
                    "description": category.description,
                    "position": category.position,
                    "is_active": category.is_active,
                },
            )
        except Exception as e:
            run.entity_failed(f"Failed to restore category {category.name}: {e}")
            continue
        ids.record("categories", category.id, row["id"])
        run.items_recovered += 1


async def _restore_content(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for post in bundle.content:
        author_id = await _resolve_user(store, tenant_id, ids, post.author_id, post.author)
        if author_id is None:
            run.entity_failed(f"Author not found for content '{post.title}' ({post.id})")
            continue

        # Category is optional: left unset when it was not restored
        category_id = ids.get("categories", post.category_id)
        if category_id is None and post.category is not None:
            row = await _first(
                store, CATEGORIES.table, {"tenant_id": tenant_id, "name": post.category.name}
            )
            category_id = row["id"] if row else None

        result = await store.create(
            CONTENT.table,
            _compact(
                {
                    "tenant_id": tenant_id,
                    "author_id": author_id,
                    "category_id": category_id,
                    "title": post.title,
                    "body": post.body,
                    "slug": post.slug,
                    "image_url": post.image_url,
                    "status": post.status,
                    "created_at": post.created_at,
                    "updated_at": post.updated_at,
                }
            ),
        )
        if not result.created:
            run.entity_failed(f"Failed to restore content '{post.title}': {result.error}")
            continue
        ids.record("content", post.id, result.row["id"])
        run.items_recovered += 1


async def _restore_replies(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for reply in bundle.replies:
        post_id = ids.get("content", reply.post_id)
        if post_id is None:
            run.entity_failed(
                f"Cannot restore reply {reply.id}: content {reply.post_id} was not restored"
            )
            continue
        author_id = await _resolve_user(store, tenant_id, ids, reply.author_id, reply.author)
        if author_id is None:
            run.entity_failed(f"Cannot restore reply {reply.id}: author not found")
            continue

        result = await store.create(
            REPLIES.table,
            _compact(
                {
                    "tenant_id": tenant_id,
                    "post_id": post_id,
                    "author_id": author_id,
                    "body": reply.body,
                    "created_at": reply.created_at,
                    "updated_at": reply.updated_at,
                }
            ),
        )
        if not result.created:
            run.entity_failed(f"Failed to restore reply {reply.id}: {result.error}")
            continue
        ids.record("replies", reply.id, result.row["id"])
        run.items_recovered += 1


async def _restore_reactions(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for reaction in bundle.reactions:
        user_id = await _resolve_user(store, tenant_id, ids, reaction.user_id, reaction.user)
        if user_id is None:
            run.entity_failed(f"Cannot restore reaction {reaction.id}: user not found")
            continue

        post_id = ids.get("content", reaction.post_id)
        comment_id = ids.get("replies", reaction.comment_id)
        if (reaction.post_id is not None and post_id is None) or (
            reaction.comment_id is not None and comment_id is None
        ):
            run.entity_failed(
                f"Cannot restore reaction {reaction.id}: its target was not restored"
            )
            continue

        result = await store.create(
            REACTIONS.table,
            _compact(
                {
                    "tenant_id": tenant_id,
                    "user_id": user_id,
                    "post_id": post_id,
                    "comment_id": comment_id,
                    "type": reaction.type,
                    "created_at": reaction.created_at,
                }
            ),
        )
        if result.status is CreateStatus.DUPLICATE:
            # User already reacted: benign, neither an error nor recovered
            logger.debug(f"Reaction {reaction.id} already present, skipped")
            continue
        if not result.created:
            run.entity_failed(f"Failed to restore reaction {reaction.id}: {result.error}")
            continue
        ids.record("reactions", reaction.id, result.row["id"])
        run.items_recovered += 1


async def _restore_poll(
    store: TenantStore,
    poll: PollRecord,
    post_id: str,
    tenant_id: str,
    ids: IdentityMap,
    run: ReportBuilder,
) -> bool:
    """Create one poll with its options and votes.

    A vote that cannot be written is reported on its own and does not
    undo the poll.

    Returns:
        Whether the poll and all of its options were created.
    """
    result = await store.create(
        POLLS.table,
        _compact(
            {
                "tenant_id": tenant_id,
                "post_id": post_id,
                "question": poll.question,
                "created_at": poll.created_at,
            }
        ),
    )
    if not result.created:
        run.entity_failed(f"Failed to restore poll {poll.id}: {result.error}")
        return False
    ids.record("polls", poll.id, result.row["id"])

    for option in poll.options:
        opt = await store.create(
            POLL_OPTIONS_TABLE,
            {"poll_id": result.row["id"], "text": option.text, "position": option.position},
        )
        if not opt.created:
            run.entity_failed(
                f"Failed to restore option '{option.text}' of poll {poll.id}: {opt.error}"
            )
            return False
        for vote in option.votes:
            user_id = await _resolve_user(store, tenant_id, ids, vote.user_id, vote.user)
            if user_id is None:
                run.entity_failed(
                    f"Cannot restore vote {vote.id} on poll {poll.id}: voter not found"
                )
                continue
            voted = await store.create(
                POLL_VOTES_TABLE, {"option_id": opt.row["id"], "user_id": user_id}
            )
            if voted.status is CreateStatus.DUPLICATE:
                # Same voter and option already present, same as reactions
                logger.debug(f"Vote {vote.id} on poll {poll.id} already present, skipped")
            elif not voted.created:
                run.entity_failed(
                    f"Failed to restore vote {vote.id} on poll {poll.id}: {voted.error}"
                )
    return True


async def _restore_polls(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for poll in bundle.polls:
        post_id = ids.get("content", poll.post_id)
        if post_id is None:
            run.entity_failed(
                f"Cannot restore poll {poll.id}: content {poll.post_id} was not restored"
            )
            continue
        if await _restore_poll(store, poll, post_id, tenant_id, ids, run):
            run.items_recovered += 1


async def _restore_badges(
    store: TenantStore, bundle: Bundle, tenant_id: str, ids: IdentityMap, run: ReportBuilder
) -> None:
    for badge in bundle.badges:
        try:
            row = await store.upsert(
                BADGES.table,
                keys=BADGES.key_for(tenant_id, badge),
                create={"is_default": badge.is_default, "position": badge.position},
                update={
                    "image_url": badge.image_url,
                    "required_points": badge.required_points,
                    "description": badge.description,
                },
            )
        except Exception as e:
            run.entity_failed(f"Failed to restore badge {badge.name}: {e}")
            continue
        ids.record("badges", badge.id, row["id"])
        run.items_recovered += 1


# Children after parents; reordering breaks foreign keys.
RESTORE_STEPS = (
    _restore_users,
    _restore_categories,
    _restore_content,
    _restore_replies,
    _restore_reactions,
    _restore_polls,
    _restore_badges,
)


async def restore_tenant(
    store: TenantStore,
    bundle: Bundle | str | Path,
    target_tenant_id: str | None = None,
) -> Report:
    """Rebuild a bundle's graph into a target tenant.

    Target resolution:

    - no ``target_tenant_id``: restore under the bundle's own tenant id,
      which must not exist yet (otherwise the run aborts with a conflict,
      so a live tenant is never overwritten by accident);
    - ``target_tenant_id`` that does not exist: the tenant is created from
      the bundle's tenant row;
    - ``target_tenant_id`` that exists: rows are added to it.

    A row whose parent was not restored is reported in ``errors`` and
    skipped; the run continues.

    Args:
        store: Tenant store to write to.
        bundle: A ``Bundle`` or the path of a bundle file.
        target_tenant_id: Optional explicit target tenant.

    Returns:
        ``Report`` with ``items_processed`` = the bundle's declared
        ``totalRecords`` and ``items_recovered`` = rows created or matched.
    """
    run = ReportBuilder(Operation.RESTORE, tenant_id=target_tenant_id)

    if not isinstance(bundle, Bundle):
        logger.info(f"Restoring from {bundle}")
        try:
            bundle = load_bundle(bundle)
        except RecoveryError as e:
            return run.fail(str(e))

    run.items_processed = bundle.metadata.total_records

    try:
        tenant, created = await _resolve_target_tenant(store, bundle, target_tenant_id)
    except RecoveryError as e:
        return run.fail(str(e))
    except Exception as e:
        logger.exception("Could not resolve the restore target")
        return run.fail(f"Restore failed: {e}")

    tenant_id = tenant["id"]
    run.tenant_id = tenant_id
    logger.info(
        f"Restoring {bundle.metadata.total_records} records of "
        f"{bundle.tenant.domain} into tenant {tenant_id}"
        + (" (created)" if created else "")
    )

    ids = IdentityMap()
    try:
        for step in RESTORE_STEPS:
            await step(store, bundle, tenant_id, ids, run)

        owner_id = ids.get("users", bundle.tenant.owner_id)
        if created and owner_id is not None:
            await store.update(TENANT_TABLE, {"owner_id": owner_id}, {"id": tenant_id})
    except Exception as e:
        logger.exception(f"Restore into tenant {tenant_id} failed")
        return run.fail(f"Restore failed: {e}")

    return run.finish()


# ============================================================================
# Validation
# ============================================================================


def validate_bundle(bundle_path: str | Path) -> dict:
    """Validate a bundle file without touching any store.

    Checks that the file parses as a supported bundle (see
    ``load_bundle()``) and warns about references that cannot be resolved
    inside the bundle itself: content whose author is neither in
    ``users`` nor embedded, replies whose content is missing, and so on.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).

    Example:
        report = validate_bundle("backups/backup_shop_1700000000000.json")
        if report["errors"]:
            raise ValueError("Bundle is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        bundle = load_bundle(bundle_path)
    except RecoveryError as e:
        errors.append(str(e))
        return {"valid": False, "errors": errors, "warnings": warnings}

    ids_by_kind: dict[str, set[str]] = {
        t.kind: {r.id for r in getattr(bundle, t.kind)} for t in FORUM_SCHEMA.tables
    }

    for table_def in FORUM_SCHEMA.tables:
        for record in getattr(bundle, table_def.kind):
            if record.tenant_id is not None and record.tenant_id != bundle.tenant.id:
                warnings.append(
                    f"{table_def.kind} {record.id} belongs to tenant {record.tenant_id}, "
                    f"not {bundle.tenant.id}"
                )
            for ref in table_def.refs:
                ref_val = getattr(record, ref.field, None)
                if ref_val is None or ref_val in ids_by_kind[ref.kind]:
                    continue
                # Users referenced from outside the tenant travel as embedded refs
                if ref.kind == "users" and _embedded_user(record) is not None:
                    continue
                level = "Orphaned" if ref.required else "Unresolved optional"
                warnings.append(
                    f"{level} {table_def.kind} {record.id}: "
                    f"{ref.field} {ref_val} not in bundle"
                )

    return {"valid": not errors, "errors": errors, "warnings": warnings}


def _embedded_user(record: Any) -> UserRef | None:
    return getattr(record, "author", None) or getattr(record, "user", None)
