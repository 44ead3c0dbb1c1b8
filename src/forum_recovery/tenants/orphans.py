"""Orphan detection, quarantine and deletion.

A row is orphaned when its tenant reference is NULL or names a tenant
that no longer exists.  ``clean_orphans()`` scans every tenant-scoped
kind with an anti-join, saves everything it found to one quarantine file
and only then deletes, children first.

The scan cannot tell a tenant that never existed from one that another
process is deleting or re-homing right now: running the reconciler while
such a workflow is in flight can delete rows that were about to be
reattached.  The quarantine file is the way back in that case.

Usage:
    from forum_recovery.tenants.orphans import clean_orphans

    report = await clean_orphans(store)
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from forum_recovery.adapters.base import TenantStore
from forum_recovery.backup.backup_restore import load_polls
from forum_recovery.backup.files import write_quarantine
from forum_recovery.backup.models import RECORD_TYPES, QuarantineFile, QuarantineMetadata
from forum_recovery.report import Operation, Report, ReportBuilder
from forum_recovery.schema.tables import (
    FORUM_SCHEMA,
    ORPHAN_DELETE_ORDER,
    ORPHAN_SCAN_KINDS,
    TENANT_TABLE,
)

logger = logging.getLogger(__name__)


async def find_orphans(store: TenantStore) -> dict[str, list[dict]]:
    """Run the anti-join scan for every orphan-checked kind, concurrently.

    Returns:
        Dict mapping kind to its orphaned rows (possibly empty).
    """
    tables = [FORUM_SCHEMA.get(kind) for kind in ORPHAN_SCAN_KINDS]
    results = await asyncio.gather(
        *(
            store.find_orphans(
                t.table, tenant_table=TENANT_TABLE, tenant_field=t.tenant_field
            )
            for t in tables
        )
    )
    return dict(zip(ORPHAN_SCAN_KINDS, results))


async def clean_orphans(
    store: TenantStore,
    backups_dir: str | Path | None = None,
) -> Report:
    """Quarantine and delete every orphaned row, across all tenants.

    Nothing is written or deleted when no orphan is found.

    Args:
        store: Tenant store to scan.
        backups_dir: Where the quarantine file goes.  Defaults to
            ``./backups``.

    Returns:
        ``Report`` with ``items_processed`` = orphans found and
        ``items_recovered`` = rows deleted.
    """
    run = ReportBuilder(Operation.CLEAN)
    logger.info("Scanning for orphaned rows")

    try:
        orphans = await find_orphans(store)
    except Exception as e:
        logger.exception("Orphan scan failed")
        return run.fail(f"Cleanup failed: {e}")

    for kind, rows in orphans.items():
        logger.info(f"  {kind}: {len(rows)} orphaned")
    run.items_processed = sum(len(rows) for rows in orphans.values())

    if run.items_processed == 0:
        logger.info("No orphaned rows found")
        return run.finish()

    # Quarantine before any mutation
    try:
        records = {
            kind: [RECORD_TYPES[kind].model_validate(r) for r in rows]
            for kind, rows in orphans.items()
            if kind != "polls"
        }
        records["polls"] = await load_polls(store, orphans["polls"])
        quarantine = QuarantineFile(
            **records,
            metadata=QuarantineMetadata(
                timestamp=datetime.now(timezone.utc),
                total_orphans=run.items_processed,
            ),
        )
        path = write_quarantine(quarantine, backups_dir)
    except Exception as e:
        # Nothing is deleted without a quarantine copy
        logger.exception("Quarantining orphaned rows failed")
        return run.fail(f"Cannot quarantine orphaned rows: {e}")
    run.output_path = str(path)
    logger.info(f"Orphaned rows saved to {path}")

    for kind in ORPHAN_DELETE_ORDER:
        rows = orphans[kind]
        if not rows:
            continue
        table_def = FORUM_SCHEMA.get(kind)
        try:
            deleted = await store.delete_many(
                table_def.table, [r[table_def.pk] for r in rows], pk=table_def.pk
            )
        except Exception as e:
            run.entity_failed(f"Failed to delete {len(rows)} orphaned {kind}: {e}")
            continue
        # itemsRecovered: rows deleted
        run.items_recovered += deleted

    return run.finish()
