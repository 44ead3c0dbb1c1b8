"""Tenant snapshots: bundle format, backup, restore and validation.

Usage:
    from forum_recovery.backup import Bundle, backup_tenant, restore_tenant
    from forum_recovery.backup import load_bundle, validate_bundle
"""

from forum_recovery.backup.backup_restore import (
    IdentityMap,
    backup_tenant,
    build_bundle,
    restore_tenant,
    validate_bundle,
)
from forum_recovery.backup.files import load_bundle, load_quarantine
from forum_recovery.backup.models import Bundle, QuarantineFile

__all__ = [
    "Bundle",
    "QuarantineFile",
    "IdentityMap",
    "backup_tenant",
    "build_bundle",
    "restore_tenant",
    "validate_bundle",
    "load_bundle",
    "load_quarantine",
]
