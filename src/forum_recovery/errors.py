"""Error taxonomy for the recovery engine.

Operations catch these and turn them into a failed ``Report``; they only
escape to callers that use the lower-level helpers directly
(``build_bundle()``, ``load_bundle()``, ``load_quarantine()``).

Per-row failures are not exceptions at this level: they are appended to
``Report.errors`` and the run continues.  Benign duplicates are signalled
by ``CreateStatus.DUPLICATE`` from the store.
"""


class RecoveryError(Exception):
    """Base class for errors that abort a recovery operation."""

    pass


class TenantNotFoundError(RecoveryError):
    """Raised when a referenced tenant does not exist."""

    def __init__(self, tenant_id: str, role: str = "Tenant") -> None:
        self.tenant_id = tenant_id
        super().__init__(f"{role} not found: {tenant_id}")


class BundleNotFoundError(RecoveryError):
    """Raised when a bundle or quarantine file does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Backup file not found: {path}")


class InvalidBundleError(RecoveryError):
    """Raised when a bundle file cannot be parsed or fails validation."""

    pass


class TenantConflictError(RecoveryError):
    """Raised when a restore would land on a tenant that already exists."""

    pass
