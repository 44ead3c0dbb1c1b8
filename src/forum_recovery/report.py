"""Uniform result envelope returned by every recovery operation.

``itemsRecovered`` means different things per operation:

- backup: records written to the bundle
- restore / migrate: rows created or matched in the target tenant
- clean: rows deleted

Operations fill a ``ReportBuilder`` while they run and return the frozen
``Report`` from ``finish()`` or ``fail()``.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"
    MIGRATE = "migrate"
    CLEAN = "clean"


class Report(BaseModel):
    """Outcome of one recovery operation.

    ``success`` means the run completed, not that it was error-free: a
    successful report with a non-empty ``errors`` list is a partial
    recovery.

    Attributes:
        timestamp: When the operation started (UTC).
        operation: Which operation produced the report.
        tenant_id: Tenant the operation was scoped to, if any.
        success: ``False`` only for aborted runs.
        items_processed: Records the operation set out to handle.
        items_recovered: See module docstring.
        errors: One message per failed row, or the abort reason.
        duration: Wall time in milliseconds.
        output_path: Bundle or quarantine file written, if any.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: datetime
    operation: Operation
    tenant_id: str | None = Field(default=None, alias="tenantId")
    success: bool = False
    items_processed: int = Field(default=0, alias="itemsProcessed")
    items_recovered: int = Field(default=0, alias="itemsRecovered")
    errors: tuple[str, ...] = ()
    duration: float = 0.0
    output_path: str | None = Field(default=None, alias="outputPath")

    @property
    def partial(self) -> bool:
        """Completed, but some rows failed."""
        return self.success and bool(self.errors)

    def format_summary(self) -> str:
        """Format the report as a short human-readable summary."""
        status = "completed" if self.success else "FAILED"
        lines = [f"{self.operation.value} {status}"]
        if self.tenant_id:
            lines.append(f"  Tenant: {self.tenant_id}")
        lines.append(
            f"  Items: {self.items_recovered}/{self.items_processed} "
            f"in {self.duration:.0f} ms"
        )
        if self.output_path:
            lines.append(f"  File: {self.output_path}")
        if self.errors:
            lines.append(f"  Errors ({len(self.errors)}):")
            for error in self.errors:
                lines.append(f"    - {error}")
        return "\n".join(lines)


class ReportBuilder:
    """Mutable counterpart of ``Report`` used while an operation runs."""

    def __init__(self, operation: Operation, tenant_id: str | None = None) -> None:
        self.operation = operation
        self.tenant_id = tenant_id
        self.timestamp = datetime.now(timezone.utc)
        self.items_processed = 0
        self.items_recovered = 0
        self.errors: list[str] = []
        self.output_path: str | None = None
        self._started = time.perf_counter()

    def entity_failed(self, message: str) -> None:
        """Record a per-row failure; the run carries on."""
        logger.warning(f"[{self.operation.value}] {message}")
        self.errors.append(message)

    def fail(self, message: str) -> Report:
        """Abort the run with ``message`` as the reason."""
        logger.error(f"[{self.operation.value}] {message}")
        self.errors.append(message)
        return self._build(success=False)

    def finish(self) -> Report:
        """Close a run that completed, possibly with per-row errors."""
        report = self._build(success=True)
        logger.info(
            f"[{self.operation.value}] done: {report.items_recovered}/"
            f"{report.items_processed} items, {len(report.errors)} errors, "
            f"{report.duration:.0f} ms"
        )
        return report

    def _build(self, success: bool) -> Report:
        return Report(
            timestamp=self.timestamp,
            operation=self.operation,
            tenant_id=self.tenant_id,
            success=success,
            items_processed=self.items_processed,
            items_recovered=self.items_recovered,
            errors=tuple(self.errors),
            duration=(time.perf_counter() - self._started) * 1000,
            output_path=self.output_path,
        )
