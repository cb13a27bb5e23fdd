# src/batch/models.py - v2
"""Batch processing models: BatchJob, ItemOutcome, BatchProgress."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from rpgmview.core.models import EncryptionKey, Operation

OutcomeKind = Literal[
    "success",
    "malformed_asset",
    "io_error",
    "already_in_target_state",
    "skipped",
]
BatchStatus = Literal["pending", "running", "completed", "partially_failed", "cancelled"]


class ItemOutcome(BaseModel):
    """Result of processing one file in a batch."""

    model_config = ConfigDict(frozen=True)

    index: int
    path: str
    kind: OutcomeKind
    output_path: str | None = None
    message: str | None = None
    source_removed: bool = False

    @property
    def ok(self) -> bool:
        return self.kind == "success"


class BatchProgress(BaseModel):
    """Snapshot of a running job, for a progress indicator."""

    total: int
    completed: int
    succeeded: int
    failed: int
    skipped: int

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


class BatchTarget(BaseModel):
    """One file selected for processing, with the root it was selected under."""

    model_config = ConfigDict(frozen=True)

    path: str
    root: str


class BatchJob(BaseModel):
    """A bulk encode/decode request and its per-item report.

    Only BatchProcessor mutates a job, and only while it is running.
    """

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    targets: list[str]
    operation: Operation
    key: EncryptionKey
    status: BatchStatus = "pending"
    items: list[BatchTarget] = Field(default_factory=list)
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None

    _cancel_requested: bool = PrivateAttr(default=False)

    def cancel(self) -> bool:
        """Request cancellation. Only honoured while the job is running."""
        if self.status != "running":
            return False
        self._cancel_requested = True
        return True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def finished(self) -> bool:
        return self.status in ("completed", "partially_failed", "cancelled")

    @property
    def progress(self) -> BatchProgress:
        succeeded = sum(1 for o in self.outcomes if o.kind == "success")
        skipped = sum(1 for o in self.outcomes if o.kind == "skipped")
        return BatchProgress(
            total=len(self.items),
            completed=len(self.outcomes),
            succeeded=succeeded,
            failed=len(self.outcomes) - succeeded - skipped,
            skipped=skipped,
        )

    def counts(self) -> dict[str, int]:
        """Number of outcomes per kind."""
        result: dict[str, int] = {}
        for outcome in self.outcomes:
            result[outcome.kind] = result.get(outcome.kind, 0) + 1
        return result
