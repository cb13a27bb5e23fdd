# src/logging/context.py - v2
"""Contextual logging support: attach job_id, operation and asset to log records.

Batch jobs set the job context once; each item task sets its asset path.
Tasks copy the context at creation, so items inherit the job fields.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)
_asset: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "asset", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    job_id: str | None = None
    operation: str | None = None
    asset: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        job_id=_job_id.get(),
        operation=_operation.get(),
        asset=_asset.get(),
    )


def set_job_context(job_id: str, operation: str) -> None:
    """Set job-level context (called once per batch run)."""
    _job_id.set(job_id)
    _operation.set(operation)


def set_asset_context(asset: str | None) -> None:
    """Set the asset currently being processed."""
    _asset.set(asset)


def clear_context() -> None:
    """Reset all context variables."""
    _job_id.set(None)
    _operation.set(None)
    _asset.set(None)
