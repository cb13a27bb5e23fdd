# src/batch/processor.py - v2
"""Batch processor: bulk encode/decode with per-item isolation and progress.

Workflow:
    1. Expand directory targets to their eligible files (snapshot at start)
    2. Start items in selection order, at most `workers` in flight
    3. Each item: check state -> read -> transform -> write -> verify
       -> optionally remove the source
    4. Collect outcomes through one queue and stream them to the caller

Sources are never overwritten: output goes to a path with the flipped
extension. A cancelled job lets in-flight items finish and reports every
item that had not started as `skipped`.
Closing the outcome stream early cancels the job, and the outcomes produced
while it winds down are still recorded on the job.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Callable, Iterable

from rpgmview.batch.models import BatchJob, BatchProgress, BatchTarget, ItemOutcome
from rpgmview.codec import extensions
from rpgmview.codec.transform import restore_header, transform
from rpgmview.core.errors import AlreadyInTargetState, AssetIOError, InvalidKey, MalformedAsset
from rpgmview.core.models import AssetEntry, AssetVersion, EncryptionKey, Operation
from rpgmview.logging.context import clear_context, set_asset_context, set_job_context
from rpgmview.scan.scanner import DirectoryScanner

if TYPE_CHECKING:
    from rpgmview.config.settings import Settings
    from rpgmview.keys.store import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
PARTIAL_SUFFIX = ".part"

ProgressCallback = Callable[[BatchProgress], None]


class BatchProcessor:
    """Apply the asset codec across a selection of files and directories.

    Args:
        key_store: Source of the key snapshot for new jobs.
        workers: Max items processed concurrently.
        remove_source: Delete each source after a verified write.
        output_dir: Mirror outputs under this directory instead of writing
            next to the source.
        asset_version: Which obfuscated extensions encode produces.
        verify_signature: Reject decode input whose signature region is wrong.
        restore_headers: Force the known container magic onto decoded output.
    """

    def __init__(
        self,
        key_store: KeyStore | None = None,
        workers: int = DEFAULT_WORKERS,
        remove_source: bool = False,
        output_dir: Path | None = None,
        asset_version: AssetVersion = "mv",
        verify_signature: bool = False,
        restore_headers: bool = False,
        scanner: DirectoryScanner | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._key_store = key_store
        self._workers = workers
        self._remove_source = remove_source
        self._output_dir = Path(output_dir).expanduser().absolute() if output_dir else None
        self._asset_version = asset_version
        self._verify_signature = verify_signature
        self._restore_headers = restore_headers
        self._scanner = scanner or DirectoryScanner()

    @classmethod
    def from_settings(cls, key_store: KeyStore, settings: Settings) -> BatchProcessor:
        return cls(
            key_store=key_store,
            workers=settings.batch_workers,
            remove_source=settings.batch_remove_source,
            output_dir=settings.batch_output_dir,
            asset_version=settings.asset_version,
            verify_signature=settings.verify_signature,
            restore_headers=settings.restore_headers,
        )

    def create_job(
        self,
        targets: Iterable[str | Path | AssetEntry],
        operation: Operation,
        key: EncryptionKey | None = None,
    ) -> BatchJob:
        """Build a pending job with a snapshot of the current key.

        Raises:
            InvalidKey: If no key is supplied and none is set.
        """
        if key is None and self._key_store is not None:
            key = self._key_store.current()
        if key is None:
            raise InvalidKey("no encryption key set")
        paths = [t.path if isinstance(t, AssetEntry) else str(t) for t in targets]
        return BatchJob(targets=paths, operation=operation, key=key)

    async def run(
        self, job: BatchJob, on_progress: ProgressCallback | None = None,
    ) -> AsyncIterator[ItemOutcome]:
        """Execute `job`, yielding each item's outcome as it completes."""
        if job.status != "pending":
            raise RuntimeError(f"Job {job.job_id} is {job.status}, expected pending")

        job.status = "running"
        job.started_at = datetime.now(timezone.utc)
        set_job_context(job.job_id, job.operation)

        queue: asyncio.Queue[ItemOutcome] = asyncio.Queue()
        dispatcher: asyncio.Task[None] | None = None
        try:
            job.items = await asyncio.to_thread(self._expand, job)
            logger.info(
                "Batch %s started: %s %d files (workers=%d)",
                job.job_id, job.operation, len(job.items), self._workers,
            )
            dispatcher = asyncio.create_task(self._dispatch(job, queue))
            while len(job.outcomes) < len(job.items):
                outcome = await queue.get()
                job.outcomes.append(outcome)
                if on_progress is not None:
                    on_progress(job.progress)
                yield outcome
            await dispatcher
        finally:
            if dispatcher is not None and not dispatcher.done():
                job.cancel()
                await asyncio.gather(dispatcher, return_exceptions=True)
            while not queue.empty():
                job.outcomes.append(queue.get_nowait())
            self._finish(job)
            clear_context()

    async def run_to_completion(
        self, job: BatchJob, on_progress: ProgressCallback | None = None,
    ) -> BatchJob:
        """Drain `run()` and return the finished job."""
        async for _ in self.run(job, on_progress=on_progress):
            pass
        return job

    def _finish(self, job: BatchJob) -> None:
        if job.cancel_requested or len(job.outcomes) < len(job.items):
            job.status = "cancelled"
        elif all(o.ok for o in job.outcomes):
            job.status = "completed"
        else:
            job.status = "partially_failed"
        job.finished_at = datetime.now(timezone.utc)
        logger.info("Batch %s finished: %s %s", job.job_id, job.status, job.counts())

    # --- Expansion ---

    def _expand(self, job: BatchJob) -> list[BatchTarget]:
        """Snapshot the job's file list. Directories contribute eligible files only."""
        wanted = "obfuscated" if job.operation == "decode" else "plain"
        items: list[BatchTarget] = []
        seen: set[str] = set()

        def add(target: BatchTarget) -> None:
            if target.path not in seen:
                seen.add(target.path)
                items.append(target)

        for raw in job.targets:
            path = Path(raw).expanduser().absolute()
            if not path.is_dir():
                add(BatchTarget(path=str(path), root=str(path.parent)))
                continue
            scan = self._scanner.scan(path)
            for entry in scan:
                if entry.kind == "file" and entry.obfuscation == wanted:
                    add(BatchTarget(path=entry.path, root=str(path)))
            for warning in scan.warnings:
                logger.warning("Batch %s: skipped %s (%s)", job.job_id, warning.path, warning.reason)
        return items

    # --- Execution ---

    async def _dispatch(self, job: BatchJob, queue: asyncio.Queue[ItemOutcome]) -> None:
        semaphore = asyncio.Semaphore(self._workers)
        tasks: list[asyncio.Task[None]] = []
        for index, target in enumerate(job.items):
            await semaphore.acquire()
            if job.cancel_requested:
                semaphore.release()
                for rest, skipped in enumerate(job.items[index:], start=index):
                    queue.put_nowait(
                        ItemOutcome(
                            index=rest, path=skipped.path, kind="skipped",
                            message="job cancelled before item started",
                        )
                    )
                logger.info(
                    "Batch %s cancelled: %d items skipped",
                    job.job_id, len(job.items) - index,
                )
                break
            tasks.append(
                asyncio.create_task(self._run_item(job, index, target, semaphore, queue))
            )
        if tasks:
            await asyncio.gather(*tasks)

    async def _run_item(
        self,
        job: BatchJob,
        index: int,
        target: BatchTarget,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue[ItemOutcome],
    ) -> None:
        set_asset_context(target.path)
        try:
            outcome = await self._process(job, index, target)
        except Exception as e:
            logger.exception("Unexpected failure on %s", target.path)
            outcome = ItemOutcome(index=index, path=target.path, kind="io_error", message=str(e))
        finally:
            semaphore.release()
        queue.put_nowait(outcome)

    async def _process(self, job: BatchJob, index: int, target: BatchTarget) -> ItemOutcome:
        source = Path(target.path)
        raw_ext = os.path.splitext(source.name)[1][1:]
        new_ext = extensions.target_extension(raw_ext, job.operation, self._asset_version)
        if new_ext is None:
            err = AlreadyInTargetState(target.path, extensions.classify(raw_ext), job.operation)
            logger.info("%s", err)
            return ItemOutcome(
                index=index, path=target.path, kind="already_in_target_state", message=str(err),
            )

        output = self.output_path(source, Path(target.root), new_ext)
        if output == source:
            return ItemOutcome(
                index=index, path=target.path, kind="io_error",
                message="output path would overwrite the source",
            )

        try:
            data = await asyncio.to_thread(source.read_bytes)
        except OSError as e:
            logger.warning("Cannot read %s: %s", source, e)
            return ItemOutcome(index=index, path=target.path, kind="io_error", message=str(e))

        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(
                None,
                partial(
                    transform, data, job.key, job.operation,
                    verify_signature=self._verify_signature,
                ),
            )
        except MalformedAsset as e:
            logger.warning("Malformed asset %s: %s", source, e.reason)
            return ItemOutcome(
                index=index, path=target.path, kind="malformed_asset", message=e.reason,
            )
        if job.operation == "decode" and self._restore_headers:
            payload = restore_header(payload, extensions.logical_extension(raw_ext))

        try:
            await asyncio.to_thread(_write_verified, output, payload)
        except OSError as e:
            logger.warning("Cannot write %s: %s", output, e)
            return ItemOutcome(
                index=index, path=target.path, kind="io_error",
                output_path=str(output), message=str(e),
            )

        removed = False
        if self._remove_source:
            try:
                await asyncio.to_thread(source.unlink)
                removed = True
            except OSError as e:
                logger.warning("Wrote %s but could not remove %s: %s", output, source, e)
                return ItemOutcome(
                    index=index, path=target.path, kind="io_error",
                    output_path=str(output), message=f"source not removed: {e}",
                )

        logger.debug("%s %s -> %s", job.operation, source, output)
        return ItemOutcome(
            index=index, path=target.path, kind="success",
            output_path=str(output), source_removed=removed,
        )

    def output_path(self, source: Path, root: Path, new_ext: str) -> Path:
        """Where the transformed copy of `source` is written."""
        name = f"{source.stem}.{new_ext}"
        if self._output_dir is None:
            return source.with_name(name)
        try:
            relative = source.parent.relative_to(root)
        except ValueError:
            relative = Path()
        return self._output_dir / relative / name


def _write_verified(output: Path, payload: bytes) -> None:
    """Write via a temporary sibling, then read back to confirm."""
    output.parent.mkdir(parents=True, exist_ok=True)
    partial_path = output.with_name(output.name + PARTIAL_SUFFIX)
    partial_path.write_bytes(payload)
    os.replace(partial_path, output)
    if output.read_bytes() != payload:
        raise AssetIOError(str(output), OSError("read-back verification failed"))
