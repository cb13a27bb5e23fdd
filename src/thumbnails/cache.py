# src/thumbnails/cache.py - v2
"""Bounded thumbnail cache with asynchronous population.

`get_or_create()` never blocks: it either returns a settled handle or starts
(or joins) a population task and returns a pending one. Population reads the
file in a thread, then decodes and downsamples in a small worker pool.

A slot is valid only for the (path, modified_ns, key fingerprint) it was built
for. Slots from an older key are never returned and are dropped at the next
eviction sweep. Failures are stored as terminal `unrenderable` slots.

At most `workers` populations hold file bytes at a time. Slots older than the
TTL are treated as misses and dropped at the next sweep. A population whose
handles have all been cancelled is cancelled too.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Generator

from rpgmview.core.models import AssetEntry, EncryptionKey
from rpgmview.thumbnails.models import CacheSlot, ThumbnailResult
from rpgmview.thumbnails.render import RenderError, render_thumbnail

if TYPE_CHECKING:
    from rpgmview.config.settings import Settings
    from rpgmview.keys.store import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200
DEFAULT_THUMBNAIL_SIZE = 128
DEFAULT_WORKERS = 2
DEFAULT_TTL_SECONDS = 300.0


class ThumbnailHandle:
    """Per-request view on a thumbnail, settled or pending.

    Cancelling a handle only detaches this caller: the shared population may
    still finish and land in the cache.
    """

    def __init__(
        self,
        path: str,
        result: ThumbnailResult | None = None,
        source: asyncio.Future[ThumbnailResult] | None = None,
        on_detach: Callable[[], None] | None = None,
    ) -> None:
        self.path = path
        self._result = result
        self._on_detach = on_detach
        self._callbacks: list[Callable[[ThumbnailHandle], Any]] = []
        self._waiter: asyncio.Future[ThumbnailResult] | None = None
        if source is not None:
            self._waiter = source.get_loop().create_future()
            source.add_done_callback(self._on_source_done)

    @classmethod
    def settled(cls, result: ThumbnailResult) -> ThumbnailHandle:
        return cls(result.path, result=result)

    def done(self) -> bool:
        return self._result is not None

    def result(self) -> ThumbnailResult | None:
        """The resolved result, or None while pending."""
        return self._result

    def cancel(self) -> bool:
        """Stop caring about this request. Returns False if already resolved."""
        if self._result is not None:
            return False
        self._resolve(ThumbnailResult(path=self.path, state="cancelled"))
        if self._on_detach is not None:
            self._on_detach()
        return True

    @property
    def cancelled(self) -> bool:
        return self._result is not None and self._result.state == "cancelled"

    def add_done_callback(self, fn: Callable[[ThumbnailHandle], Any]) -> None:
        if self._result is not None:
            fn(self)
        else:
            self._callbacks.append(fn)

    def __await__(self) -> Generator[Any, None, ThumbnailResult]:
        if self._result is not None:
            return self._result
        assert self._waiter is not None
        return (yield from self._waiter.__await__())

    def _on_source_done(self, source: asyncio.Future[ThumbnailResult]) -> None:
        if self._result is not None:
            return
        if source.cancelled():
            self._resolve(ThumbnailResult(path=self.path, state="cancelled"))
            return
        exc = source.exception()
        if exc is not None:
            if self._waiter is not None and not self._waiter.done():
                self._waiter.set_exception(exc)
            return
        self._resolve(source.result())

    def _resolve(self, result: ThumbnailResult) -> None:
        self._result = result
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(result)
        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn(self)


@dataclass
class _Pending:
    modified_ns: int
    fingerprint: str | None
    task: asyncio.Task[ThumbnailResult]
    handles: int = 0


class ThumbnailCache:
    """LRU cache of decoded, downsampled bitmaps keyed per key fingerprint."""

    def __init__(
        self,
        key_store: KeyStore,
        capacity: int = DEFAULT_CAPACITY,
        thumbnail_size: int = DEFAULT_THUMBNAIL_SIZE,
        workers: int = DEFAULT_WORKERS,
        verify_signature: bool = False,
        ttl: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._key_store = key_store
        self._capacity = capacity
        self._thumbnail_size = thumbnail_size
        self._verify_signature = verify_signature
        self._ttl = ttl or None
        self._now = clock
        self._render_gate = asyncio.Semaphore(workers)
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="rpgmview-thumb",
        )
        self._slots: OrderedDict[str, CacheSlot] = OrderedDict()
        self._pending: dict[str, _Pending] = {}
        self._lock = threading.RLock()
        self._clock = itertools.count(1)

    @classmethod
    def from_settings(cls, key_store: KeyStore, settings: Settings) -> ThumbnailCache:
        return cls(
            key_store,
            capacity=settings.thumbnail_cache_capacity,
            thumbnail_size=settings.thumbnail_size,
            workers=settings.thumbnail_workers,
            verify_signature=settings.verify_signature,
            ttl=settings.thumbnail_cache_ttl,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._slots

    # --- Lookup ---

    def get_or_create(
        self, entry: AssetEntry, key_fingerprint: str | None = None,
    ) -> ThumbnailHandle:
        """Return a handle for `entry`'s thumbnail. Never blocks.

        Must be called from the event loop thread.

        Args:
            entry: Scanned asset.
            key_fingerprint: Fingerprint the caller believes is current. A
                mismatch with the KeyStore resolves the handle as `stale`.
        """
        if entry.asset_type == "audio":
            return ThumbnailHandle.settled(ThumbnailResult(path=entry.path, state="audio"))
        if entry.asset_type != "image":
            return ThumbnailHandle.settled(
                ThumbnailResult(path=entry.path, state="unsupported")
            )

        key, fingerprint = self._key_store.snapshot()
        if key_fingerprint is not None and key_fingerprint != fingerprint:
            return ThumbnailHandle.settled(
                ThumbnailResult(path=entry.path, state="stale", reason="key changed")
            )

        cached = self._lookup(entry, fingerprint)
        if cached is not None:
            return ThumbnailHandle.settled(cached)

        pending = self._pending.get(entry.path)
        if (
            pending is None
            or pending.fingerprint != fingerprint
            or entry.modified_ns > pending.modified_ns
        ):
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._populate(entry, key, fingerprint))
            pending = _Pending(entry.modified_ns, fingerprint, task)
            self._pending[entry.path] = pending
            task.add_done_callback(partial(self._forget_pending, entry.path))
            logger.debug("Scheduled thumbnail for %s", entry.path)
        pending.handles += 1
        return ThumbnailHandle(
            entry.path, source=pending.task, on_detach=partial(self._detach, pending),
        )

    def peek(self, entry: AssetEntry) -> ThumbnailResult | None:
        """Settled result for `entry` under the current key, without scheduling."""
        return self._lookup(entry, self._key_store.fingerprint())

    def _lookup(self, entry: AssetEntry, fingerprint: str | None) -> ThumbnailResult | None:
        with self._lock:
            slot = self._slots.get(entry.path)
            if slot is None:
                return None
            if (
                slot.fingerprint != fingerprint
                or entry.modified_ns > slot.modified_ns
                or slot.expired(self._now(), self._ttl)
            ):
                del self._slots[entry.path]
                return None
            if entry.modified_ns != slot.modified_ns:
                # Older view of the file; keep the newer slot.
                return None
            slot.last_access = next(self._clock)
            self._slots.move_to_end(entry.path)
            return slot.result

    # --- Population ---

    async def _populate(
        self, entry: AssetEntry, key: EncryptionKey | None, fingerprint: str | None,
    ) -> ThumbnailResult:
        loop = asyncio.get_running_loop()
        try:
            async with self._render_gate:
                data = await asyncio.to_thread(_read_source, entry.path)
                thumbnail = await loop.run_in_executor(
                    self._executor,
                    partial(
                        render_thumbnail,
                        data,
                        self._thumbnail_size,
                        key=key,
                        obfuscated=entry.is_obfuscated,
                        verify_signature=self._verify_signature,
                    ),
                )
                del data
            result = ThumbnailResult(path=entry.path, state="ready", thumbnail=thumbnail)
        except (OSError, RenderError) as e:
            logger.info("Thumbnail unrenderable for %s: %s", entry.path, e)
            result = ThumbnailResult(path=entry.path, state="unrenderable", reason=str(e))

        if self._key_store.fingerprint() != fingerprint:
            logger.debug("Discarding thumbnail for %s: key changed", entry.path)
            return ThumbnailResult(path=entry.path, state="stale", reason="key changed")

        pending = self._pending.get(entry.path)
        if pending is not None and pending.task is not asyncio.current_task():
            # Superseded by a request for a newer file version.
            return result

        self._insert(
            CacheSlot(
                path=entry.path,
                modified_ns=entry.modified_ns,
                fingerprint=fingerprint,
                result=result,
            )
        )
        return result

    def _forget_pending(self, path: str, task: asyncio.Task[ThumbnailResult]) -> None:
        pending = self._pending.get(path)
        if pending is not None and pending.task is task:
            del self._pending[path]

    def _detach(self, pending: _Pending) -> None:
        pending.handles -= 1
        if pending.handles <= 0 and not pending.task.done():
            logger.debug("All handles dropped, cancelling population")
            pending.task.cancel()

    # --- Mutation ---

    def _insert(self, slot: CacheSlot) -> None:
        with self._lock:
            current = self._slots.get(slot.path)
            if (
                current is not None
                and current.fingerprint == slot.fingerprint
                and current.modified_ns > slot.modified_ns
            ):
                return
            slot.last_access = next(self._clock)
            slot.created_at = self._now()
            self._slots[slot.path] = slot
            self._slots.move_to_end(slot.path)
            self._sweep()

    def _sweep(self) -> None:
        """Drop stale-key and expired slots, then evict least-recently-accessed over capacity."""
        current = self._key_store.fingerprint()
        now = self._now()
        stale = [
            p for p, s in self._slots.items()
            if s.fingerprint != current or s.expired(now, self._ttl)
        ]
        for path in stale:
            del self._slots[path]
        evicted = 0
        while len(self._slots) > self._capacity:
            self._slots.popitem(last=False)
            evicted += 1
        if stale or evicted:
            logger.debug(
                "Cache sweep: dropped %d stale, evicted %d (size=%d)",
                len(stale), evicted, len(self._slots),
            )

    def invalidate(self, path: str | None = None) -> None:
        """Forget one path, or everything when `path` is None."""
        with self._lock:
            if path is None:
                self._slots.clear()
            else:
                self._slots.pop(path, None)

    async def aclose(self) -> None:
        """Cancel in-flight populations and stop the worker pool."""
        tasks = [p.task for p in self._pending.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
        self._executor.shutdown(wait=False, cancel_futures=True)


def _read_source(path: str) -> bytes:
    return Path(path).read_bytes()
