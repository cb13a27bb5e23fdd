# src/api/facade.py - v3
"""Public API facade: the single entry point for a presentation layer.

Usage:
    from rpgmview.api.facade import AssetService
    service = AssetService()
    service.detect_key(game_dir)
    async for entry in service.scan(game_dir):
        handle = service.fetch_thumbnail(entry)
    job, outcomes = service.submit_batch([game_dir], "decode")
    async for outcome in outcomes:
        ...

The facade never renders, opens windows or plays audio. It exposes a scan
stream, thumbnail handles and batch progress streams.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator, Iterable

from rpgmview.api.models import DecodedAsset, KeyStatus
from rpgmview.batch.models import BatchJob, ItemOutcome
from rpgmview.batch.processor import BatchProcessor, ProgressCallback
from rpgmview.codec import extensions
from rpgmview.codec.transform import decode, restore_header
from rpgmview.config.settings import Settings
from rpgmview.core.errors import AssetIOError, InvalidKey
from rpgmview.core.models import AssetEntry, EncryptionKey, Operation
from rpgmview.keys.detection import detect_key
from rpgmview.keys.store import KeyStore
from rpgmview.scan.scanner import DirectoryScanner, ScanPass, entry_for_path
from rpgmview.thumbnails.cache import ThumbnailCache, ThumbnailHandle

logger = logging.getLogger(__name__)


class AssetService:
    """Wires KeyStore, scanner, thumbnail cache and batch processor together.

    Args:
        settings: Global settings. Loaded from .env if None.
        key_store: Shared key store. A new one is created if None.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        key_store: KeyStore | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.key_store = key_store or KeyStore()
        self._key_source: str | None = None
        if self.settings.encryption_key and self.key_store.current() is None:
            self.key_store.set(self.settings.encryption_key)
            self._key_source = "settings"
        self.scanner = DirectoryScanner()
        self.thumbnails = ThumbnailCache.from_settings(self.key_store, self.settings)
        self.batch = BatchProcessor.from_settings(self.key_store, self.settings)

    # --- Keys ---

    def set_key(self, key_text: str) -> KeyStatus:
        """Replace the active key. Raises InvalidKey and keeps the old key on error."""
        key = self.key_store.set(key_text)
        self._key_source = "manual"
        return KeyStatus(fingerprint=key.fingerprint, source=self._key_source)

    def detect_key(self, root: Path) -> KeyStatus | None:
        """Look for the project key under `root` and activate it if found."""
        key = detect_key(Path(root))
        if key is None:
            return None
        self.key_store.set(key.hex)
        self._key_source = str(root)
        return KeyStatus(fingerprint=key.fingerprint, source=self._key_source)

    def key_status(self) -> KeyStatus:
        return KeyStatus(fingerprint=self.key_store.fingerprint(), source=self._key_source)

    # --- Browsing ---

    def scan(self, root: Path, filter_text: str | None = None) -> ScanPass:
        """Lazy scan stream; iterate with `for` or `async for`."""
        return self.scanner.scan(Path(root), filter_text)

    def fetch_thumbnail(self, entry: AssetEntry) -> ThumbnailHandle:
        """Non-blocking thumbnail request. Must be called on the event loop."""
        return self.thumbnails.get_or_create(entry, self.key_store.fingerprint())

    async def decode_file(self, path: Path) -> DecodedAsset:
        """Read one asset and return its plain bytes.

        Raises:
            AssetIOError: The file cannot be read.
            InvalidKey: The asset is obfuscated and no key is set.
            MalformedAsset: The file is too short for the transform.
        """
        entry = await asyncio.to_thread(_entry_or_raise, Path(path))
        try:
            data = await asyncio.to_thread(Path(entry.path).read_bytes)
        except OSError as e:
            raise AssetIOError(entry.path, e) from e
        if entry.is_obfuscated:
            key = self._require_key()
            data = decode(data, key, verify_signature=self.settings.verify_signature)
            if self.settings.restore_headers:
                data = restore_header(data, entry.logical_extension)
        return DecodedAsset(
            path=entry.path,
            logical_extension=entry.logical_extension,
            mime_type=extensions.mime_type(entry.raw_extension),
            data=data,
        )

    # --- Batch ---

    def submit_batch(
        self,
        targets: Iterable[str | Path | AssetEntry],
        operation: Operation,
        on_progress: ProgressCallback | None = None,
    ) -> tuple[BatchJob, AsyncIterator[ItemOutcome]]:
        """Create a job and return it with its outcome stream (not yet started)."""
        job = self.batch.create_job(targets, operation)
        logger.info("Submitted batch %s: %s %d targets", job.job_id, operation, len(job.targets))
        return job, self.batch.run(job, on_progress=on_progress)

    async def aclose(self) -> None:
        await self.thumbnails.aclose()

    def _require_key(self) -> EncryptionKey:
        key = self.key_store.current()
        if key is None:
            raise InvalidKey("no encryption key set")
        return key


def _entry_or_raise(path: Path) -> AssetEntry:
    try:
        return entry_for_path(path)
    except OSError as e:
        raise AssetIOError(str(path), e) from e
