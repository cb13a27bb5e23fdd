# src/scan/scanner.py - v1
"""Directory scanner: lazy, restartable traversal producing AssetEntry records.

Traversal is pre-order and stable. Within a directory, subdirectories come
first (each followed by its subtree), then files, both sorted by case-folded
name. Unreadable children are recorded as warnings and skipped.

With a filter, files whose name does not contain it (case-insensitive) are
dropped. A directory is kept when its own name matches or when any
descendant matches; in the latter case it is emitted right before the first
matching descendant, so nothing is buffered beyond the current branch.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
import stat as stat_mod
from pathlib import Path
from typing import AsyncIterator, Iterator

from rpgmview.codec import extensions
from rpgmview.core.models import AssetEntry, ScanWarning

logger = logging.getLogger(__name__)

_DONE = object()


def _sort_key(entry: os.DirEntry) -> tuple[str, str]:
    return entry.name.casefold(), entry.name


def build_entry(path: Path, st: os.stat_result, depth: int = 0) -> AssetEntry:
    """Classify a single filesystem node into an AssetEntry."""
    name = path.name
    if stat_mod.S_ISDIR(st.st_mode):
        return AssetEntry(
            path=str(path),
            name=name,
            kind="directory",
            asset_type="directory",
            obfuscation="not-applicable",
            size_bytes=0,
            modified_ns=st.st_mtime_ns,
            depth=depth,
        )
    raw_ext = os.path.splitext(name)[1][1:]
    return AssetEntry(
        path=str(path),
        name=name,
        kind="file",
        raw_extension=raw_ext,
        logical_extension=extensions.logical_extension(raw_ext),
        asset_type=extensions.asset_type(raw_ext),
        obfuscation=extensions.classify(raw_ext),
        size_bytes=st.st_size,
        modified_ns=st.st_mtime_ns,
        depth=depth,
    )


def entry_for_path(path: Path) -> AssetEntry:
    """Build an AssetEntry for one path. Raises OSError if it cannot be stat'ed."""
    path = Path(path).absolute()
    return build_entry(path, path.stat())


class ScanPass:
    """A restartable scan sequence.

    Iterating (sync or async) starts a fresh traversal of the tree each time.
    `warnings` and `generation` describe the most recent traversal.
    """

    def __init__(
        self, scanner: DirectoryScanner, root: Path, filter_text: str | None,
    ) -> None:
        self._scanner = scanner
        self.root = root
        self.filter_text = filter_text
        self.generation = 0
        self.warnings: list[ScanWarning] = []

    def __iter__(self) -> Iterator[AssetEntry]:
        self.generation = self._scanner._next_generation()
        self.warnings = []
        needle = self.filter_text.casefold() if self.filter_text else None
        count = 0
        for entry in self._scanner._walk(self.root, needle, self.warnings):
            count += 1
            yield entry
        logger.info(
            "Scanned %s: %d entries, %d warnings (generation=%d, filter=%r)",
            self.root, count, len(self.warnings), self.generation, self.filter_text,
        )

    async def __aiter__(self) -> AsyncIterator[AssetEntry]:
        # Each step of the walk touches the filesystem, so run it off the loop.
        iterator = iter(self)
        while True:
            entry = await asyncio.to_thread(next, iterator, _DONE)
            if entry is _DONE:
                return
            yield entry

    def collect(self) -> list[AssetEntry]:
        """Materialize one traversal."""
        return list(self)


class DirectoryScanner:
    """Walk a root path and classify entries through the extension table."""

    def __init__(self) -> None:
        self._generation = itertools.count(1)

    def scan(self, root: Path, filter_text: str | None = None) -> ScanPass:
        """Return a lazy scan sequence over `root`.

        Raises:
            ValueError: If `root` is not a directory.
        """
        root = Path(root).expanduser().absolute()
        if not root.is_dir():
            msg = f"Scan root is not a directory: {root}"
            raise ValueError(msg)
        return ScanPass(self, root, filter_text or None)

    def _next_generation(self) -> int:
        return next(self._generation)

    def _walk(
        self, root: Path, needle: str | None, warnings: list[ScanWarning],
    ) -> Iterator[AssetEntry]:
        visited: set[tuple[int, int]] = set()
        try:
            st = root.stat()
            visited.add((st.st_dev, st.st_ino))
        except OSError as e:
            warnings.append(ScanWarning(path=str(root), reason=str(e)))
            return
        pending: list[AssetEntry] = []
        yield from self._walk_dir(root, 0, needle, pending, visited, warnings)

    def _walk_dir(
        self,
        directory: Path,
        depth: int,
        needle: str | None,
        pending: list[AssetEntry],
        visited: set[tuple[int, int]],
        warnings: list[ScanWarning],
    ) -> Iterator[AssetEntry]:
        listing = self._list_dir(directory, depth, warnings)
        if listing is None:
            return
        dirs, files = listing

        for entry, identity in dirs:
            if needle is None or needle in entry.name.casefold():
                yield from self._flush(pending)
                yield entry
                kept = None
            else:
                pending.append(entry)
                kept = entry
            if identity in visited:
                warnings.append(
                    ScanWarning(path=entry.path, reason="directory cycle, not descended")
                )
            else:
                visited.add(identity)
                yield from self._walk_dir(
                    Path(entry.path), depth + 1, needle, pending, visited, warnings,
                )
            if kept is not None and pending and pending[-1] is kept:
                pending.pop()

        for entry in files:
            if needle is None or needle in entry.name.casefold():
                yield from self._flush(pending)
                yield entry

    @staticmethod
    def _flush(pending: list[AssetEntry]) -> Iterator[AssetEntry]:
        yield from pending
        pending.clear()

    @staticmethod
    def _list_dir(
        directory: Path, depth: int, warnings: list[ScanWarning],
    ) -> tuple[list[tuple[AssetEntry, tuple[int, int]]], list[AssetEntry]] | None:
        """Read and classify one directory level. None if it cannot be listed."""
        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=_sort_key)
        except OSError as e:
            logger.warning("Cannot list %s: %s", directory, e)
            warnings.append(ScanWarning(path=str(directory), reason=str(e)))
            return None

        dirs: list[tuple[AssetEntry, tuple[int, int]]] = []
        files: list[AssetEntry] = []
        for child in children:
            path = directory / child.name
            try:
                st = os.stat(child.path)
            except OSError as e:
                logger.debug("Skipping unreadable entry %s: %s", path, e)
                warnings.append(ScanWarning(path=str(path), reason=str(e)))
                continue
            entry = build_entry(path, st, depth)
            if entry.is_directory:
                dirs.append((entry, (st.st_dev, st.st_ino)))
            else:
                files.append(entry)
        return dirs, files
