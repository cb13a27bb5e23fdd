# src/thumbnails/models.py - v1
"""Thumbnail cache models: bitmaps, lookup results, cache slots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ThumbnailState = Literal[
    "ready",        # bitmap available
    "unrenderable", # decode failed; terminal until key change or file change
    "audio",        # audio asset, fixed placeholder
    "unsupported",  # directory or unknown type
    "stale",        # key changed while the request was in flight
    "cancelled",    # caller dropped the handle
]


@dataclass(frozen=True)
class Thumbnail:
    """A downsampled RGBA bitmap."""

    width: int
    height: int
    mode: str
    pixels: bytes

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class ThumbnailResult:
    """What a thumbnail request resolves to."""

    path: str
    state: ThumbnailState
    thumbnail: Thumbnail | None = None
    reason: str | None = None

    @property
    def ready(self) -> bool:
        return self.state == "ready"


@dataclass
class CacheSlot:
    """One settled cache entry, keyed by (path, modified_ns, fingerprint)."""

    path: str
    modified_ns: int
    fingerprint: str | None
    result: ThumbnailResult
    last_access: int = 0
    created_at: float = 0.0

    def expired(self, now: float, ttl: float | None) -> bool:
        return ttl is not None and now - self.created_at >= ttl
