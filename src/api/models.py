# src/api/models.py - v2
"""API-level models handed to the presentation layer."""

from __future__ import annotations

from pydantic import BaseModel


class DecodedAsset(BaseModel):
    """A single asset decoded in memory for a viewer or audio player."""

    path: str
    logical_extension: str
    mime_type: str | None
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class KeyStatus(BaseModel):
    """What the presentation layer may show about the active key."""

    fingerprint: str | None
    source: str | None = None
