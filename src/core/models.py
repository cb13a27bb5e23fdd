# src/core/models.py - v2
"""Shared Pydantic domain models used across modules.

AssetEntry and EncryptionKey are frozen snapshots: a rescan produces new
entries and a key change produces a new key object, nothing is mutated in
place.
"""

from __future__ import annotations

import hashlib
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NodeKind = Literal["file", "directory"]
ObfuscationState = Literal["plain", "obfuscated", "not-applicable"]
AssetType = Literal["image", "audio", "other", "directory"]
Operation = Literal["encode", "decode"]
AssetVersion = Literal["mv", "mz"]

KEY_LENGTH = 16
FINGERPRINT_LENGTH = 16


# === KEYS ===


class EncryptionKey(BaseModel):
    """A validated 16-byte transform key in canonical lowercase hex."""

    model_config = ConfigDict(frozen=True)

    hex: str = Field(pattern=r"^[0-9a-f]{32}$")

    @property
    def raw(self) -> bytes:
        return bytes.fromhex(self.hex)

    @property
    def fingerprint(self) -> str:
        """Short SHA-256 derived identifier, safe to use in cache keys."""
        digest = hashlib.sha256(self.raw).hexdigest()
        return digest[:FINGERPRINT_LENGTH]

    def __repr__(self) -> str:
        return f"EncryptionKey(fingerprint={self.fingerprint!r})"

    __str__ = __repr__


# === SCAN ===


class AssetEntry(BaseModel):
    """One filesystem node produced by a scan pass."""

    model_config = ConfigDict(frozen=True)

    path: str
    name: str
    kind: NodeKind
    raw_extension: str = ""
    logical_extension: str = ""
    asset_type: AssetType = "other"
    obfuscation: ObfuscationState = "not-applicable"
    size_bytes: int = 0
    modified_ns: int = 0
    depth: int = 0

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"

    @property
    def is_obfuscated(self) -> bool:
        return self.obfuscation == "obfuscated"


class ScanWarning(BaseModel):
    """A child the scanner could not read. Non-fatal."""

    model_config = ConfigDict(frozen=True)

    path: str
    reason: str
