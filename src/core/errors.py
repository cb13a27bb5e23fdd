# src/core/errors.py - v1
"""Error taxonomy shared by the codec, key store, scanner and batch layers.

KeyStore and the codec raise these directly. The scanner and the batch
processor catch them per item and turn them into structured outcomes.
"""

from __future__ import annotations


class AssetCoreError(Exception):
    """Base class for every error raised by rpgmview."""


class InvalidKey(AssetCoreError, ValueError):
    """Key text is not exactly 16 bytes of hexadecimal."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid encryption key: {reason}")


class MalformedAsset(AssetCoreError):
    """Buffer too short or structurally invalid for the transform."""

    def __init__(self, reason: str, path: str | None = None) -> None:
        self.reason = reason
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"Malformed asset{where}: {reason}")


class AssetIOError(AssetCoreError, OSError):
    """Filesystem failure while reading or writing an asset."""

    def __init__(self, path: str, cause: BaseException | None = None) -> None:
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"I/O error on {path}{detail}")


class AlreadyInTargetState(AssetCoreError):
    """Decode requested on a plain file, or encode on an obfuscated one."""

    def __init__(self, path: str, state: str, operation: str) -> None:
        self.path = path
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} {path}: file is {state}")
