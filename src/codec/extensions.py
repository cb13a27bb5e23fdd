# src/codec/extensions.py - v1
"""Static extension table: obfuscated asset extensions and their real formats.

RPG Maker MV writes `.rpgmvp/.rpgmvo/.rpgmvm`, MZ writes `.png_/.ogg_/.m4a_`.
Lookups are case-insensitive and tolerate a leading dot. Extensions absent
from the table are `not-applicable` and map to themselves.
"""

from __future__ import annotations

from rpgmview.core.models import AssetType, AssetVersion, ObfuscationState, Operation

# Obfuscated extension -> logical extension
OBFUSCATED_TO_LOGICAL: dict[str, str] = {
    "rpgmvp": "png",
    "png_": "png",
    "rpgmvo": "ogg",
    "ogg_": "ogg",
    "rpgmvm": "m4a",
    "m4a_": "m4a",
}

# Logical extension -> obfuscated extension, per tool version
LOGICAL_TO_OBFUSCATED: dict[AssetVersion, dict[str, str]] = {
    "mv": {"png": "rpgmvp", "ogg": "rpgmvo", "m4a": "rpgmvm"},
    "mz": {"png": "png_", "ogg": "ogg_", "m4a": "m4a_"},
}

IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {"png", "jpg", "jpeg", "gif", "bmp", "webp"}
)
AUDIO_EXTENSIONS: frozenset[str] = frozenset({"ogg", "m4a", "mp3"})

MIME_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "ogg": "audio/ogg",
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
}


def normalize_extension(ext: str) -> str:
    """Lower-case an extension and drop a leading dot."""
    return ext.strip().lower().lstrip(".")


def is_obfuscated(ext: str) -> bool:
    return normalize_extension(ext) in OBFUSCATED_TO_LOGICAL


def logical_extension(ext: str) -> str:
    """Real extension for an obfuscated one; identity for anything else."""
    norm = normalize_extension(ext)
    return OBFUSCATED_TO_LOGICAL.get(norm, norm)


def obfuscated_extension(ext: str, version: AssetVersion = "mv") -> str | None:
    """Obfuscated counterpart of a logical extension, or None if it has none."""
    norm = normalize_extension(ext)
    if norm in OBFUSCATED_TO_LOGICAL:
        return norm
    return LOGICAL_TO_OBFUSCATED[version].get(norm)


def classify(ext: str) -> ObfuscationState:
    """Obfuscation state implied by a file extension."""
    norm = normalize_extension(ext)
    if norm in OBFUSCATED_TO_LOGICAL:
        return "obfuscated"
    if norm in LOGICAL_TO_OBFUSCATED["mv"]:
        return "plain"
    return "not-applicable"


def asset_type(ext: str) -> AssetType:
    logical = logical_extension(ext)
    if logical in IMAGE_EXTENSIONS:
        return "image"
    if logical in AUDIO_EXTENSIONS:
        return "audio"
    return "other"


def mime_type(ext: str) -> str | None:
    return MIME_TYPES.get(logical_extension(ext))


def target_extension(
    ext: str, operation: Operation, version: AssetVersion = "mv",
) -> str | None:
    """Extension a file should carry after `operation`, or None if not eligible.

    Decode maps obfuscated -> logical; encode maps logical -> obfuscated.
    A file already in the target state, or of an unknown type, yields None.
    """
    state = classify(ext)
    if operation == "decode":
        return logical_extension(ext) if state == "obfuscated" else None
    if state != "plain":
        return None
    return obfuscated_extension(ext, version)
