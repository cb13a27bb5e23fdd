# src/keys/detection.py - v1
"""Recover the project key from a game folder.

Three sources, tried in order by `detect_key`:
  1. `encryptionKey` in data/System.json
  2. `this._encryptionKey = "..."` in js/rpg_core.js (MV)
  3. any obfuscated PNG: its keyed region XOR the standard PNG header

Every candidate goes through `parse_key`, so only valid 32-hex keys come out.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from rpgmview.codec.transform import HEADER_LENGTH, MIN_ENCODED_LENGTH
from rpgmview.core.errors import InvalidKey
from rpgmview.core.models import EncryptionKey
from rpgmview.keys.store import parse_key

logger = logging.getLogger(__name__)

# PNG signature followed by the IHDR chunk length and type
PNG_HEADER = bytes.fromhex("89504e470d0a1a0a0000000d49484452")

SYSTEM_JSON = "system.json"
RPG_CORE_JS = "rpg_core.js"
PNG_ASSET_EXTENSIONS = (".rpgmvp", ".png_")


def _try_parse(candidate: str | None) -> EncryptionKey | None:
    if not candidate:
        return None
    try:
        return parse_key(candidate)
    except InvalidKey:
        return None


def key_from_png_asset(data: bytes) -> EncryptionKey | None:
    """Derive the key from an obfuscated PNG, whose plain header is known."""
    if len(data) < MIN_ENCODED_LENGTH:
        return None
    keyed = data[HEADER_LENGTH:MIN_ENCODED_LENGTH]
    return _try_parse(bytes(a ^ b for a, b in zip(keyed, PNG_HEADER)).hex())


def key_from_system_json(text: str) -> EncryptionKey | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    candidate = data.get("encryptionKey")
    return _try_parse(candidate if isinstance(candidate, str) else None)


def key_from_rpg_core(text: str) -> EncryptionKey | None:
    for line in text.splitlines():
        if "this._encryptionKey" not in line:
            continue
        parts = line.split('"')
        if len(parts) >= 3:
            key = _try_parse(parts[1])
            if key is not None:
                return key
    return None


def detect_key(root: Path) -> EncryptionKey | None:
    """Search a game folder for the key. Returns None if nothing matches."""
    root = Path(root)
    if not root.is_dir():
        raise ValueError(f"Key search root is not a directory: {root}")

    system_files: list[Path] = []
    core_files: list[Path] = []
    png_assets: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            lower = filename.lower()
            path = Path(dirpath) / filename
            if lower == SYSTEM_JSON:
                system_files.append(path)
            elif lower == RPG_CORE_JS:
                core_files.append(path)
            elif lower.endswith(PNG_ASSET_EXTENSIONS):
                png_assets.append(path)

    for path in system_files:
        key = _read_text_key(path, key_from_system_json)
        if key is not None:
            logger.info("Key found in %s (fingerprint=%s)", path, key.fingerprint)
            return key

    for path in core_files:
        key = _read_text_key(path, key_from_rpg_core)
        if key is not None:
            logger.info("Key found in %s (fingerprint=%s)", path, key.fingerprint)
            return key

    for path in png_assets:
        try:
            with path.open("rb") as fh:
                head = fh.read(MIN_ENCODED_LENGTH)
        except OSError as e:
            logger.warning("Skipping unreadable asset %s: %s", path, e)
            continue
        key = key_from_png_asset(head)
        if key is not None:
            logger.info("Key derived from %s (fingerprint=%s)", path, key.fingerprint)
            return key

    logger.info("No encryption key found under %s", root)
    return None


def _read_text_key(path: Path, parser) -> EncryptionKey | None:
    try:
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        logger.warning("Skipping unreadable file %s: %s", path, e)
        return None
    return parser(text)
