# tests/conftest.py - v2
"""Shared test fixtures for all unit and integration tests.

Provides a sample key, real PNG bytes built with Pillow, and helpers to lay
out obfuscated game folders under tmp_path. No network, no GUI.
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from rpgmview.codec.transform import encode
from rpgmview.core.models import EncryptionKey
from rpgmview.keys.store import KeyStore

SAMPLE_KEY_HEX = "000102030405060708090a0b0c0d0e0f"
OTHER_KEY_HEX = "d41d8cd98f00b204e9800998ecf8427e"


def make_png(width: int = 64, height: int = 48, color: tuple = (200, 30, 30, 255)) -> bytes:
    """Encode a solid-colour RGBA PNG."""
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def write_tree(root: Path, files: dict[str, bytes]) -> None:
    """Create files (and parent directories) from a {relative path: bytes} map."""
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


# === FIXTURES: Keys ===


@pytest.fixture
def sample_key() -> EncryptionKey:
    return EncryptionKey(hex=SAMPLE_KEY_HEX)


@pytest.fixture
def other_key() -> EncryptionKey:
    return EncryptionKey(hex=OTHER_KEY_HEX)


@pytest.fixture
def key_store() -> KeyStore:
    return KeyStore(SAMPLE_KEY_HEX)


# === FIXTURES: Assets ===


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def obfuscated_png(png_bytes: bytes, sample_key: EncryptionKey) -> bytes:
    return encode(png_bytes, sample_key)


@pytest.fixture
def game_dir(tmp_path: Path, png_bytes: bytes, sample_key: EncryptionKey) -> Path:
    """A small MV-style game folder with obfuscated images and audio."""
    root = tmp_path / "game"
    audio = b"OggS" + bytes(range(60))
    write_tree(root, {
        "img/pictures/Actor1.rpgmvp": encode(png_bytes, sample_key),
        "img/pictures/Actor2.rpgmvp": encode(make_png(color=(0, 0, 255, 255)), sample_key),
        "img/system/Window.png_": encode(png_bytes, sample_key),
        "audio/bgm/Theme.rpgmvo": encode(audio, sample_key),
        "audio/se/Click.ogg_": encode(audio, sample_key),
        "data/notes.txt": b"plain text, not an asset",
    })
    return root
