# src/thumbnails/render.py - v1
"""CPU side of thumbnail population: decode the asset and downsample with Pillow.

Runs inside the cache's worker pool. Any failure is raised as
`RenderError` so the cache can store a terminal unrenderable marker.
"""

from __future__ import annotations

import io
import logging

from PIL import Image

from rpgmview.codec.transform import decode
from rpgmview.core.errors import MalformedAsset
from rpgmview.core.models import EncryptionKey
from rpgmview.thumbnails.models import Thumbnail

logger = logging.getLogger(__name__)

THUMBNAIL_MODE = "RGBA"


class RenderError(Exception):
    """The bytes could not be turned into a thumbnail."""


def render_thumbnail(
    data: bytes,
    max_size: int,
    key: EncryptionKey | None = None,
    obfuscated: bool = False,
    verify_signature: bool = False,
) -> Thumbnail:
    """Decode (if obfuscated) and downsample image bytes to fit `max_size`.

    Raises:
        RenderError: Missing key, malformed asset or undecodable image.
    """
    if obfuscated:
        if key is None:
            raise RenderError("no encryption key set")
        try:
            data = decode(data, key, verify_signature=verify_signature)
        except MalformedAsset as e:
            raise RenderError(e.reason) from e

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            converted = img.convert(THUMBNAIL_MODE)
    except Exception as e:  # Pillow plugins raise assorted types on corrupt data
        raise RenderError(f"image decode failed: {e}") from e

    return Thumbnail(
        width=converted.width,
        height=converted.height,
        mode=THUMBNAIL_MODE,
        pixels=converted.tobytes(),
    )
