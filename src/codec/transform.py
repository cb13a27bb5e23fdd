# src/codec/transform.py - v2
"""Asset codec: the RPG Maker MV/MZ header obfuscation.

Obfuscated layout (bit-exact):
    bytes 0-15   fixed signature ("RPGMV" + version tag), not keyed
    bytes 16-31  plain bytes 0-15 XOR key
    bytes 32..   plain bytes 16.. unchanged

Functions are pure. decode() does not check that the recovered bytes are a
real PNG/OGG/M4A header, so a wrong key yields garbage rather than an error.
restore_header() can be applied afterwards to force the known container magic.
"""

from __future__ import annotations

from rpgmview.core.errors import MalformedAsset
from rpgmview.core.models import KEY_LENGTH, EncryptionKey, Operation

HEADER_LENGTH = 16
SIGNATURE = bytes.fromhex("5250474d56000000" "000301" "0000000000")
MIN_ENCODED_LENGTH = HEADER_LENGTH + KEY_LENGTH
MIN_PLAIN_LENGTH = KEY_LENGTH

# logical extension -> (offset, bytes) of the container magic
CONTAINER_HEADERS: dict[str, tuple[int, bytes]] = {
    "png": (0, bytes.fromhex("89504e470d0a1a0a0000000d49484452")),
    "ogg": (0, b"OggS"),
    "m4a": (4, b"ftyp"),
}


def xor_region(region: bytes, key: EncryptionKey) -> bytes:
    """XOR a 16-byte region with the key. Symmetric."""
    if len(region) != KEY_LENGTH:
        raise MalformedAsset(f"keyed region must be {KEY_LENGTH} bytes, got {len(region)}")
    return bytes(a ^ b for a, b in zip(region, key.raw))


def has_signature(data: bytes) -> bool:
    """True if `data` starts with the fixed signature region."""
    return data[:HEADER_LENGTH] == SIGNATURE


def decode(
    data: bytes, key: EncryptionKey, verify_signature: bool = False,
) -> bytes:
    """Recover the plain file from an obfuscated buffer.

    Raises:
        MalformedAsset: Buffer shorter than 32 bytes, or signature mismatch
            when `verify_signature` is set.
    """
    if len(data) < MIN_ENCODED_LENGTH:
        raise MalformedAsset(
            f"obfuscated data needs at least {MIN_ENCODED_LENGTH} bytes, got {len(data)}"
        )
    if verify_signature and not has_signature(data):
        raise MalformedAsset("signature region does not match")
    keyed = data[HEADER_LENGTH:MIN_ENCODED_LENGTH]
    return xor_region(keyed, key) + data[MIN_ENCODED_LENGTH:]


def encode(data: bytes, key: EncryptionKey) -> bytes:
    """Obfuscate a plain file. Output is exactly 16 bytes longer.

    Raises:
        MalformedAsset: Buffer shorter than 16 bytes.
    """
    if len(data) < MIN_PLAIN_LENGTH:
        raise MalformedAsset(
            f"plain data needs at least {MIN_PLAIN_LENGTH} bytes, got {len(data)}"
        )
    return SIGNATURE + xor_region(data[:KEY_LENGTH], key) + data[KEY_LENGTH:]


def transform(
    buffer: bytes,
    key: EncryptionKey,
    operation: Operation = "decode",
    verify_signature: bool = False,
) -> bytes:
    """Apply `operation` to `buffer`."""
    if operation == "decode":
        return decode(buffer, key, verify_signature=verify_signature)
    if operation == "encode":
        return encode(buffer, key)
    raise ValueError(f"Unknown operation: {operation!r}")


def restore_header(data: bytes, logical_ext: str) -> bytes:
    """Overwrite the container magic of a decoded buffer with the known bytes.

    PNG gets its signature plus the IHDR chunk header, OGG its capture pattern
    and M4A the `ftyp` box tag. Buffers that already carry the magic, are too
    short to hold it, or have another type are returned unchanged.
    """
    header = CONTAINER_HEADERS.get(logical_ext.lower().lstrip("."))
    if header is None:
        return data
    offset, magic = header
    end = offset + len(magic)
    if len(data) < end or data[offset:end] == magic:
        return data
    return data[:offset] + magic + data[end:]
