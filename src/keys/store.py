# src/keys/store.py - v1
"""KeyStore: the single owner of the active transform key.

Single writer, many readers. `set()` swaps the key and its fingerprint under
one lock so a reader never sees a half-updated pair. Consumers key their
caches on the fingerprint, never on the raw key.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Callable

from rpgmview.core.errors import InvalidKey
from rpgmview.core.models import KEY_LENGTH, EncryptionKey

logger = logging.getLogger(__name__)

_HEX_KEY_RE = re.compile(rf"^[0-9a-fA-F]{{{KEY_LENGTH * 2}}}$")

KeyListener = Callable[["str | None"], None]


def parse_key(key_text: str) -> EncryptionKey:
    """Validate and normalize key text into an EncryptionKey.

    Surrounding whitespace is stripped and hex is lower-cased. Anything that
    is not exactly 32 hexadecimal characters is rejected.

    Raises:
        InvalidKey: If the text does not describe a 16-byte hex key.
    """
    if not isinstance(key_text, str):
        raise InvalidKey(f"expected text, got {type(key_text).__name__}")
    text = key_text.strip()
    if not _HEX_KEY_RE.match(text):
        raise InvalidKey(
            f"expected {KEY_LENGTH * 2} hexadecimal characters, got {len(text)} characters"
        )
    return EncryptionKey(hex=text.lower())


class KeyStore:
    """Holds the current EncryptionKey and notifies listeners on change."""

    def __init__(self, key_text: str | None = None) -> None:
        self._lock = threading.Lock()
        self._key: EncryptionKey | None = None
        self._fingerprint: str | None = None
        self._listeners: list[KeyListener] = []
        if key_text:
            self.set(key_text)

    def set(self, key_text: str) -> EncryptionKey:
        """Replace the active key. On InvalidKey the previous key stays active."""
        key = parse_key(key_text)
        with self._lock:
            changed = key.fingerprint != self._fingerprint
            self._key = key
            self._fingerprint = key.fingerprint
            listeners = list(self._listeners)
        if changed:
            logger.info("Encryption key set (fingerprint=%s)", key.fingerprint)
            for listener in listeners:
                listener(key.fingerprint)
        return key

    def clear(self) -> None:
        """Forget the active key."""
        with self._lock:
            had_key = self._key is not None
            self._key = None
            self._fingerprint = None
            listeners = list(self._listeners)
        if had_key:
            logger.info("Encryption key cleared")
            for listener in listeners:
                listener(None)

    def current(self) -> EncryptionKey | None:
        with self._lock:
            return self._key

    def fingerprint(self) -> str | None:
        with self._lock:
            return self._fingerprint

    def snapshot(self) -> tuple[EncryptionKey | None, str | None]:
        """Key and fingerprint read together."""
        with self._lock:
            return self._key, self._fingerprint

    def add_listener(self, listener: KeyListener) -> None:
        """Register a callback receiving the new fingerprint after each change."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: KeyListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
