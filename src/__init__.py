"""rpgmview: decode, re-encode and preview RPG Maker MV/MZ obfuscated assets."""

from rpgmview.version import __version__

__all__ = ["__version__"]
