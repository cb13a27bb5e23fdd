# tests/integration/thumbnails/test_int_thumbnail_browsing.py - v1
"""Integration tests for browsing: scan stream feeding the thumbnail cache.

Covers: scan/scanner.py, thumbnails/cache.py, thumbnails/render.py, keys/store.py
"""

from __future__ import annotations

import asyncio

import pytest

from rpgmview.codec.transform import encode
from rpgmview.keys.store import KeyStore
from rpgmview.scan.scanner import DirectoryScanner
from rpgmview.thumbnails.cache import ThumbnailCache

from tests.conftest import OTHER_KEY_HEX, SAMPLE_KEY_HEX, make_png, write_tree


@pytest.fixture
def gallery(tmp_path, sample_key):
    files = {f"pictures/p{i:02d}.rpgmvp": encode(make_png(20 + i, 10), sample_key) for i in range(12)}
    files["pictures/broken.rpgmvp"] = b"RPGMV" + bytes(40)
    files["bgm/theme.rpgmvo"] = encode(b"OggS" + bytes(64), sample_key)
    write_tree(tmp_path, files)
    return tmp_path


class TestBrowsing:

    @pytest.mark.asyncio
    async def test_every_entry_resolves(self, gallery):
        store = KeyStore(SAMPLE_KEY_HEX)
        cache = ThumbnailCache(store, capacity=50, thumbnail_size=16)
        handles = [cache.get_or_create(e, store.fingerprint())
                   async for e in DirectoryScanner().scan(gallery)]
        results = await asyncio.gather(*handles)
        states = {r.path.rsplit("/", 1)[-1]: r.state for r in results}
        assert states["theme.rpgmvo"] == "audio"
        assert states["broken.rpgmvp"] == "unrenderable"
        assert states["pictures"] == "unsupported"
        assert sum(1 for s in states.values() if s == "ready") == 12
        assert len(cache) == 13
        await cache.aclose()

    @pytest.mark.asyncio
    async def test_small_capacity_while_scrolling(self, gallery):
        store = KeyStore(SAMPLE_KEY_HEX)
        cache = ThumbnailCache(store, capacity=4)
        entries = [e for e in DirectoryScanner().scan(gallery, ".rpgmvp") if not e.is_directory]
        for entry in entries:
            await cache.get_or_create(entry)
            assert len(cache) <= 4
        last_four = [e.path for e in entries[-4:]]
        assert all(p in cache for p in last_four)
        await cache.aclose()

    @pytest.mark.asyncio
    async def test_navigating_away_drops_results(self, gallery):
        store = KeyStore(SAMPLE_KEY_HEX)
        cache = ThumbnailCache(store)
        entries = [e for e in DirectoryScanner().scan(gallery) if e.asset_type == "image"]
        handles = [cache.get_or_create(e) for e in entries]
        for h in handles[:-1]:
            h.cancel()
        last = await handles[-1]
        assert last.ready
        assert all(h.result().state == "cancelled" for h in handles[:-1])
        await cache.aclose()


class TestKeyChangeWhileBrowsing:

    @pytest.mark.asyncio
    async def test_wrong_key_then_right_key(self, gallery):
        store = KeyStore(OTHER_KEY_HEX)
        cache = ThumbnailCache(store)
        entries = [e for e in DirectoryScanner().scan(gallery) if e.asset_type == "image"]

        wrong = await asyncio.gather(*(cache.get_or_create(e) for e in entries))
        assert all(r.state == "unrenderable" for r in wrong)

        store.set(SAMPLE_KEY_HEX)
        right = await asyncio.gather(
            *(cache.get_or_create(e, store.fingerprint()) for e in entries)
        )
        ready = [r for r in right if r.ready]
        assert len(ready) == 12
        assert len(cache) == 13
        await cache.aclose()

    @pytest.mark.asyncio
    async def test_key_change_during_population(self, gallery):
        store = KeyStore(SAMPLE_KEY_HEX)
        cache = ThumbnailCache(store)
        entries = [e for e in DirectoryScanner().scan(gallery) if e.asset_type == "image"]
        handles = [cache.get_or_create(e) for e in entries]
        store.set(OTHER_KEY_HEX)
        results = await asyncio.gather(*handles)
        assert all(r.state == "stale" for r in results)
        assert len(cache) == 0
        await cache.aclose()
