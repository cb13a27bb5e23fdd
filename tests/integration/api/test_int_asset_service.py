# tests/integration/api/test_int_asset_service.py - v1
"""Integration tests for the presentation-layer contract of AssetService.

A front end subscribes to the scan stream, requests thumbnails, submits a
batch and follows its progress. No rendering happens here.
"""

from __future__ import annotations

import pytest

from rpgmview.api.facade import AssetService
from rpgmview.batch.models import BatchProgress
from rpgmview.config.settings import Settings


@pytest.fixture
def service():
    return AssetService(Settings(_env_file=None, thumbnail_size=32, batch_workers=2))


class TestPresentationContract:

    @pytest.mark.asyncio
    async def test_open_folder_browse_and_decode_all(self, service, game_dir):
        assert service.key_status().fingerprint is None
        status = service.detect_key(game_dir)
        assert status is not None

        thumbs = {}
        async for entry in service.scan(game_dir):
            if entry.asset_type == "image":
                thumbs[entry.name] = await service.fetch_thumbnail(entry)
        assert len(thumbs) == 3
        assert all(t.ready and max(t.thumbnail.size) <= 32 for t in thumbs.values())

        progress: list[BatchProgress] = []
        job, stream = service.submit_batch([game_dir], "decode", on_progress=progress.append)
        async for _ in stream:
            pass
        assert job.status == "completed"
        assert progress[-1].completed == progress[-1].total == 5

        asset = await service.decode_file(game_dir / "img" / "pictures" / "Actor2.png")
        assert asset.mime_type == "image/png"
        await service.aclose()

    @pytest.mark.asyncio
    async def test_wrong_key_then_correct_key(self, service, game_dir):
        service.set_key("ffffffffffffffffffffffffffffffff")
        entry = next(e for e in service.scan(game_dir) if e.name == "Actor1.rpgmvp")
        assert (await service.fetch_thumbnail(entry)).state == "unrenderable"

        service.detect_key(game_dir)
        assert (await service.fetch_thumbnail(entry)).ready
        await service.aclose()
