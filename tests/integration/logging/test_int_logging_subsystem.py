# tests/integration/logging/test_int_logging_subsystem.py - v2
"""Integration tests for logging: batch runs write contextual JSON records."""

from __future__ import annotations

import json
import logging

import pytest

from rpgmview.batch.processor import BatchProcessor
from rpgmview.logging.context import get_context
from rpgmview.logging.logger import setup_logging


@pytest.fixture
def json_log(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging(level="DEBUG", log_format="json", log_file=str(log_file))
    yield log_file
    root = logging.getLogger("rpgmview")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


def _records(log_file) -> list[dict]:
    for handler in logging.getLogger("rpgmview").handlers:
        handler.flush()
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]


class TestBatchLogging:

    @pytest.mark.asyncio
    async def test_records_carry_job_context(self, json_log, game_dir, key_store):
        processor = BatchProcessor(key_store)
        job = await processor.run_to_completion(processor.create_job([game_dir], "decode"))

        records = _records(json_log)
        started = [r for r in records if r["message"].startswith(f"Batch {job.job_id} started")]
        assert len(started) == 1
        assert started[0]["context"]["job_id"] == job.job_id
        assert started[0]["context"]["operation"] == "decode"

        per_item = [r for r in records if r["logger"] == "rpgmview.batch.processor"
                    and r["level"] == "DEBUG"]
        assert len(per_item) == 5
        assert all("asset" in r["context"] for r in per_item)
        assert get_context().job_id is None

    @pytest.mark.asyncio
    async def test_failures_logged_as_warnings(self, json_log, tmp_path, key_store):
        bad = tmp_path / "bad.rpgmvp"
        bad.write_bytes(bytes(8))
        processor = BatchProcessor(key_store)
        await processor.run_to_completion(processor.create_job([bad], "decode"))
        warnings = [r for r in _records(json_log) if r["level"] == "WARNING"]
        assert any("Malformed asset" in r["message"] for r in warnings)

    def test_key_never_logged(self, json_log, key_store, sample_key):
        key_store.set("ffffffffffffffffffffffffffffffff")
        key_store.set(sample_key.hex)
        text = json_log.read_text(encoding="utf-8") if json_log.exists() else ""
        assert sample_key.hex not in text
        assert sample_key.fingerprint in text
