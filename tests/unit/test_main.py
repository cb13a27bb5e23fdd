# tests/unit/test_main.py - v3
"""Tests for main.py - CLI entry point."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import pytest

from rpgmview.codec.transform import encode
from rpgmview.keys import detection
from rpgmview.keys.store import parse_key
from rpgmview.main import _build_parser, main

from tests.conftest import OTHER_KEY_HEX, SAMPLE_KEY_HEX, write_tree


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Run each CLI test away from any .env and RPGMVIEW_* variables."""
    monkeypatch.chdir(tmp_path)
    for name in ("RPGMVIEW_ENCRYPTION_KEY", "RPGMVIEW_LOG_FILE", "RPGMVIEW_BATCH_OUTPUT_DIR"):
        monkeypatch.delenv(name, raising=False)
    yield
    root = logging.getLogger("rpgmview")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "rpgmview" in capsys.readouterr().out

    def test_scan_subcommand(self):
        args = _build_parser().parse_args(["scan", "/game", "-f", "actor"])
        assert args.command == "scan"
        assert args.directory == Path("/game")
        assert args.filter_text == "actor"

    def test_decode_subcommand(self):
        args = _build_parser().parse_args([
            "decode", "/a", "/b.rpgmvp", "-k", SAMPLE_KEY_HEX, "-o", "/out", "--remove-source",
        ])
        assert args.operation == "decode"
        assert args.paths == [Path("/a"), Path("/b.rpgmvp")]
        assert args.key == SAMPLE_KEY_HEX
        assert args.output == Path("/out")
        assert args.remove_source is True

    def test_encode_defaults(self):
        args = _build_parser().parse_args(["encode", "/a"])
        assert args.operation == "encode"
        assert args.key is None
        assert args.mz is False
        assert args.workers is None
        assert args.restore_headers is False

    def test_detect_key_subcommand(self):
        args = _build_parser().parse_args(["detect-key", "/game"])
        assert args.directory == Path("/game")

    def test_paths_required(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["decode"])


# ---------------------------------------------------------------------------
# Command tests
# ---------------------------------------------------------------------------

class TestMain:
    def test_no_command(self):
        assert main([]) == 1

    def test_scan(self, game_dir, capsys):
        assert main(["scan", str(game_dir)]) == 0
        out = capsys.readouterr().out
        assert "Actor1.rpgmvp" in out
        assert "-> .png" in out
        assert "6 files" in out

    def test_scan_missing_dir(self, tmp_path):
        assert main(["scan", str(tmp_path / "nope")]) == 1

    def test_detect_key(self, game_dir, capsys):
        assert main(["detect-key", str(game_dir)]) == 0
        assert SAMPLE_KEY_HEX in capsys.readouterr().out

    def test_detect_key_none(self, tmp_path, capsys):
        (tmp_path / "empty").mkdir()
        assert main(["detect-key", str(tmp_path / "empty")]) == 1

    def test_decode_with_key(self, game_dir, png_bytes, capsys):
        assert main(["decode", str(game_dir), "--key", SAMPLE_KEY_HEX]) == 0
        assert (game_dir / "img" / "pictures" / "Actor1.png").read_bytes() == png_bytes
        assert "completed" in capsys.readouterr().out

    def test_decode_detects_key(self, game_dir):
        assert main(["decode", str(game_dir)]) == 0
        assert (game_dir / "audio" / "bgm" / "Theme.ogg").exists()

    def test_decode_restore_headers_flag(self, tmp_path, png_bytes):
        other = parse_key(OTHER_KEY_HEX)
        write_tree(tmp_path, {"g/a.rpgmvp": encode(png_bytes, other)})
        assert main(["decode", str(tmp_path / "g"), "-k", SAMPLE_KEY_HEX, "--restore-headers"]) == 0
        assert (tmp_path / "g" / "a.png").read_bytes() == png_bytes

    def test_decode_detects_key_off_the_loop(self, game_dir, monkeypatch):
        real = detection.detect_key
        threads = []

        def spy(root):
            threads.append(threading.current_thread())
            return real(root)

        monkeypatch.setattr(detection, "detect_key", spy)
        assert main(["decode", str(game_dir)]) == 0
        assert threads and threads[0] is not threading.main_thread()

    def test_decode_no_key_found(self, tmp_path):
        write_tree(tmp_path, {"g/a.txt": b"hello"})
        assert main(["decode", str(tmp_path / "g")]) == 1

    def test_partial_failure_exit_code(self, tmp_path):
        write_tree(tmp_path, {"g/a.rpgmvp": bytes(10)})
        assert main(["decode", str(tmp_path / "g"), "-k", SAMPLE_KEY_HEX]) == 1

    def test_encode_mz_with_output(self, tmp_path, png_bytes):
        write_tree(tmp_path, {"g/img/a.png": png_bytes})
        out = tmp_path / "out"
        code = main(["encode", str(tmp_path / "g"), "-k", SAMPLE_KEY_HEX, "--mz", "-o", str(out)])
        assert code == 0
        assert (out / "img" / "a.png_").exists()

    def test_invalid_key_is_fatal(self, game_dir):
        assert main(["decode", str(game_dir), "-k", "nothex"]) == 1
