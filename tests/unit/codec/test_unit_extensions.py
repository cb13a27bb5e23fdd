# tests/unit/codec/test_unit_extensions.py - v1
"""Tests for codec/extensions.py - the obfuscated extension table."""

from __future__ import annotations

import pytest

from rpgmview.codec import extensions


class TestClassify:
    @pytest.mark.parametrize("ext", ["rpgmvp", "rpgmvo", "rpgmvm", "png_", "ogg_", "m4a_"])
    def test_obfuscated(self, ext):
        assert extensions.classify(ext) == "obfuscated"
        assert extensions.is_obfuscated(ext)

    @pytest.mark.parametrize("ext", ["png", "ogg", "m4a"])
    def test_plain(self, ext):
        assert extensions.classify(ext) == "plain"

    @pytest.mark.parametrize("ext", ["txt", "json", "jpg", "", "mp3"])
    def test_not_applicable(self, ext):
        assert extensions.classify(ext) == "not-applicable"

    def test_case_and_dot_insensitive(self):
        assert extensions.classify(".RPGMVP") == "obfuscated"
        assert extensions.classify("Png_") == "obfuscated"


class TestLogicalExtension:
    def test_mapping(self):
        assert extensions.logical_extension("rpgmvp") == "png"
        assert extensions.logical_extension("png_") == "png"
        assert extensions.logical_extension("rpgmvo") == "ogg"
        assert extensions.logical_extension("ogg_") == "ogg"
        assert extensions.logical_extension("rpgmvm") == "m4a"
        assert extensions.logical_extension("m4a_") == "m4a"

    def test_unknown_passes_through(self):
        assert extensions.logical_extension("txt") == "txt"
        assert extensions.logical_extension(".JPG") == "jpg"


class TestObfuscatedExtension:
    def test_mv(self):
        assert extensions.obfuscated_extension("png") == "rpgmvp"
        assert extensions.obfuscated_extension("ogg", "mv") == "rpgmvo"

    def test_mz(self):
        assert extensions.obfuscated_extension("m4a", "mz") == "m4a_"

    def test_no_counterpart(self):
        assert extensions.obfuscated_extension("jpg") is None

    def test_already_obfuscated_is_identity(self):
        assert extensions.obfuscated_extension("rpgmvp", "mz") == "rpgmvp"


class TestAssetType:
    def test_types(self):
        assert extensions.asset_type("rpgmvp") == "image"
        assert extensions.asset_type("webp") == "image"
        assert extensions.asset_type("ogg_") == "audio"
        assert extensions.asset_type("mp3") == "audio"
        assert extensions.asset_type("json") == "other"

    def test_mime(self):
        assert extensions.mime_type("rpgmvp") == "image/png"
        assert extensions.mime_type("rpgmvo") == "audio/ogg"
        assert extensions.mime_type("xyz") is None


class TestTargetExtension:
    def test_decode(self):
        assert extensions.target_extension("rpgmvp", "decode") == "png"
        assert extensions.target_extension("ogg_", "decode") == "ogg"

    def test_encode(self):
        assert extensions.target_extension("png", "encode") == "rpgmvp"
        assert extensions.target_extension("png", "encode", "mz") == "png_"

    def test_already_in_target_state(self):
        assert extensions.target_extension("png", "decode") is None
        assert extensions.target_extension("rpgmvp", "encode") is None

    def test_unknown_type(self):
        assert extensions.target_extension("txt", "decode") is None
        assert extensions.target_extension("txt", "encode") is None
