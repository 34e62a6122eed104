"""Tests for the empty-field stripping applied to large cache payloads."""
from __future__ import annotations

from scribe_processing.cache.compression import compress_value, strip_empty_fields


class TestStripEmptyFields:
    """Tests for strip_empty_fields."""

    def test_drops_none_and_empty_strings(self):
        value = {"text": "hi", "language": None, "notes": "", "confidence": 0, "tags": []}
        assert strip_empty_fields(value) == {"text": "hi", "confidence": 0, "tags": []}

    def test_recurses_into_nested_structures(self):
        value = {"segments": [{"text": "a", "speaker": None}, {"text": "", "start": 1.5}]}
        assert strip_empty_fields(value) == {"segments": [{"text": "a"}, {"start": 1.5}]}

    def test_list_items_themselves_are_kept(self):
        assert strip_empty_fields([None, "", "x"]) == [None, "", "x"]


class TestCompressValue:
    """Tests for compress_value."""

    def test_small_payload_untouched(self):
        value = {"text": "short", "language": None}
        result, compressed = compress_value(value, threshold=1024)
        assert compressed is False
        assert result is value

    def test_large_payload_stripped(self):
        value = {"text": "x" * 200, "language": None, "summary": ""}
        result, compressed = compress_value(value, threshold=100)
        assert compressed is True
        assert result == {"text": "x" * 200}

    def test_threshold_is_exclusive(self):
        value = {"a": None}
        size = len('{"a":null}')
        assert compress_value(value, threshold=size) == (value, False)
        assert compress_value(value, threshold=size - 1) == ({}, True)

    def test_scalars_never_compressed(self):
        text = "y" * 50_000
        assert compress_value(text, threshold=10) == (text, False)

    def test_input_not_mutated(self):
        value = {"text": "z" * 500, "language": None}
        compress_value(value, threshold=10)
        assert value == {"text": "z" * 500, "language": None}
