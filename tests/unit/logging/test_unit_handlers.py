# tests/unit/logging/test_unit_handlers.py — v2
"""Tests for logging/handlers.py — size parsing and rotating handler."""

from __future__ import annotations

from logging.handlers import RotatingFileHandler

import pytest

from kgweave.logging.handlers import _parse_size, create_rotating_handler


class TestParseSize:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [("10MB", 10 * 1024**2), ("512kb", 512 * 1024), ("1 GB", 1024**3)],
    )
    def test_valid(self, text, expected):
        assert _parse_size(text) == expected

    @pytest.mark.parametrize("text", ["10", "MB", "ten MB", "5TB"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid size format"):
            _parse_size(text)


class TestCreateRotatingHandler:
    def test_creates_parent_dirs(self, tmp_path):
        log_file = tmp_path / "nested" / "dir" / "kg.log"
        handler = create_rotating_handler(str(log_file), rotation="2KB", retention=3)
        try:
            assert isinstance(handler, RotatingFileHandler)
            assert handler.maxBytes == 2048
            assert handler.backupCount == 3
            assert log_file.parent.is_dir()
        finally:
            handler.close()
