# tests/unit/logging/test_unit_handlers.py — v2
"""Tests for logging/handlers.py."""

from __future__ import annotations

import logging

import pytest

from tallycache.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    @pytest.mark.parametrize(
        "size,expected",
        [
            ("10MB", 10 * 1024**2),
            ("512kb", 512 * 1024),
            ("1GB", 1024**3),
            ("4096", 4096),
            ("20 B", 20),
            (2048, 2048),
        ],
    )
    def test_valid(self, size, expected):
        assert parse_size(size) == expected

    @pytest.mark.parametrize("size", ["", "ten MB", "10TB", "-1MB"])
    def test_invalid(self, size):
        with pytest.raises(ValueError, match="Invalid size format"):
            parse_size(size)


class TestCreateRotatingHandler:
    def test_creates_parent_dir(self, tmp_path):
        log_file = tmp_path / "a" / "b" / "app.log"
        handler = create_rotating_handler(log_file, rotation="1MB", retention=3)
        try:
            assert log_file.parent.is_dir()
            assert handler.maxBytes == 1024**2
            assert handler.backupCount == 3
        finally:
            handler.close()

    def test_attaches_formatter(self, tmp_path):
        formatter = logging.Formatter("%(message)s")
        handler = create_rotating_handler(tmp_path / "app.log", formatter=formatter)
        try:
            assert handler.formatter is formatter
        finally:
            handler.close()
