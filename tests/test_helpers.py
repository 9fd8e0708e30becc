"""
Tests for utils/helpers.py
"""

import pytest

from utils.helpers import (
    capitalize,
    create_progress_bar,
    format_duration,
    format_minutes,
    parse_duration,
    truncate_string,
)


class TestDurations:

    @pytest.mark.parametrize("text,expected", [
        ("30s", 30),
        ("10m", 600),
        ("2h", 7200),
        ("7d", 604800),
        ("1w", 604800),
        (" 5M ", 300),
    ])
    def test_parse_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", None, "10", "m", "0m", "5y", "1.5h", "-3m", "10 m"])
    def test_parse_invalid(self, text):
        assert parse_duration(text) is None

    def test_format_duration(self):
        assert format_duration(1) == "1 second"
        assert format_duration(45) == "45 seconds"
        assert format_duration(600) == "10 minutes"
        assert format_duration(3600) == "1 hour"
        assert format_duration(172800) == "2 days"
        assert format_duration(1209600) == "2 weeks"

    def test_format_minutes(self):
        assert format_minutes(45) == "45 min"
        assert format_minutes(200) == "3h 20m"
        assert format_minutes(2945) == "2d 1h 5m"


class TestText:

    def test_progress_bar(self):
        assert create_progress_bar(5, 10) == "█████░░░░░ 50%"
        assert create_progress_bar(20, 10) == "██████████ 100%"
        assert create_progress_bar(1, 0) == "░░░░░░░░░░ 0%"

    def test_truncate(self):
        assert truncate_string("short", 10) == "short"
        assert truncate_string("a" * 20, 10) == "aaaaaaa..."

    def test_capitalize(self):
        assert capitalize("wARN") == "Warn"
        assert capitalize("") == ""


class TestExports:

    def test_every_export_exists(self):
        import utils
        for name in utils.__all__:
            assert callable(getattr(utils, name))
