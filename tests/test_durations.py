"""
Unit tests for duration flag parsing.
"""

from __future__ import annotations

import argparse

import pytest

from tpcbench.core.durations import duration_arg, format_duration, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,seconds",
        [
            ("90s", 90.0),
            ("1m30s", 90.0),
            ("2h", 7200.0),
            ("1.5h", 5400.0),
            ("250ms", 0.25),
            ("10", 10.0),
            ("0.5", 0.5),
            (" 3s ", 3.0),
        ],
    )
    def test_valid(self, text: str, seconds: float) -> None:
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "   ", "-5s", "5x", "abc", "1m30", "inf"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_duration(text)

    def test_argparse_adapter(self) -> None:
        assert duration_arg("1m") == 60.0
        with pytest.raises(argparse.ArgumentTypeError):
            duration_arg("soon")


class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds,text",
        [(2.5, "2.5s"), (90, "1m30s"), (3600, "1h"), (3725, "1h2m5s")],
    )
    def test_format(self, seconds: float, text: str) -> None:
        assert format_duration(seconds) == text
