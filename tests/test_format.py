"""
test_format.py
~~~~~~~~~~~~~~
Human-readable duration, byte, count and rate formatting.
"""
from __future__ import annotations

import pytest

from termjobs.utils.format import format_bytes, format_count, format_duration, format_rate


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s"),
        (42, "42s"),
        (42.9, "42s"),
        (90, "1m30s"),
        (3600, "1h0m0s"),
        (5445, "1h30m45s"),
        (-5, "0s"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


@pytest.mark.parametrize(
    "n, expected",
    [
        (0, "0 B"),
        (512, "512 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (1024 * 1024, "1.0 MB"),
        (5 * 1024 ** 3, "5.0 GB"),
        (3 * 1024 ** 4, "3072.0 GB"),
    ],
)
def test_format_bytes(n, expected):
    assert format_bytes(n) == expected


@pytest.mark.parametrize(
    "n, decimals, expected",
    [
        (42, 1, "42"),
        (1500, 1, "1.5K"),
        (2_500_000, 1, "2.5M"),
        (3_000_000_000, 2, "3.00B"),
    ],
)
def test_format_count(n, decimals, expected):
    assert format_count(n, decimals) == expected


@pytest.mark.parametrize(
    "rate, expected",
    [
        (None, "-/s"),
        (0, "-/s"),
        (12.5, "12.5/s"),
        (1.0, "1.0/s"),
        (0.05, "3.0/m"),
        (0.01, "0.01/s"),
    ],
)
def test_format_rate(rate, expected):
    assert format_rate(rate) == expected
