"""
Human-readable formatting for durations, byte counts, plain counts and rates.

These are the leaf formatters behind the template functions elapsed(),
eta(), bytes(), count_format() and rate().
"""

from typing import Optional

_BYTE_UNITS = ("KB", "MB", "GB")


def format_duration(seconds: float) -> str:
    """
    Format a duration compactly.

    Args:
        seconds: Duration in seconds. Fractions are truncated and negative
                 values are treated as zero.

    Returns:
        str: "42s", "1m30s" or "1h30m45s".

    Example:
        >>> format_duration(5445)
        '1h30m45s'
    """
    total = max(int(seconds), 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def format_bytes(n: float) -> str:
    """
    Format a byte count with binary (1024-based) units.

    Example:
        >>> format_bytes(1536)
        '1.5 KB'
        >>> format_bytes(512)
        '512 B'
    """
    value = float(max(n, 0))
    if value < 1024:
        return f"{int(value)} B"
    for unit in _BYTE_UNITS:
        value /= 1024.0
        # Stop at the first unit that keeps the number below 1024, or at GB
        if value < 1024 or unit == _BYTE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    return f"{value:.1f} GB"  # pragma: no cover


def format_count(n: float, decimals: int = 1) -> str:
    """
    Format a plain count with K/M/B suffixes.

    Example:
        >>> format_count(1500)
        '1.5K'
        >>> format_count(42)
        '42'
    """
    value = float(n)
    magnitude = abs(value)
    if magnitude >= 1_000_000_000:
        return f"{value / 1_000_000_000:.{decimals}f}B"
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.{decimals}f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.{decimals}f}K"
    if value == int(value):
        return str(int(value))
    return f"{value:.{decimals}f}"


def format_rate(rate: Optional[float]) -> str:
    """
    Format a throughput in items per second.

    Slow rates switch to per-minute so they stay readable.

    Example:
        >>> format_rate(12.5)
        '12.5/s'
        >>> format_rate(0.05)
        '3.0/m'
        >>> format_rate(None)
        '-/s'
    """
    if rate is None or rate <= 0:
        return "-/s"
    if rate >= 1.0:
        return f"{rate:.1f}/s"
    if rate >= 1.0 / 60.0:
        return f"{rate * 60.0:.1f}/m"
    return f"{rate:.2f}/s"
