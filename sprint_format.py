"""
Formatting helpers for sprint reports.

Provides cached ISO 8601 parsing plus the date, hour and ratio formatting
shared by the context builder and the rule-based summarizer.
"""

import math
from datetime import datetime
from functools import lru_cache
from typing import Dict, Optional


@lru_cache(maxsize=256)
def parse_iso8601_datetime(iso_string: str) -> Optional[datetime]:
    """Parse ISO 8601 datetime string with caching.

    Handles the Jira datetime formats seen in changelogs and comments.
    Results are cached since the same timestamps recur across one report.

    Supported formats:
    - 2024-01-15T09:00:00.000Z
    - 2024-01-15T09:00:00.000+0000
    - 2024-01-15T09:00:00+02:00
    - 2024-01-15

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        datetime object, or None if parsing fails

    Examples:
        >>> parse_iso8601_datetime("2024-01-15T09:00:00.000Z")
        datetime.datetime(2024, 1, 15, 9, 0, tzinfo=datetime.timezone.utc)

        >>> parse_iso8601_datetime("invalid")
        None
    """
    if not iso_string:
        return None

    try:
        if iso_string.endswith('Z'):
            return datetime.fromisoformat(iso_string[:-1] + '+00:00')

        # Jira omits the colon in offsets (+0000), older interpreters reject that
        if len(iso_string) > 5 and iso_string[-5] in '+-' and iso_string[-4:].isdigit():
            iso_string = iso_string[:-2] + ':' + iso_string[-2:]

        return datetime.fromisoformat(iso_string)

    except (ValueError, TypeError, AttributeError):
        # Unparseable dates are reported as None rather than raising
        return None


def format_short_date(iso_string: Optional[str]) -> str:
    """Render a timestamp as YYYY-MM-DD.

    Empty input gives an empty string; unparseable input is echoed back.

    Examples:
        >>> format_short_date("2024-01-15T09:00:00.000+0000")
        '2024-01-15'
    """
    if not iso_string:
        return ''
    parsed = parse_iso8601_datetime(iso_string)
    if parsed is None:
        return iso_string
    return parsed.strftime('%Y-%m-%d')


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def format_hours(seconds: Optional[int]) -> str:
    """Whole hours for a duration in seconds, e.g. 5400 -> '2h'."""
    return f"{round_half_up((seconds or 0) / 3600)}h"


def percent_of(part: Optional[float], whole: Optional[float]) -> Optional[int]:
    """Return part/whole as a rounded percentage, or None if either is missing or zero."""
    if not part or not whole:
        return None
    return round_half_up(part / whole * 100)


def clear_date_parse_cache():
    """Clear the ISO 8601 date parsing cache.

    Useful for testing or debugging date parsing issues.
    """
    parse_iso8601_datetime.cache_clear()


def get_cache_stats() -> Dict[str, object]:
    """Get cache statistics for the date parsing cache.

    Returns:
        dict with key 'date_cache': cache_info namedtuple (hits, misses, maxsize, currsize)
    """
    return {
        'date_cache': parse_iso8601_datetime.cache_info(),
    }
