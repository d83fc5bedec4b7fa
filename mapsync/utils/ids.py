"""
ID generation utilities for mapsync.

Bookmark, group and widget identifiers keep the formats the browser widgets
already write into shared storage, so both sides can read each other's data.
"""

from __future__ import annotations

import random
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


# ============================================================================
# Helpers
# ============================================================================


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36."""
    if value < 0:
        raise ValueError(f"Cannot encode negative value: {value}")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def random_suffix(length: int) -> str:
    """Random lowercase base-36 string of the given length."""
    return "".join(random.choices(_BASE36, k=length))


def _now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# ID Generation Functions
# ============================================================================


def generate_bookmark_id() -> str:
    """Generate a bookmark or group identifier.

    Format: ``bm-{epoch_ms}-{9 random base-36 chars}``

    Example:
        >>> generate_bookmark_id()
        'bm-1704067200000-k3j9x0q2a'
    """
    return f"bm-{_now_ms()}-{random_suffix(9)}"


def generate_widget_id() -> str:
    """Generate a widget instance identifier (``w{ms base36}{3 chars}``)."""
    return f"w{to_base36(_now_ms())}{random_suffix(3)}"


def parse_bookmark_id(bookmark_id: str) -> tuple[int, str]:
    """Split a bookmark ID into its timestamp and random part.

    Raises:
        ValueError: If the ID does not follow the bookmark format
    """
    parts = bookmark_id.split("-")
    if len(parts) != 3 or parts[0] != "bm":
        raise ValueError(f"Invalid bookmark ID format: {bookmark_id}")
    return int(parts[1]), parts[2]


def is_valid_bookmark_id(bookmark_id: str) -> bool:
    """Check if a string is a generated bookmark ID."""
    try:
        parse_bookmark_id(bookmark_id)
        return True
    except (ValueError, TypeError, AttributeError):
        return False
