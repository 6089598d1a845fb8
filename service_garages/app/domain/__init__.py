"""
Snapshot model for the garages service.
"""

from .snapshot import (
    CacheEntry,
    DEMO_GARAGES,
    Garage,
    build_demo_snapshot,
    build_snapshot,
    format_timestamp,
    normalize_snapshot,
    utc_now,
)

__all__ = [
    "CacheEntry",
    "DEMO_GARAGES",
    "Garage",
    "build_demo_snapshot",
    "build_snapshot",
    "format_timestamp",
    "normalize_snapshot",
    "utc_now",
]
