"""Utilities for structuring, flattening and summarising GPS trajectories.

This package provides the Track / Tracks / TracksCollection value objects with
derived per-segment metrics, plus ingestion, geometry, aggregation and plotting
helpers for GeoLife and EnviroCar style data.
"""

from .errors import GeometryError, IngestionError, TrackError, UndefinedMetricError, ValidationError
from .flatten import flatten, group_key, is_break_row
from .models import Track, Tracks, TracksCollection

__all__ = [
    "GeometryError",
    "IngestionError",
    "Track",
    "TrackError",
    "Tracks",
    "TracksCollection",
    "UndefinedMetricError",
    "ValidationError",
    "flatten",
    "group_key",
    "is_break_row",
]
