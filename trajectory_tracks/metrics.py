"""Per-segment metric derivation and summary records.

A segment (connection) ``i`` joins point ``i`` and point ``i + 1`` of a track.
Its ``length`` comes from :func:`trajectory_tracks.geometry.segment_lengths`,
its ``elapsed_s`` from the timestamp difference, and ``speed`` is their ratio
in metres per second.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Mapping, Sequence

import numpy as np
import pandas as pd

from .errors import UndefinedMetricError, ValidationError
from .geometry import segment_lengths

if TYPE_CHECKING:  # pragma: no cover
    from .models import Track, Tracks

METRIC_COLUMNS = ["length", "elapsed_s", "speed"]
UNDEFINED_FLAG_COLUMN = "speed_undefined"
UNDEFINED_SPEED_POLICIES = {"raise", "flag"}

TRACK_SUMMARY_COLUMNS = ["n_points", "length_m", "duration_s", "start_time", "end_time", "mean_speed"]
COLLECTION_SUMMARY_COLUMNS = ["n_tracks", "n_points", "length_m", "duration_s"]


def elapsed_seconds(times: pd.Series) -> np.ndarray:
    """Return the N-1 elapsed times in seconds between consecutive timestamps."""

    if len(times) < 2:
        return np.zeros(0, dtype=float)
    return times.diff().dt.total_seconds().to_numpy(dtype=float)[1:]


def derive_connections(
    points: pd.DataFrame,
    crs: object = "EPSG:4326",
    connections: pd.DataFrame | None = None,
    undefined_speed: str = "raise",
    passthrough: Sequence[str] = (),
) -> pd.DataFrame:
    """
    Build the connections table for a point table.

    A supplied connections table keeps its own columns; ``length``, ``elapsed_s``
    and ``speed`` are added or overwritten. Columns listed in ``passthrough`` are
    copied from the segment's start point. Segments whose elapsed time is zero,
    negative or missing either raise :class:`UndefinedMetricError`
    (``undefined_speed="raise"``) or get ``NaN`` speed and a ``True`` value in the
    ``speed_undefined`` column (``undefined_speed="flag"``).
    """

    if undefined_speed not in UNDEFINED_SPEED_POLICIES:
        raise ValidationError(f"Unsupported undefined_speed policy: {undefined_speed}")

    n_segments = max(len(points) - 1, 0)
    if connections is None:
        result = pd.DataFrame(index=pd.RangeIndex(n_segments))
    else:
        if len(connections) != n_segments:
            raise ValidationError(
                f"Connections table has {len(connections)} rows; expected {n_segments} for {len(points)} points."
            )
        result = connections.reset_index(drop=True).copy()

    for col in passthrough:
        if col not in points.columns:
            raise ValidationError(f"Passthrough column {col!r} not present in points.")
        result[col] = points[col].iloc[:-1].to_numpy()

    lengths = segment_lengths(points, crs)
    elapsed = elapsed_seconds(points["time"])
    undefined = ~(elapsed > 0)

    if undefined.any() and undefined_speed == "raise":
        raise UndefinedMetricError("speed", np.flatnonzero(undefined))

    speed = np.full(n_segments, np.nan, dtype=float)
    np.divide(lengths, elapsed, out=speed, where=~undefined)

    result["length"] = lengths
    result["elapsed_s"] = elapsed
    result["speed"] = speed
    if undefined_speed == "flag":
        result[UNDEFINED_FLAG_COLUMN] = undefined
        if undefined.any():
            logging.warning("Speed undefined for %d of %d segments", int(undefined.sum()), n_segments)
    return result


def track_summary(track: "Track") -> Dict[str, object]:
    """Return the summary record of a single track."""

    duration = track.duration.total_seconds()
    return {
        "n_points": len(track),
        "length_m": track.length,
        "duration_s": duration,
        "start_time": track.start_time,
        "end_time": track.end_time,
        "mean_speed": track.length / duration if duration > 0 else np.nan,
    }


def summarise_tracks(tracks: Mapping[str, "Track"]) -> pd.DataFrame:
    """One summary row per track, indexed by track id in insertion order."""

    rows = [track_summary(track) for track in tracks.values()]
    frame = pd.DataFrame(rows, columns=TRACK_SUMMARY_COLUMNS)
    frame.index = pd.Index(list(tracks.keys()), name="track_id")
    return frame


def summarise_collection(collection: Mapping[str, "Tracks"]) -> pd.DataFrame:
    """One summary row per subject, indexed by subject id in insertion order."""

    rows = []
    for tracks in collection.values():
        rows.append(
            {
                "n_tracks": len(tracks),
                "n_points": int(sum(len(track) for track in tracks.values())),
                "length_m": float(sum(track.length for track in tracks.values())),
                "duration_s": float(sum(track.duration.total_seconds() for track in tracks.values())),
            }
        )
    frame = pd.DataFrame(rows, columns=COLLECTION_SUMMARY_COLUMNS)
    frame.index = pd.Index(list(collection.keys()), name="subject")
    return frame

