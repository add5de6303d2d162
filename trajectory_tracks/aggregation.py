"""Time-bucket aggregation and interpolation along tracks.

Bucketing delegates to pandas ``resample``; interpolation follows the
resampling approach of the preprocessing step: seconds since the first fix as
the domain and monotone PCHIP interpolants (scipy) for every numeric column.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import numpy as np
import pandas as pd
from scipy.interpolate import PchipInterpolator

from .errors import ValidationError
from .models import Track, Tracks, TracksCollection

SPEED_PROFILE_COLUMNS = ["n_segments", "mean_segment_speed", "median_segment_speed", "max_segment_speed"]


def bucket_attribute(track: Track, column: str, freq: str = "5min", how: str = "mean") -> pd.Series:
    """Reduce one point attribute per time bucket (e.g. mean altitude every 5 minutes)."""

    points = track.points
    if column not in points.columns:
        raise ValidationError(f"Track has no column {column!r}")
    series = points.set_index("time")[column]
    return series.resample(freq).agg(how)


def bucket_collection(
    collection: TracksCollection,
    column: str,
    freq: str = "5min",
    how: str = "mean",
) -> pd.DataFrame:
    """Long table ``subject, track_id, time, <column>`` of bucketed values over all tracks."""

    frames: List[pd.DataFrame] = []
    for subject, tracks in collection.items():
        for track_id, track in tracks.items():
            if column not in track.points.columns:
                logging.debug("Track %s/%s has no %s column; skipped", subject, track_id, column)
                continue
            bucketed = bucket_attribute(track, column, freq=freq, how=how).reset_index()
            bucketed.insert(0, "track_id", track_id)
            bucketed.insert(0, "subject", subject)
            frames.append(bucketed)

    if not frames:
        return pd.DataFrame(columns=["subject", "track_id", "time", column])
    return pd.concat(frames, ignore_index=True)


def _interpolate_column(values: np.ndarray, orig_t: np.ndarray, new_t: np.ndarray) -> np.ndarray:
    valid = ~np.isnan(values)
    if valid.sum() < 2:
        return np.full(len(new_t), np.nan)
    interpolator = PchipInterpolator(orig_t[valid], values[valid], extrapolate=False)
    return interpolator(new_t)


def interpolate_track(track: Track, n_points: int | None = None, freq: str | None = None) -> Track:
    """
    Resample a track to ``n_points`` evenly spaced fixes, or to one fix every
    ``freq`` (pandas offset alias), and return it as a new Track.
    Non-numeric columns other than ``time`` are dropped.
    """

    if (n_points is None) == (freq is None):
        raise ValueError("Pass exactly one of n_points or freq.")
    if len(track) < 2:
        raise ValidationError("Interpolation requires at least two points.")

    points = track.points
    times = points["time"]
    orig_t = (times - times.iloc[0]).dt.total_seconds().to_numpy(dtype=float)
    if not (np.diff(orig_t) > 0).all():
        raise ValidationError("Interpolation requires strictly increasing timestamps.")

    if n_points is not None:
        if n_points < 2:
            raise ValueError("n_points must be at least 2.")
        new_t = np.linspace(orig_t[0], orig_t[-1], n_points)
    else:
        step = pd.Timedelta(freq).total_seconds()
        if step <= 0:
            raise ValueError(f"Interpolation frequency must be positive: {freq}")
        new_t = np.arange(orig_t[0], orig_t[-1] + step / 2, step)
        new_t = new_t[new_t <= orig_t[-1]]

    resampled: Dict[str, object] = {"time": times.iloc[0] + pd.to_timedelta(new_t, unit="s")}
    for col in points.columns:
        if col == "time" or not pd.api.types.is_numeric_dtype(points[col]):
            continue
        resampled[col] = _interpolate_column(points[col].to_numpy(dtype=float), orig_t, new_t)

    return Track(
        pd.DataFrame(resampled),
        crs=track.crs,
        undefined_speed=track.undefined_speed,
        passthrough=tuple(col for col in track.passthrough if col in resampled),
    )


def speed_profile(tracks: Tracks) -> pd.DataFrame:
    """Per-track speed statistics (m/s) over defined segments, indexed by track id."""

    rows = []
    for track in tracks.values():
        speeds = track.connections["speed"].dropna()
        rows.append(
            {
                "n_segments": len(speeds),
                "mean_segment_speed": float(speeds.mean()) if len(speeds) else np.nan,
                "median_segment_speed": float(speeds.median()) if len(speeds) else np.nan,
                "max_segment_speed": float(speeds.max()) if len(speeds) else np.nan,
            }
        )
    frame = pd.DataFrame(rows, columns=SPEED_PROFILE_COLUMNS)
    frame.index = pd.Index(list(tracks.keys()), name="track_id")
    return frame
