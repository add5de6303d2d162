"""Flatten tracks into one point table for export and line plotting.

Consecutive trajectories are separated by a break row whose point fields are
all missing, so a line plot lifts the pen between the end of one track and the
start of the next.

- Track: its points as-is.
- Tracks: points of every track with a ``track_id`` column and one break row
  between consecutive tracks.
- TracksCollection: each subject's flattened Tracks followed by one trailing
  break row, with a leading ``subject`` column. Break rows carry the subject of
  the block they close; their ``track_id`` is missing.

A collection of K subjects with M_k tracks of N_ki points therefore flattens to
``sum(N_ki) + sum(M_k)`` rows.
"""

from __future__ import annotations

from typing import Hashable, List, Union

import pandas as pd

from .models import Track, Tracks, TracksCollection

SUBJECT_COLUMN = "subject"
TRACK_ID_COLUMN = "track_id"
LABEL_COLUMNS = (SUBJECT_COLUMN, TRACK_ID_COLUMN)


def break_row(template: pd.DataFrame) -> pd.DataFrame:
    """Return a single all-missing row shaped like ``template``.

    Reindexing an empty slice keeps datetime columns as datetimes (NaT) so
    concatenation does not degrade them to ``object``.
    """

    return template.iloc[:0].reindex(pd.RangeIndex(1))


def flatten_track(track: Track) -> pd.DataFrame:
    return track.points


def flatten_tracks(tracks: Tracks) -> pd.DataFrame:
    parts: List[pd.DataFrame] = []
    last = len(tracks) - 1
    for pos, (track_id, track) in enumerate(tracks.items()):
        frame = flatten_track(track)
        frame.insert(0, TRACK_ID_COLUMN, track_id)
        parts.append(frame)
        if pos < last:
            parts.append(break_row(frame))
    return pd.concat(parts, ignore_index=True)


def flatten_collection(collection: TracksCollection) -> pd.DataFrame:
    parts: List[pd.DataFrame] = []
    for subject, tracks in collection.items():
        flat = flatten_tracks(tracks)
        block = pd.concat([flat, break_row(flat)], ignore_index=True)
        block.insert(0, SUBJECT_COLUMN, subject)
        parts.append(block)
    return pd.concat(parts, ignore_index=True)


def flatten(obj: Union[Track, Tracks, TracksCollection]) -> pd.DataFrame:
    """Flatten any level of the hierarchy into a single point table."""

    if isinstance(obj, Track):
        return flatten_track(obj)
    if isinstance(obj, Tracks):
        return flatten_tracks(obj)
    if isinstance(obj, TracksCollection):
        return flatten_collection(obj)
    raise TypeError(f"Cannot flatten object of type {type(obj).__name__}")


def is_break_row(flat: pd.DataFrame) -> pd.Series:
    """Boolean mask of break rows in a flattened table."""

    if "time" in flat.columns:
        return flat["time"].isna()
    data_cols = [col for col in flat.columns if col not in LABEL_COLUMNS]
    return flat[data_cols].isna().all(axis=1)


def group_key(
    flat: pd.DataFrame,
    column: str = SUBJECT_COLUMN,
    break_label: Hashable | None = None,
) -> pd.Series:
    """
    Categorical grouping key per row, e.g. for colouring by subject.
    Break rows get ``break_label`` (missing by default). Categories follow
    first appearance in the table.
    """

    if column not in flat.columns:
        raise KeyError(f"Flattened table has no {column!r} column.")

    breaks = is_break_row(flat)
    labels = flat[column].where(~breaks)
    categories = list(pd.unique(labels.dropna()))
    if break_label is not None:
        labels = labels.where(~breaks, break_label)
        if break_label not in categories:
            categories.append(break_label)
    return pd.Series(pd.Categorical(labels, categories=categories), index=flat.index, name=column)
