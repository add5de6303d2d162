"""Track, Tracks and TracksCollection value objects.

A :class:`Track` is one recorded trajectory: a time-ordered point table plus a
connections table describing every segment between consecutive points. A
:class:`Tracks` groups the tracks of one subject and a :class:`TracksCollection`
groups the Tracks of many subjects. Each level carries one summary row per
member.

All three are frozen dataclasses. Tables are copied on construction and again
on every access, member mappings are exposed read-only, and every invariant is
checked in ``__init__`` so an invalid object is never returned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, Sequence, Tuple

import pandas as pd

from .errors import ValidationError
from .geometry import coordinate_columns, reproject, simplify_indices
from .metrics import METRIC_COLUMNS, UNDEFINED_FLAG_COLUMN, derive_connections, summarise_collection, summarise_tracks


def _set(obj: object, name: str, value: Any) -> None:
    object.__setattr__(obj, name, value)


@dataclass(frozen=True, eq=False, repr=False, init=False)
class Track:
    """One trajectory: ``points`` (N rows) and ``connections`` (N-1 rows).

    ``points`` and ``connections`` return copies; editing them never reaches
    the track or its derived metrics.
    """

    _points: pd.DataFrame
    _connections: pd.DataFrame
    crs: str
    undefined_speed: str
    passthrough: Tuple[str, ...]

    def __init__(
        self,
        points: pd.DataFrame,
        connections: pd.DataFrame | None = None,
        crs: str = "EPSG:4326",
        undefined_speed: str = "raise",
        passthrough: Sequence[str] = (),
    ) -> None:
        if not isinstance(points, pd.DataFrame):
            raise ValidationError(f"Track points must be a DataFrame, got {type(points).__name__}")
        if points.empty:
            raise ValidationError("Track requires at least one point.")

        x_col, y_col = coordinate_columns(crs)
        missing = [col for col in ("time", x_col, y_col) if col not in points.columns]
        if missing:
            raise ValidationError(f"Track points missing required columns: {missing}")

        points = points.reset_index(drop=True).copy()
        if not pd.api.types.is_datetime64_any_dtype(points["time"]):
            try:
                points["time"] = pd.to_datetime(points["time"])
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Track time column is not parseable as datetimes: {exc}") from exc

        for col in ("time", x_col, y_col):
            n_null = int(points[col].isna().sum())
            if n_null:
                raise ValidationError(f"Track column {col!r} has {n_null} missing values.")

        if connections is not None and not isinstance(connections, pd.DataFrame):
            raise ValidationError(f"Track connections must be a DataFrame, got {type(connections).__name__}")

        passthrough = tuple(passthrough)
        connections = derive_connections(
            points,
            crs=crs,
            connections=connections,
            undefined_speed=undefined_speed,
            passthrough=passthrough,
        )
        if len(connections) + 1 != len(points):
            raise ValidationError(f"{len(connections)} connections do not match {len(points)} points.")

        _set(self, "_points", points)
        _set(self, "_connections", connections)
        _set(self, "crs", crs)
        _set(self, "undefined_speed", undefined_speed)
        _set(self, "passthrough", passthrough)

    @classmethod
    def from_arrays(
        cls,
        latitude: Sequence[float],
        longitude: Sequence[float],
        time: Sequence[object],
        crs: str = "EPSG:4326",
        undefined_speed: str = "raise",
        **attributes: Sequence[object],
    ) -> "Track":
        """Build a track from parallel coordinate, time and attribute sequences."""

        columns: Dict[str, Sequence[object]] = {"time": time, "latitude": latitude, "longitude": longitude}
        columns.update(attributes)
        lengths = {name: len(values) for name, values in columns.items()}
        if len(set(lengths.values())) > 1:
            raise ValidationError(f"Point sequences differ in length: {lengths}")
        return cls(pd.DataFrame(columns), crs=crs, undefined_speed=undefined_speed)

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return f"Track(n_points={len(self)}, crs={self.crs!r}, start={self.start_time}, end={self.end_time})"

    @property
    def points(self) -> pd.DataFrame:
        return self._points.copy()

    @property
    def connections(self) -> pd.DataFrame:
        return self._connections.copy()

    @property
    def coordinate_columns(self) -> Tuple[str, str]:
        return coordinate_columns(self.crs)

    @property
    def length(self) -> float:
        """Total length in metres."""

        return float(self._connections["length"].sum())

    @property
    def start_time(self) -> pd.Timestamp:
        return self._points["time"].iloc[0]

    @property
    def end_time(self) -> pd.Timestamp:
        return self._points["time"].iloc[-1]

    @property
    def duration(self) -> pd.Timedelta:
        return self.end_time - self.start_time

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) in the track's coordinate columns."""

        x_col, y_col = self.coordinate_columns
        return (
            float(self._points[x_col].min()),
            float(self._points[y_col].min()),
            float(self._points[x_col].max()),
            float(self._points[y_col].max()),
        )

    def flatten(self) -> pd.DataFrame:
        from .flatten import flatten_track

        return flatten_track(self)

    def to_crs(self, crs: str) -> "Track":
        """Return a copy with coordinates reprojected to ``crs`` and metrics rederived."""

        points = reproject(self._points, self.crs, crs)
        extra = self._extra_connection_columns()
        return Track(
            points,
            connections=extra,
            crs=crs,
            undefined_speed=self.undefined_speed,
            passthrough=self.passthrough,
        )

    def simplify(self, tolerance: float) -> "Track":
        """Return a copy keeping only the points retained by Douglas-Peucker (tolerance in metres)."""

        kept = simplify_indices(self._points, tolerance, self.crs)
        logging.debug("Simplified track from %d to %d points", len(self), len(kept))
        return Track(
            self._points.iloc[kept],
            crs=self.crs,
            undefined_speed=self.undefined_speed,
            passthrough=self.passthrough,
        )

    def _extra_connection_columns(self) -> pd.DataFrame:
        derived = {*METRIC_COLUMNS, UNDEFINED_FLAG_COLUMN, *self.passthrough}
        extra_cols = [col for col in self._connections.columns if col not in derived]
        return self._connections[extra_cols]


def _validated_members(items: Mapping | Iterable, member_type: type, kind: str) -> Dict[str, Any]:
    """Return an insertion-ordered dict after checking identifiers and member types."""

    pairs = items.items() if isinstance(items, Mapping) else items
    members: Dict[str, Any] = {}
    for pair in pairs:
        try:
            key, value = pair
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{kind} members must be (identifier, value) pairs, got {pair!r}") from exc
        if not isinstance(key, str) or not key.strip():
            raise ValidationError(f"{kind} identifier must be a non-null, non-empty string, got {key!r}")
        if key in members:
            raise ValidationError(f"Duplicate {kind} identifier: {key!r}")
        if not isinstance(value, member_type):
            raise ValidationError(
                f"{kind} member {key!r} must be a {member_type.__name__}, got {type(value).__name__}"
            )
        members[key] = value

    if not members:
        raise ValidationError(f"{kind} requires at least one {member_type.__name__}.")
    return members


def _validated_summary(summary: Any, keys: Sequence[str], kind: str, index_name: str) -> pd.DataFrame:
    if isinstance(summary, pd.DataFrame):
        frame = summary.copy()
    else:
        try:
            frame = pd.DataFrame(summary)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{kind} summary is not tabular: {exc}") from exc
    if len(frame) != len(keys):
        raise ValidationError(f"{kind} summary has {len(frame)} rows; expected {len(keys)}.")
    frame.index = pd.Index(list(keys), name=index_name)
    return frame


@dataclass(frozen=True, eq=False, repr=False, init=False)
class Tracks(Mapping):
    """The tracks of one subject, keyed by track identifier in insertion order."""

    _tracks: Mapping[str, Track]
    _summary: pd.DataFrame

    def __init__(self, tracks: Mapping[str, Track] | Iterable[Tuple[str, Track]], summary: Any = None) -> None:
        members = _validated_members(tracks, Track, "Tracks")
        if summary is None:
            summary = summarise_tracks(members)
        else:
            summary = _validated_summary(summary, list(members), "Tracks", "track_id")
        _set(self, "_tracks", MappingProxyType(members))
        _set(self, "_summary", summary)

    def __getitem__(self, key: str) -> Track:
        return self._tracks[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __repr__(self) -> str:
        return f"Tracks(n_tracks={len(self)}, n_points={self.n_points})"

    @property
    def tracks(self) -> Mapping[str, Track]:
        return self._tracks

    @property
    def summary(self) -> pd.DataFrame:
        """One row per track, indexed by ``track_id`` (a copy)."""

        return self._summary.copy()

    @property
    def n_points(self) -> int:
        return int(sum(len(track) for track in self._tracks.values()))

    def connections_table(self) -> pd.DataFrame:
        """All connections stacked, with a leading ``track_id`` column."""

        frames = []
        for track_id, track in self._tracks.items():
            frame = track.connections
            frame.insert(0, "track_id", track_id)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)

    def flatten(self) -> pd.DataFrame:
        from .flatten import flatten_tracks

        return flatten_tracks(self)

    def map(self, fn: Callable[[Track], Track]) -> "Tracks":
        """Return a new Tracks with ``fn`` applied to each track; summary is rederived."""

        return Tracks([(track_id, fn(track)) for track_id, track in self._tracks.items()])

    def to_crs(self, crs: str) -> "Tracks":
        return self.map(lambda track: track.to_crs(crs))

    def simplify(self, tolerance: float) -> "Tracks":
        return self.map(lambda track: track.simplify(tolerance))


@dataclass(frozen=True, eq=False, repr=False, init=False)
class TracksCollection(Mapping):
    """Tracks of several subjects, keyed by unique subject identifier."""

    _collection: Mapping[str, Tracks]
    _summary: pd.DataFrame

    def __init__(
        self,
        collection: Mapping[str, Tracks] | Iterable[Tuple[str, Tracks]],
        summary: Any = None,
    ) -> None:
        members = _validated_members(collection, Tracks, "TracksCollection")
        if summary is None:
            summary = summarise_collection(members)
        else:
            summary = _validated_summary(summary, list(members), "TracksCollection", "subject")
        _set(self, "_collection", MappingProxyType(members))
        _set(self, "_summary", summary)

    def __getitem__(self, key: str) -> Tracks:
        return self._collection[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._collection)

    def __len__(self) -> int:
        return len(self._collection)

    def __repr__(self) -> str:
        return f"TracksCollection(n_subjects={len(self)}, n_tracks={self.n_tracks}, n_points={self.n_points})"

    @property
    def collection(self) -> Mapping[str, Tracks]:
        return self._collection

    @property
    def summary(self) -> pd.DataFrame:
        """One row per subject, indexed by ``subject`` (a copy)."""

        return self._summary.copy()

    @property
    def n_tracks(self) -> int:
        return int(sum(len(tracks) for tracks in self._collection.values()))

    @property
    def n_points(self) -> int:
        return int(sum(tracks.n_points for tracks in self._collection.values()))

    def connections_table(self) -> pd.DataFrame:
        """All connections stacked, with leading ``subject`` and ``track_id`` columns."""

        frames = []
        for subject, tracks in self._collection.items():
            frame = tracks.connections_table()
            frame.insert(0, "subject", subject)
            frames.append(frame)
        return pd.concat(frames, ignore_index=True)

    def flatten(self) -> pd.DataFrame:
        from .flatten import flatten_collection

        return flatten_collection(self)

    def map(self, fn: Callable[[Tracks], Tracks]) -> "TracksCollection":
        """Return a new collection with ``fn`` applied to each subject; summary is rederived."""

        return TracksCollection([(subject, fn(tracks)) for subject, tracks in self._collection.items()])

    def to_crs(self, crs: str) -> "TracksCollection":
        return self.map(lambda tracks: tracks.to_crs(crs))

    def simplify(self, tolerance: float) -> "TracksCollection":
        return self.map(lambda tracks: tracks.simplify(tolerance))
