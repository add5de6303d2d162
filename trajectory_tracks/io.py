"""Input/output helpers for GeoLife and EnviroCar trajectories.

Covers GeoLife ``.plt`` parsing with sentinel and coordinate cleanup, EnviroCar
GeoJSON parsing with nested phenomenon attributes, assembly of the parsed
tables into Tracks / TracksCollection objects, and CSV saving.

Failures are contained per file (GeoLife trajectory, EnviroCar track) and per
subject (GeoLife user): the offending source is logged and skipped, and only a
source that yields nothing at all raises :class:`IngestionError`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from .errors import IngestionError, TrackError
from .models import Track, Tracks, TracksCollection

GEOLIFE_HEADER_LINES = 6
GEOLIFE_COLUMNS: List[str] = ["latitude", "longitude", "zero", "altitude", "days", "date", "clock"]
GEOLIFE_ALTITUDE_SENTINEL = -777
LATITUDE_RANGE: Tuple[float, float] = (-90.0, 90.0)
LONGITUDE_RANGE: Tuple[float, float] = (-180.0, 360.0)


def drop_invalid_coordinates(df: pd.DataFrame, source: object = None) -> pd.DataFrame:
    """Drop rows whose latitude/longitude fall outside the plausible range."""

    valid = df["latitude"].between(*LATITUDE_RANGE) & df["longitude"].between(*LONGITUDE_RANGE)
    dropped = int((~valid).sum())
    if dropped:
        logging.warning("Dropped %d rows with out-of-range coordinates from %s", dropped, source)
    return df[valid].reset_index(drop=True)


def read_geolife_plt(path: str | Path) -> pd.DataFrame:
    """
    Parse one GeoLife ``.plt`` file into ``time, latitude, longitude, altitude``.
    Altitude stays in feet; the -777 sentinel becomes missing.
    """

    path = Path(path)
    try:
        raw = pd.read_csv(
            path,
            skiprows=GEOLIFE_HEADER_LINES,
            header=None,
            names=GEOLIFE_COLUMNS,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise IngestionError(f"Unreadable GeoLife file: {exc}", source=path) from exc

    if raw.empty:
        raise IngestionError("GeoLife file contains no points", source=path)

    for col in ("latitude", "longitude", "altitude"):
        raw[col] = pd.to_numeric(raw[col], errors="coerce")
    raw["time"] = pd.to_datetime(
        raw["date"].astype(str) + " " + raw["clock"].astype(str),
        format="%Y-%m-%d %H:%M:%S",
        errors="coerce",
    )

    unparsed = raw["time"].isna() | raw["latitude"].isna() | raw["longitude"].isna()
    if unparsed.any():
        logging.warning("Dropped %d malformed rows from %s", int(unparsed.sum()), path)
        raw = raw[~unparsed].copy()

    raw["altitude"] = raw["altitude"].mask(raw["altitude"] == GEOLIFE_ALTITUDE_SENTINEL)
    points = drop_invalid_coordinates(raw[["time", "latitude", "longitude", "altitude"]], source=path)
    logging.debug("Read %d points from %s", len(points), path)
    return points


def _trajectory_dir(user_dir: Path) -> Path:
    nested = user_dir / "Trajectory"
    return nested if nested.is_dir() else user_dir


def load_geolife_user(
    user_dir: str | Path,
    max_tracks: int | None = None,
    undefined_speed: str = "raise",
) -> Tracks:
    """Build the Tracks of one GeoLife user, one Track per ``.plt`` file (keyed by file stem)."""

    user_dir = Path(user_dir)
    files = sorted(_trajectory_dir(user_dir).glob("*.plt"))
    if max_tracks is not None and max_tracks > 0:
        files = files[:max_tracks]
    if not files:
        raise IngestionError("No .plt files found", source=user_dir)

    members: List[Tuple[str, Track]] = []
    for plt_file in files:
        try:
            members.append((plt_file.stem, Track(read_geolife_plt(plt_file), undefined_speed=undefined_speed)))
        except TrackError as exc:
            logging.warning("Skipping trajectory %s: %s", plt_file, exc)

    if not members:
        raise IngestionError("No valid trajectories", source=user_dir)
    logging.info("Loaded %d/%d trajectories for user %s", len(members), len(files), user_dir.name)
    return Tracks(members)


def load_geolife(
    data_dir: str | Path,
    users: Sequence[str] | None = None,
    max_tracks_per_user: int | None = None,
    undefined_speed: str = "raise",
) -> TracksCollection:
    """
    Build a TracksCollection from a GeoLife ``Data`` directory (or its parent).
    Users are the sub-directory names, sorted; ``users`` restricts the selection.
    """

    data_dir = Path(data_dir)
    if (data_dir / "Data").is_dir():
        data_dir = data_dir / "Data"
    if not data_dir.is_dir():
        raise FileNotFoundError(f"GeoLife data directory not found: {data_dir}")

    user_dirs = sorted(p for p in data_dir.iterdir() if p.is_dir())
    if users:
        wanted = {str(u) for u in users}
        user_dirs = [p for p in user_dirs if p.name in wanted]
        missing = wanted - {p.name for p in user_dirs}
        if missing:
            logging.warning("Requested GeoLife users not found: %s", sorted(missing))

    members: List[Tuple[str, Tracks]] = []
    for user_dir in user_dirs:
        try:
            members.append(
                (
                    user_dir.name,
                    load_geolife_user(user_dir, max_tracks=max_tracks_per_user, undefined_speed=undefined_speed),
                )
            )
        except TrackError as exc:
            logging.warning("Skipping user %s: %s", user_dir.name, exc)

    if not members:
        raise IngestionError("No GeoLife users could be loaded", source=data_dir)
    logging.info("Loaded %d GeoLife users from %s", len(members), data_dir)
    return TracksCollection(members)


def _column_name(phenomenon: str) -> str:
    """``"Intake Temperature"`` -> ``"intake_temperature"``."""

    return re.sub(r"[^0-9a-z]+", "_", phenomenon.strip().lower()).strip("_")


def _as_mapping(value: Any, what: str, source: object) -> Dict[str, Any]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise IngestionError(f"{what} is not valid JSON: {exc}", source=source) from exc
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise IngestionError(f"{what} must be an object, got {type(value).__name__}", source=source)
    return dict(value)


def _load_geojson(source: str | Path | Mapping[str, Any]) -> Tuple[Dict[str, Any], object]:
    if isinstance(source, Mapping):
        return dict(source), "<document>"
    path = Path(source)
    try:
        with path.open("r", encoding="utf-8") as fh:
            return _as_mapping(json.load(fh), "GeoJSON document", path), path
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise IngestionError(f"Invalid GeoJSON: {exc}", source=path) from exc
    except OSError as exc:
        raise IngestionError(f"Cannot open GeoJSON file: {exc}", source=path) from exc


def read_envirocar_geojson(source: str | Path | Mapping[str, Any]) -> pd.DataFrame:
    """Parse an EnviroCar track (GeoJSON FeatureCollection of Point features).

    Every feature's ``properties.phenomenons`` maps a phenomenon name to
    ``{"value": ..., "unit": ...}`` and may itself be a JSON-encoded string. Each
    phenomenon becomes one numeric column (snake_case name); units are kept in
    ``frame.attrs["units"]`` and the track id in ``frame.attrs["track_id"]``.
    """

    document, origin = _load_geojson(source)
    features = document.get("features")
    if document.get("type") != "FeatureCollection" or not isinstance(features, list):
        raise IngestionError("Expected a GeoJSON FeatureCollection with a features list", source=origin)

    rows: List[Dict[str, Any]] = []
    units: Dict[str, str] = {}
    for pos, feature in enumerate(features):
        feature = _as_mapping(feature, f"feature {pos}", origin)
        geometry = _as_mapping(feature.get("geometry"), f"feature {pos} geometry", origin)
        coords = geometry.get("coordinates")
        if geometry.get("type") != "Point" or not isinstance(coords, (list, tuple)) or len(coords) < 2:
            raise IngestionError(f"Feature {pos} is not a Point", source=origin)

        properties = _as_mapping(feature.get("properties"), f"feature {pos} properties", origin)
        row: Dict[str, Any] = {
            "time": properties.get("time"),
            "latitude": coords[1],
            "longitude": coords[0],
            "point_id": properties.get("id"),
        }
        phenomenons = _as_mapping(properties.get("phenomenons"), f"feature {pos} phenomenons", origin)
        for name, reading in phenomenons.items():
            column = _column_name(name)
            if isinstance(reading, Mapping):
                row[column] = reading.get("value")
                if reading.get("unit") is not None:
                    units.setdefault(column, str(reading["unit"]))
            else:
                row[column] = reading
        rows.append(row)

    if not rows:
        raise IngestionError("EnviroCar track has no features", source=origin)

    frame = pd.DataFrame(rows)
    frame["time"] = pd.to_datetime(frame["time"], utc=True, errors="coerce")
    for column in frame.columns.difference(["time", "point_id"]):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")

    unparsed = frame["time"].isna() | frame["latitude"].isna() | frame["longitude"].isna()
    if unparsed.any():
        logging.warning("Dropped %d malformed EnviroCar points from %s", int(unparsed.sum()), origin)
        frame = frame[~unparsed]
    frame = drop_invalid_coordinates(frame.sort_values("time", kind="stable"), source=origin)

    track_props = _as_mapping(document.get("properties"), "track properties", origin)
    frame.attrs["units"] = units
    frame.attrs["track_id"] = track_props.get("id")
    return frame


def load_envirocar_tracks(
    paths: Iterable[str | Path],
    undefined_speed: str = "raise",
) -> Tracks:
    """
    Build one Tracks from EnviroCar GeoJSON files, keyed by track id
    (``properties.id`` of the collection, else the file stem).
    """

    members: Dict[str, Track] = {}
    n_files = 0
    for path in paths:
        n_files += 1
        path = Path(path)
        try:
            points = read_envirocar_geojson(path)
            track = Track(points, undefined_speed=undefined_speed)
        except TrackError as exc:
            logging.warning("Skipping EnviroCar track %s: %s", path, exc)
            continue

        track_id = str(points.attrs.get("track_id") or path.stem)
        if track_id in members:
            logging.warning("Duplicate EnviroCar track id %s in %s; skipping", track_id, path)
            continue
        members[track_id] = track

    if not members:
        raise IngestionError(f"None of {n_files} EnviroCar files could be loaded")
    logging.info("Loaded %d/%d EnviroCar tracks", len(members), n_files)
    return Tracks(members)


def save_dataframe(df: pd.DataFrame, path: str | Path, index: bool = False) -> None:
    """Persist a DataFrame to CSV."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)
    logging.info("Saved %d rows to %s", len(df), path)
