"""Geometry helpers delegating to pyproj and shapely.

Distances are geodesic (WGS84 ellipsoid) for geographic reference systems and
Euclidean for projected ones. Reprojection and Douglas-Peucker simplification
are thin wrappers so the data model never carries coordinate maths itself.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
import pandas as pd
from pyproj import CRS, Geod, Transformer
from pyproj.aoi import AreaOfInterest
from pyproj.database import query_utm_crs_info
from pyproj.exceptions import ProjError
from shapely.errors import GEOSException
from shapely.geometry import LineString

from .errors import GeometryError

GEOGRAPHIC_COLUMNS: Tuple[str, str] = ("longitude", "latitude")
PROJECTED_COLUMNS: Tuple[str, str] = ("x", "y")

_GEOD = Geod(ellps="WGS84")


def as_crs(crs: object) -> CRS:
    """Return a :class:`pyproj.CRS` for any user input pyproj understands."""

    try:
        return CRS.from_user_input(crs)
    except ProjError as exc:
        raise GeometryError(f"Unknown coordinate reference system: {crs!r}") from exc


def is_geographic(crs: object) -> bool:
    """Return ``True`` when ``crs`` uses angular (lat/long) coordinates."""

    return bool(as_crs(crs).is_geographic)


def coordinate_columns(crs: object) -> Tuple[str, str]:
    """Return the (x, y) column names a point table in ``crs`` must carry."""

    return GEOGRAPHIC_COLUMNS if is_geographic(crs) else PROJECTED_COLUMNS


def segment_lengths(points: pd.DataFrame, crs: object = "EPSG:4326") -> np.ndarray:
    """
    Return the N-1 distances in metres between consecutive points.
    Geographic tables use longitude/latitude, projected tables use x/y.
    """

    x_col, y_col = coordinate_columns(crs)
    if len(points) < 2:
        return np.zeros(0, dtype=float)

    xs = points[x_col].to_numpy(dtype=float)
    ys = points[y_col].to_numpy(dtype=float)
    if is_geographic(crs):
        _, _, dist = _GEOD.inv(xs[:-1], ys[:-1], xs[1:], ys[1:])
        lengths = np.asarray(dist, dtype=float)
    else:
        lengths = np.hypot(np.diff(xs), np.diff(ys))

    if not np.isfinite(lengths).all():
        raise GeometryError("Non-finite segment length; check coordinates for missing values.")
    return lengths


def reproject(points: pd.DataFrame, src_crs: object, dst_crs: object) -> pd.DataFrame:
    """
    Convert coordinates from src_crs to dst_crs and write them to the
    destination's coordinate columns. Source columns are kept.
    """

    src_cols = coordinate_columns(src_crs)
    dst_cols = coordinate_columns(dst_crs)
    transformer = Transformer.from_crs(as_crs(src_crs), as_crs(dst_crs), always_xy=True)
    try:
        new_x, new_y = transformer.transform(
            points[src_cols[0]].to_numpy(dtype=float),
            points[src_cols[1]].to_numpy(dtype=float),
        )
    except ProjError as exc:
        raise GeometryError(f"Reprojection {src_crs} -> {dst_crs} failed: {exc}") from exc

    new_x = np.asarray(new_x, dtype=float)
    new_y = np.asarray(new_y, dtype=float)
    if not (np.isfinite(new_x).all() and np.isfinite(new_y).all()):
        raise GeometryError(f"Reprojection {src_crs} -> {dst_crs} produced non-finite coordinates.")

    result = points.copy()
    result[dst_cols[0]] = new_x
    result[dst_cols[1]] = new_y
    logging.debug("Reprojected %d points from %s to %s", len(result), src_crs, dst_crs)
    return result


def utm_crs_for(latitude: float, longitude: float) -> str:
    """Return the WGS84 UTM zone CRS (e.g. ``"EPSG:32650"``) containing a location."""

    infos = query_utm_crs_info(
        datum_name="WGS 84",
        area_of_interest=AreaOfInterest(
            west_lon_degree=longitude,
            south_lat_degree=latitude,
            east_lon_degree=longitude,
            north_lat_degree=latitude,
        ),
    )
    if not infos:
        raise GeometryError(f"No UTM zone found for lat={latitude}, lon={longitude}")
    return f"{infos[0].auth_name}:{infos[0].code}"


def simplify_indices(points: pd.DataFrame, tolerance: float, crs: object = "EPSG:4326") -> List[int]:
    """Return row positions kept by Douglas-Peucker simplification.

    ``tolerance`` is in metres. Geographic tables are projected to the UTM zone
    of their first point before simplifying, so the tolerance keeps its unit.
    The first and last points are always kept.
    """

    n = len(points)
    if n <= 2:
        return list(range(n))
    if tolerance < 0:
        raise GeometryError("Simplification tolerance must be non-negative.")

    if is_geographic(crs):
        lon_col, lat_col = GEOGRAPHIC_COLUMNS
        planar_crs = utm_crs_for(float(points[lat_col].iloc[0]), float(points[lon_col].iloc[0]))
        planar = reproject(points, crs, planar_crs)
    else:
        planar = points
    coords = planar[list(PROJECTED_COLUMNS)].to_numpy(dtype=float)

    try:
        simplified = LineString(coords).simplify(tolerance, preserve_topology=False)
    except GEOSException as exc:
        raise GeometryError(f"Line simplification failed: {exc}") from exc

    if simplified.is_empty:
        # Degenerate lines (all points identical) collapse to nothing.
        return [0, n - 1]

    kept: List[int] = []
    pos = 0
    for cx, cy in simplified.coords:
        while pos < n and not (coords[pos, 0] == cx and coords[pos, 1] == cy):
            pos += 1
        if pos == n:
            raise GeometryError("Simplified vertex does not match any input point.")
        kept.append(pos)
        pos += 1

    if kept[0] != 0:
        kept.insert(0, 0)
    if kept[-1] != n - 1:
        kept.append(n - 1)
    return kept
