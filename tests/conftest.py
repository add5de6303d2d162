import numpy as np
import pandas as pd
import pytest

from trajectory_tracks.models import Track, Tracks, TracksCollection

PLANAR_CRS = "EPSG:32650"


def _planar_points(n_points: int, start: str = "2008-10-23 02:53:04", step_s: int = 5, offset: float = 0.0):
    times = pd.date_range(start, periods=n_points, freq=f"{step_s}s")
    return pd.DataFrame(
        {
            "time": times,
            "x": offset + 3.0 * np.arange(n_points),
            "y": offset + 4.0 * np.arange(n_points),
            "altitude": np.linspace(100.0, 120.0, n_points),
        }
    )


@pytest.fixture
def planar_points():
    return _planar_points


@pytest.fixture
def make_track():
    def factory(n_points: int = 4, **kwargs) -> Track:
        return Track(_planar_points(n_points, **kwargs), crs=PLANAR_CRS)

    return factory


@pytest.fixture
def make_collection(make_track):
    def factory(tracks_per_subject) -> TracksCollection:
        members = []
        for s_idx, sizes in enumerate(tracks_per_subject):
            tracks = Tracks([(f"t{t_idx}", make_track(n)) for t_idx, n in enumerate(sizes)])
            members.append((f"{s_idx:03d}", tracks))
        return TracksCollection(members)

    return factory
