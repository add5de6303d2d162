import json

import numpy as np
import pandas as pd
import pytest

from trajectory_tracks.errors import IngestionError
from trajectory_tracks.io import (
    load_envirocar_tracks,
    load_geolife,
    load_geolife_user,
    read_envirocar_geojson,
    read_geolife_plt,
    save_dataframe,
)
from trajectory_tracks.models import Tracks, TracksCollection

PLT_HEADER = "Geolife trajectory\nWGS 84\nAltitude is in Feet\nReserved 3\n0,2,255,My Track,0,0,2,8421376\n0\n"


def _write_plt(path, rows):
    lines = [f"{lat},{lon},0,{alt},39744.12,{date},{clock}" for lat, lon, alt, date, clock in rows]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(PLT_HEADER + "\n".join(lines) + "\n", encoding="utf-8")
    return path


def _good_rows(n=3, start_second=0):
    return [
        (39.984702 + 0.0001 * i, 116.318417 + 0.0001 * i, 492, "2008-10-23", f"02:53:{start_second + 5 * i:02d}")
        for i in range(n)
    ]


def test_read_geolife_plt(tmp_path):
    rows = _good_rows(3)
    rows[1] = rows[1][:2] + (-777,) + rows[1][3:]
    points = read_geolife_plt(_write_plt(tmp_path / "a.plt", rows))
    assert list(points.columns) == ["time", "latitude", "longitude", "altitude"]
    assert len(points) == 3
    assert points["time"].iloc[0] == pd.Timestamp("2008-10-23 02:53:00")
    assert np.isnan(points["altitude"].iloc[1])
    assert points["altitude"].iloc[0] == 492


def test_read_geolife_plt_drops_out_of_range_rows(tmp_path):
    rows = _good_rows(4)
    rows[2] = (400.0, 116.3, 492, "2008-10-23", "02:53:10")
    points = read_geolife_plt(_write_plt(tmp_path / "a.plt", rows))
    assert len(points) == 3
    assert points["latitude"].max() < 90


def test_read_geolife_plt_without_points(tmp_path):
    path = tmp_path / "empty.plt"
    path.write_text(PLT_HEADER, encoding="utf-8")
    with pytest.raises(IngestionError):
        read_geolife_plt(path)


def test_load_geolife_skips_bad_trajectories_and_users(tmp_path):
    data = tmp_path / "Geolife" / "Data"
    _write_plt(data / "000" / "Trajectory" / "20081023025304.plt", _good_rows(3))
    _write_plt(data / "000" / "Trajectory" / "20081024020959.plt", _good_rows(5))
    # Duplicate timestamps make speed undefined: skipped under the raise policy.
    dup = _good_rows(2) + [_good_rows(2)[1]]
    _write_plt(data / "000" / "Trajectory" / "20081025000000.plt", dup)
    _write_plt(data / "001" / "Trajectory" / "20081026000000.plt", _good_rows(2))
    (data / "002" / "Trajectory").mkdir(parents=True)

    collection = load_geolife(tmp_path / "Geolife")
    assert isinstance(collection, TracksCollection)
    assert list(collection) == ["000", "001"]
    assert list(collection["000"]) == ["20081023025304", "20081024020959"]
    assert collection.n_points == 3 + 5 + 2


def test_load_geolife_user_flag_policy_keeps_duplicates(tmp_path):
    dup = _good_rows(2) + [_good_rows(2)[1]]
    _write_plt(tmp_path / "005" / "Trajectory" / "x.plt", dup)
    tracks = load_geolife_user(tmp_path / "005", undefined_speed="flag")
    assert tracks["x"].connections["speed_undefined"].tolist() == [False, True]


def test_load_geolife_filters_users_and_caps_tracks(tmp_path):
    for user in ("000", "001"):
        for idx in range(3):
            _write_plt(tmp_path / user / "Trajectory" / f"{idx}.plt", _good_rows(2))
    collection = load_geolife(tmp_path, users=["001"], max_tracks_per_user=2)
    assert list(collection) == ["001"]
    assert len(collection["001"]) == 2


def test_load_geolife_nothing_loadable(tmp_path):
    (tmp_path / "000").mkdir()
    with pytest.raises(IngestionError):
        load_geolife(tmp_path)
    with pytest.raises(FileNotFoundError):
        load_geolife(tmp_path / "missing")


def _envirocar_document(track_id="5e8b", n=3, encode_phenomenons=False):
    features = []
    for i in range(n):
        phenomenons = {
            "Speed": {"value": 30.0 + i, "unit": "km/h"},
            "CO2": {"value": 5.5, "unit": "kg/h"},
            "Intake Temperature": {"value": 20 + i, "unit": "c"},
        }
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [7.6 + 0.001 * i, 51.9]},
                "properties": {
                    "id": f"p{i}",
                    "time": f"2020-03-01T10:00:{10 * i:02d}Z",
                    "phenomenons": json.dumps(phenomenons) if encode_phenomenons else phenomenons,
                },
            }
        )
    return {"type": "FeatureCollection", "properties": {"id": track_id}, "features": features}


def test_read_envirocar_geojson_flattens_phenomenons():
    frame = read_envirocar_geojson(_envirocar_document(encode_phenomenons=True))
    assert {"time", "latitude", "longitude", "speed", "co2", "intake_temperature"} <= set(frame.columns)
    assert frame["speed"].tolist() == [30.0, 31.0, 32.0]
    assert frame.attrs["units"]["speed"] == "km/h"
    assert frame.attrs["track_id"] == "5e8b"
    assert str(frame["time"].dt.tz) == "UTC"


def test_read_envirocar_geojson_rejects_non_collection():
    with pytest.raises(IngestionError):
        read_envirocar_geojson({"type": "Feature"})


def test_load_envirocar_tracks_skips_broken_files(tmp_path):
    good = tmp_path / "good.geojson"
    good.write_text(json.dumps(_envirocar_document("abc")), encoding="utf-8")
    broken = tmp_path / "broken.geojson"
    broken.write_text("{not json", encoding="utf-8")
    tracks = load_envirocar_tracks([good, broken, tmp_path / "missing.geojson"])
    assert isinstance(tracks, Tracks)
    assert list(tracks) == ["abc"]
    assert len(tracks["abc"]) == 3


def test_load_envirocar_tracks_skips_undecodable_file(tmp_path):
    good = tmp_path / "good.geojson"
    good.write_text(json.dumps(_envirocar_document("abc")), encoding="utf-8")
    binary = tmp_path / "binary.geojson"
    binary.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(IngestionError):
        read_envirocar_geojson(binary)
    tracks = load_envirocar_tracks([good, binary])
    assert list(tracks) == ["abc"]


def test_load_envirocar_tracks_nothing_loadable(tmp_path):
    broken = tmp_path / "broken.geojson"
    broken.write_text("[]", encoding="utf-8")
    with pytest.raises(IngestionError):
        load_envirocar_tracks([broken])


def test_save_dataframe_creates_parents(tmp_path):
    path = tmp_path / "nested" / "out.csv"
    save_dataframe(pd.DataFrame({"a": [1, 2]}), path)
    assert pd.read_csv(path)["a"].tolist() == [1, 2]
