import pandas as pd

from trajectory_tracks.flatten import flatten, group_key, is_break_row
from trajectory_tracks.models import Tracks


def test_flatten_track_reproduces_points(make_track):
    track = make_track(5)
    flat = flatten(track)
    pd.testing.assert_frame_equal(flat, track.points)


def test_flatten_track_does_not_mutate(make_track):
    track = make_track(3)
    flat = track.flatten()
    flat.loc[0, "x"] = -1.0
    assert track.points.loc[0, "x"] == 0.0


def test_flatten_tracks_separates_with_break_rows(make_track):
    tracks = Tracks([("a", make_track(2)), ("b", make_track(3)), ("c", make_track(1))])
    flat = flatten(tracks)
    assert len(flat) == 6 + 2
    assert is_break_row(flat).tolist() == [False, False, True, False, False, False, True, False]
    assert flat.loc[~is_break_row(flat), "track_id"].tolist() == ["a", "a", "b", "b", "b", "c"]
    assert flat.loc[is_break_row(flat)].drop(columns="track_id").isna().all().all()


def test_flatten_collection_row_count(make_collection):
    sizes = [[3, 2], [4], [1, 1, 1]]
    flat = flatten(make_collection(sizes))
    n_points = sum(sum(s) for s in sizes)
    n_tracks = sum(len(s) for s in sizes)
    assert len(flat) == n_points + n_tracks
    assert int(is_break_row(flat).sum()) == n_tracks


def test_flatten_collection_break_rows_belong_to_preceding_subject(make_collection):
    flat = flatten(make_collection([[2], [2]]))
    assert flat["subject"].tolist() == ["000"] * 3 + ["001"] * 3
    assert is_break_row(flat).tolist() == [False, False, True, False, False, True]


def test_flatten_preserves_point_values_and_order(make_collection):
    collection = make_collection([[3, 2]])
    flat = flatten(collection)
    points = flat[~is_break_row(flat)]
    expected = pd.concat([t.points for t in collection["000"].values()], ignore_index=True)
    assert points["time"].tolist() == expected["time"].tolist()
    assert points["x"].tolist() == expected["x"].tolist()
    assert pd.api.types.is_datetime64_any_dtype(flat["time"])


def test_seven_subjects_give_seven_labels(make_collection):
    flat = flatten(make_collection([[2, 3]] * 7))
    key = group_key(flat)
    assert key.dropna().nunique() == 7
    assert key[is_break_row(flat)].isna().all()


def test_group_key_break_label(make_collection):
    flat = flatten(make_collection([[2], [2]]))
    key = group_key(flat, break_label="<break>")
    assert list(key.cat.categories) == ["000", "001", "<break>"]
    assert (key[is_break_row(flat)] == "<break>").all()
