import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt

from trajectory_tracks.flatten import flatten
from trajectory_tracks.plots import plot_flat, plot_speed_histogram, save_figure


def test_plot_flat_draws_one_line_per_subject(make_collection, tmp_path):
    flat = flatten(make_collection([[3, 2], [4], [2]]))
    fig, ax = plt.subplots()
    plot_flat(flat, ax=ax, x="x", y="y")
    assert len(ax.get_lines()) == 3
    save_figure(fig, tmp_path / "figs" / "tracks.png")
    assert (tmp_path / "figs" / "tracks.png").exists()


def test_plot_speed_histogram(make_collection):
    fig, ax = plt.subplots()
    plot_speed_histogram(make_collection([[3], [4]]), ax=ax, bins=5)
    assert [t.get_text() for t in ax.get_legend().get_texts()] == ["000", "001"]
    plt.close(fig)


def test_plot_flat_defaults_to_track_id_for_tracks(make_collection):
    fig, ax = plt.subplots()
    plot_flat(flatten(make_collection([[3, 2, 4]])["000"]), ax=ax, x="x", y="y")
    assert [t.get_text() for t in ax.get_legend().get_texts()] == ["t0", "t1", "t2"]
    plt.close(fig)


def test_plot_flat_single_track_is_one_line(make_track):
    fig, ax = plt.subplots()
    plot_flat(flatten(make_track(4)), ax=ax, x="x", y="y")
    assert len(ax.get_lines()) == 1
    assert ax.get_legend() is None
    plt.close(fig)
