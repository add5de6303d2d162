"""Plotting utilities for flattened trajectories.

Provides simple matplotlib helpers to draw flattened tables coloured by a
grouping key and to compare segment speed distributions across subjects.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd

from .flatten import SUBJECT_COLUMN, TRACK_ID_COLUMN, group_key
from .models import TracksCollection


def _default_group_column(flat: pd.DataFrame) -> str | None:
    for column in (SUBJECT_COLUMN, TRACK_ID_COLUMN):
        if column in flat.columns:
            return column
    return None


def plot_flat(
    flat: pd.DataFrame,
    by: str | None = None,
    x: str = "longitude",
    y: str = "latitude",
    ax: plt.Axes | None = None,
    title: str | None = None,
) -> plt.Axes:
    """
    Draw one line per group; break rows (missing coordinates) lift the pen.
    ``by`` defaults to ``subject``, else ``track_id``; a single-track table is one line.
    """

    if ax is None:
        _, ax = plt.subplots(figsize=(7, 7))

    if by is None:
        by = _default_group_column(flat)

    if by is None:
        ax.plot(flat[x], flat[y], "-", lw=1.0)
        labels = []
    else:
        key = group_key(flat, column=by)
        labels = list(key.cat.categories)
        cmap = plt.get_cmap("tab20")
        for idx, label in enumerate(labels):
            # Break rows carry the group's label in `by`, so they stay in the subset.
            subset = flat[flat[by] == label]
            ax.plot(subset[x], subset[y], "-", lw=1.0, color=cmap(idx % 20), label=str(label))

    ax.set_xlabel(x)
    ax.set_ylabel(y)
    if title:
        ax.set_title(title)
    if 0 < len(labels) <= 20:
        ax.legend(loc="best", fontsize=8)
    return ax


def plot_speed_histogram(
    collection: TracksCollection,
    ax: plt.Axes | None = None,
    bins: int = 50,
    max_speed: float | None = None,
) -> plt.Axes:
    """Overlay the per-subject distribution of segment speeds (m/s)."""

    if ax is None:
        _, ax = plt.subplots(figsize=(8, 4))

    connections = collection.connections_table()
    if max_speed is not None:
        connections = connections[connections["speed"] <= max_speed]
    for subject, group in connections.groupby(SUBJECT_COLUMN, sort=False):
        ax.hist(group["speed"].dropna(), bins=bins, histtype="step", label=str(subject))

    ax.set_xlabel("Speed (m/s)")
    ax.set_ylabel("Segments")
    ax.legend(loc="best", fontsize=8)
    return ax


def save_figure(fig: plt.Figure, output_path: Path) -> None:
    """Save and close a figure, creating parent directories."""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
