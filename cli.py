"""CLI entry point for the trajectory tracks pipeline.

Orchestrates loading (GeoLife or EnviroCar), optional simplification,
flattening, summary export, time-bucket aggregation and optional plotting,
honoring the caps from the config.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict

import matplotlib

matplotlib.use("Agg")

from trajectory_tracks.aggregation import bucket_collection, speed_profile
from trajectory_tracks.config import get_nested, load_config
from trajectory_tracks.flatten import flatten
from trajectory_tracks.io import load_envirocar_tracks, load_geolife, save_dataframe
from trajectory_tracks.models import TracksCollection


def configure_logging(log_cfg: Dict[str, object], run_name: str = "tracks") -> Path:
    """Log to console and to ``<dir>/<filename>``, by default ``tracks_<run_name>.log``."""

    log_dir = Path(log_cfg.get("dir", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / str(log_cfg.get("filename") or f"tracks_{run_name}.log")
    level_name = str(log_cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s - %(levelname)s - %(message)s"
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(fmt))
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(fmt))

    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    root.info("Logging run %s to %s (level=%s)", run_name, log_path, level_name)
    return log_path


def load_collection(input_cfg: Dict[str, object], undefined_speed: str) -> TracksCollection:
    """Load the configured dataset as a TracksCollection."""

    dataset = str(input_cfg.get("dataset", "geolife")).lower()
    path = Path(str(input_cfg.get("path", "data/geolife")))

    if dataset == "geolife":
        return load_geolife(
            path,
            users=input_cfg.get("users") or None,
            max_tracks_per_user=input_cfg.get("max_tracks_per_user"),
            undefined_speed=undefined_speed,
        )
    if dataset == "envirocar":
        pattern = str(input_cfg.get("glob", "*.geojson"))
        files = sorted(path.glob(pattern)) if path.is_dir() else [path]
        if not files:
            raise FileNotFoundError(f"No EnviroCar files matched {path / pattern}")
        subject = str(input_cfg.get("subject", "envirocar"))
        return TracksCollection({subject: load_envirocar_tracks(files, undefined_speed=undefined_speed)})
    raise ValueError(f"Unsupported dataset: {dataset}")


def main(config_path: str = "config/tracks.yaml") -> None:
    cfg = load_config(config_path)
    output_cfg = cfg.get("output", {}) or {}
    run_name = str(output_cfg.get("run_name", "tracks"))

    configure_logging(cfg.get("logging", {}) or {}, run_name=run_name)

    input_cfg = cfg.get("input", {}) or {}
    undefined_speed = str(get_nested(cfg, "metrics.undefined_speed", "flag"))
    collection = load_collection(input_cfg, undefined_speed)
    logging.info(
        "Loaded %d subjects, %d tracks, %d points",
        len(collection),
        collection.n_tracks,
        collection.n_points,
    )

    tolerance = get_nested(cfg, "simplify.tolerance_m", None)
    if tolerance:
        before = collection.n_points
        collection = collection.simplify(float(tolerance))
        logging.info("Simplified with tolerance %.1f m: %d -> %d points", float(tolerance), before, collection.n_points)

    output_dir = Path(output_cfg.get("dir", "output"))
    csv_dir = output_dir / "csv"
    plots_dir = output_dir / "figures"
    logging.info("Using output directory %s (run=%s)", output_dir, run_name)

    flat = flatten(collection)
    if output_cfg.get("save_flat", True):
        save_dataframe(flat, csv_dir / f"flat_{run_name}.csv")

    if output_cfg.get("save_summary", True):
        save_dataframe(collection.summary, csv_dir / f"subjects_{run_name}.csv", index=True)
        for subject, tracks in collection.items():
            summary = tracks.summary.join(speed_profile(tracks))
            save_dataframe(summary, csv_dir / "tracks" / f"{subject}_{run_name}.csv", index=True)

    agg_cfg = cfg.get("aggregation", {}) or {}
    agg_column = agg_cfg.get("column")
    if agg_column:
        bucketed = bucket_collection(
            collection,
            column=str(agg_column),
            freq=str(agg_cfg.get("freq", "5min")),
            how=str(agg_cfg.get("how", "mean")),
        )
        save_dataframe(bucketed, csv_dir / f"bucketed_{agg_column}_{run_name}.csv")

    if output_cfg.get("save_plots", False):
        import matplotlib.pyplot as plt

        from trajectory_tracks.plots import plot_flat, plot_speed_histogram, save_figure

        fig, ax = plt.subplots(figsize=(7, 7))
        plot_flat(flat, ax=ax, title=f"Tracks by subject ({run_name})")
        save_figure(fig, plots_dir / f"tracks_{run_name}.png")

        fig, ax = plt.subplots(figsize=(8, 4))
        plot_speed_histogram(collection, ax=ax, max_speed=get_nested(cfg, "plots.max_speed", None))
        save_figure(fig, plots_dir / f"speeds_{run_name}.png")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Trajectory tracks pipeline.")
    parser.add_argument(
        "-c",
        "--config",
        default="config/tracks.yaml",
        help="Path to YAML config file.",
    )
    args = parser.parse_args()
    main(args.config)
