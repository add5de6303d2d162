"""Exception hierarchy shared by the track data model and its collaborators."""

from __future__ import annotations

from typing import Iterable, List


class TrackError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(TrackError, ValueError):
    """Raised when a Track, Tracks or TracksCollection violates its invariants."""


class UndefinedMetricError(TrackError, ArithmeticError):
    """Raised when a segment metric cannot be derived for some segments.

    ``segments`` holds the positions of the affected connections, i.e. segment
    ``i`` joins point ``i`` and point ``i + 1``.
    """

    def __init__(self, metric: str, segments: Iterable[int], reason: str = "non-positive elapsed time") -> None:
        self.metric: str = metric
        self.segments: List[int] = [int(s) for s in segments]
        preview = ", ".join(str(s) for s in self.segments[:10])
        if len(self.segments) > 10:
            preview += " ..."
        super().__init__(f"{metric} undefined for segment(s) [{preview}]: {reason}")


class IngestionError(TrackError):
    """Raised when a source file or document cannot be turned into tracks."""

    def __init__(self, message: str, source: object = None) -> None:
        self.source = source
        if source is not None:
            message = f"{message} (source: {source})"
        super().__init__(message)


class GeometryError(TrackError):
    """Raised when a geometry operation (distance, reprojection, simplification) fails."""
