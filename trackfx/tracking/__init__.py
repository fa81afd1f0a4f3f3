"""Per-object tracking and the active-track registry."""

from .base import ObjectTracker, Track, TrackerObservation, TrackState
from .manager import TrackManager
from .trackers import OpenCVTracker, TemplateTracker, create_tracker, tracker_factory

__all__ = [
    "ObjectTracker",
    "OpenCVTracker",
    "TemplateTracker",
    "Track",
    "TrackManager",
    "TrackState",
    "TrackerObservation",
    "create_tracker",
    "tracker_factory",
]
