"""Track state and the per-object tracker protocol.

Trackers work on raw frame buffers and exchange boxes in tracker space:
normalized to the raw frame with a bottom-left origin.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import numpy as np

from ..core.geometry import BoundingBox


class TrackState(str, Enum):
    """Lifecycle of a track. ``LOST`` is terminal."""

    ACTIVE = "active"
    LOST = "lost"


@dataclass(frozen=True)
class TrackerObservation:
    """One advance result: tracker-space box and match confidence in [0, 1]."""

    box: BoundingBox
    confidence: float


class ObjectTracker(Protocol):
    """Short-horizon visual tracker for a single object."""

    def init(self, frame: np.ndarray, box: BoundingBox) -> bool:
        """Start tracking ``box`` in ``frame``; False if the box is unusable."""
        ...

    def update(self, frame: np.ndarray) -> Optional[TrackerObservation]:
        """Locate the object in the next frame, or None if it cannot."""
        ...


@dataclass
class Track:
    """A continuing identity for one object across frames.

    Attributes:
        object_id: Opaque id, assigned once.
        class_name: Class of the detection or selection that created it.
        current_box: Latest tracker-space box.
        last_confidence: Confidence of the latest update.
        tracker: Per-object tracker holding appearance state.
        frames_since_update: Consecutive failed advances.
        state: ACTIVE until retired.
        created_frame: Frame index the track was created on.
    """

    object_id: str
    class_name: str
    current_box: BoundingBox
    last_confidence: float
    tracker: ObjectTracker
    frames_since_update: int = 0
    state: TrackState = TrackState.ACTIVE
    created_frame: int = 0

    @property
    def is_active(self) -> bool:
        return self.state == TrackState.ACTIVE

    def mark_updated(self, observation: TrackerObservation) -> None:
        self.current_box = observation.box
        self.last_confidence = observation.confidence
        self.frames_since_update = 0

    def mark_missed(self, max_missed_frames: int) -> bool:
        """Count a failed advance; returns True if the track is now lost."""
        self.frames_since_update += 1
        if self.frames_since_update >= max_missed_frames:
            self.retire()
        return not self.is_active

    def retire(self) -> None:
        self.state = TrackState.LOST
