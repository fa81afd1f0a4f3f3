"""Registry of live tracks and the per-frame advance step."""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Set, Tuple

import cv2
import numpy as np

from ..core.geometry import BoundingBox, intersection_over_union
from ..errors import ObjectNotFound
from .base import ObjectTracker, Track, TrackerObservation

logger = logging.getLogger(__name__)


class TrackManager:
    """Owns the active tracks and advances them one frame at a time.

    All tracks are advanced against the same frame before ``advance``
    returns. With ``workers > 1`` the per-track updates run on a thread pool;
    results are still reported in track creation order.

    Attributes:
        loss_threshold: Confidence below which an advance counts as failed.
        max_missed_frames: Consecutive failed advances that retire a track.
        claim_iou_threshold: IoU above which a detection re-anchors a track.
    """

    def __init__(
        self,
        tracker_factory: Callable[[], ObjectTracker],
        loss_threshold: float = 0.3,
        max_missed_frames: int = 1,
        claim_iou_threshold: float = 0.5,
        workers: int = 1,
    ):
        self.tracker_factory = tracker_factory
        self.loss_threshold = loss_threshold
        self.max_missed_frames = max(1, max_missed_frames)
        self.claim_iou_threshold = claim_iou_threshold
        self.workers = max(1, workers)
        self._tracks: Dict[str, Track] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if self.workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="trackfx-advance"
            )

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def active_tracks(self) -> List[Track]:
        with self._lock:
            return list(self._tracks.values())

    def get(self, object_id: str) -> Track:
        try:
            return self._tracks[object_id]
        except KeyError:
            raise ObjectNotFound(f"No active track with id {object_id}") from None

    def spawn(
        self,
        frame: np.ndarray,
        box: BoundingBox,
        class_name: str,
        confidence: float,
        frame_index: int,
        object_id: Optional[str] = None,
    ) -> Optional[Track]:
        """Start a new track on ``box`` (tracker space).

        Returns:
            The new track, or None if the tracker rejected the box.
        """
        tracker = self.tracker_factory()
        if box.is_empty or not tracker.init(frame, box):
            logger.debug("Tracker rejected box %s on frame %d", box, frame_index)
            return None
        track = Track(
            object_id=object_id or str(uuid.uuid4()),
            class_name=class_name,
            current_box=box,
            last_confidence=confidence,
            tracker=tracker,
            created_frame=frame_index,
        )
        with self._lock:
            self._tracks[track.object_id] = track
        logger.debug("Spawned track %s (%s) on frame %d", track.object_id, class_name, frame_index)
        return track

    def claim(
        self,
        frame: np.ndarray,
        box: BoundingBox,
        confidence: float,
        exclude: Optional[Set[str]] = None,
    ) -> Optional[Track]:
        """Re-anchor the best-overlapping live track on a fresh detection.

        Returns:
            The claimed track, or None if no track overlaps enough.
        """
        exclude = exclude or set()
        with self._lock:
            best, best_iou = None, self.claim_iou_threshold
            for track in self._tracks.values():
                if track.object_id in exclude:
                    continue
                overlap = intersection_over_union(track.current_box, box)
                if overlap > best_iou:
                    best, best_iou = track, overlap
            if best is None:
                return None
            tracker = self.tracker_factory()
            if tracker.init(frame, box):
                best.tracker = tracker
                best.mark_updated(TrackerObservation(box, confidence))
            return best

    def _advance_one(self, track: Track, frame: np.ndarray) -> Optional[TrackerObservation]:
        try:
            return track.tracker.update(frame)
        except (cv2.error, ValueError) as exc:
            logger.debug("Advance failed for track %s: %s", track.object_id, exc)
            return None

    def advance(self, frame: np.ndarray, frame_index: int) -> List[Tuple[Track, TrackerObservation]]:
        """Advance every live track against ``frame``.

        Returns:
            ``(track, observation)`` for each successful advance, in track
            creation order. Tracks that fail often enough are retired.
        """
        with self._lock:
            tracks = list(self._tracks.values())
            if self._executor is not None and len(tracks) > 1:
                observations = list(
                    self._executor.map(self._advance_one, tracks, [frame] * len(tracks))
                )
            else:
                observations = [self._advance_one(track, frame) for track in tracks]

            advanced = []
            for track, observation in zip(tracks, observations):
                failed = (
                    observation is None
                    or observation.box.is_empty
                    or observation.confidence < self.loss_threshold
                )
                if not failed:
                    track.mark_updated(observation)
                    advanced.append((track, observation))
                elif track.mark_missed(self.max_missed_frames):
                    del self._tracks[track.object_id]
                    logger.debug(
                        "Track %s lost on frame %d after %d missed frames",
                        track.object_id, frame_index, track.frames_since_update,
                    )
            return advanced

    def close(self) -> None:
        """Retire all tracks and stop the worker pool."""
        with self._lock:
            for track in self._tracks.values():
                track.retire()
            self._tracks.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
