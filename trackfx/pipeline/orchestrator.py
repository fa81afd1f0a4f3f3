"""Drives periodic detection and continuous tracking across a video."""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from ..config import TrackingConfig
from ..core.coords import CoordinateMapper, flip_vertical
from ..core.geometry import BoundingBox
from ..core.io import BaseFrameSource
from ..detection.base import Detector
from ..errors import FrameUnavailable, InvalidInput, ProcessingCancelled
from ..tracking.base import ObjectTracker
from ..tracking.manager import TrackManager
from .results import ResultSource, TrackingResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Cooperative cancellation flag, checked once per frame."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class Seed:
    """A manually selected object to start tracking on ``frame_index``.

    ``box`` is in effective pixels with a top-left origin.
    """

    object_id: str
    frame_index: int
    box: BoundingBox
    class_name: str = "selected"


class PipelineOrchestrator:
    """Merges detection and tracking into one ordered result stream.

    For each frame, in ascending order: run the detector when the frame index
    is a multiple of the detection interval, re-anchor or spawn a track for
    every accepted detection, then advance all live tracks. Detection records
    precede tracking records within a frame.
    """

    def __init__(
        self,
        detector: Optional[Detector],
        tracker_factory: Callable[[], ObjectTracker],
        tracking: Optional[TrackingConfig] = None,
    ):
        self.detector = detector
        self.tracker_factory = tracker_factory
        self.tracking = tracking or TrackingConfig()

    def _new_manager(self) -> TrackManager:
        return TrackManager(
            self.tracker_factory,
            loss_threshold=self.tracking.loss_threshold,
            max_missed_frames=self.tracking.max_missed_frames,
            claim_iou_threshold=self.tracking.claim_iou_threshold,
            workers=self.tracking.workers,
        )

    def run(
        self,
        source: BaseFrameSource,
        target_class: Optional[str] = None,
        min_confidence: float = 0.5,
        detection_interval: int = 1,
        seeds: Sequence[Seed] = (),
        start_frame: int = 0,
        end_frame: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
        show_progress: bool = False,
    ) -> List[TrackingResult]:
        """Process frames ``[start_frame, end_frame)`` of ``source``.

        Args:
            source: Frame source for the video.
            target_class: Only detections of this class spawn tracks.
            min_confidence: Minimum detection confidence to spawn a track.
            detection_interval: Run the detector every N frames; 0 disables
                detection (tracking of seeds only).
            seeds: Manually selected objects.
            start_frame: First frame index.
            end_frame: One past the last frame index; defaults to the end.
            cancel_token: Checked before each frame.
            on_progress: Called with ``(frames_done, frames_total)``.
            show_progress: Show a tqdm progress bar.

        Returns:
            Results ordered by frame index, detection before tracking.

        Raises:
            InvalidInput: On a negative interval or out-of-range confidence.
            ProcessingCancelled: If cancelled; carries completed frames' results.
        """
        if detection_interval < 0:
            raise InvalidInput(f"Detection interval must be >= 0, got {detection_interval}")
        if not 0.0 <= min_confidence <= 1.0:
            raise InvalidInput(f"Minimum confidence must be in [0, 1], got {min_confidence}")

        end = source.frame_count if end_frame is None else min(end_frame, source.frame_count)
        start = max(0, start_frame)
        total = max(0, end - start)
        mapper = source.mapper
        seeds_by_frame = {}
        for seed in seeds:
            seeds_by_frame.setdefault(seed.frame_index, []).append(seed)

        logger.info(
            "Processing frames %d-%d (interval %d, class %s, min confidence %.2f)",
            start, end, detection_interval, target_class or "any", min_confidence,
        )
        results: List[TrackingResult] = []
        manager = self._new_manager()
        try:
            for done, index in enumerate(
                tqdm(range(start, end), desc="Tracking", unit="frame", disable=not show_progress),
                start=1,
            ):
                if cancel_token is not None and cancel_token.cancelled:
                    logger.info("Processing cancelled before frame %d", index)
                    raise ProcessingCancelled(results)
                try:
                    frame = source.get_frame(index)
                except FrameUnavailable as exc:
                    logger.warning("Skipping frame %d: %s", index, exc)
                else:
                    run_detection = detection_interval > 0 and index % detection_interval == 0
                    results.extend(self.process_frame(
                        manager, mapper, frame, index,
                        run_detection=run_detection,
                        target_class=target_class,
                        min_confidence=min_confidence,
                        seeds=seeds_by_frame.get(index, ()),
                    ))
                if on_progress is not None:
                    on_progress(done, total)
        finally:
            manager.close()

        logger.info("Produced %d results over %d frames", len(results), total)
        return results

    def process_frame(
        self,
        manager: TrackManager,
        mapper: CoordinateMapper,
        frame: np.ndarray,
        index: int,
        run_detection: bool = True,
        target_class: Optional[str] = None,
        min_confidence: float = 0.5,
        seeds: Sequence[Seed] = (),
    ) -> List[TrackingResult]:
        """Detection, seeding and the advance step for a single frame."""
        detection_results = []
        if run_detection and self.detector is not None:
            claimed = set()
            for detection in self.detector.detect(frame):
                if target_class and detection.class_name.lower() != target_class.lower():
                    continue
                if detection.confidence < min_confidence:
                    continue
                tracker_box = flip_vertical(detection.bounding_box)
                track = manager.claim(frame, tracker_box, detection.confidence, exclude=claimed)
                if track is None:
                    track = manager.spawn(
                        frame, tracker_box, detection.class_name, detection.confidence, index
                    )
                object_id = track.object_id if track is not None else str(uuid.uuid4())
                claimed.add(object_id)
                box, uncertain = mapper.normalized_to_effective(detection.bounding_box)
                detection_results.append(TrackingResult(
                    object_id=object_id,
                    frame_index=index,
                    class_name=detection.class_name,
                    confidence=detection.confidence,
                    source=ResultSource.DETECTION,
                    bounding_box=box,
                    transform_uncertain=uncertain,
                ))

        for seed in seeds:
            manager.spawn(
                frame, mapper.effective_to_tracker(seed.box), seed.class_name, 1.0, index,
                object_id=seed.object_id,
            )

        tracking_results = []
        for track, observation in manager.advance(frame, index):
            box, uncertain = mapper.tracker_to_effective(observation.box)
            if box.is_empty:
                continue
            tracking_results.append(TrackingResult(
                object_id=track.object_id,
                frame_index=index,
                class_name=track.class_name,
                confidence=observation.confidence,
                source=ResultSource.TRACKING,
                bounding_box=box,
                transform_uncertain=uncertain,
            ))
        return detection_results + tracking_results
