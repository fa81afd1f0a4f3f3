"""Public surface: load a model, select or detect objects, track them and render.

Every box crossing this module's boundary is in effective pixels (the
orientation-corrected frame) with a top-left origin.
"""

import contextlib
import logging
import os
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from appdirs import user_cache_dir

from .config import DetectionConfig, ModelConfig, OutputConfig, TrackingConfig
from .core.geometry import BoundingBox, Space
from .core.io import BaseFrameSource, load_image, open_source, save_image
from .detection.base import DetectedObject
from .detection.yolo import YOLODetector
from .effects.annotate import PALETTE, FrameAnnotator
from .effects.config import EffectConfig, parse_effect_config
from .effects.render import apply_effect
from .errors import FrameUnavailable, InvalidInput, ModelLoadError, ObjectNotFound
from .logger_config import APP_NAME
from .pipeline.orchestrator import CancellationToken, PipelineOrchestrator, Seed
from .pipeline.render import render_effects, render_visualization
from .pipeline.results import TrackingResult, group_by_frame
from .tracking.trackers import tracker_factory

logger = logging.getLogger(__name__)

Video = Union[str, BaseFrameSource]
BoxLike = Union[BoundingBox, Mapping[str, Any]]
StatusCallback = Callable[[float, str], None]


@dataclass(frozen=True)
class PreviewFrame:
    frame_index: int
    image_path: str
    bounding_box: BoundingBox


@dataclass
class ProcessVideoOptions:
    """Options for the complete ``process_video`` workflow."""

    target_class: Optional[str] = None
    min_confidence: float = 0.5
    detection_interval: int = 1
    effect: Optional[Union[EffectConfig, Mapping[str, Any]]] = None
    create_visualization: bool = False
    output_path: Optional[str] = None


@dataclass
class ProcessVideoResult:
    tracking_results: List[TrackingResult]
    processed_video_path: Optional[str] = None
    visualization_path: Optional[str] = None


@dataclass
class ProcessingHandle:
    """A submitted detect-and-track operation."""

    operation_id: str
    future: Future
    cancel_token: CancellationToken = field(repr=False)

    def cancel(self) -> None:
        self.cancel_token.cancel()


def _as_box(box: BoxLike) -> BoundingBox:
    if isinstance(box, BoundingBox):
        if box.space != Space.PIXEL:
            raise InvalidInput("Boxes passed to the API must be in pixels")
        return box
    if isinstance(box, Mapping):
        return BoundingBox.from_dict(box)
    if isinstance(box, (tuple, list)) and len(box) == 4:
        return BoundingBox.from_dict(dict(zip(("x", "y", "width", "height"), box)))
    raise InvalidInput(f"Malformed bounding box: {box!r}")


class VideoObjectTracker:
    """Detects, tracks and applies effects to objects in videos.

    Videos may be given as a path (``file://`` URIs accepted) or an open
    frame source, which is left open.
    """

    def __init__(
        self,
        model: Optional[ModelConfig] = None,
        detection: Optional[DetectionConfig] = None,
        tracking: Optional[TrackingConfig] = None,
        output: Optional[OutputConfig] = None,
        work_dir: Optional[str] = None,
        max_workers: int = 2,
        show_progress: bool = False,
    ):
        self.detection_config = detection or DetectionConfig()
        self.tracking_config = tracking or TrackingConfig()
        self.output_config = output or OutputConfig()
        self.detector = YOLODetector.from_config(model or ModelConfig(), self.detection_config)
        self.work_dir = work_dir or os.path.join(user_cache_dir(APP_NAME), "output")
        self._selections: Dict[str, Seed] = {}
        self._operations: Dict[str, CancellationToken] = {}
        self.show_progress = show_progress
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="trackfx")

    # Model

    def load_model(
        self, path: str, model_type: str = "yolo11", class_names: Optional[Sequence[str]] = None
    ) -> None:
        """Load a detection model. See ``YOLODetector.load_model``."""
        try:
            self.detector.load_model(path, model_type, class_names)
        except ModelLoadError:
            logger.error("Failed to load model from %s", path)
            raise

    def available_classes(self) -> List[str]:
        return list(self.detector.class_names)

    def _require_model(self) -> None:
        if not self.detector.is_loaded:
            raise ModelLoadError("No detection model loaded; call load_model first")

    # Sources

    @contextlib.contextmanager
    def _opened(self, video: Video) -> Iterator[BaseFrameSource]:
        source = open_source(video)
        try:
            yield source
        finally:
            if source is not video:
                source.close()

    def _output_path(self, prefix: str, suffix: str) -> str:
        os.makedirs(self.work_dir, exist_ok=True)
        return os.path.join(self.work_dir, f"{prefix}_{uuid.uuid4().hex}{suffix}")

    def get_video_resolution(self, video: Video) -> Dict[str, int]:
        """Orientation-corrected ``{"width", "height"}``."""
        with self._opened(video) as source:
            width, height = source.resolution
        return {"width": width, "height": height}

    # Manual selection

    def select_object(
        self,
        video: Video,
        frame_index: int,
        box: BoxLike,
        display_size: Optional[Tuple[float, float]] = None,
        class_name: str = "selected",
    ) -> str:
        """Register a manually selected region as a trackable object.

        Args:
            video: Video path or frame source.
            frame_index: Frame the selection was made on.
            box: Pixel box, in effective pixels or in ``display_size`` pixels.
            display_size: Size of the UI image the box was drawn on.
            class_name: Label for results of this object.

        Returns:
            The new object id.

        Raises:
            InvalidInput: If the frame index or box is invalid.
        """
        box = _as_box(box)
        with self._opened(video) as source:
            if not 0 <= frame_index < source.frame_count:
                raise InvalidInput(
                    f"Frame index {frame_index} outside 0..{source.frame_count - 1}"
                )
            if display_size is not None:
                box = source.mapper.from_display(box, display_size)
            box = box.clipped(*source.resolution)
        if box.is_empty:
            raise InvalidInput("Selected box has no area inside the frame")

        object_id = str(uuid.uuid4())
        self._selections[object_id] = Seed(object_id, frame_index, box, class_name)
        logger.info("Selected object %s on frame %d at %s", object_id, frame_index, box.to_dict())
        return object_id

    def _selection(self, object_id: str) -> Seed:
        try:
            return self._selections[object_id]
        except KeyError:
            raise ObjectNotFound(f"No selected object with id {object_id}") from None

    def _orchestrator(self, with_detector: bool = True) -> PipelineOrchestrator:
        factory = tracker_factory(self.tracking_config.tracker, self.tracking_config.search_scale)
        return PipelineOrchestrator(
            self.detector if with_detector else None, factory, self.tracking_config
        )

    def track_object(
        self,
        video: Video,
        object_id: str,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[TrackingResult]:
        """Track a selected object from its selection frame to the end of the video."""
        seed = self._selection(object_id)
        with self._opened(video) as source:
            return self._orchestrator(with_detector=False).run(
                source,
                detection_interval=0,
                seeds=[seed],
                start_frame=seed.frame_index,
                cancel_token=cancel_token,
                on_progress=on_progress,
                show_progress=self.show_progress,
            )

    # Detection

    def detect_objects_in_frame(self, video: Video, frame_index: int = 0) -> List[DetectedObject]:
        """Detect objects in one frame.

        Raises:
            ModelLoadError: If no model is loaded.
            FrameUnavailable: If the frame cannot be decoded.
        """
        self._require_model()
        with self._opened(video) as source:
            return self._detect_at(source, frame_index)

    def _detect_at(self, source: BaseFrameSource, frame_index: int) -> List[DetectedObject]:
        mapper = source.mapper
        frame = source.get_frame(frame_index)
        detections = []
        for detection in self.detector.detect(frame):
            box, _ = mapper.normalized_to_effective(detection.bounding_box)
            detections.append(replace(
                detection,
                bounding_box=box,
                frame_index=frame_index,
                time=source.time_of(frame_index),
            ))
        return detections

    def detect_objects_in_video(self, video: Video, max_frames: int = 30) -> List[DetectedObject]:
        """Detect objects in up to ``max_frames`` frames spread over the video.

        Samples are at least one second apart. Frames that fail to decode are
        skipped.
        """
        self._require_model()
        if max_frames < 1:
            raise InvalidInput(f"max_frames must be positive, got {max_frames}")
        detections = []
        with self._opened(video) as source:
            duration = source.duration
            step = max(1.0, duration / max_frames)
            indices = []
            for i in range(max_frames):
                seconds = i * step
                if i > 0 and seconds >= duration:
                    break
                index = source.index_at(seconds)
                if index not in indices:
                    indices.append(index)
            for index in indices:
                try:
                    detections.extend(self._detect_at(source, index))
                except FrameUnavailable as exc:
                    logger.warning("Skipping frame %d: %s", index, exc)
        logger.info("Detected %d objects across %d frames", len(detections), len(indices))
        return detections

    def detect_and_track_objects(
        self,
        video: Video,
        target_class: Optional[str] = None,
        min_confidence: float = 0.5,
        detection_interval: int = 1,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[TrackingResult]:
        """Run periodic detection and continuous tracking over the whole video.

        Raises:
            ModelLoadError: If no model is loaded.
            ProcessingCancelled: If ``cancel_token`` is cancelled.
        """
        self._require_model()
        with self._opened(video) as source:
            return self._orchestrator().run(
                source,
                target_class=target_class,
                min_confidence=min_confidence,
                detection_interval=detection_interval,
                cancel_token=cancel_token,
                on_progress=on_progress,
                show_progress=self.show_progress,
            )

    def submit_detect_and_track(self, video: Video, **kwargs) -> ProcessingHandle:
        """Run ``detect_and_track_objects`` in the background.

        The returned handle's future resolves to the result list, or raises
        ``ProcessingCancelled`` after ``cancel_processing``.
        """
        self._require_model()
        token = CancellationToken()
        operation_id = str(uuid.uuid4())
        self._operations[operation_id] = token
        future = self._executor.submit(
            self.detect_and_track_objects, video, cancel_token=token, **kwargs
        )
        future.add_done_callback(lambda _: self._operations.pop(operation_id, None))
        return ProcessingHandle(operation_id, future, token)

    def cancel_processing(self, operation_id: str) -> bool:
        """Cancel a submitted operation; False if it is unknown or finished."""
        token = self._operations.get(operation_id)
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested for %s", operation_id)
        return True

    # Previews

    def create_detection_preview(
        self,
        video: Video,
        frame_index: int,
        detections: Sequence[DetectedObject],
        output_path: Optional[str] = None,
    ) -> str:
        """Save the frame with detection boxes drawn and return the image path."""
        with self._opened(video) as source:
            frame = source.get_oriented_frame(frame_index)
        annotated = FrameAnnotator.annotate_detections(frame, detections)
        return save_image(annotated, output_path or self._output_path("detection_preview", ".jpg"))

    def generate_object_preview(self, video: Video, object_id: str, output_path: Optional[str] = None) -> str:
        """Save the selection frame with the selected box drawn."""
        seed = self._selection(object_id)
        with self._opened(video) as source:
            frame = source.get_oriented_frame(seed.frame_index).copy()
        FrameAnnotator.draw_box(frame, seed.box, seed.class_name, PALETTE[0])
        return save_image(frame, output_path or self._output_path("object_preview", ".jpg"))

    def generate_preview_frames(
        self, video: Video, results: Sequence[TrackingResult], frame_count: int = 5
    ) -> List[PreviewFrame]:
        """Save up to ``frame_count`` evenly stepped annotated frames that have results."""
        grouped = group_by_frame(results)
        indices = sorted(grouped)
        if not indices or frame_count < 1:
            return []
        step = max(1, len(indices) // frame_count)
        previews = []
        with self._opened(video) as source:
            for index in indices[::step][:frame_count]:
                try:
                    frame = source.get_oriented_frame(index)
                except FrameUnavailable as exc:
                    logger.warning("No preview for frame %d: %s", index, exc)
                    continue
                annotated = FrameAnnotator.annotate_results(frame, grouped[index])
                path = save_image(annotated, self._output_path(f"preview_{index}", ".jpg"))
                previews.append(PreviewFrame(index, path, grouped[index][0].bounding_box))
        return previews

    # Effects and export

    def apply_effect_to_frame(
        self,
        image_path: str,
        box: BoxLike,
        effect: Union[EffectConfig, Mapping[str, Any]],
        output_path: Optional[str] = None,
    ) -> str:
        """Apply an effect inside ``box`` of an image file and save the result."""
        effect = parse_effect_config(effect)
        image = load_image(image_path)
        processed = apply_effect(image, _as_box(box), effect)
        return save_image(processed, output_path or self._output_path("effect", ".jpg"))

    def process_video_with_effects(
        self,
        video: Video,
        results: Sequence[TrackingResult],
        effect: Union[EffectConfig, Mapping[str, Any]],
        output_path: Optional[str] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> str:
        """Export the video with ``effect`` applied to every result box.

        Raises:
            InvalidInput: If the effect is invalid or there are no results.
            ExportFailed: If the output cannot be written.
        """
        effect = parse_effect_config(effect)
        if not results:
            raise InvalidInput("No objects detected in video")
        with self._opened(video) as source:
            return render_effects(
                source,
                results,
                effect,
                output_path or self._output_path("processed", ".mp4"),
                fps=self.output_config.fps,
                codec=self.output_config.codec,
                on_progress=on_progress,
                show_progress=self.show_progress,
            )

    def create_tracking_visualization(
        self,
        video: Video,
        results: Sequence[TrackingResult],
        output_path: Optional[str] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> str:
        """Export the video with per-object colored boxes and labels."""
        with self._opened(video) as source:
            return render_visualization(
                source,
                results,
                output_path or self._output_path("tracking", ".mp4"),
                fps=self.output_config.fps,
                codec=self.output_config.codec,
                on_progress=on_progress,
                show_progress=self.show_progress,
            )

    def process_video(
        self,
        video: Video,
        options: Optional[ProcessVideoOptions] = None,
        on_progress: Optional[StatusCallback] = None,
    ) -> ProcessVideoResult:
        """Detect and track, then optionally render effects and a visualization.

        Progress runs 0-60 for detection and tracking, 60-90 for effects and
        90-100 for the visualization.
        """
        options = options or ProcessVideoOptions()

        def report(percent: float, status: str) -> None:
            if on_progress is not None:
                on_progress(percent, status)

        def stage(low: float, high: float, status: str):
            return lambda done, total: report(low + (high - low) * done / max(total, 1), status)

        report(0, "Starting object detection and tracking...")
        results = self.detect_and_track_objects(
            video,
            target_class=options.target_class,
            min_confidence=options.min_confidence,
            detection_interval=options.detection_interval,
            on_progress=stage(0, 60, "Detecting and tracking objects..."),
        )
        report(60, f"Found {len(results)} tracking results")

        processed_path = None
        if options.effect is not None:
            processed_path = self.process_video_with_effects(
                video, results, options.effect, options.output_path,
                on_progress=stage(60, 90, "Applying effects..."),
            )
        report(90, "Effects applied" if processed_path else "No effect requested")

        visualization_path = None
        if options.create_visualization:
            visualization_path = self.create_tracking_visualization(
                video, results, on_progress=stage(90, 100, "Creating tracking visualization..."),
            )
        report(100, "Processing completed")
        return ProcessVideoResult(results, processed_path, visualization_path)

    def close(self) -> None:
        """Cancel outstanding operations and stop the worker pool."""
        for token in list(self._operations.values()):
            token.cancel()
        self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
