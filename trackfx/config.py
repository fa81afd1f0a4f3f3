"""Configuration dataclasses for trackfx."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


MODEL_TYPES = ("yolo11", "custom")
TRACKER_NAMES = ("template", "csrt", "kcf", "mil")


@dataclass
class ModelConfig:
    """Configuration for the detection model."""

    model_path: Optional[str] = None
    model_type: str = "yolo11"
    class_names: Optional[List[str]] = None
    input_size: int = 640
    num_classes: Optional[int] = None


@dataclass
class DetectionConfig:
    """Configuration for object detection.

    Attributes:
        objectness_threshold: Gate applied to each anchor's objectness score.
        confidence_threshold: Minimum objectness * class score to report.
        iou_threshold: IoU above which NMS drops the weaker box.
        interval: Run detection every N frames.
        min_confidence: Caller-side filter applied before spawning tracks.
        target_class: Only spawn tracks for this class name when set.
        num_mask_coefficients: Trailing mask coefficients per anchor.
        box_scale: Divisor bringing raw boxes into 0..1; the input size for
            models that emit boxes in input pixels.
        device: Torch device for inference.
    """

    objectness_threshold: float = 0.1
    confidence_threshold: float = 0.1
    iou_threshold: float = 0.5
    interval: int = 1
    min_confidence: float = 0.5
    target_class: Optional[str] = None
    num_mask_coefficients: int = 32
    box_scale: float = 1.0
    device: str = "cpu"


@dataclass
class TrackingConfig:
    """Configuration for per-object tracking.

    Attributes:
        tracker: Tracker backend name.
        loss_threshold: Confidence floor below which an advance counts as failed.
        max_missed_frames: Consecutive failed advances before a track is lost.
        claim_iou_threshold: IoU at which a fresh detection re-anchors an
            existing track instead of spawning a new one.
        search_scale: Search window size relative to the previous box.
        workers: Threads used to advance tracks within one frame.
    """

    tracker: str = "template"
    loss_threshold: float = 0.3
    max_missed_frames: int = 1
    claim_iou_threshold: float = 0.5
    search_scale: float = 2.0
    workers: int = 1


@dataclass
class OutputConfig:
    """Configuration for output video and result files."""

    fps: Optional[float] = None
    codec: str = "mp4v"
    results_path: Optional[str] = None


@dataclass
class ProcessingConfig:
    """Combined configuration for one CLI run."""

    command: str
    input_path: str
    output_path: Optional[str]
    model: ModelConfig
    detection: DetectionConfig
    tracking: TrackingConfig
    output: OutputConfig
    effect: Optional[Dict[str, Any]] = None
    select_box: Optional[Tuple[float, float, float, float]] = None
    frame_index: int = 0
    log_file: Optional[str] = None
    verbose: bool = False
    show_progress: bool = True

    @classmethod
    def from_args(
        cls,
        command: str,
        input_path: str,
        output_path: Optional[str] = None,
        # Model config
        model_path: Optional[str] = None,
        model_type: str = "yolo11",
        class_names: Optional[List[str]] = None,
        input_size: int = 640,
        num_classes: Optional[int] = None,
        # Detection config
        objectness_threshold: float = 0.1,
        confidence_threshold: float = 0.1,
        iou_threshold: float = 0.5,
        detection_interval: int = 1,
        min_confidence: float = 0.5,
        target_class: Optional[str] = None,
        box_scale: float = 1.0,
        device: str = "cpu",
        # Tracking config
        tracker: str = "template",
        loss_threshold: float = 0.3,
        max_missed_frames: int = 1,
        claim_iou_threshold: float = 0.5,
        workers: int = 1,
        # Output config
        fps: Optional[float] = None,
        results_path: Optional[str] = None,
        effect: Optional[Dict[str, Any]] = None,
        select_box: Optional[Tuple[float, float, float, float]] = None,
        frame_index: int = 0,
        log_file: Optional[str] = None,
        verbose: bool = False,
        show_progress: bool = True,
    ) -> "ProcessingConfig":
        """Create ProcessingConfig from CLI arguments."""
        return cls(
            command=command,
            input_path=input_path,
            output_path=output_path,
            model=ModelConfig(
                model_path=model_path,
                model_type=model_type,
                class_names=class_names,
                input_size=input_size,
                num_classes=num_classes,
            ),
            detection=DetectionConfig(
                objectness_threshold=objectness_threshold,
                confidence_threshold=confidence_threshold,
                iou_threshold=iou_threshold,
                interval=detection_interval,
                min_confidence=min_confidence,
                target_class=target_class,
                box_scale=box_scale,
                device=device,
            ),
            tracking=TrackingConfig(
                tracker=tracker,
                loss_threshold=loss_threshold,
                max_missed_frames=max_missed_frames,
                claim_iou_threshold=claim_iou_threshold,
                workers=workers,
            ),
            output=OutputConfig(fps=fps, results_path=results_path),
            effect=effect,
            select_box=select_box,
            frame_index=frame_index,
            log_file=log_file,
            verbose=verbose,
            show_progress=show_progress,
        )
