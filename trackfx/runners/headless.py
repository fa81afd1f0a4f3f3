"""Headless batch processing runner."""

import logging
from typing import Any, List

from ..api import VideoObjectTracker
from ..config import ProcessingConfig
from ..pipeline.results import TrackingResult, save_results

logger = logging.getLogger(__name__)


def create_tracker(config: ProcessingConfig) -> VideoObjectTracker:
    """Build the API object; loads the model when a path is configured."""
    return VideoObjectTracker(
        model=config.model,
        detection=config.detection,
        tracking=config.tracking,
        output=config.output,
        show_progress=config.show_progress,
    )


def export_results(
    tracker: VideoObjectTracker, config: ProcessingConfig, results: List[TrackingResult]
) -> None:
    """Write the results file and the output video requested in ``config``."""
    if config.output.results_path:
        save_results(results, config.output.results_path)
        print(f"Results saved to: {config.output.results_path}")
    if not config.output_path:
        return
    if config.effect:
        path = tracker.process_video_with_effects(
            config.input_path, results, config.effect, config.output_path
        )
    else:
        path = tracker.create_tracking_visualization(
            config.input_path, results, config.output_path
        )
    print(f"Output saved to: {path}")


def run_headless(config: ProcessingConfig) -> Any:
    """Run one CLI command.

    Returns:
        The command's result: a resolution dict, a detection list or a
        tracking result list.
    """
    with create_tracker(config) as tracker:
        if config.command == "resolution":
            resolution = tracker.get_video_resolution(config.input_path)
            print(f"{resolution['width']}x{resolution['height']}")
            return resolution

        if config.command == "detect":
            detections = tracker.detect_objects_in_frame(config.input_path, config.frame_index)
            for d in detections:
                box = d.bounding_box
                print(
                    f"{d.class_name}\t{d.confidence:.2f}\t"
                    f"{box.x:.1f},{box.y:.1f},{box.width:.1f},{box.height:.1f}"
                )
            if config.output_path:
                path = tracker.create_detection_preview(
                    config.input_path, config.frame_index, detections, config.output_path
                )
                print(f"Preview saved to: {path}")
            return detections

        if config.command == "track":
            results = tracker.detect_and_track_objects(
                config.input_path,
                target_class=config.detection.target_class,
                min_confidence=config.detection.min_confidence,
                detection_interval=config.detection.interval,
            )
        elif config.command == "select":
            object_id = tracker.select_object(
                config.input_path, config.frame_index, config.select_box
            )
            results = tracker.track_object(config.input_path, object_id)
        else:
            raise ValueError(f"Unknown command: {config.command}")

        objects = len({r.object_id for r in results})
        print(f"Tracked {objects} objects, {len(results)} results")
        export_results(tracker, config, results)
        return results
