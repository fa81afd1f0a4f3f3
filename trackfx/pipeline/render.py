"""Render result streams back into video files."""

import logging
from typing import Callable, List, Optional, Sequence

import cv2
import numpy as np
from tqdm import tqdm

from ..core.io import BaseFrameSource, VideoWriter
from ..effects.annotate import ColorAssigner, FrameAnnotator
from ..effects.base import EffectRenderer
from ..effects.config import EffectConfig
from ..effects.render import EffectCompositor
from ..errors import ExportFailed
from .results import TrackingResult, group_by_frame

logger = logging.getLogger(__name__)

FrameRenderer = Callable[[np.ndarray, List[TrackingResult]], np.ndarray]


def export_video(
    source: BaseFrameSource,
    results: Sequence[TrackingResult],
    output_path: str,
    render: FrameRenderer,
    fps: Optional[float] = None,
    codec: str = "mp4v",
    on_progress: Optional[Callable[[int, int], None]] = None,
    show_progress: bool = False,
) -> str:
    """Write every decodable frame, in effective orientation, through ``render``.

    ``render`` receives the frame and that frame's results (possibly empty).

    Raises:
        ExportFailed: If the output cannot be written.
    """
    by_frame = group_by_frame(results)
    width, height = source.resolution
    total = source.frame_count
    try:
        with VideoWriter(output_path, width, height, fps or source.fps, codec) as writer:
            frames = source.iter_frames(oriented=True)
            for index, frame in tqdm(frames, total=total, desc="Rendering", unit="frame",
                                     disable=not show_progress):
                writer.write_frame(render(frame, by_frame.get(index, [])))
                if on_progress is not None:
                    on_progress(index + 1, total)
    except (cv2.error, OSError) as exc:
        raise ExportFailed(f"Failed to export {output_path}: {exc}") from exc
    logger.info("Output saved to: %s", output_path)
    return output_path


def render_effects(
    source: BaseFrameSource,
    results: Sequence[TrackingResult],
    effect: EffectConfig,
    output_path: str,
    renderer: Optional[EffectRenderer] = None,
    **kwargs,
) -> str:
    """Export the video with ``effect`` applied inside every result box."""
    renderer = renderer or EffectCompositor()

    def render(frame: np.ndarray, frame_results: List[TrackingResult]) -> np.ndarray:
        for result in frame_results:
            frame = renderer.apply(frame, result.bounding_box, effect)
        return frame

    return export_video(source, results, output_path, render, **kwargs)


def render_visualization(
    source: BaseFrameSource,
    results: Sequence[TrackingResult],
    output_path: str,
    **kwargs,
) -> str:
    """Export the video with a colored box and label per tracked object."""
    colors = ColorAssigner()

    def render(frame: np.ndarray, frame_results: List[TrackingResult]) -> np.ndarray:
        return FrameAnnotator.annotate_results(frame, frame_results, colors)

    return export_video(source, results, output_path, render, **kwargs)
