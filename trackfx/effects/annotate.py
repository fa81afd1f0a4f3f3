"""Box and label overlays for previews and tracking visualizations."""

import logging
from typing import Dict, Iterable, Optional, Tuple

import cv2
import numpy as np

from ..core.geometry import BoundingBox
from ..core.utils import box_to_slices

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

# RGB
PALETTE = [
    (255, 0, 0),  # Red
    (0, 255, 0),  # Green
    (0, 0, 255),  # Blue
    (255, 255, 0),  # Yellow
    (255, 0, 255),  # Magenta
    (0, 255, 255),  # Cyan
]


class ColorAssigner:
    """Gives each object id a palette color in order of first appearance."""

    def __init__(self, palette=PALETTE):
        self.palette = list(palette)
        self._colors: Dict[str, Color] = {}

    def __call__(self, object_id: str) -> Color:
        if object_id not in self._colors:
            self._colors[object_id] = self.palette[len(self._colors) % len(self.palette)]
        return self._colors[object_id]


class FrameAnnotator:
    """Handles frame annotation with bounding boxes and labels."""

    @staticmethod
    def draw_box(
        frame: np.ndarray,
        box: BoundingBox,
        label: Optional[str],
        color: Color,
        thickness: int = 2,
    ) -> None:
        """Draw one box and its label in place."""
        height, width = frame.shape[:2]
        region = box_to_slices(box, width, height)
        if region is None:
            return
        x1, y1, x2, y2 = region
        cv2.rectangle(frame, (x1, y1), (x2 - 1, y2 - 1), color, thickness)
        if not label:
            return

        (label_w, label_h), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        top = max(y1 - label_h - 8, 0)
        cv2.rectangle(frame, (x1, top), (x1 + label_w + 6, top + label_h + 8), color, -1)
        cv2.putText(
            frame,
            label,
            (x1 + 3, top + label_h + 3),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            (255, 255, 255),
            1,
        )

    @classmethod
    def annotate_detections(cls, frame: np.ndarray, detections: Iterable) -> np.ndarray:
        """Annotate with ``DetectedObject``s whose boxes are pixels of ``frame``."""
        annotated = frame.copy()
        colors = ColorAssigner()
        for i, detection in enumerate(detections):
            label = f"{detection.class_name} {detection.confidence * 100:.0f}%"
            try:
                cls.draw_box(annotated, detection.bounding_box, label, colors(str(i)))
            except cv2.error as e:
                logger.error(f"Error annotating detection: {e}")
        return annotated

    @classmethod
    def annotate_results(
        cls,
        frame: np.ndarray,
        results: Iterable,
        colors: Optional[ColorAssigner] = None,
    ) -> np.ndarray:
        """Annotate with ``TrackingResult``s; one color per object id."""
        annotated = frame.copy()
        colors = colors or ColorAssigner()
        for result in results:
            label = f"{result.class_name} {result.object_id[:8]}"
            try:
                cls.draw_box(annotated, result.bounding_box, label, colors(result.object_id))
            except cv2.error as e:
                logger.error(f"Error annotating result: {e}")
        return annotated
