"""Greedy non-maximum suppression."""

import logging
from typing import List, Sequence

import numpy as np

from ..core.geometry import iou_against
from ..errors import InvalidInput
from .base import DetectedObject

logger = logging.getLogger(__name__)


class SuppressionEngine:
    """Removes overlapping detections, keeping the most confident.

    Output is ordered by confidence, highest first. Equal confidences keep
    their input order.
    """

    def __init__(self, iou_threshold: float = 0.5):
        if not 0.0 <= iou_threshold <= 1.0:
            raise InvalidInput(f"IoU threshold must be in [0, 1], got {iou_threshold}")
        self.iou_threshold = iou_threshold

    def suppress(self, detections: Sequence[DetectedObject]) -> List[DetectedObject]:
        if not detections:
            return []
        conventions = {(d.bounding_box.space, d.bounding_box.origin) for d in detections}
        if len(conventions) > 1:
            raise ValueError("Cannot suppress boxes in mixed coordinate conventions")

        ordered = sorted(detections, key=lambda d: -d.confidence)
        corners = np.stack([d.bounding_box.to_xyxy() for d in ordered])
        alive = np.ones(len(ordered), dtype=bool)
        kept = []
        for pos, detection in enumerate(ordered):
            if not alive[pos]:
                continue
            kept.append(detection)
            rest = pos + 1 + np.flatnonzero(alive[pos + 1:])
            if rest.size:
                overlap = iou_against(corners[pos], corners[rest])
                alive[rest[overlap > self.iou_threshold]] = False

        logger.debug("NMS kept %d of %d detections", len(kept), len(ordered))
        return kept


def non_max_suppression(
    detections: Sequence[DetectedObject], iou_threshold: float = 0.5
) -> List[DetectedObject]:
    """Functional form of ``SuppressionEngine.suppress``."""
    return SuppressionEngine(iou_threshold).suppress(detections)
