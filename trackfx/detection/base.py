"""Base detection protocol and data structures."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import numpy as np

from ..core.geometry import BoundingBox


@dataclass
class DetectedObject:
    """One detection instance.

    Attributes:
        class_name: Resolved class label.
        confidence: Objectness times class score, in [0, 1].
        bounding_box: Corner-format box. Inside the pipeline it is normalized
            to the source frame with a top-left origin; the public API hands
            out effective pixel boxes.
        identifier: Class index as a string.
        segmentation_mask: Optional mask image (not assembled by the decoder).
        mask_coefficients: Raw mask coefficients for this anchor, if any.
        frame_index: Frame the detection came from, when known.
        time: Timestamp in seconds, when known.
    """

    class_name: str
    confidence: float
    bounding_box: BoundingBox
    identifier: str
    segmentation_mask: Optional[np.ndarray] = None
    mask_coefficients: Optional[np.ndarray] = None
    frame_index: Optional[int] = None
    time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "className": self.class_name,
            "confidence": float(self.confidence),
            "boundingBox": self.bounding_box.to_dict(),
            "identifier": self.identifier,
        }
        if self.frame_index is not None:
            data["frameIndex"] = self.frame_index
        if self.time is not None:
            data["time"] = self.time
        return data


class Detector(Protocol):
    """Protocol for object detectors."""

    def detect(self, frame: np.ndarray) -> List[DetectedObject]:
        """Detect objects in a frame.

        Args:
            frame: Input frame (RGB).

        Returns:
            Detections with boxes normalized to ``frame``, top-left origin.
        """
        ...
