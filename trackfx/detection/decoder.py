"""Decoding of raw YOLO-style detection tensors."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import numpy as np

from ..core.geometry import BoundingBox, Origin, Space
from ..errors import ShapeMismatch
from .base import DetectedObject
from .labels import COCO_CLASSES, known_class_count, resolve_class_name

logger = logging.getLogger(__name__)


class DecodeTrace(Protocol):
    """Observer for intermediate decode values.

    Called with a stage name (``"reshape"``, ``"gate"``, ``"candidate"``,
    ``"decoded"``, and ``"nms"`` from the detector) and a payload dict.
    """

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        ...


@dataclass(frozen=True)
class TensorLayout:
    """Shape of the raw output tensor.

    The tensor is ``[1, F, N]`` with ``F = 4 + 1 + num_classes +
    num_mask_coefficients`` rows: center box, objectness, class scores and
    mask coefficients. ``anchor_major`` accepts the transposed ``[1, N, F]``.

    Attributes:
        num_classes: Class score rows (C).
        num_mask_coefficients: Trailing mask coefficient rows (M).
        num_anchors: Anchor slots (N).
        anchor_major: Whether anchors come before features.
        box_scale: Divisor that brings box values into 0..1 (use the input
            size for models that emit boxes in input pixels).
    """

    num_classes: int = 80
    num_mask_coefficients: int = 32
    num_anchors: int = 8400
    anchor_major: bool = False
    box_scale: float = 1.0

    @property
    def num_features(self) -> int:
        return 5 + self.num_classes + self.num_mask_coefficients


class TensorDecoder:
    """Turns a raw tensor into corner-format ``DetectedObject`` candidates.

    Every anchor slot is scanned. A slot is kept when its objectness passes
    ``objectness_threshold``, ``objectness * max class score`` passes
    ``confidence_threshold`` and the best class index is a known class.
    """

    def __init__(
        self,
        layout: Optional[TensorLayout] = None,
        class_names: Optional[Sequence[str]] = None,
        objectness_threshold: float = 0.1,
        confidence_threshold: float = 0.1,
    ):
        self.layout = layout or TensorLayout()
        self.class_names = list(class_names) if class_names else list(COCO_CLASSES)
        self.objectness_threshold = objectness_threshold
        self.confidence_threshold = confidence_threshold

    def reshape(self, tensor) -> np.ndarray:
        """Return the tensor as a ``(F, N)`` float array.

        Raises:
            ShapeMismatch: If the tensor does not match the layout.
        """
        if hasattr(tensor, "detach"):
            tensor = tensor.detach().cpu().numpy()
        try:
            grid = np.asarray(tensor, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise ShapeMismatch(f"Tensor is not numeric: {exc}") from exc

        features = self.layout.num_features
        anchors = self.layout.num_anchors
        expected = (anchors, features) if self.layout.anchor_major else (features, anchors)

        if grid.ndim == 3:
            if grid.shape[0] != 1:
                raise ShapeMismatch(f"Expected batch size 1, got shape {grid.shape}")
            grid = grid[0]
        elif grid.ndim == 1:
            if grid.size != features * anchors:
                raise ShapeMismatch(
                    f"Flat tensor has {grid.size} values, expected {features * anchors}"
                )
            grid = grid.reshape(expected)
        elif grid.ndim != 2:
            raise ShapeMismatch(f"Unexpected tensor rank {grid.ndim}")

        if grid.shape != expected:
            raise ShapeMismatch(f"Expected shape {expected}, got {grid.shape}")
        return grid.T if self.layout.anchor_major else grid

    def decode(self, tensor, trace: Optional[DecodeTrace] = None) -> List[DetectedObject]:
        """Decode candidates in anchor order.

        Boxes come out normalized to the network input, top-left origin.

        Raises:
            ShapeMismatch: If the tensor does not match the layout.
        """
        grid = self.reshape(tensor)
        if trace is not None:
            trace("reshape", {"shape": grid.shape})

        num_classes = self.layout.num_classes
        boxes = grid[0:4] / self.layout.box_scale
        objectness = grid[4]
        scores = grid[5:5 + num_classes]
        coefficients = grid[5 + num_classes:]

        slots = np.flatnonzero(objectness > self.objectness_threshold)
        if trace is not None:
            trace("gate", {"slots": slots.tolist()})
        if slots.size == 0 or num_classes == 0:
            return []

        slot_scores = scores[:, slots]
        best_class = np.argmax(slot_scores, axis=0)
        best_score = slot_scores[best_class, np.arange(slots.size)]
        final = objectness[slots] * best_score

        cx, cy, w, h = boxes[:, slots]
        keep = (
            (final > self.confidence_threshold)
            & (best_class < known_class_count(self.class_names))
            & (w >= 0)
            & (h >= 0)
            & np.isfinite(boxes[:, slots]).all(axis=0)
        )

        candidates = []
        for pos in np.flatnonzero(keep):
            slot = int(slots[pos])
            class_index = int(best_class[pos])
            box = BoundingBox.from_center(
                float(cx[pos]), float(cy[pos]), float(w[pos]), float(h[pos]),
                Space.NORMALIZED, Origin.TOP_LEFT,
            )
            candidate = DetectedObject(
                class_name=resolve_class_name(str(class_index), self.class_names),
                confidence=float(final[pos]),
                bounding_box=box,
                identifier=str(class_index),
                mask_coefficients=(
                    coefficients[:, slot].copy() if coefficients.shape[0] else None
                ),
            )
            if trace is not None:
                trace("candidate", {
                    "slot": slot,
                    "objectness": float(objectness[slot]),
                    "class_index": class_index,
                    "class_score": float(best_score[pos]),
                    "confidence": candidate.confidence,
                })
            candidates.append(candidate)

        if trace is not None:
            trace("decoded", {"count": len(candidates)})
        return candidates

    def decode_safe(self, tensor, trace: Optional[DecodeTrace] = None) -> List[DetectedObject]:
        """Like ``decode`` but logs a shape mismatch and returns no detections."""
        try:
            return self.decode(tensor, trace=trace)
        except ShapeMismatch as exc:
            logger.warning("Discarding detector output: %s", exc)
            return []
