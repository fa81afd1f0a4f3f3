"""Bounding box geometry and overlap utilities.

Every box carries the coordinate space it lives in (normalized 0..1 or pixel)
and the corner its y axis starts from. Functions that combine boxes refuse to
mix conventions.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Mapping

import numpy as np

from ..errors import InvalidInput


class Space(str, Enum):
    """Coordinate space of a bounding box."""

    NORMALIZED = "normalized"
    PIXEL = "pixel"


class Origin(str, Enum):
    """Corner the y axis is measured from."""

    TOP_LEFT = "top_left"
    BOTTOM_LEFT = "bottom_left"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in corner format.

    Attributes:
        x: Left edge.
        y: Edge nearest the origin corner (top for TOP_LEFT, bottom for BOTTOM_LEFT).
        width: Box width, never negative.
        height: Box height, never negative.
        space: NORMALIZED (0..1 of a stated frame) or PIXEL.
        origin: TOP_LEFT (y down) or BOTTOM_LEFT (y up).
    """

    x: float
    y: float
    width: float
    height: float
    space: Space = Space.NORMALIZED
    origin: Origin = Origin.TOP_LEFT

    def __post_init__(self):
        values = (self.x, self.y, self.width, self.height)
        if not all(math.isfinite(float(v)) for v in values):
            raise InvalidInput(f"Bounding box values must be finite: {values}")
        if self.width < 0 or self.height < 0:
            raise InvalidInput(
                f"Bounding box size must be non-negative, got {self.width}x{self.height}"
            )

    @classmethod
    def from_center(
        cls,
        cx: float,
        cy: float,
        width: float,
        height: float,
        space: Space = Space.NORMALIZED,
        origin: Origin = Origin.TOP_LEFT,
    ) -> "BoundingBox":
        """Build a corner-format box from center format."""
        return cls(cx - width / 2, cy - height / 2, width, height, space, origin)

    @classmethod
    def from_corners(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        space: Space = Space.NORMALIZED,
        origin: Origin = Origin.TOP_LEFT,
    ) -> "BoundingBox":
        """Build a box from two opposite corners in any order."""
        left, right = sorted((float(x1), float(x2)))
        low, high = sorted((float(y1), float(y2)))
        return cls(left, low, right - left, high - low, space, origin)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        space: Space = Space.PIXEL,
        origin: Origin = Origin.TOP_LEFT,
    ) -> "BoundingBox":
        """Validate a ``{x, y, width, height}`` mapping into a box.

        Raises:
            InvalidInput: If a key is missing or a value is not numeric.
        """
        try:
            values = [float(data[key]) for key in ("x", "y", "width", "height")]
        except KeyError as exc:
            raise InvalidInput(f"Bounding box is missing {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Bounding box values must be numeric: {data!r}") from exc
        return cls(*values, space=space, origin=origin)

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        """True for a zero-area box, which never produces tracking or effect output."""
        return self.width <= 0 or self.height <= 0

    def to_xyxy(self) -> np.ndarray:
        return np.array([self.x, self.y, self.x2, self.y2], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return {
            "x": float(self.x),
            "y": float(self.y),
            "width": float(self.width),
            "height": float(self.height),
        }

    def scaled(self, sx: float, sy: float, space: Space) -> "BoundingBox":
        """Scale every coordinate and relabel the space."""
        return replace(
            self,
            x=self.x * sx,
            y=self.y * sy,
            width=self.width * sx,
            height=self.height * sy,
            space=space,
        )

    def clipped(self, width: float, height: float) -> "BoundingBox":
        """Clip to ``[0, width] x [0, height]``; boxes fully outside become empty."""
        x1 = min(max(self.x, 0.0), width)
        y1 = min(max(self.y, 0.0), height)
        x2 = min(max(self.x2, 0.0), width)
        y2 = min(max(self.y2, 0.0), height)
        return replace(self, x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def _check_compatible(a: BoundingBox, b: BoundingBox) -> None:
    if a.space != b.space or a.origin != b.origin:
        raise ValueError(
            f"Cannot compare boxes in {a.space.value}/{a.origin.value} "
            f"and {b.space.value}/{b.origin.value}"
        )


def intersection_over_union(a: BoundingBox, b: BoundingBox) -> float:
    """IoU of two boxes in the same coordinate convention.

    The union counts the shared area once. Non-overlapping and zero-area
    pairs give 0.0.
    """
    _check_compatible(a, b)
    inter_w = min(a.x2, b.x2) - max(a.x, b.x)
    inter_h = min(a.y2, b.y2) - max(a.y, b.y)
    if inter_w <= 0 or inter_h <= 0:
        return 0.0
    intersection = inter_w * inter_h
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return float(intersection / union)


def iou_against(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """Vectorized IoU of one ``[x1, y1, x2, y2]`` box against an (N, 4) array."""
    if len(others) == 0:
        return np.zeros(0, dtype=np.float64)
    inter_w = np.minimum(box[2], others[:, 2]) - np.maximum(box[0], others[:, 0])
    inter_h = np.minimum(box[3], others[:, 3]) - np.maximum(box[1], others[:, 1])
    intersection = np.clip(inter_w, 0, None) * np.clip(inter_h, 0, None)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (others[:, 2] - others[:, 0]) * (others[:, 3] - others[:, 1])
    union = area + areas - intersection
    with np.errstate(divide="ignore", invalid="ignore"):
        iou = np.where(union > 0, intersection / union, 0.0)
    return iou
