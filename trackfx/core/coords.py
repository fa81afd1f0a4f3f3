"""Conversions between tensor, source-frame, effective and display coordinates.

Spaces used across trackfx:

* tensor-normalized: 0..1 relative to the square letterboxed network input
* raw pixel / raw normalized: relative to the decoded frame buffer
* effective pixel: raw pixel with the container's orientation transform applied
* display pixel: effective pixel scaled to a UI thumbnail
* tracker space: raw normalized with a bottom-left origin
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .geometry import BoundingBox, Origin, Space

logger = logging.getLogger(__name__)

_EPS = 1e-6


def normalize(box: BoundingBox, width: float, height: float) -> BoundingBox:
    """Pixel box to 0..1 relative to a ``width`` x ``height`` frame."""
    if box.space != Space.PIXEL:
        raise ValueError("normalize expects a pixel-space box")
    return box.scaled(1.0 / width, 1.0 / height, Space.NORMALIZED)


def denormalize(box: BoundingBox, width: float, height: float) -> BoundingBox:
    """Normalized box to pixels of a ``width`` x ``height`` frame."""
    if box.space != Space.NORMALIZED:
        raise ValueError("denormalize expects a normalized box")
    return box.scaled(width, height, Space.PIXEL)


def flip_vertical(box: BoundingBox, height: float = 1.0) -> BoundingBox:
    """Switch a box between top-left and bottom-left origin.

    Computes ``y' = height - y - h``. For normalized boxes ``height`` is 1.
    Applying it twice returns the original box.
    """
    origin = Origin.TOP_LEFT if box.origin == Origin.BOTTOM_LEFT else Origin.BOTTOM_LEFT
    return BoundingBox(
        box.x, height - box.y - box.height, box.width, box.height, box.space, origin
    )


def rescale(
    box: BoundingBox, from_size: Tuple[float, float], to_size: Tuple[float, float]
) -> BoundingBox:
    """Scale a pixel box from one image size to another."""
    sx = to_size[0] / from_size[0]
    sy = to_size[1] / from_size[1]
    return box.scaled(sx, sy, Space.PIXEL)


@dataclass(frozen=True)
class Letterbox:
    """Aspect-preserving resize onto a black square canvas, centered.

    Attributes:
        source_size: (width, height) of the frame before preprocessing.
        target: Side of the square network input.
        scaled_size: (width, height) of the resized frame inside the canvas.
        pad: (left, top) padding in canvas pixels.
    """

    source_size: Tuple[int, int]
    target: int
    scaled_size: Tuple[int, int]
    pad: Tuple[int, int]

    @classmethod
    def fit(cls, width: int, height: int, target: int) -> "Letterbox":
        if width <= 0 or height <= 0:
            raise ValueError(f"Cannot letterbox a {width}x{height} frame")
        scale = min(target / width, target / height)
        new_w = max(1, int(round(width * scale)))
        new_h = max(1, int(round(height * scale)))
        pad = ((target - new_w) // 2, (target - new_h) // 2)
        return cls((int(width), int(height)), int(target), (new_w, new_h), pad)

    @property
    def scale(self) -> Tuple[float, float]:
        return (
            self.scaled_size[0] / self.source_size[0],
            self.scaled_size[1] / self.source_size[1],
        )

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Resize ``image`` and paste it centered on a black canvas."""
        resized = cv2.resize(image, self.scaled_size, interpolation=cv2.INTER_LINEAR)
        canvas_shape = (self.target, self.target) + image.shape[2:]
        canvas = np.zeros(canvas_shape, dtype=image.dtype)
        left, top = self.pad
        w, h = self.scaled_size
        canvas[top:top + h, left:left + w] = resized
        return canvas

    def to_source(self, box: BoundingBox) -> BoundingBox:
        """Tensor-normalized box to source pixels, clipped to the source frame."""
        canvas = denormalize(box, self.target, self.target)
        sx, sy = self.scale
        src = BoundingBox(
            (canvas.x - self.pad[0]) / sx,
            (canvas.y - self.pad[1]) / sy,
            canvas.width / sx,
            canvas.height / sy,
            Space.PIXEL,
        )
        return src.clipped(*self.source_size)

    def from_source(self, box: BoundingBox) -> BoundingBox:
        """Source pixel box to tensor-normalized space."""
        sx, sy = self.scale
        canvas = BoundingBox(
            box.x * sx + self.pad[0],
            box.y * sy + self.pad[1],
            box.width * sx,
            box.height * sy,
            Space.PIXEL,
        )
        return normalize(canvas, self.target, self.target)


@dataclass(frozen=True)
class VideoTransform:
    """Affine orientation transform carried by a video container.

    A point maps to ``(a*x + c*y + tx, b*x + d*y + ty)``.
    """

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    @classmethod
    def identity(cls) -> "VideoTransform":
        return cls()

    @classmethod
    def from_rotation(cls, degrees: float, width: float, height: float) -> "VideoTransform":
        """Clockwise display rotation for a ``width`` x ``height`` buffer.

        Raises:
            ValueError: If ``degrees`` is not a multiple of 90.
        """
        quarter = int(round(degrees)) % 360
        if quarter == 0:
            return cls()
        if quarter == 90:
            return cls(0.0, 1.0, -1.0, 0.0, float(height), 0.0)
        if quarter == 180:
            return cls(-1.0, 0.0, 0.0, -1.0, float(width), float(height))
        if quarter == 270:
            return cls(0.0, -1.0, 1.0, 0.0, 0.0, float(width))
        raise ValueError(f"Unsupported rotation: {degrees}")

    @property
    def matrix(self) -> np.ndarray:
        """2x3 matrix in the layout ``cv2.warpAffine`` expects."""
        return np.array(
            [[self.a, self.c, self.tx], [self.b, self.d, self.ty]], dtype=np.float64
        )

    @property
    def is_identity(self) -> bool:
        return self == VideoTransform() or np.allclose(
            self.matrix, VideoTransform().matrix, atol=_EPS
        )

    @property
    def is_supported(self) -> bool:
        """True for rotations and flips by multiples of 90 degrees."""
        entries = np.abs([self.a, self.b, self.c, self.d])
        if not np.all((entries < _EPS) | (np.abs(entries - 1.0) < _EPS)):
            return False
        straight = abs(self.b) < _EPS and abs(self.c) < _EPS
        swapped = abs(self.a) < _EPS and abs(self.d) < _EPS
        return straight or swapped

    def apply_point(self, x: float, y: float) -> Tuple[float, float]:
        return self.a * x + self.c * y + self.tx, self.b * x + self.d * y + self.ty

    def effective_size(self, width: float, height: float) -> Tuple[float, float]:
        """Natural size with the linear part applied, as absolute values."""
        return (
            abs(self.a * width + self.c * height),
            abs(self.b * width + self.d * height),
        )

    def normalized_for(self, width: float, height: float) -> "VideoTransform":
        """Same linear part, translated so the frame rect starts at (0, 0)."""
        corners = [
            self.apply_point(x, y)
            for x, y in ((0, 0), (width, 0), (0, height), (width, height))
        ]
        min_x = min(p[0] for p in corners)
        min_y = min(p[1] for p in corners)
        return VideoTransform(
            self.a, self.b, self.c, self.d, self.tx - min_x, self.ty - min_y
        )

    def inverse(self) -> "VideoTransform":
        det = self.a * self.d - self.b * self.c
        if abs(det) < _EPS:
            raise ValueError("Transform is not invertible")
        a, b, c, d = self.d / det, -self.b / det, -self.c / det, self.a / det
        tx = -(a * self.tx + c * self.ty)
        ty = -(b * self.tx + d * self.ty)
        return VideoTransform(a, b, c, d, tx, ty)

    def apply_to_box(self, box: BoundingBox) -> BoundingBox:
        """Bounding rect of the transformed box corners."""
        points = [
            self.apply_point(x, y)
            for x, y in ((box.x, box.y), (box.x2, box.y), (box.x, box.y2), (box.x2, box.y2))
        ]
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return BoundingBox.from_corners(
            min(xs), min(ys), max(xs), max(ys), box.space, box.origin
        )


def orient_frame(image: np.ndarray, transform: VideoTransform) -> np.ndarray:
    """Render a raw frame buffer the way the container says it is displayed.

    Unsupported transforms leave the frame untouched.
    """
    if transform.is_identity or not transform.is_supported:
        return image
    height, width = image.shape[:2]
    fixed = transform.normalized_for(width, height)
    out_w, out_h = fixed.effective_size(width, height)
    matrix = fixed.matrix.copy()
    # Pixel indices address cell centers.
    linear = matrix[:, :2]
    matrix[:, 2] += linear @ np.array([0.5, 0.5]) - 0.5
    return cv2.warpAffine(
        image,
        matrix,
        (int(round(out_w)), int(round(out_h))),
        flags=cv2.INTER_NEAREST,
    )


class CoordinateMapper:
    """Maps boxes between the internal spaces and the effective pixel contract.

    Detection works in raw-normalized top-left space and tracking in
    raw-normalized bottom-left space. Callers only ever see effective pixels
    with a top-left origin.
    """

    def __init__(
        self,
        natural_size: Tuple[float, float],
        transform: Optional[VideoTransform] = None,
    ):
        self.natural_size = (float(natural_size[0]), float(natural_size[1]))
        self.transform = transform or VideoTransform.identity()
        self._fixed = self.transform.normalized_for(*self.natural_size)

    @property
    def transform_uncertain(self) -> bool:
        return not self.transform.is_identity and not self.transform.is_supported

    @property
    def effective_size(self) -> Tuple[float, float]:
        if self.transform_uncertain:
            return self.natural_size
        return self.transform.effective_size(*self.natural_size)

    def raw_to_effective(self, box: BoundingBox) -> Tuple[BoundingBox, bool]:
        """Raw pixel box to effective pixels.

        Returns:
            The mapped box and whether the transform could not be applied.
        """
        if self.transform.is_identity:
            return box.clipped(*self.natural_size), False
        if self.transform_uncertain:
            logger.debug("Passing box through unsupported transform %s", self.transform)
            return box.clipped(*self.natural_size), True
        mapped = self._fixed.apply_to_box(box)
        return mapped.clipped(*self.effective_size), False

    def effective_to_raw(self, box: BoundingBox) -> BoundingBox:
        if self.transform.is_identity or self.transform_uncertain:
            return box.clipped(*self.natural_size)
        raw = self._fixed.inverse().apply_to_box(box)
        return raw.clipped(*self.natural_size)

    def normalized_to_effective(self, box: BoundingBox) -> Tuple[BoundingBox, bool]:
        """Raw-normalized top-left box to effective pixels."""
        return self.raw_to_effective(denormalize(box, *self.natural_size))

    def tracker_to_effective(self, box: BoundingBox) -> Tuple[BoundingBox, bool]:
        """Tracker box (raw-normalized, bottom-left) to effective pixels."""
        if box.origin == Origin.BOTTOM_LEFT:
            box = flip_vertical(box)
        return self.normalized_to_effective(box)

    def effective_to_normalized(self, box: BoundingBox) -> BoundingBox:
        """Effective pixel box to raw-normalized top-left space."""
        return normalize(self.effective_to_raw(box), *self.natural_size)

    def effective_to_tracker(self, box: BoundingBox) -> BoundingBox:
        return flip_vertical(self.effective_to_normalized(box))

    def to_display(self, box: BoundingBox, display_size: Tuple[float, float]) -> BoundingBox:
        return rescale(box, self.effective_size, display_size)

    def from_display(self, box: BoundingBox, display_size: Tuple[float, float]) -> BoundingBox:
        return rescale(box, display_size, self.effective_size)
