"""Per-object visual trackers."""

import logging
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from ..core.coords import denormalize, flip_vertical, normalize
from ..core.geometry import BoundingBox, Origin, Space
from ..core.utils import box_to_slices
from ..errors import InvalidInput
from .base import ObjectTracker, TrackerObservation

logger = logging.getLogger(__name__)

Rect = Tuple[int, int, int, int]


def tracker_box_to_rect(box: BoundingBox, width: int, height: int) -> Optional[Rect]:
    """Tracker-space box to an integer ``(x, y, w, h)`` pixel rect, top-left origin."""
    if box.origin == Origin.BOTTOM_LEFT:
        box = flip_vertical(box)
    slices = box_to_slices(denormalize(box, width, height), width, height)
    if slices is None:
        return None
    x1, y1, x2, y2 = slices
    return x1, y1, x2 - x1, y2 - y1


def rect_to_tracker_box(rect, width: int, height: int) -> BoundingBox:
    """Pixel ``(x, y, w, h)`` rect, top-left origin, to a tracker-space box."""
    x, y, w, h = (float(v) for v in rect)
    pixel = BoundingBox(x, y, max(w, 0.0), max(h, 0.0), Space.PIXEL).clipped(width, height)
    return flip_vertical(normalize(pixel, width, height))


def _gray(frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 2:
        return frame
    return cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)


# Below this gray-level deviation a template is treated as a flat patch.
FLAT_TEMPLATE_STD = 2.0
# Scores this close to the best one count as ties.
TIE_TOLERANCE = 1e-3


def _match_scores(image: np.ndarray, template: np.ndarray) -> np.ndarray:
    """Template match scores in [0, 1] for every placement inside ``image``.

    Textured templates use normalized cross-correlation. Flat templates have
    no correlation signal, so they are scored by RMS difference instead.
    """
    image = image.astype(np.float32)
    template = template.astype(np.float32)
    if template.std() < FLAT_TEMPLATE_STD:
        sqdiff = cv2.matchTemplate(image, template, cv2.TM_SQDIFF)
        rms = np.sqrt(np.maximum(sqdiff, 0.0) / template.size)
        scores = 1.0 - rms / 255.0
    else:
        scores = cv2.matchTemplate(image, template, cv2.TM_CCOEFF_NORMED)
    return np.clip(np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0), 0.0, 1.0)


def _best_location(scores: np.ndarray, anchor: Tuple[int, int]) -> Tuple[Tuple[int, int], float]:
    """Highest-scoring placement, ties going to the one nearest ``anchor``."""
    best = float(scores.max())
    ys, xs = np.nonzero(scores >= best - TIE_TOLERANCE)
    nearest = int(np.argmin((xs - anchor[0]) ** 2 + (ys - anchor[1]) ** 2))
    return (int(xs[nearest]), int(ys[nearest])), best


def _similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Match score of two equally sized patches, with ``b`` as the template."""
    if a.shape != b.shape or a.size == 0:
        return 0.0
    return float(_match_scores(a, b)[0, 0])


class TemplateTracker:
    """Tracks an appearance template inside a window around the last position.

    Confidence is the match score of the best placement; equally good
    placements resolve to the one nearest the previous position. The
    template is refreshed from every matched location.
    """

    def __init__(self, search_scale: float = 2.0):
        self.search_scale = max(1.0, search_scale)
        self._template: Optional[np.ndarray] = None
        self._rect: Optional[Rect] = None

    def init(self, frame: np.ndarray, box: BoundingBox) -> bool:
        height, width = frame.shape[:2]
        rect = tracker_box_to_rect(box, width, height)
        if rect is None:
            return False
        x, y, w, h = rect
        self._template = _gray(frame)[y:y + h, x:x + w].astype(np.float32)
        self._rect = rect
        return True

    def _search_window(self, width: int, height: int) -> Rect:
        x, y, w, h = self._rect
        cx, cy = x + w / 2, y + h / 2
        half_w, half_h = w * self.search_scale / 2, h * self.search_scale / 2
        x1 = int(max(0, np.floor(cx - half_w)))
        y1 = int(max(0, np.floor(cy - half_h)))
        x2 = int(min(width, np.ceil(cx + half_w)))
        y2 = int(min(height, np.ceil(cy + half_h)))
        return x1, y1, x2, y2

    def update(self, frame: np.ndarray) -> Optional[TrackerObservation]:
        if self._template is None:
            return None
        height, width = frame.shape[:2]
        gray = _gray(frame).astype(np.float32)
        th, tw = self._template.shape[:2]
        x1, y1, x2, y2 = self._search_window(width, height)
        if x2 - x1 < tw or y2 - y1 < th:
            return None

        scores = _match_scores(gray[y1:y2, x1:x2], self._template)
        previous = (self._rect[0] - x1, self._rect[1] - y1)
        (dx, dy), confidence = _best_location(scores, previous)

        x, y = x1 + dx, y1 + dy
        self._rect = (x, y, tw, th)
        self._template = gray[y:y + th, x:x + tw].copy()
        return TrackerObservation(rect_to_tracker_box(self._rect, width, height), confidence)


_OPENCV_FACTORIES = {
    "csrt": "TrackerCSRT_create",
    "kcf": "TrackerKCF_create",
    "mil": "TrackerMIL_create",
}


def _create_opencv_tracker(kind: str):
    factory = _OPENCV_FACTORIES[kind]
    for namespace in (cv2, getattr(cv2, "legacy", None)):
        if namespace is not None and hasattr(namespace, factory):
            return getattr(namespace, factory)()
    raise InvalidInput(f"This OpenCV build has no {kind.upper()} tracker")


class OpenCVTracker:
    """Adapter over OpenCV's CSRT, KCF and MIL trackers.

    OpenCV only reports success, so confidence is the appearance similarity
    between the initial patch and the patch at the reported box.
    """

    def __init__(self, kind: str = "csrt"):
        if kind not in _OPENCV_FACTORIES:
            raise InvalidInput(f"Unknown OpenCV tracker: {kind}")
        self.kind = kind
        self._tracker = None
        self._reference: Optional[np.ndarray] = None

    def init(self, frame: np.ndarray, box: BoundingBox) -> bool:
        height, width = frame.shape[:2]
        rect = tracker_box_to_rect(box, width, height)
        if rect is None:
            return False
        self._tracker = _create_opencv_tracker(self.kind)
        bgr = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
        try:
            self._tracker.init(bgr, rect)
        except cv2.error as exc:
            logger.warning("%s tracker init failed: %s", self.kind.upper(), exc)
            self._tracker = None
            return False
        x, y, w, h = rect
        self._reference = _gray(frame)[y:y + h, x:x + w].astype(np.float32)
        return True

    def update(self, frame: np.ndarray) -> Optional[TrackerObservation]:
        if self._tracker is None:
            return None
        height, width = frame.shape[:2]
        try:
            ok, rect = self._tracker.update(cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))
        except cv2.error as exc:
            logger.debug("%s tracker update failed: %s", self.kind.upper(), exc)
            return None
        if not ok:
            return None
        box = rect_to_tracker_box(rect, width, height)
        pixel_rect = tracker_box_to_rect(box, width, height)
        if pixel_rect is None:
            return None
        x, y, w, h = pixel_rect
        patch = _gray(frame)[y:y + h, x:x + w].astype(np.float32)
        if patch.shape != self._reference.shape:
            patch = cv2.resize(patch, self._reference.shape[1::-1])
        return TrackerObservation(box, _similarity(patch, self._reference))


def create_tracker(name: str = "template", search_scale: float = 2.0) -> ObjectTracker:
    """Build a tracker by backend name."""
    if name == "template":
        return TemplateTracker(search_scale=search_scale)
    if name in _OPENCV_FACTORIES:
        return OpenCVTracker(name)
    raise InvalidInput(f"Unknown tracker: {name}")


def tracker_factory(name: str = "template", search_scale: float = 2.0) -> Callable[[], ObjectTracker]:
    """Zero-argument factory producing fresh trackers of one kind."""
    create_tracker(name, search_scale)
    return lambda: create_tracker(name, search_scale)
