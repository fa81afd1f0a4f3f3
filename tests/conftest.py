from typing import List, Optional

import numpy as np
import pytest

from trackfx.core.geometry import BoundingBox
from trackfx.core.io import ArrayFrameSource
from trackfx.detection.base import DetectedObject
from trackfx.detection.labels import COCO_CLASSES

FRAME_SIZE = 64


def textured_frame(seed: int = 0, size: int = FRAME_SIZE) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)


class FakeDetector:
    """Returns fixed detections for every frame with any non-black pixel."""

    def __init__(self, detections: Optional[List[DetectedObject]] = None):
        self.detections = list(detections or [])
        self.class_names = list(COCO_CLASSES)
        self.is_loaded = True
        self.calls = 0

    def detect(self, frame: np.ndarray) -> List[DetectedObject]:
        self.calls += 1
        if not frame.any():
            return []
        return list(self.detections)


class RecordingWriter:
    """Stands in for VideoWriter and keeps every written frame."""

    instances = []

    def __init__(self, path, width, height, fps=30.0, codec="mp4v"):
        self.path = path
        self.size = (width, height)
        self.fps = fps
        self.codec = codec
        self.frames = []
        RecordingWriter.instances.append(self)

    def write_frame(self, frame):
        self.frames.append(frame.copy())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


def make_detection(
    x=0.25, y=0.25, width=0.25, height=0.25, confidence=0.9, class_name="person"
) -> DetectedObject:
    return DetectedObject(
        class_name=class_name,
        confidence=confidence,
        bounding_box=BoundingBox(x, y, width, height),
        identifier=str(COCO_CLASSES.index(class_name)),
    )


@pytest.fixture
def frame():
    return textured_frame()


@pytest.fixture
def static_source():
    """Ten identical textured frames."""
    image = textured_frame()
    return ArrayFrameSource([image] * 10, fps=10.0)


@pytest.fixture
def fake_detector():
    return FakeDetector([make_detection()])
