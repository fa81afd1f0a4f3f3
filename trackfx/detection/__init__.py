"""Detection module: tensor decoding, suppression and the YOLO detector."""

from .base import DetectedObject, Detector
from .decoder import DecodeTrace, TensorDecoder, TensorLayout
from .labels import COCO_CLASSES, resolve_class_name
from .nms import SuppressionEngine, non_max_suppression


# Lazy import for the torch-backed detector
def __getattr__(name):
    if name == "YOLODetector":
        from .yolo import YOLODetector
        return YOLODetector
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "COCO_CLASSES",
    "DecodeTrace",
    "DetectedObject",
    "Detector",
    "SuppressionEngine",
    "TensorDecoder",
    "TensorLayout",
    "YOLODetector",
    "non_max_suppression",
    "resolve_class_name",
]
