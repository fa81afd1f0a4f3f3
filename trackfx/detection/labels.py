"""Class label sets."""

from typing import Optional, Sequence

COCO_CLASSES = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat",
    "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack",
    "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball",
    "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple",
    "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair",
    "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


def resolve_class_name(
    identifier: str, class_names: Optional[Sequence[str]] = None
) -> str:
    """Map a class index or label to a display name.

    Indices resolve from the custom names first and then from the built-in
    COCO list. Identifiers that are already labels pass through lower-cased.
    """
    try:
        index = int(identifier)
    except (TypeError, ValueError):
        return str(identifier).lower()
    if index < 0:
        return "unknown"
    for names in (class_names or (), COCO_CLASSES):
        if index < len(names):
            return names[index]
    return "unknown"


def known_class_count(class_names: Optional[Sequence[str]] = None) -> int:
    """Number of class indices ``resolve_class_name`` can label."""
    return max(len(class_names or ()), len(COCO_CLASSES))


def load_class_names(path: str) -> list:
    """Read one class name per line, skipping blank lines."""
    with open(path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]
