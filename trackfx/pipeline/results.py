"""Tracking result records and their export."""

import json
import os
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List

import pandas as pd

from ..core.geometry import BoundingBox
from ..errors import ExportFailed, InvalidInput

RESULT_COLUMNS = [
    "objectId", "frameIndex", "className", "confidence", "source",
    "x", "y", "width", "height", "transformUncertain",
]


class ResultSource(str, Enum):
    DETECTION = "detection"
    TRACKING = "tracking"


@dataclass(frozen=True)
class TrackingResult:
    """One row of the result stream.

    ``bounding_box`` is in effective pixels with a top-left origin.
    """

    object_id: str
    frame_index: int
    class_name: str
    confidence: float
    source: ResultSource
    bounding_box: BoundingBox
    transform_uncertain: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "objectId": self.object_id,
            "frameIndex": self.frame_index,
            "className": self.class_name,
            "confidence": float(self.confidence),
            "source": self.source.value,
            "boundingBox": self.bounding_box.to_dict(),
        }
        if self.transform_uncertain:
            data["transformUncertain"] = True
        return data


def group_by_frame(results: Iterable[TrackingResult]) -> "OrderedDict[int, List[TrackingResult]]":
    """Results keyed by frame index, preserving stream order within a frame."""
    grouped: "OrderedDict[int, List[TrackingResult]]" = OrderedDict()
    for result in results:
        grouped.setdefault(result.frame_index, []).append(result)
    return grouped


def results_to_dataframe(results: Iterable[TrackingResult]) -> pd.DataFrame:
    """Flatten results into one row per record."""
    rows = []
    for r in results:
        box = r.bounding_box
        rows.append({
            "objectId": r.object_id,
            "frameIndex": r.frame_index,
            "className": r.class_name,
            "confidence": float(r.confidence),
            "source": r.source.value,
            "x": box.x,
            "y": box.y,
            "width": box.width,
            "height": box.height,
            "transformUncertain": r.transform_uncertain,
        })
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def save_results(results: Iterable[TrackingResult], path: str) -> str:
    """Write results to ``.csv`` or ``.json`` and return the path.

    Raises:
        InvalidInput: For any other extension.
        ExportFailed: If the file cannot be written.
    """
    results = list(results)
    ext = os.path.splitext(path)[1].lower()
    if ext not in (".csv", ".json"):
        raise InvalidInput(f"Unsupported results format: {ext or path}")
    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        if ext == ".csv":
            results_to_dataframe(results).to_csv(path, index=False)
        else:
            with open(path, "w", encoding="utf-8") as f:
                json.dump([r.to_dict() for r in results], f, indent=2)
    except OSError as exc:
        raise ExportFailed(f"Cannot write results to {path}: {exc}") from exc
    return path
