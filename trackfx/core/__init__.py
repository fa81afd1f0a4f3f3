"""Geometry, coordinate mapping and video I/O."""

from .coords import CoordinateMapper, Letterbox, VideoTransform, flip_vertical
from .geometry import BoundingBox, Origin, Space, intersection_over_union
from .io import ArrayFrameSource, BaseFrameSource, VideoReader, VideoWriter

__all__ = [
    "ArrayFrameSource",
    "BaseFrameSource",
    "BoundingBox",
    "CoordinateMapper",
    "Letterbox",
    "Origin",
    "Space",
    "VideoReader",
    "VideoTransform",
    "VideoWriter",
    "flip_vertical",
    "intersection_over_union",
]
