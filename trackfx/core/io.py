"""Video and image I/O: frame sources and exporters."""

import logging
import os
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from ..errors import ExportFailed, FrameUnavailable, InvalidInput, NoVideoTrack
from .coords import CoordinateMapper, VideoTransform, orient_frame

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv", ".m4v"}


def is_video_file(filename: str) -> bool:
    """Check if filename has a video extension."""
    return Path(filename).suffix.lower() in VIDEO_EXTENSIONS


def resolve_path(uri: Optional[str]) -> str:
    """Turn a local path or ``file://`` URI into a filesystem path.

    Raises:
        InvalidInput: If the URI is empty or uses another scheme.
    """
    if not uri or not str(uri).strip():
        raise InvalidInput("Path must not be empty")
    uri = str(uri)
    if uri.startswith("file://"):
        uri = uri[len("file://"):]
    elif "://" in uri:
        raise InvalidInput(f"Unsupported URI scheme: {uri}")
    return uri


class BaseFrameSource:
    """Shared behavior of frame sources.

    Subclasses set ``natural_size``, ``transform``, ``fps`` and
    ``frame_count`` and implement ``get_frame``. Frames are RGB arrays in the
    raw buffer orientation.
    """

    natural_size: Tuple[int, int] = (0, 0)
    transform: VideoTransform = VideoTransform()
    fps: float = 30.0
    frame_count: int = 0

    def get_frame(self, index: int) -> np.ndarray:
        raise NotImplementedError

    @property
    def resolution(self) -> Tuple[int, int]:
        """Orientation-corrected (width, height)."""
        width, height = self.mapper.effective_size
        return int(round(width)), int(round(height))

    @property
    def mapper(self) -> CoordinateMapper:
        return CoordinateMapper(self.natural_size, self.transform)

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.fps else 0.0

    def time_of(self, index: int) -> float:
        return index / self.fps if self.fps else 0.0

    def index_at(self, seconds: float) -> int:
        return min(max(int(round(seconds * self.fps)), 0), max(self.frame_count - 1, 0))

    def get_oriented_frame(self, index: int) -> np.ndarray:
        """Frame as displayed, in effective resolution."""
        if self.mapper.transform_uncertain:
            return self.get_frame(index)
        return orient_frame(self.get_frame(index), self.transform)

    def iter_frames(self, oriented: bool = False) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield ``(index, frame)`` pairs, skipping frames that fail to decode."""
        for index in range(self.frame_count):
            try:
                frame = self.get_oriented_frame(index) if oriented else self.get_frame(index)
            except FrameUnavailable as exc:
                logger.warning("Skipping frame: %s", exc)
                continue
            yield index, frame

    def close(self):
        """Release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class VideoReader(BaseFrameSource):
    """Random-access frame source backed by ``cv2.VideoCapture``."""

    def __init__(self, path: str):
        """Open a video file.

        Args:
            path: Local path or ``file://`` URI.

        Raises:
            InvalidInput: If the path is malformed or does not exist.
            NoVideoTrack: If the file cannot be decoded as a video.
        """
        self.path = resolve_path(path)
        if not os.path.isfile(self.path):
            raise InvalidInput(f"Video file not found: {self.path}")

        self._cap = cv2.VideoCapture(self.path)
        if not self._cap.isOpened():
            raise NoVideoTrack(f"Cannot open video file: {self.path}")

        # Frames stay in buffer orientation; rotation is applied by the mapper.
        auto_prop = getattr(cv2, "CAP_PROP_ORIENTATION_AUTO", None)
        if auto_prop is not None:
            self._cap.set(auto_prop, 0)

        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if width <= 0 or height <= 0:
            self._cap.release()
            raise NoVideoTrack(f"No video track in: {self.path}")

        self.natural_size = (width, height)
        self.fps = self._cap.get(cv2.CAP_PROP_FPS) or 30.0
        self.frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.transform = self._read_transform(width, height)
        self._next_index = 0

    def _read_transform(self, width: int, height: int) -> VideoTransform:
        meta_prop = getattr(cv2, "CAP_PROP_ORIENTATION_META", None)
        if meta_prop is None:
            return VideoTransform.identity()
        degrees = self._cap.get(meta_prop)
        try:
            return VideoTransform.from_rotation(degrees, width, height)
        except ValueError:
            logger.warning("Ignoring unsupported rotation %s in %s", degrees, self.path)
            return VideoTransform.identity()

    def get_frame(self, index: int) -> np.ndarray:
        """Decode one frame as RGB.

        Raises:
            FrameUnavailable: If the index is out of range or decoding fails.
        """
        if index < 0 or index >= self.frame_count:
            raise FrameUnavailable(index, "out of range")
        if index != self._next_index:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        ret, frame = self._cap.read()
        if not ret or frame is None:
            self._next_index = -1
            raise FrameUnavailable(index, "decode failed")
        self._next_index = index + 1
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class ArrayFrameSource(BaseFrameSource):
    """In-memory frame source; ``None`` entries act as undecodable frames."""

    def __init__(
        self,
        frames: Sequence[Optional[np.ndarray]],
        fps: float = 30.0,
        transform: Optional[VideoTransform] = None,
    ):
        self.frames = list(frames)
        valid = [f for f in self.frames if f is not None]
        if not valid:
            raise NoVideoTrack("Frame sequence contains no frames")
        height, width = valid[0].shape[:2]
        self.natural_size = (width, height)
        self.fps = fps
        self.frame_count = len(self.frames)
        self.transform = transform or VideoTransform.identity()

    def get_frame(self, index: int) -> np.ndarray:
        if index < 0 or index >= self.frame_count:
            raise FrameUnavailable(index, "out of range")
        frame = self.frames[index]
        if frame is None:
            raise FrameUnavailable(index, "no image")
        return frame


def open_source(video) -> BaseFrameSource:
    """Accept an open frame source or a path to a video file."""
    if isinstance(video, BaseFrameSource):
        return video
    return VideoReader(video)


class VideoWriter:
    """Write RGB frames to a video file."""

    def __init__(
        self, path: str, width: int, height: int, fps: float = 30.0, codec: str = "mp4v"
    ):
        """Initialize the writer.

        Raises:
            ExportFailed: If the container cannot be created.
        """
        self.path = resolve_path(path)
        self.width = int(width)
        self.height = int(height)
        self.fps = fps

        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        fourcc = cv2.VideoWriter_fourcc(*codec)
        self._writer = cv2.VideoWriter(self.path, fourcc, fps, (self.width, self.height))
        if not self._writer.isOpened():
            raise ExportFailed(f"Cannot create video writer: {self.path}")

    def write_frame(self, frame: np.ndarray):
        """Write an RGB frame; it must match the writer's size."""
        if frame.shape[1] != self.width or frame.shape[0] != self.height:
            raise ExportFailed(
                f"Frame size {frame.shape[1]}x{frame.shape[0]} does not match "
                f"writer size {self.width}x{self.height}"
            )
        bgr_frame = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
        self._writer.write(bgr_frame)

    def close(self):
        self._writer.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def load_image(path: str) -> np.ndarray:
    """Load an image file as an RGB array.

    Raises:
        InvalidInput: If the file is missing or not an image.
    """
    path = resolve_path(path)
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGB"))
    except (FileNotFoundError, OSError) as exc:
        raise InvalidInput(f"Cannot load image: {path}") from exc


def save_image(image: np.ndarray, path: str, quality: int = 90) -> str:
    """Save an RGB array as an image and return the path.

    Raises:
        ExportFailed: If the file cannot be written.
    """
    path = resolve_path(path)
    try:
        parent = os.path.dirname(os.path.abspath(path))
        os.makedirs(parent, exist_ok=True)
        Image.fromarray(image).save(path, quality=quality)
    except (OSError, ValueError) as exc:
        raise ExportFailed(f"Cannot save image: {path}") from exc
    return path
