"""Error taxonomy for trackfx.

Per-frame problems (``ShapeMismatch``, ``FrameUnavailable``) are absorbed and
logged inside the pipeline. Whole-operation problems propagate to the caller.
"""


class TrackFxError(Exception):
    """Base class for all trackfx errors."""


class InvalidInput(TrackFxError, ValueError):
    """Malformed URI, bounding box, effect configuration or argument."""


class ModelLoadError(TrackFxError):
    """Model artifact missing, unreadable or structurally incompatible."""


class ShapeMismatch(TrackFxError):
    """Raw detection tensor does not match the expected layout."""


class FrameUnavailable(TrackFxError):
    """A frame could not be decoded at the requested index."""

    def __init__(self, index: int, reason: str = ""):
        self.index = index
        message = f"Frame {index} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoVideoTrack(TrackFxError):
    """The input could not be opened as a video."""


class ExportFailed(TrackFxError):
    """Writing the output video or image failed."""


class ObjectNotFound(TrackFxError, KeyError):
    """Unknown object id passed to a tracking call."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Object not found"


class ProcessingCancelled(TrackFxError):
    """Raised when a caller cancels a long-running batch operation.

    Attributes:
        partial_results: Results for every frame completed before cancellation.
    """

    def __init__(self, partial_results=None):
        self.partial_results = list(partial_results or [])
        super().__init__(
            f"Processing cancelled after {len(self.partial_results)} results"
        )
