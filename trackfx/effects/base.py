"""Base effect renderer protocol."""

from typing import Protocol

import numpy as np

from ..core.geometry import BoundingBox
from .config import EffectConfig


class EffectRenderer(Protocol):
    """Protocol for region effects."""

    def apply(self, image: np.ndarray, box: BoundingBox, effect: EffectConfig) -> np.ndarray:
        """Apply an effect inside a box.

        Args:
            image: Input frame (RGB).
            box: Region in pixels of ``image``, top-left origin.
            effect: Effect descriptor.

        Returns:
            New frame (RGB); ``image`` is not modified.
        """
        ...
