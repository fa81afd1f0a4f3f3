"""Image utility functions."""

import re
from typing import Optional, Tuple

import numpy as np

from ..errors import InvalidInput
from .geometry import BoundingBox, Space

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def blend_images(
    img1: np.ndarray, img2: np.ndarray, alpha: np.ndarray | float
) -> np.ndarray:
    """Blend two images using alpha mask or scalar.

    Args:
        img1: First image (background).
        img2: Second image (foreground).
        alpha: Blend factor (0-1). Can be scalar or 2D/3D array.

    Returns:
        Blended image as uint8 array.

    Raises:
        ValueError: If image shapes don't match.
    """
    if img2 is None:
        return img1.astype(np.uint8)

    if img1.shape != img2.shape:
        raise ValueError(f"Shape mismatch: {img1.shape} vs {img2.shape}")

    if isinstance(alpha, np.ndarray) and alpha.ndim == 2:
        alpha = alpha[:, :, np.newaxis]

    blended = img1.astype(np.float32) * (1 - alpha) + img2.astype(np.float32) * alpha
    return np.clip(blended, 0, 255).astype(np.uint8)


def box_to_slices(
    box: BoundingBox, width: int, height: int
) -> Optional[Tuple[int, int, int, int]]:
    """Integer ``(x1, y1, x2, y2)`` of a pixel box clamped into the frame.

    Returns:
        None when nothing of the box lies inside the frame.
    """
    if box.space != Space.PIXEL:
        raise ValueError("box_to_slices expects a pixel-space box")
    x1 = int(max(0, min(width, np.floor(box.x))))
    y1 = int(max(0, min(height, np.floor(box.y))))
    x2 = int(max(0, min(width, np.ceil(box.x2))))
    y2 = int(max(0, min(height, np.ceil(box.y2))))
    if x2 <= x1 or y2 <= y1:
        return None
    return x1, y1, x2, y2


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """Parse ``#RGB`` or ``#RRGGBB`` into an RGB tuple.

    Raises:
        InvalidInput: If the string is not a hex color.
    """
    match = _HEX_COLOR.match(str(value).strip())
    if not match:
        raise InvalidInput(f"Invalid hex color: {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))
