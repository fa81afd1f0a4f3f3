"""Region effect kernels: blur, mosaic, emoji and color overlay."""

import logging
from functools import lru_cache
from typing import Callable, Dict, Iterable, Tuple, Type

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from ..core.geometry import BoundingBox
from ..core.utils import blend_images, box_to_slices
from .config import BlurEffect, ColorEffect, EffectConfig, EmojiEffect, MosaicEffect

logger = logging.getLogger(__name__)

Region = Tuple[int, int, int, int]

EMOJI_FONTS = ("NotoColorEmoji.ttf", "AppleColorEmoji.ttf", "seguiemj.ttf", "DejaVuSans.ttf")


def _blur(image: np.ndarray, region: Region, effect: BlurEffect) -> None:
    if effect.intensity <= 0:
        return
    x1, y1, x2, y2 = region
    image[y1:y2, x1:x2] = cv2.GaussianBlur(
        image[y1:y2, x1:x2], (0, 0), sigmaX=effect.intensity
    )


def _mosaic(image: np.ndarray, region: Region, effect: MosaicEffect) -> None:
    x1, y1, x2, y2 = region
    roi = image[y1:y2, x1:x2]
    h, w = roi.shape[:2]
    small = cv2.resize(
        roi,
        (max(1, w // effect.block_size), max(1, h // effect.block_size)),
        interpolation=cv2.INTER_LINEAR,
    )
    image[y1:y2, x1:x2] = cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST)


def _color(image: np.ndarray, region: Region, effect: ColorEffect) -> None:
    x1, y1, x2, y2 = region
    roi = image[y1:y2, x1:x2]
    overlay = roi.copy()
    if roi.ndim == 2:
        overlay[...] = effect.rgb[0]
    else:
        # Alpha, when present, keeps the image's own values.
        overlay[..., :3] = effect.rgb
    image[y1:y2, x1:x2] = blend_images(roi, overlay, effect.opacity)


@lru_cache(maxsize=32)
def _emoji_font(size: int) -> ImageFont.ImageFont:
    for name in EMOJI_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    logger.debug("No emoji font found, using Pillow's default font")
    return ImageFont.load_default(size=size)


def render_emoji(emoji: str, size: int, rotation: float = 0.0) -> Image.Image:
    """Render ``emoji`` as an RGBA sprite roughly ``size`` pixels tall."""
    font = _emoji_font(size)
    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = probe.textbbox((0, 0), emoji, font=font, embedded_color=True)
    sprite = Image.new("RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0))
    draw = ImageDraw.Draw(sprite)
    draw.text((-left, -top), emoji, font=font, fill=(255, 255, 255, 255), embedded_color=True)
    if rotation:
        # Positive rotation turns clockwise on screen.
        sprite = sprite.rotate(-rotation, expand=True, resample=Image.BICUBIC)
    return sprite


def _emoji(image: np.ndarray, region: Region, effect: EmojiEffect) -> None:
    x1, y1, x2, y2 = region
    size = int(min(x2 - x1, y2 - y1) * effect.scale)
    if size < 1:
        return
    sprite = render_emoji(effect.emoji, size, effect.rotation)
    source = Image.fromarray(image)
    canvas = source.convert("RGBA")
    cx, cy = (x1 + x2) // 2, (y1 + y2) // 2
    canvas.paste(sprite, (cx - sprite.width // 2, cy - sprite.height // 2), sprite)
    if source.mode == "RGBA":
        canvas.putalpha(source.getchannel("A"))
    image[...] = np.array(canvas.convert(source.mode))


_KERNELS: Dict[Type, Callable[[np.ndarray, Region, EffectConfig], None]] = {
    BlurEffect: _blur,
    MosaicEffect: _mosaic,
    EmojiEffect: _emoji,
    ColorEffect: _color,
}


def apply_effect(image: np.ndarray, box: BoundingBox, effect: EffectConfig) -> np.ndarray:
    """Return a copy of ``image`` with ``effect`` applied inside ``box``.

    The box is clamped to the image; boxes with no visible area leave the
    image unchanged.
    """
    output = image.copy()
    height, width = image.shape[:2]
    region = box_to_slices(box, width, height)
    if region is None:
        return output
    _KERNELS[type(effect)](output, region, effect)
    return output


class EffectCompositor:
    """EffectRenderer applying the built-in kernels."""

    def apply(self, image: np.ndarray, box: BoundingBox, effect: EffectConfig) -> np.ndarray:
        return apply_effect(image, box, effect)

    def apply_all(
        self, image: np.ndarray, boxes: Iterable[BoundingBox], effect: EffectConfig
    ) -> np.ndarray:
        """Apply one effect inside each box, in order."""
        output = image
        for box in boxes:
            output = self.apply(output, box, effect)
        return output
