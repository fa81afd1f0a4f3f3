"""Effects module for region effects and annotation overlays."""

from .annotate import ColorAssigner, FrameAnnotator
from .base import EffectRenderer
from .config import (
    BlurEffect,
    ColorEffect,
    EffectConfig,
    EmojiEffect,
    MosaicEffect,
    effect_to_dict,
    parse_effect_config,
)
from .render import EffectCompositor, apply_effect

__all__ = [
    "BlurEffect",
    "ColorAssigner",
    "ColorEffect",
    "EffectCompositor",
    "EffectConfig",
    "EffectRenderer",
    "EmojiEffect",
    "FrameAnnotator",
    "MosaicEffect",
    "apply_effect",
    "effect_to_dict",
    "parse_effect_config",
]
