"""Effect descriptors: one immutable variant per effect kind.

Parameters are clamped into their valid range at construction; values that
cannot be interpreted at all raise ``InvalidInput``.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Tuple, Union

from ..core.utils import parse_hex_color
from ..errors import InvalidInput


def _clamp(name: str, value: Any, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{name} must be a number, got {value!r}") from exc
    if math.isnan(number):
        raise InvalidInput(f"{name} must not be NaN")
    return max(low, min(high, number))


@dataclass(frozen=True)
class BlurEffect:
    """Gaussian blur; ``intensity`` in [0, 20]."""

    intensity: float = 10.0
    type = "blur"

    def __post_init__(self):
        object.__setattr__(self, "intensity", _clamp("intensity", self.intensity, 0.0, 20.0))


@dataclass(frozen=True)
class MosaicEffect:
    """Pixelation; ``block_size`` in [5, 50] pixels."""

    block_size: int = 10
    type = "mosaic"

    def __post_init__(self):
        size = _clamp("blockSize", self.block_size, 5, 50)
        object.__setattr__(self, "block_size", int(round(size)))


@dataclass(frozen=True)
class EmojiEffect:
    """Emoji drawn over the box; ``scale`` in [0.5, 3], ``rotation`` in degrees."""

    emoji: str = "\U0001F600"
    scale: float = 1.0
    rotation: float = 0.0
    type = "emoji"

    def __post_init__(self):
        if not isinstance(self.emoji, str) or not self.emoji:
            raise InvalidInput("emoji must be a non-empty string")
        object.__setattr__(self, "scale", _clamp("scale", self.scale, 0.5, 3.0))
        rotation = _clamp("rotation", self.rotation, -math.inf, math.inf)
        if math.isinf(rotation):
            raise InvalidInput("rotation must be finite")
        object.__setattr__(self, "rotation", rotation % 360.0)


@dataclass(frozen=True)
class ColorEffect:
    """Solid color overlay; ``color`` is a hex string, ``opacity`` in [0, 1]."""

    color: str = "#000000"
    opacity: float = 1.0
    type = "color"

    def __post_init__(self):
        parse_hex_color(self.color)
        object.__setattr__(self, "opacity", _clamp("opacity", self.opacity, 0.0, 1.0))

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return parse_hex_color(self.color)


EffectConfig = Union[BlurEffect, MosaicEffect, EmojiEffect, ColorEffect]

EFFECT_TYPES = {
    "blur": BlurEffect,
    "mosaic": MosaicEffect,
    "emoji": EmojiEffect,
    "color": ColorEffect,
}

# Wire names to dataclass field names.
_FIELD_ALIASES = {
    "blockSize": "block_size",
}


def parse_effect_config(data: Union[Mapping[str, Any], EffectConfig]) -> EffectConfig:
    """Validate a ``{"type": ..., ...}`` mapping into an effect variant.

    Raises:
        InvalidInput: On an unknown type, unknown or missing parameters.
    """
    if isinstance(data, tuple(EFFECT_TYPES.values())):
        return data
    if not isinstance(data, Mapping):
        raise InvalidInput(f"Effect config must be a mapping, got {type(data).__name__}")
    kind = data.get("type")
    if kind not in EFFECT_TYPES:
        raise InvalidInput(f"Unknown effect type {kind!r}, expected one of {sorted(EFFECT_TYPES)}")
    cls = EFFECT_TYPES[kind]
    params = {
        _FIELD_ALIASES.get(key, key): value for key, value in data.items() if key != "type"
    }
    try:
        return cls(**params)
    except TypeError as exc:
        raise InvalidInput(f"Bad parameters for {kind} effect: {exc}") from exc


def effect_to_dict(effect: EffectConfig) -> Dict[str, Any]:
    data = {"type": effect.type}
    for key, value in asdict(effect).items():
        data["blockSize" if key == "block_size" else key] = value
    return data
