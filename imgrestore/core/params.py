"""
Processing Parameters
=====================
Parameter records for the three operations, plus parsing of the string form
fields and mask JSON the service layer receives.

Every tuning knob is coerced, never rejected:
- missing, empty, non-numeric or non-finite values take the default
- numeric values are clamped into their documented range
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedMaskInput
from .raster import Rect

logger = logging.getLogger(__name__)

STRENGTH_RANGE = (1.0, 5.0)
PASSES_RANGE = (1, 8)
SCALE_RANGE = (1.5, 3.0)
SHARPNESS_RANGE = (0.8, 2.5)
FEATHER_RANGE = (2.0, 40.0)

DEWATERMARK_MODES = ("inpaint", "blur")
RESTORE_MODES = ("auto", "detail")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from minus infinity."""
    return int(math.floor(value + 0.5))


def clamp(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def parse_number(raw: Any, default: float) -> float:
    """
    Parse a numeric form field.

    Returns `default` for None, empty strings, booleans, anything that is
    not a finite number.
    """
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return default
        try:
            value = float(text)
        except ValueError:
            return default
    if not math.isfinite(value):
        return default
    return value


def parse_mode(raw: Any, choices: Sequence[str], default: str) -> str:
    if raw is None:
        return default
    mode = str(raw).strip().lower()
    return mode if mode in choices else default


def clamp_strength(value: float) -> float:
    return clamp(value, STRENGTH_RANGE)


def clamp_passes(value: float) -> int:
    return int(clamp(round_half_up(value), PASSES_RANGE))


def clamp_scale(value: float) -> float:
    return clamp(value, SCALE_RANGE)


def clamp_sharpness(value: float) -> float:
    return clamp(value, SHARPNESS_RANGE)


def clamp_feather(value: float) -> float:
    return clamp(value, FEATHER_RANGE)


def upscale_factor(strength: float, scale: float = 0.0) -> float:
    """
    Effective upscale factor for the de-mosaic pipeline.

    An explicit positive `scale` is clamped to [1.5, 3.0]; otherwise the
    factor grows with strength, capped at 3.
    """
    if scale > 0:
        return clamp_scale(scale)
    return min(3.0, 1.0 + clamp_strength(strength) * 0.6)


@dataclass
class DeMosaicParams:
    """Knobs for the de-mosaic pipeline. Values are clamped on construction."""
    strength: float = 2.0
    scale: float = 0.0  # <= 0 derives the factor from strength
    passes: int = 3
    sharpness: float = 1.15

    def __post_init__(self):
        self.strength = clamp_strength(float(self.strength))
        self.scale = float(self.scale)
        self.passes = clamp_passes(float(self.passes))
        self.sharpness = clamp_sharpness(float(self.sharpness))

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "DeMosaicParams":
        return cls(
            strength=parse_number(form.get("strength"), 2.0),
            scale=parse_number(form.get("scale"), 0.0),
            passes=parse_number(form.get("passes"), 3),
            sharpness=parse_number(form.get("sharpness"), 1.15),
        )

    @property
    def upscale(self) -> float:
        return upscale_factor(self.strength, self.scale)

    @property
    def gaussian_radius(self) -> int:
        return max(1, round_half_up(1 + self.strength))

    @property
    def blur_radius(self) -> int:
        return self.gaussian_radius

    @property
    def box_radius(self) -> int:
        return max(1, round_half_up(self.blur_radius * 0.9))


@dataclass
class DeWatermarkParams:
    """Knobs for the de-watermark pipeline. Values are clamped on construction."""
    mode: str = "inpaint"
    strength: float = 3.0
    feather: Optional[float] = None  # None derives 6 + strength * 3

    def __post_init__(self):
        self.mode = parse_mode(self.mode, DEWATERMARK_MODES, "inpaint")
        self.strength = clamp_strength(float(self.strength))
        if self.feather is None:
            self.feather = 6 + self.strength * 3
        self.feather = clamp_feather(float(self.feather))

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "DeWatermarkParams":
        strength = clamp_strength(parse_number(form.get("strength"), 3.0))
        return cls(
            mode=parse_mode(form.get("mode"), DEWATERMARK_MODES, "inpaint"),
            strength=strength,
            feather=parse_number(form.get("feather"), 6 + strength * 3),
        )

    @property
    def pad(self) -> int:
        return round_half_up(4 + self.strength * 3)

    @property
    def noise(self) -> int:
        return max(0, round_half_up(2 + self.strength * 2))

    @property
    def fill_smooth_rounds(self) -> int:
        return 1 + int(math.floor(self.strength / 2))

    @property
    def blend_blur_passes(self) -> int:
        return max(1, round_half_up(self.strength / 2))


@dataclass
class RestoreParams:
    mode: str = "auto"

    def __post_init__(self):
        self.mode = parse_mode(self.mode, RESTORE_MODES, "auto")

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "RestoreParams":
        return cls(mode=form.get("mode"))


@dataclass
class MaskInput:
    """Parsed mask regions plus whether the caller supplied any."""
    regions: List[Rect] = field(default_factory=list)

    @property
    def has_mask(self) -> bool:
        return len(self.regions) > 0


def _parse_region(item: Any) -> Rect:
    # Entries that are not objects have no fields; every field defaults to 0
    fields = item if isinstance(item, Mapping) else {}
    return Rect(
        x=int(math.floor(parse_number(fields.get("x"), 0))),
        y=int(math.floor(parse_number(fields.get("y"), 0))),
        width=int(math.floor(parse_number(fields.get("width"), 0))),
        height=int(math.floor(parse_number(fields.get("height"), 0))),
    )


def parse_mask_regions(raw: Any) -> MaskInput:
    """
    Parse mask input into rectangles.

    Accepts a JSON string or an already decoded list of {x, y, width, height}
    objects. Anything unparsable degrades to an empty region list and is
    logged; it never fails the request. Every array entry yields a region,
    so `has_mask` follows the array length.
    """
    if raw is None or (isinstance(raw, (str, bytes)) and not raw.strip()):
        return MaskInput()

    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(data, list):
            raise MalformedMaskInput(f"Mask must be a JSON array, got {type(data).__name__}")
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning("Ignoring malformed mask input: %s", e)
        return MaskInput()

    regions = []
    for index, item in enumerate(data):
        if not isinstance(item, Mapping):
            logger.warning("Mask entry %d is not an object, using an empty region", index)
        regions.append(_parse_region(item))
    return MaskInput(regions=regions)
