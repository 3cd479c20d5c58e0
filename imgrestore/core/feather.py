"""
Feathered Mask
==============
Soft-edged alpha masks that limit where a synthesized patch shows through.

Technical Notes:
- The mask covers the padded rectangle; the inner rectangle is the original
  (un-padded) region placed inside it
- A hard inner/outer mask is box-blurred repeatedly (radius 3) so the edge
  fades instead of cutting
- Afterwards the inner rectangle is re-asserted opaque and an outer frame of
  SEAM_GUARD pixels is held transparent; the frame depth equals the half-width
  of the final global sharpen, which therefore never reaches past the padded
  rectangle
"""

from dataclasses import dataclass

import cv2
import numpy as np

from .kernels import unsharp_half_width
from .params import round_half_up
from .raster import Rect

FEATHER_BLUR_RADIUS = 3
SEAM_GUARD = unsharp_half_width(1.0)


def feather_passes(feather: float) -> int:
    """Number of blur passes for a feather radius."""
    return max(1, round_half_up(feather / 3.0))


@dataclass
class FeatheredMask:
    """Single-channel alpha plane sized to a padded rectangle."""
    alpha: np.ndarray
    inner: Rect

    @property
    def width(self) -> int:
        return self.alpha.shape[1]

    @property
    def height(self) -> int:
        return self.alpha.shape[0]

    @classmethod
    def build(cls, padded_w: int, padded_h: int, inner: Rect, feather: float) -> "FeatheredMask":
        """
        Build a feathered mask.

        Args:
            padded_w: Width of the padded rectangle.
            padded_h: Height of the padded rectangle.
            inner: Inner rectangle in mask-local coordinates.
            feather: Feather radius; wider radius means a softer transition.

        Returns:
            FeatheredMask with alpha 255 inside `inner` and 0 on the outer frame.

        Raises:
            ValueError: If `inner` does not fit inside the padded rectangle.
        """
        if padded_w <= 0 or padded_h <= 0:
            raise ValueError(f"Invalid mask size: {padded_w}x{padded_h}")
        if not inner.within(padded_w, padded_h):
            raise ValueError(f"Inner rect {inner} outside {padded_w}x{padded_h} mask")

        hard = np.zeros((padded_h, padded_w), dtype=np.float32)
        hard[inner.y:inner.bottom, inner.x:inner.right] = 255.0

        ksize = 2 * FEATHER_BLUR_RADIUS + 1
        soft = hard
        for _ in range(feather_passes(feather)):
            soft = cv2.blur(soft, (ksize, ksize), borderType=cv2.BORDER_CONSTANT)

        guard = min(SEAM_GUARD, padded_w // 2, padded_h // 2)
        if guard > 0:
            soft[:guard, :] = 0
            soft[-guard:, :] = 0
            soft[:, :guard] = 0
            soft[:, -guard:] = 0

        alpha = np.maximum(soft, hard)
        alpha = np.clip(np.rint(alpha), 0, 255).astype(np.uint8)
        return cls(alpha=alpha, inner=inner)

    @staticmethod
    def centered_inner(padded_w: int, padded_h: int, region_w: int, region_h: int,
                       pad: int) -> Rect:
        """
        Inner rectangle of the original region size, centered in the block.

        The size is clamped to fit inside the block minus its padding and is
        never smaller than one pixel.
        """
        inner_w = max(1, min(region_w, padded_w - pad * 2))
        inner_h = max(1, min(region_h, padded_h - pad * 2))
        inner_w = min(inner_w, padded_w)
        inner_h = min(inner_h, padded_h)
        inner_x = round_half_up((padded_w - inner_w) / 2.0)
        inner_y = round_half_up((padded_h - inner_h) / 2.0)
        inner_x = min(inner_x, padded_w - inner_w)
        inner_y = min(inner_y, padded_h - inner_h)
        return Rect(inner_x, inner_y, inner_w, inner_h)
