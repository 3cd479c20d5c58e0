"""
Raster Buffer
=============
In-memory RGBA8 pixel grid plus the integer rectangle type used for regions.

Technical Notes:
- Pixels live in a numpy array of shape (height, width, 4), dtype uint8
- Row-major with an implicit stride of width * 4 bytes
- Every coordinate access is checked against [0, W) x [0, H)
- crop() and copy() return owned copies; buffers are never aliased
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np

from .errors import OutOfBounds

CHANNELS = 4


@dataclass(frozen=True)
class Rect:
    """Integer rectangle in source-image pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def padded(self, pad: int, bounds_w: int, bounds_h: int) -> Optional["Rect"]:
        """
        Expand the rectangle by `pad` on all sides and clamp it to the image.

        Args:
            pad: Padding in pixels applied to every edge.
            bounds_w: Image width.
            bounds_h: Image height.

        Returns:
            The clamped rectangle, or None if nothing of it is left.
        """
        x0 = max(0, self.x - pad)
        y0 = max(0, self.y - pad)
        x1 = min(bounds_w, self.right + pad)
        y1 = min(bounds_h, self.bottom + pad)
        if x1 - x0 <= 0 or y1 - y0 <= 0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def within(self, width: int, height: int) -> bool:
        return (
            not self.is_empty
            and self.x >= 0 and self.y >= 0
            and self.right <= width and self.bottom <= height
        )


class RasterBuffer:
    """
    Owned RGBA8 pixel buffer.

    Construct from an existing array with from_array() (copied) or a solid
    color with blank(). Filters in kernels.py return new buffers.
    """

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 3 or pixels.shape[2] != CHANNELS or pixels.dtype != np.uint8:
            raise ValueError(
                f"Expected (H, W, 4) uint8 pixels, got {pixels.shape} {pixels.dtype}"
            )
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("RasterBuffer cannot be empty")
        self._pixels = pixels

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterBuffer":
        """
        Build a buffer from an (H, W), (H, W, 3) or (H, W, 4) array.

        Missing alpha is filled opaque. The input is always copied.
        """
        arr = np.asarray(array)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Unsupported pixel array shape: {arr.shape}")

        arr = np.clip(arr, 0, 255).astype(np.uint8, copy=True)
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=2)
        return cls(np.ascontiguousarray(arr))

    @classmethod
    def blank(cls, width: int, height: int,
              color: Tuple[int, int, int, int] = (0, 0, 0, 255)) -> "RasterBuffer":
        """Create a buffer filled with a single RGBA color."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid buffer size: {width}x{height}")
        pixels = np.empty((height, width, CHANNELS), dtype=np.uint8)
        pixels[:, :] = color
        return cls(pixels)

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def stride(self) -> int:
        return self.width * CHANNELS

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the pixel array."""
        view = self._pixels.view()
        view.flags.writeable = False
        return view

    def _check(self, x: int, y: int):
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfBounds(
                f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer"
            )

    def get_pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        self._check(x, y)
        r, g, b, a = self._pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def set_pixel(self, x: int, y: int, rgba: Tuple[int, int, int, int]):
        self._check(x, y)
        self._pixels[y, x] = [max(0, min(255, int(c))) for c in rgba]

    def rows(self, rect: Optional[Rect] = None) -> Iterator[Tuple[int, np.ndarray]]:
        """
        Iterate over writable row slices, optionally limited to `rect`.

        Each yielded slice has shape (width, 4) and is only valid until the
        next iteration step.

        Raises:
            OutOfBounds: If `rect` does not fit inside the buffer.
        """
        if rect is None:
            rect = Rect(0, 0, self.width, self.height)
        elif not rect.within(self.width, self.height):
            raise OutOfBounds(f"{rect} outside {self.width}x{self.height} buffer")

        for y in range(rect.y, rect.bottom):
            yield y, self._pixels[y, rect.x:rect.right]

    def crop(self, rect: Rect) -> "RasterBuffer":
        """Return an owned copy of the pixels inside `rect`."""
        if not rect.within(self.width, self.height):
            raise OutOfBounds(f"Cannot crop {rect} from {self.width}x{self.height} buffer")
        return RasterBuffer(
            self._pixels[rect.y:rect.bottom, rect.x:rect.right].copy()
        )

    def paste(self, other: "RasterBuffer", x: int, y: int):
        """Overwrite pixels at (x, y) with `other` (no blending)."""
        target = Rect(x, y, other.width, other.height)
        if not target.within(self.width, self.height):
            raise OutOfBounds(f"Cannot paste {target} into {self.width}x{self.height} buffer")
        self._pixels[y:target.bottom, x:target.right] = other._pixels

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self._pixels.copy())

    def to_array(self) -> np.ndarray:
        """Return a writable copy of the pixel array."""
        return self._pixels.copy()

    def mean_rgb(self) -> Tuple[float, float, float]:
        r, g, b = self._pixels[:, :, :3].reshape(-1, 3).mean(axis=0)
        return float(r), float(g), float(b)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RasterBuffer):
            return NotImplemented
        return self.size == other.size and np.array_equal(self._pixels, other._pixels)

    __hash__ = None

    def __repr__(self) -> str:
        return f"RasterBuffer({self.width}x{self.height})"
