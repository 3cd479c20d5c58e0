"""
Kernel / Filter Library
=======================
Resampling, blurring, convolution, sharpening and compositing operators
acting on RasterBuffer.

Technical Notes:
- Every operator returns a NEW buffer; inputs are never modified
- Arithmetic runs in float32, results are rounded and clamped to [0, 255]
- Edge pixels are replicated for every neighbourhood filter
- Blurs and convolutions act on all four channels (opaque alpha stays opaque);
  unsharp_mask and normalize leave alpha untouched
"""

import math
from typing import Sequence

import cv2
import numpy as np

from .errors import OutOfBounds
from .raster import Rect, RasterBuffer

# Strong unity-sum sharpen, used when smoothing strength <= 3
SHARPEN_STRONG = (
    (0.0, -1.0, 0.0),
    (-1.0, 5.0, -1.0),
    (0.0, -1.0, 0.0),
)

# Gentler preset for heavier smoothing, avoids amplifying smoothing noise
SHARPEN_GENTLE = (
    (0.0, -0.4, 0.0),
    (-0.4, 2.6, -0.4),
    (0.0, -0.4, 0.0),
)

MEAN_3X3 = tuple(tuple(1.0 / 9.0 for _ in range(3)) for _ in range(3))

RESAMPLERS = {
    "cubic": cv2.INTER_CUBIC,
    "lanczos": cv2.INTER_LANCZOS4,
}

# Unsharp mask: detail below this magnitude counts as "flat"
UNSHARP_THRESHOLD = 2.0
# Maximum brightening / darkening an unsharp pass may add to a channel
UNSHARP_MAX_BRIGHTEN = 26.0
UNSHARP_MAX_DARKEN = 51.0


def _as_float(buf: RasterBuffer) -> np.ndarray:
    return buf.pixels.astype(np.float32)


def _to_buffer(arr: np.ndarray) -> RasterBuffer:
    return RasterBuffer(np.clip(np.rint(arr), 0, 255).astype(np.uint8))


def gaussian_half_width(radius: float) -> int:
    """Kernel half-width used by gaussian_blur for a given radius."""
    return max(1, int(math.ceil(radius * 2.57)))


def unsharp_half_width(sigma: float) -> int:
    """Kernel half-width of the blur inside unsharp_mask."""
    return max(1, int(math.ceil(3.0 * sigma)))


def resize(buf: RasterBuffer, width: int, height: int, algorithm: str = "cubic") -> RasterBuffer:
    """
    Resample a buffer to width x height.

    Args:
        buf: Source buffer.
        width: Target width in pixels (>= 1).
        height: Target height in pixels (>= 1).
        algorithm: "cubic" (enlarging) or "lanczos" (shrinking).

    Returns:
        New resampled buffer.
    """
    if algorithm not in RESAMPLERS:
        raise ValueError(f"Unsupported resampling algorithm: {algorithm}")
    if width < 1 or height < 1:
        raise ValueError(f"Invalid resize target: {width}x{height}")

    if (width, height) == buf.size:
        return buf.copy()

    out = cv2.resize(buf.to_array(), (int(width), int(height)),
                     interpolation=RESAMPLERS[algorithm])
    return RasterBuffer(np.ascontiguousarray(out))


def gaussian_blur(buf: RasterBuffer, radius: float) -> RasterBuffer:
    """Gaussian blur with sigma = radius and half-width ceil(radius * 2.57)."""
    if radius <= 0:
        return buf.copy()
    ksize = 2 * gaussian_half_width(radius) + 1
    out = cv2.GaussianBlur(_as_float(buf), (ksize, ksize), sigmaX=radius, sigmaY=radius,
                           borderType=cv2.BORDER_REPLICATE)
    return _to_buffer(out)


def box_blur(buf: RasterBuffer, radius: int) -> RasterBuffer:
    """Mean filter over a (2r+1) x (2r+1) window."""
    radius = int(radius)
    if radius <= 0:
        return buf.copy()
    ksize = 2 * radius + 1
    out = cv2.blur(_as_float(buf), (ksize, ksize), borderType=cv2.BORDER_REPLICATE)
    return _to_buffer(out)


def convolve(buf: RasterBuffer, kernel: Sequence[Sequence[float]]) -> RasterBuffer:
    """
    Apply a 3x3 kernel to every channel.

    The kernel is applied as given (not flipped); all presets are symmetric.
    """
    k = np.asarray(kernel, dtype=np.float32)
    if k.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 kernel, got shape {k.shape}")
    out = cv2.filter2D(_as_float(buf), -1, k, borderType=cv2.BORDER_REPLICATE)
    return _to_buffer(out)


def unsharp_mask(buf: RasterBuffer, sigma: float, flat_amount: float,
                 jagged_amount: float) -> RasterBuffer:
    """
    Two-slope unsharp mask on the RGB channels.

    The detail signal (image minus its Gaussian blur) is amplified by
    `flat_amount` up to UNSHARP_THRESHOLD and by `jagged_amount` beyond it,
    then limited to UNSHARP_MAX_BRIGHTEN / UNSHARP_MAX_DARKEN.

    Args:
        buf: Source buffer.
        sigma: Gaussian sigma of the blurred copy; larger is softer.
        flat_amount: Sharpening slope for flat regions.
        jagged_amount: Sharpening slope for edges.

    Returns:
        New sharpened buffer.
    """
    if sigma <= 0:
        raise ValueError("sigma must be positive")

    arr = _as_float(buf)
    rgb = arr[:, :, :3]
    ksize = 2 * unsharp_half_width(sigma) + 1
    blurred = cv2.GaussianBlur(np.ascontiguousarray(rgb), (ksize, ksize),
                               sigmaX=sigma, sigmaY=sigma,
                               borderType=cv2.BORDER_REPLICATE)

    detail = rgb - blurred
    magnitude = np.abs(detail)
    boost = np.where(
        magnitude <= UNSHARP_THRESHOLD,
        detail * flat_amount,
        np.sign(detail) * (flat_amount * UNSHARP_THRESHOLD
                           + (magnitude - UNSHARP_THRESHOLD) * jagged_amount),
    )
    boost = np.clip(boost, -UNSHARP_MAX_DARKEN, UNSHARP_MAX_BRIGHTEN)

    arr[:, :, :3] = rgb + boost
    return _to_buffer(arr)


def overlay_blend(dst: RasterBuffer, src: RasterBuffer) -> RasterBuffer:
    """
    Overlay `src` onto `dst`, both at full opacity.

    Per channel (normalized): 2*s*d where d <= 0.5, else 1 - 2*(1-d)*(1-s).
    """
    if dst.size != src.size:
        raise ValueError(f"Overlay size mismatch: {dst.size} vs {src.size}")

    d = _as_float(dst) / 255.0
    s = _as_float(src) / 255.0
    out = np.empty_like(d)
    out[:, :, :3] = np.where(
        d[:, :, :3] <= 0.5,
        2.0 * s[:, :, :3] * d[:, :, :3],
        1.0 - 2.0 * (1.0 - d[:, :, :3]) * (1.0 - s[:, :, :3]),
    )
    out[:, :, 3] = s[:, :, 3] + d[:, :, 3] - s[:, :, 3] * d[:, :, 3]
    return _to_buffer(out * 255.0)


def apply_mask(buf: RasterBuffer, mask: np.ndarray) -> RasterBuffer:
    """Scale the alpha channel by a single-channel uint8 mask of the same size."""
    mask = np.asarray(mask)
    if mask.shape != (buf.height, buf.width):
        raise ValueError(f"Mask shape {mask.shape} does not match buffer {buf.size}")

    arr = _as_float(buf)
    arr[:, :, 3] = arr[:, :, 3] * (mask.astype(np.float32) / 255.0)
    return _to_buffer(arr)


def alpha_composite(dst: RasterBuffer, patch: RasterBuffer, x: int, y: int) -> RasterBuffer:
    """
    Source-over composite of `patch` onto `dst` with its origin at (x, y).

    Pixels of `dst` outside the patch rectangle are copied unchanged.

    Raises:
        OutOfBounds: If the patch does not fit inside `dst`.
    """
    target = Rect(x, y, patch.width, patch.height)
    if not target.within(dst.width, dst.height):
        raise OutOfBounds(f"Patch {target} outside {dst.width}x{dst.height} image")

    out = dst.to_array()
    region = out[y:target.bottom, x:target.right].astype(np.float32)
    src = _as_float(patch)

    sa = src[:, :, 3:4] / 255.0
    da = region[:, :, 3:4] / 255.0
    out_a = sa + da * (1.0 - sa)
    safe_a = np.where(out_a > 0, out_a, 1.0)
    rgb = (src[:, :, :3] * sa + region[:, :, :3] * da * (1.0 - sa)) / safe_a

    blended = np.concatenate([rgb, out_a * 255.0], axis=2)
    out[y:target.bottom, x:target.right] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return RasterBuffer(out)


def normalize(buf: RasterBuffer, low_pct: float = 1.0, high_pct: float = 99.0) -> RasterBuffer:
    """
    Stretch contrast so the luminance percentiles map onto [0, 255].

    Images with a (near) flat luminance are returned unchanged.
    """
    arr = _as_float(buf)
    luma = cv2.cvtColor(np.ascontiguousarray(buf.pixels[:, :, :3]), cv2.COLOR_RGB2GRAY)
    lo, hi = np.percentile(luma, (low_pct, high_pct))
    if hi - lo < 1.0:
        return buf.copy()

    arr[:, :, :3] = (arr[:, :, :3] - lo) * (255.0 / (hi - lo))
    return _to_buffer(arr)
