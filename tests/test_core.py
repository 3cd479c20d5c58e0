"""
Test script for the raster buffer, kernel library, feathered mask and
parameter handling.

Run with: python -m pytest tests/test_core.py -v
Or simply: python tests/test_core.py
"""

import sys
import traceback
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytest

from imgrestore.core import kernels
from imgrestore.core.errors import OutOfBounds
from imgrestore.core.feather import SEAM_GUARD, FeatheredMask
from imgrestore.core.params import (
    DeMosaicParams, DeWatermarkParams, RestoreParams,
    clamp_feather, clamp_passes, clamp_scale, clamp_sharpness, clamp_strength,
    parse_mask_regions, parse_number, round_half_up, upscale_factor
)
from imgrestore.core.raster import RasterBuffer, Rect


def solid(width: int, height: int, value: int = 100) -> RasterBuffer:
    """Opaque gray buffer."""
    return RasterBuffer.blank(width, height, (value, value, value, 255))


def step_image(width: int = 40, height: int = 20, left: int = 100, right: int = 150) -> RasterBuffer:
    """Vertical edge: left half `left`, right half `right`."""
    arr = np.full((height, width, 3), left, dtype=np.uint8)
    arr[:, width // 2:] = right
    return RasterBuffer.from_array(arr)


# =============================================================================
# RasterBuffer / Rect
# =============================================================================

def test_blank_buffer_layout():
    buf = RasterBuffer.blank(7, 3, (1, 2, 3, 4))
    assert buf.size == (7, 3)
    assert buf.stride == 28
    assert buf.get_pixel(6, 2) == (1, 2, 3, 4)


def test_from_array_adds_opaque_alpha():
    buf = RasterBuffer.from_array(np.zeros((2, 3, 3), dtype=np.uint8))
    assert buf.pixels.shape == (2, 3, 4)
    assert (buf.pixels[:, :, 3] == 255).all()


def test_pixel_access_is_bounds_checked():
    buf = solid(4, 4)
    for x, y in [(-1, 0), (0, -1), (4, 0), (0, 4)]:
        with pytest.raises(OutOfBounds):
            buf.get_pixel(x, y)
        with pytest.raises(OutOfBounds):
            buf.set_pixel(x, y, (0, 0, 0, 255))


def test_set_pixel_clamps_channels():
    buf = solid(2, 2)
    buf.set_pixel(1, 1, (300, -5, 10, 255))
    assert buf.get_pixel(1, 1) == (255, 0, 10, 255)


def test_pixels_view_is_read_only():
    buf = solid(2, 2)
    with pytest.raises(ValueError):
        buf.pixels[0, 0, 0] = 1


def test_crop_returns_owned_copy():
    buf = solid(10, 10, 50)
    block = buf.crop(Rect(2, 3, 4, 5))
    assert block.size == (4, 5)
    block.set_pixel(0, 0, (0, 0, 0, 255))
    assert buf.get_pixel(2, 3) == (50, 50, 50, 255)


def test_crop_outside_raises():
    buf = solid(10, 10)
    with pytest.raises(OutOfBounds):
        buf.crop(Rect(8, 8, 5, 5))
    with pytest.raises(OutOfBounds):
        buf.crop(Rect(-1, 0, 2, 2))


def test_rows_iterates_rect_slices():
    buf = solid(10, 10, 0)
    seen = []
    for y, row in buf.rows(Rect(1, 2, 3, 4)):
        assert row.shape == (3, 4)
        row[:, 0] = 9
        seen.append(y)
    assert seen == [2, 3, 4, 5]
    assert buf.get_pixel(1, 2)[0] == 9
    assert buf.get_pixel(4, 2)[0] == 0

    with pytest.raises(OutOfBounds):
        list(buf.rows(Rect(5, 5, 10, 10)))


def test_rect_padding_clamps_to_image():
    assert Rect(50, 50, 20, 20).padded(13, 200, 200) == Rect(37, 37, 46, 46)
    assert Rect(-5, 2, 10, 10).padded(3, 100, 100) == Rect(0, 0, 8, 15)
    assert Rect(190, 190, 20, 20).padded(5, 200, 200) == Rect(185, 185, 15, 15)


def test_rect_outside_image_is_degenerate():
    assert Rect(500, 500, 20, 20).padded(13, 200, 200) is None
    assert Rect(-100, 10, 20, 20).padded(13, 200, 200) is None


# =============================================================================
# Kernel library
# =============================================================================

def test_sharpen_presets_are_unity_sum():
    assert np.isclose(np.sum(kernels.SHARPEN_STRONG), 1.0)
    assert np.isclose(np.sum(kernels.SHARPEN_GENTLE), 1.0)
    assert np.isclose(np.sum(kernels.MEAN_3X3), 1.0)


def test_filters_keep_flat_image():
    buf = solid(16, 12, 90)
    for out in (
            kernels.gaussian_blur(buf, 3),
            kernels.box_blur(buf, 2),
            kernels.convolve(buf, kernels.SHARPEN_STRONG),
            kernels.convolve(buf, kernels.SHARPEN_GENTLE),
            kernels.unsharp_mask(buf, 1.0, 1.0, 1.2),
    ):
        assert out == buf


def test_filters_do_not_modify_input():
    buf = step_image()
    before = buf.to_array()
    kernels.gaussian_blur(buf, 2)
    kernels.unsharp_mask(buf, 1.0, 2.0, 2.0)
    assert np.array_equal(buf.pixels, before)


def test_convolve_clamps_results():
    buf = solid(5, 5, 0)
    buf.set_pixel(2, 2, (255, 255, 255, 255))
    out = kernels.convolve(buf, kernels.SHARPEN_STRONG)
    assert out.get_pixel(2, 2)[:3] == (255, 255, 255)
    assert out.get_pixel(2, 1)[:3] == (0, 0, 0)


def test_convolve_rejects_non_3x3_kernel():
    with pytest.raises(ValueError):
        kernels.convolve(solid(4, 4), [[1, 0], [0, 1]])


def test_resize_algorithms():
    buf = step_image(10, 8)
    up = kernels.resize(buf, 25, 20, "cubic")
    assert up.size == (25, 20)
    down = kernels.resize(up, 10, 8, "lanczos")
    assert down.size == (10, 8)
    with pytest.raises(ValueError):
        kernels.resize(buf, 5, 5, "nearest")


def test_box_blur_softens_edge():
    out = kernels.box_blur(step_image(), 2)
    left, right = out.get_pixel(19, 10)[0], out.get_pixel(20, 10)[0]
    assert 100 < left < right < 150


def test_unsharp_mask_increases_edge_contrast():
    buf = step_image()
    out = kernels.unsharp_mask(buf, 1.0, 1.0, 1.2)
    assert out.get_pixel(19, 10)[0] < 100
    assert out.get_pixel(20, 10)[0] > 150
    assert out.get_pixel(19, 10)[3] == 255


def test_overlay_blend_values():
    dark = kernels.overlay_blend(solid(2, 2, 100), solid(2, 2, 100))
    light = kernels.overlay_blend(solid(2, 2, 200), solid(2, 2, 200))
    assert dark.get_pixel(0, 0) == (78, 78, 78, 255)
    assert light.get_pixel(0, 0) == (231, 231, 231, 255)


def test_apply_mask_scales_alpha():
    mask = np.array([[0, 128], [255, 64]], dtype=np.uint8)
    out = kernels.apply_mask(solid(2, 2), mask)
    assert [out.get_pixel(x, y)[3] for y in range(2) for x in range(2)] == [0, 128, 255, 64]
    with pytest.raises(ValueError):
        kernels.apply_mask(solid(3, 3), mask)


def test_alpha_composite():
    dst = solid(10, 10, 10)
    patch = RasterBuffer.blank(4, 4, (200, 200, 200, 255))
    patch.set_pixel(0, 0, (200, 200, 200, 0))

    out = kernels.alpha_composite(dst, patch, 3, 3)
    assert out.get_pixel(4, 4) == (200, 200, 200, 255)
    assert out.get_pixel(3, 3) == (10, 10, 10, 255)
    assert out.get_pixel(2, 2) == (10, 10, 10, 255)
    assert dst.get_pixel(4, 4) == (10, 10, 10, 255)

    with pytest.raises(OutOfBounds):
        kernels.alpha_composite(dst, patch, 8, 8)


def test_normalize_stretches_contrast():
    arr = np.tile(np.linspace(80, 160, 64).astype(np.uint8), (16, 1))
    buf = RasterBuffer.from_array(np.stack([arr] * 3, axis=2))
    out = kernels.normalize(buf)
    assert out.pixels[:, :, 0].min() == 0
    assert out.pixels[:, :, 0].max() == 255
    assert kernels.normalize(solid(8, 8)) == solid(8, 8)


# =============================================================================
# FeatheredMask
# =============================================================================

@pytest.mark.parametrize("feather", [2, 6, 15, 27, 40])
def test_feathered_mask_center_and_corners(feather):
    inner = FeatheredMask.centered_inner(46, 46, 20, 20, 13)
    mask = FeatheredMask.build(46, 46, inner, feather)

    assert mask.alpha.shape == (46, 46)
    assert mask.alpha[23, 23] == 255
    for y, x in [(0, 0), (0, 45), (45, 0), (45, 45)]:
        assert mask.alpha[y, x] == 0
    assert (mask.alpha[inner.y:inner.bottom, inner.x:inner.right] == 255).all()
    assert (mask.alpha[:SEAM_GUARD, :] == 0).all()


def test_feathered_mask_is_monotonic_towards_center():
    inner = FeatheredMask.centered_inner(46, 46, 20, 20, 13)
    mask = FeatheredMask.build(46, 46, inner, 15)
    row = mask.alpha[23, :24].astype(int)
    assert (np.diff(row) >= 0).all()


def test_wider_feather_gives_wider_transition():
    inner = FeatheredMask.centered_inner(46, 46, 20, 20, 13)
    narrow = FeatheredMask.build(46, 46, inner, 2).alpha
    wide = FeatheredMask.build(46, 46, inner, 40).alpha

    def partial(alpha):
        return int(((alpha > 0) & (alpha < 255)).sum())

    assert partial(wide) > partial(narrow)


def test_centered_inner_is_clamped():
    inner = FeatheredMask.centered_inner(46, 46, 20, 20, 13)
    assert inner == Rect(13, 13, 20, 20)

    tiny = FeatheredMask.centered_inner(10, 10, 50, 50, 13)
    assert (tiny.width, tiny.height) == (1, 1)
    assert tiny.within(10, 10)


def test_feathered_mask_rejects_inner_outside():
    with pytest.raises(ValueError):
        FeatheredMask.build(10, 10, Rect(5, 5, 10, 10), 6)


# =============================================================================
# Parameters
# =============================================================================

def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(3.4) == 3
    assert round_half_up(-0.5) == 0


def test_clamp_boundaries():
    assert clamp_strength(0) == 1 and clamp_strength(1) == 1
    assert clamp_strength(5) == 5 and clamp_strength(9) == 5
    assert clamp_passes(0) == 1 and clamp_passes(8) == 8 and clamp_passes(20) == 8
    assert clamp_scale(1.0) == 1.5 and clamp_scale(4.0) == 3.0
    assert clamp_sharpness(0.1) == 0.8 and clamp_sharpness(3) == 2.5
    assert clamp_feather(0) == 2 and clamp_feather(100) == 40


def test_upscale_factor_range_and_monotonic():
    factors = [upscale_factor(s) for s in np.arange(1.0, 5.01, 0.25)]
    assert all(1.5 <= f <= 3.0 for f in factors)
    assert all(b >= a for a, b in zip(factors, factors[1:]))
    assert upscale_factor(2, scale=2.2) == pytest.approx(2.2)
    assert upscale_factor(2, scale=10) == 3.0
    assert upscale_factor(2, scale=1.0) == 1.5


def test_parse_number_defaults():
    assert parse_number(None, 2) == 2
    assert parse_number("", 2) == 2
    assert parse_number("abc", 2) == 2
    assert parse_number("nan", 2) == 2
    assert parse_number("inf", 2) == 2
    assert parse_number(" 3.5 ", 2) == 3.5
    assert parse_number("0", 2) == 0


def test_demosaic_params_from_form():
    params = DeMosaicParams.from_form({})
    assert (params.strength, params.passes, params.sharpness) == (2, 3, 1.15)
    assert params.upscale == pytest.approx(2.2)
    assert params.gaussian_radius == 3
    assert params.box_radius == 3

    params = DeMosaicParams.from_form(
        {"strength": "0", "passes": "99", "sharpness": "junk", "scale": "9"}
    )
    assert params.strength == 1
    assert params.passes == 8
    assert params.sharpness == 1.15
    assert params.upscale == 3.0


def test_dewatermark_params_from_form():
    params = DeWatermarkParams.from_form({})
    assert (params.mode, params.strength, params.feather) == ("inpaint", 3, 15)
    assert params.pad == 13
    assert params.noise == 8
    assert params.fill_smooth_rounds == 2
    assert params.blend_blur_passes == 2

    params = DeWatermarkParams.from_form({"strength": "5", "mode": "BLUR"})
    assert params.feather == 21
    assert params.mode == "blur"

    params = DeWatermarkParams.from_form({"feather": "100", "mode": "other"})
    assert params.feather == 40
    assert params.mode == "inpaint"


def test_restore_params_mode():
    assert RestoreParams.from_form({"mode": "detail"}).mode == "detail"
    assert RestoreParams.from_form({"mode": "??"}).mode == "auto"
    assert RestoreParams.from_form({}).mode == "auto"


def test_parse_mask_regions():
    mask = parse_mask_regions('[{"x": 1.7, "y": 2, "width": 3, "height": 4}, 5, {"x": "a"}]')
    assert mask.regions == [Rect(1, 2, 3, 4), Rect(0, 0, 0, 0), Rect(0, 0, 0, 0)]
    assert mask.has_mask


def test_non_object_mask_entries_still_count_as_mask():
    mask = parse_mask_regions("[1]")
    assert mask.regions == [Rect(0, 0, 0, 0)]
    assert mask.has_mask


@pytest.mark.parametrize("raw", [None, "", "not json", "{}", '{"x": 1}', "42", b"\xff",
                                 "[" * 100000])
def test_malformed_mask_degrades_to_empty(raw):
    mask = parse_mask_regions(raw)
    assert mask.regions == []
    assert not mask.has_mask


def main():
    """Run all tests."""
    print("🧪 imgrestore Core Module Tests")
    print("=" * 50)

    tests = [(name, fn) for name, fn in sorted(globals().items())
             if name.startswith("test_") and callable(fn)
             and not hasattr(fn, "pytestmark")]

    results = []
    for name, fn in tests:
        try:
            fn()
            results.append((name, True))
        except Exception:
            traceback.print_exc()
            results.append((name, False))

    passed = sum(1 for _, ok in results if ok)
    for name, ok in results:
        print(f"  {name}: {'✅ PASS' if ok else '❌ FAIL'}")
    print(f"\nTotal: {passed}/{len(results)} tests passed")
    return passed == len(results)


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
