"""
De-Watermark Pipeline
=====================
Hides marked rectangular regions behind synthesized, feathered patches.

Per region (in input order):
    Sampled -> Filled -> Noised -> Smoothed -> Masked -> Composited
then one global sharpen for the whole image.

Technical Notes:
- The background color is estimated from the padded ring around the region
  only, so the watermark itself never contributes to the fill
- Noise keeps the fill from looking unnaturally flat; the generator is
  injectable so tests can make it deterministic
- Each region is cropped from the working image, so overlapping regions
  see the patches of earlier ones
- Without regions only a mild global blur is applied
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from . import kernels
from .errors import InvalidRegion, MissingInput
from .feather import FeatheredMask
from .params import DeWatermarkParams, round_half_up
from .pipeline import CancelCheck, PipelineResult, check_cancelled, processing_stage
from .raster import RasterBuffer, Rect

logger = logging.getLogger(__name__)

DEFAULT_RING_COLOR = (200, 200, 200)


def ring_mean(block: RasterBuffer, pad: int) -> Tuple[int, int, int]:
    """
    Mean RGB of the pixels that lie within `pad` of any block edge.

    Pixels farther than `pad` from every edge belong to the region being
    replaced and are excluded. Falls back to DEFAULT_RING_COLOR when the
    ring is empty.
    """
    width, height = block.size
    inner_x0, inner_x1 = pad, width - pad
    has_inner_cols = inner_x1 > inner_x0

    total = np.zeros(3, dtype=np.float64)
    count = 0
    for y, row in block.rows():
        if has_inner_cols and pad <= y < height - pad:
            ring = np.concatenate([row[:inner_x0, :3], row[inner_x1:, :3]])
        else:
            ring = row[:, :3]
        total += ring.sum(axis=0)
        count += len(ring)

    if count == 0:
        return DEFAULT_RING_COLOR
    r, g, b = (round_half_up(c) for c in total / count)
    return r, g, b


def synthesize_fill(width: int, height: int, color: Tuple[int, int, int],
                    noise: int, rng) -> RasterBuffer:
    """
    Flat fill of `color` with independent uniform noise in [-noise, noise]
    added to every RGB channel.
    """
    fill = RasterBuffer.blank(width, height, (*color, 255))
    if noise <= 0:
        return fill

    arr = fill.to_array().astype(np.float32)
    arr[:, :, :3] += rng.uniform(-noise, noise, size=(height, width, 3))
    return RasterBuffer.from_array(np.rint(arr))


class DeWatermarkPipeline:
    """
    Remove watermarks from marked regions.

    Args:
        rng: Noise source exposing uniform(low, high, size); defaults to a
             fresh numpy Generator.
    """

    UNSHARP_SIGMA = 1.0
    UNSHARP_FLAT = 0.9
    UNSHARP_JAGGED = 1.1

    def __init__(self, rng=None):
        self._rng = rng if rng is not None else np.random.default_rng()

    def _process_region(self, work: RasterBuffer, region: Rect,
                        params: DeWatermarkParams) -> RasterBuffer:
        pad = params.pad
        padded = region.padded(pad, work.width, work.height)
        if padded is None:
            raise InvalidRegion(f"{region} is empty after padding/clamping")

        block = work.crop(padded)
        rw, rh = block.size

        color = ring_mean(block, pad)
        fill = synthesize_fill(rw, rh, color, params.noise, self._rng)
        for _ in range(params.fill_smooth_rounds):
            fill = kernels.gaussian_blur(fill, 1)
            fill = kernels.box_blur(fill, 1)

        inner = FeatheredMask.centered_inner(rw, rh, region.width, region.height, pad)
        mask = FeatheredMask.build(rw, rh, inner, params.feather)

        mixed = kernels.overlay_blend(block, fill)
        for _ in range(params.blend_blur_passes):
            mixed = kernels.box_blur(mixed, 1)

        patch = kernels.apply_mask(mixed, mask.alpha)
        logger.debug("Patched region %s (padded %s, fill %s)", region, padded, color)
        return kernels.alpha_composite(work, patch, padded.x, padded.y)

    def _fallback(self, work: RasterBuffer, mode: str) -> RasterBuffer:
        if mode == "blur":
            work = kernels.gaussian_blur(work, 1)
        return kernels.box_blur(work, 1)

    def run(
            self,
            image: Optional[RasterBuffer],
            params: Optional[DeWatermarkParams] = None,
            regions: Sequence[Rect] = (),
            should_cancel: CancelCheck = None
    ) -> PipelineResult:
        """
        Run the pipeline.

        Args:
            image: Source buffer.
            params: Parameters (defaults if None).
            regions: Rectangles to remove, processed in order. Regions that
                     fall outside the image are skipped.
            should_cancel: Optional callable polled between regions.

        Returns:
            PipelineResult with the output buffer and resolved parameters.

        Raises:
            MissingInput: If no image is supplied.
            ProcessingError: If any filter stage fails.
            ProcessingCancelled: If `should_cancel` returned True.
        """
        if image is None:
            raise MissingInput("No image supplied")
        params = params or DeWatermarkParams()
        regions = list(regions or ())

        logger.debug(
            "De-watermark %dx%d: mode=%s strength=%s feather=%s regions=%d",
            image.width, image.height, params.mode, params.strength,
            params.feather, len(regions)
        )

        work = image.copy()
        if regions:
            for index, region in enumerate(regions):
                check_cancelled(should_cancel, f"region {index + 1}")
                try:
                    with processing_stage(f"region {index + 1}"):
                        work = self._process_region(work, region, params)
                except InvalidRegion as e:
                    logger.warning("Skipping region %d: %s", index + 1, e)
        else:
            check_cancelled(should_cancel, "global fallback")
            with processing_stage("global fallback"):
                work = self._fallback(work, params.mode)

        check_cancelled(should_cancel, "sharpen")
        with processing_stage("sharpen"):
            work = kernels.unsharp_mask(
                work,
                sigma=self.UNSHARP_SIGMA,
                flat_amount=self.UNSHARP_FLAT,
                jagged_amount=self.UNSHARP_JAGGED,
            )

        return PipelineResult(
            image=work,
            params={
                "mode": params.mode,
                "strength": params.strength,
                "feather": params.feather,
                "hasMask": len(regions) > 0,
            },
        )
