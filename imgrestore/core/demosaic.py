"""
De-Mosaic Pipeline
==================
Removes block/mosaic artifacts with an upscale, smooth, downscale and
resharpen cycle.

Stages:
    Loaded -> Upscaled -> Smoothed (x passes) -> Downscaled -> Sharpened

Technical Notes:
- Smoothing happens on the enlarged image so block edges are softened
  at sub-pixel scale; several light passes replace one heavy blur
- Cubic resampling for the upscale, lanczos for the downscale
- The sharpen preset weakens as strength grows
"""

import logging
from typing import Optional

from . import kernels
from .errors import MissingInput
from .params import DeMosaicParams, round_half_up
from .pipeline import CancelCheck, PipelineResult, check_cancelled, processing_stage
from .raster import RasterBuffer

logger = logging.getLogger(__name__)


class DeMosaicPipeline:
    """
    De-mosaic an image.

    Usage:
        result = DeMosaicPipeline().run(buffer, DeMosaicParams(strength=3))
        result.image   # RasterBuffer, same size as the input
        result.params  # resolved parameters
    """

    UNSHARP_SIGMA = 1.0
    FLAT_FACTOR = 1.0
    JAGGED_FACTOR = 1.2

    @staticmethod
    def sharpen_kernel(strength: float):
        """Strong preset up to strength 3, gentle preset above."""
        return kernels.SHARPEN_STRONG if strength <= 3 else kernels.SHARPEN_GENTLE

    def run(
            self,
            image: Optional[RasterBuffer],
            params: Optional[DeMosaicParams] = None,
            should_cancel: CancelCheck = None
    ) -> PipelineResult:
        """
        Run the full pipeline.

        Args:
            image: Source buffer.
            params: Parameters (defaults if None).
            should_cancel: Optional callable polled between stages.

        Returns:
            PipelineResult with the output buffer and resolved parameters.

        Raises:
            MissingInput: If no image is supplied.
            ProcessingError: If any filter stage fails.
            ProcessingCancelled: If `should_cancel` returned True.
        """
        if image is None:
            raise MissingInput("No image supplied")
        params = params or DeMosaicParams()

        width, height = image.size
        upscale = params.upscale
        up_w = max(1, round_half_up(width * upscale))
        up_h = max(1, round_half_up(height * upscale))

        logger.debug(
            "De-mosaic %dx%d: strength=%s upscale=%.2f passes=%d sharpness=%.2f",
            width, height, params.strength, upscale, params.passes, params.sharpness
        )

        check_cancelled(should_cancel, "upscale")
        with processing_stage("upscale"):
            work = kernels.resize(image, up_w, up_h, "cubic")

        for index in range(params.passes):
            check_cancelled(should_cancel, f"smoothing pass {index + 1}")
            with processing_stage("smoothing"):
                work = kernels.gaussian_blur(work, params.gaussian_radius)
                work = kernels.box_blur(work, params.box_radius)
                if params.strength >= 3:
                    work = kernels.convolve(work, kernels.MEAN_3X3)

        check_cancelled(should_cancel, "downscale")
        with processing_stage("downscale"):
            work = kernels.resize(work, width, height, "lanczos")

        check_cancelled(should_cancel, "sharpen")
        with processing_stage("sharpen"):
            work = kernels.convolve(work, self.sharpen_kernel(params.strength))
            work = kernels.unsharp_mask(
                work,
                sigma=self.UNSHARP_SIGMA,
                flat_amount=self.FLAT_FACTOR * params.sharpness,
                jagged_amount=self.JAGGED_FACTOR * params.sharpness,
            )

        return PipelineResult(
            image=work,
            params={
                "strength": params.strength,
                "upscale": upscale,
                "blurRadius": params.blur_radius,
                "gaussianRadius": params.gaussian_radius,
                "passes": params.passes,
                "sharpness": params.sharpness,
            },
        )
