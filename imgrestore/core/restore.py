"""
Auto-restore: contrast normalization followed by a fixed sharpen.
"""

import logging
from typing import Optional

from . import kernels
from .errors import MissingInput
from .params import RestoreParams
from .pipeline import CancelCheck, PipelineResult, check_cancelled, processing_stage
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

# mode -> (sigma, flat_amount, jagged_amount)
SHARPEN_PRESETS = {
    "detail": (1.2, 1.0, 1.5),
    "auto": (0.6, 1.0, 1.2),
}


class RestorePass:
    """Single-pass restore filter."""

    def run(
            self,
            image: Optional[RasterBuffer],
            params: Optional[RestoreParams] = None,
            should_cancel: CancelCheck = None
    ) -> PipelineResult:
        if image is None:
            raise MissingInput("No image supplied")
        params = params or RestoreParams()
        sigma, flat, jagged = SHARPEN_PRESETS[params.mode]

        logger.debug("Restore %dx%d: mode=%s", image.width, image.height, params.mode)

        check_cancelled(should_cancel, "normalize")
        with processing_stage("normalize"):
            work = kernels.normalize(image)
        check_cancelled(should_cancel, "sharpen")
        with processing_stage("sharpen"):
            work = kernels.unsharp_mask(work, sigma, flat, jagged)

        return PipelineResult(image=work, params={"mode": params.mode})
