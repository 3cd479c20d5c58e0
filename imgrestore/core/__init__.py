"""
Core Module - Pure Pixel Pipelines
==================================
This module contains no UI or threading dependencies.
All restoration algorithms are implemented here.
"""

from .demosaic import DeMosaicPipeline
from .dewatermark import DeWatermarkPipeline
from .errors import (
    RestoreError, MissingInput, OutOfBounds, InvalidRegion, MalformedMaskInput,
    ProcessingError, PoolSaturated, ProcessingTimeout, ProcessingCancelled
)
from .feather import FeatheredMask
from .params import DeMosaicParams, DeWatermarkParams, RestoreParams, parse_mask_regions
from .pipeline import PipelineResult
from .raster import RasterBuffer, Rect
from .restore import RestorePass
from .service import RestoreService, RestoreResult, ServiceConfig, envelope

__all__ = [
    "DeMosaicPipeline",
    "DeWatermarkPipeline",
    "RestorePass",
    "PipelineResult",
    "FeatheredMask",
    "RasterBuffer",
    "Rect",
    "DeMosaicParams",
    "DeWatermarkParams",
    "RestoreParams",
    "parse_mask_regions",
    "RestoreService",
    "RestoreResult",
    "ServiceConfig",
    "envelope",
    "RestoreError",
    "MissingInput",
    "OutOfBounds",
    "InvalidRegion",
    "MalformedMaskInput",
    "ProcessingError",
    "PoolSaturated",
    "ProcessingTimeout",
    "ProcessingCancelled",
]
