"""
imgrestore Package
==================
Image restoration: de-mosaic, de-watermark and auto-restore pipelines.

Modules:
    - core: Pure pixel pipelines (no threading or UI dependencies)
    - workers: Thread pool and QThread batch worker

Usage:
    from imgrestore.core import RestoreService, DeMosaicPipeline
    from imgrestore.workers import RestorePool, RestoreWorker
"""

__version__ = "1.0.0"
__app_name__ = "imgrestore"

# Core exports
from .core import (
    DeMosaicPipeline, DeWatermarkPipeline, RestorePass,
    RasterBuffer, Rect, FeatheredMask,
    DeMosaicParams, DeWatermarkParams, RestoreParams,
    RestoreService, ServiceConfig, envelope
)
# Worker exports
from .workers import PoolConfig, RestorePool, BatchConfig, ImageResult, RestoreWorker

__all__ = [
    # Version info
    "__version__",
    "__app_name__",

    # Core
    "DeMosaicPipeline",
    "DeWatermarkPipeline",
    "RestorePass",
    "RasterBuffer",
    "Rect",
    "FeatheredMask",
    "DeMosaicParams",
    "DeWatermarkParams",
    "RestoreParams",
    "RestoreService",
    "ServiceConfig",
    "envelope",

    # Workers
    "PoolConfig",
    "RestorePool",
    "BatchConfig",
    "ImageResult",
    "RestoreWorker",
]
