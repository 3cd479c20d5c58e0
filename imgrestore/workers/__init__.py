"""
Workers Module - Concurrent Processing
======================================
Bounded thread pool for restore requests and a QThread batch worker.

Components:
- RestorePool: CPU-sized pool with backpressure, timeout and cancellation
- RestoreWorker: batch restoration with progress tracking
"""

from .pool import PoolConfig, RestorePool, RestoreTask
from .restore_worker import BatchConfig, ImageResult, RestoreWorker, output_filename

__all__ = [
    # Pool
    "PoolConfig",
    "RestorePool",
    "RestoreTask",
    # Batch
    "BatchConfig",
    "ImageResult",
    "RestoreWorker",
    "output_filename",
]
