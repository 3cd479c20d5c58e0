"""
Shared pipeline plumbing: result record, cancellation checks and the
translation of low-level faults into ProcessingError.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import cv2

from .errors import OutOfBounds, ProcessingCancelled, ProcessingError
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

CancelCheck = Optional[Callable[[], bool]]


@dataclass
class PipelineResult:
    """Output buffer plus the parameters that were actually applied."""
    image: RasterBuffer
    params: Dict[str, Any] = field(default_factory=dict)


def check_cancelled(should_cancel: CancelCheck, stage: str):
    """Raise ProcessingCancelled if the caller asked to stop."""
    if should_cancel is not None and should_cancel():
        logger.info("Cancelled before stage: %s", stage)
        raise ProcessingCancelled(f"Cancelled before {stage}")


@contextmanager
def processing_stage(name: str):
    """Report buffer and arithmetic faults inside a stage as ProcessingError."""
    try:
        yield
    except (cv2.error, OutOfBounds, ValueError, ArithmeticError, MemoryError) as e:
        raise ProcessingError(f"{name} failed: {e}") from e
