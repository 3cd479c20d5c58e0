"""
Restoration Errors
==================
Exception hierarchy shared by the pipelines, the service layer and the pool.

Fatal:
    - MissingInput: no image supplied
    - ProcessingError: any buffer/arithmetic fault inside a filter stage
    - PoolSaturated / ProcessingTimeout / ProcessingCancelled: scheduling

Non-fatal (logged, never raised to the caller of a pipeline):
    - InvalidRegion: a mask region is degenerate after padding and is skipped
    - MalformedMaskInput: mask JSON could not be parsed, treated as no mask
"""


class RestoreError(Exception):
    """Base class for all restoration errors."""


class MissingInput(RestoreError):
    """No input image was supplied."""


class OutOfBounds(RestoreError, IndexError):
    """A coordinate or rectangle lies outside a RasterBuffer."""


class InvalidRegion(RestoreError):
    """A mask region became degenerate after padding/clamping."""


class MalformedMaskInput(RestoreError, ValueError):
    """Mask input could not be parsed into regions."""


class ProcessingError(RestoreError):
    """A filter stage failed; fatal to the request."""


class PoolSaturated(RestoreError):
    """The worker pool queue is full."""


class ProcessingTimeout(RestoreError):
    """A request did not finish within its timeout."""


class ProcessingCancelled(RestoreError):
    """A request was cancelled between pipeline stages."""
