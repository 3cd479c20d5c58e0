"""
Restore Service
===============
Boundary between callers that hold raw bytes and string form fields and the
pixel pipelines.

Contract: receive image bytes + form fields, return encoded JPEG bytes +
the resolved parameters. Fatal errors raise; envelope() turns a result or
an error into the {code, message, data} body callers expect.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np

from .codec import DEFAULT_JPEG_QUALITY, decode_image, encode_jpeg
from .demosaic import DeMosaicPipeline
from .dewatermark import DeWatermarkPipeline
from .errors import MissingInput, RestoreError
from .params import DeMosaicParams, DeWatermarkParams, RestoreParams, parse_mask_regions
from .pipeline import CancelCheck
from .restore import RestorePass

logger = logging.getLogger(__name__)

OPERATIONS = ("de-mosaic", "de-watermark", "restore")


@dataclass
class ServiceConfig:
    """Encoding settings for service output."""
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    optimize: bool = True  # applied to de-mosaic and de-watermark output


@dataclass
class RestoreResult:
    """Encoded output of one operation."""
    data: bytes
    width: int
    height: int
    params: Dict[str, Any] = field(default_factory=dict)


class RestoreService:
    """
    Decode, run one pipeline, encode.

    Args:
        config: Encoding settings.
        rng_factory: Creates the noise generator for each de-watermark call;
                     defaults to numpy.random.default_rng.
    """

    def __init__(self, config: Optional[ServiceConfig] = None,
                 rng_factory: Optional[Callable[[], Any]] = None):
        self.config = config or ServiceConfig()
        self._rng_factory = rng_factory or np.random.default_rng

    def de_mosaic(self, data: Optional[bytes], form: Mapping[str, Any] = None,
                  should_cancel: CancelCheck = None) -> RestoreResult:
        form = form or {}
        image = decode_image(data)
        params = DeMosaicParams.from_form(form)
        result = DeMosaicPipeline().run(image, params, should_cancel=should_cancel)
        encoded = encode_jpeg(result.image, self.config.jpeg_quality, self.config.optimize)
        return RestoreResult(encoded, image.width, image.height, result.params)

    def de_watermark(self, data: Optional[bytes], form: Mapping[str, Any] = None,
                     should_cancel: CancelCheck = None) -> RestoreResult:
        form = form or {}
        image = decode_image(data)
        params = DeWatermarkParams.from_form(form)
        mask = parse_mask_regions(form.get("mask"))
        pipeline = DeWatermarkPipeline(rng=self._rng_factory())
        result = pipeline.run(image, params, mask.regions, should_cancel=should_cancel)
        encoded = encode_jpeg(result.image, self.config.jpeg_quality, self.config.optimize)
        return RestoreResult(encoded, image.width, image.height, result.params)

    def restore(self, data: Optional[bytes], form: Mapping[str, Any] = None,
                should_cancel: CancelCheck = None) -> RestoreResult:
        form = form or {}
        image = decode_image(data)
        params = RestoreParams.from_form(form)
        result = RestorePass().run(image, params, should_cancel=should_cancel)
        encoded = encode_jpeg(result.image, self.config.jpeg_quality)
        return RestoreResult(encoded, result.image.width, result.image.height, result.params)

    def process(self, operation: str, data: Optional[bytes],
                form: Mapping[str, Any] = None,
                should_cancel: CancelCheck = None) -> RestoreResult:
        """Dispatch by operation name ("de-mosaic", "de-watermark", "restore")."""
        handlers = {
            "de-mosaic": self.de_mosaic,
            "de-watermark": self.de_watermark,
            "restore": self.restore,
        }
        if operation not in handlers:
            raise ValueError(f"Unknown operation: {operation}")
        return handlers[operation](data, form, should_cancel=should_cancel)


def success(data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"code": 200, "message": "success", "data": data or {}}


def fail(code: int = 400, message: str = "error",
         data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"code": code, "message": message, "data": data or {}}


def envelope(result: Optional[RestoreResult] = None,
             error: Optional[BaseException] = None,
             url: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the response body for a result or a fatal error.

    MissingInput maps to 400 "invalid params"; every other error is reported
    as a generic 500 "internal error".
    """
    if error is not None:
        if isinstance(error, MissingInput):
            return fail(400, "invalid params", {"field": "file"})
        if not isinstance(error, RestoreError):
            logger.error("Unexpected error: %r", error)
        return fail(500, "internal error")

    if result is None:
        return fail(500, "internal error")

    data: Dict[str, Any] = {"width": result.width, "height": result.height}
    if url is not None:
        data["url"] = url
    if result.params:
        data["params"] = dict(result.params)
    return success(data)
