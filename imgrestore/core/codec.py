"""
Image Codec
===========
Decode raw image bytes into RasterBuffer and encode RasterBuffer as JPEG.

Technical Notes:
- Format is sniffed by Pillow from the byte stream (JPEG, PNG, ...)
- EXIF orientation is applied on decode so pixels match what viewers show
- JPEG has no alpha: transparent pixels are flattened onto white
"""

import io
from typing import Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import MissingInput, ProcessingError
from .raster import RasterBuffer

DEFAULT_JPEG_QUALITY = 92


def decode_image(data: Union[bytes, bytearray, None]) -> RasterBuffer:
    """
    Decode image bytes into an RGBA buffer.

    Raises:
        MissingInput: If `data` is None or empty.
        ProcessingError: If the bytes are not a readable image.
    """
    if not data:
        raise MissingInput("No image data supplied")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            rgba = img.convert("RGBA")
            return RasterBuffer(np.array(rgba, dtype=np.uint8))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ProcessingError(f"Cannot decode image: {e}") from e


def to_pil(buf: RasterBuffer) -> Image.Image:
    return Image.fromarray(buf.to_array())


def encode_jpeg(buf: RasterBuffer, quality: int = DEFAULT_JPEG_QUALITY,
                optimize: bool = False) -> bytes:
    """
    Encode a buffer as JPEG bytes.

    Args:
        buf: Buffer to encode.
        quality: JPEG quality 1-95.
        optimize: Let the encoder spend extra passes on smaller output.
    """
    quality = max(1, min(95, int(quality)))
    rgba = to_pil(buf)

    # Convert RGBA to RGB for JPEG
    rgb = Image.new("RGB", rgba.size, (255, 255, 255))
    rgb.paste(rgba, mask=rgba.split()[3])

    out = io.BytesIO()
    try:
        rgb.save(out, format="JPEG", quality=quality, optimize=optimize)
    except (OSError, ValueError) as e:
        raise ProcessingError(f"Cannot encode JPEG: {e}") from e
    return out.getvalue()
