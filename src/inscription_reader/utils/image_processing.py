# src/inscription_reader/utils/image_processing.py
"""
Utility functions for checking photographs and decoding preprocessed images.

The recognition service does all real image processing; these helpers only
make sure we never upload something that is not an image and can turn the
base64 PNG the service returns into pixels for a preview.
"""

import base64
import binascii
import io
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from inscription_reader.core.errors import DataError, ErrorCodes, ValidationError

_DATA_URL_PREFIX = "base64,"


def validate_image_file(path: Union[str, Path]) -> Path:
    """
    Check that ``path`` points to a readable image.

    Returns:
        The path as a ``Path``

    Raises:
        ValidationError: If the file is missing or is not an image
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(
            f"File not found: {path}",
            field_name='file',
            error_code=ErrorCodes.MISSING_REQUIRED,
            suggestions=["Select an existing photograph"],
        )
    if not path.is_file():
        raise ValidationError(f"Not a file: {path}", field_name='file')

    try:
        with Image.open(path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(
            f"Not a supported image: {path.name}",
            field_name='file',
            error_code=ErrorCodes.INVALID_PARAMETER,
            cause=e,
            suggestions=["Select a PNG or JPEG photograph of the inscription"],
        )
    return path


def decode_base64_png(text: str) -> bytes:
    """
    Decode the ``preprocessed_image`` field of a preprocess response.

    Accepts a bare base64 string or a ``data:image/png;base64,`` URL.

    Raises:
        DataError: If the text is not valid base64
    """
    if not isinstance(text, str) or not text:
        raise DataError("Preprocessed image is missing", error_code=ErrorCodes.INVALID_PAYLOAD)
    if text.startswith("data:") and _DATA_URL_PREFIX in text:
        text = text.split(_DATA_URL_PREFIX, 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DataError(
            "Preprocessed image is not valid base64",
            error_code=ErrorCodes.INVALID_PAYLOAD,
            cause=e,
        )


def decode_png(png_bytes: bytes) -> np.ndarray:
    """
    Decode image bytes into a numpy array (H x W or H x W x C).

    Raises:
        DataError: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(png_bytes)) as img:
            return np.asarray(img.convert('L') if img.mode in ('1', 'P') else img)
    except (UnidentifiedImageError, OSError) as e:
        raise DataError(
            "Preprocessed image could not be decoded",
            error_code=ErrorCodes.INVALID_IMAGE,
            cause=e,
        )


def image_size(png_bytes: bytes) -> Tuple[int, int]:
    """
    Return (width, height) of encoded image bytes.

    Only the image header is read; pixels are not decoded.

    Raises:
        DataError: If the bytes are not an image
    """
    try:
        with Image.open(io.BytesIO(png_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        raise DataError(
            "Preprocessed image could not be decoded",
            error_code=ErrorCodes.INVALID_IMAGE,
            cause=e,
        )
