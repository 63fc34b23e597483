"""Utility modules for Inscription Reader.

Provides image file checks and decoding of preprocessed images.
"""

from .image_processing import (
    validate_image_file,
    decode_base64_png,
    decode_png,
    image_size,
)

__all__ = [
    'validate_image_file',
    'decode_base64_png',
    'decode_png',
    'image_size',
]
