"""Image preprocessing: byte decoding and model input tensor construction.

The resize filter (triangle/bilinear) and the 1/255 scaling are what the
exported model was trained with. Changing either degrades accuracy silently.
"""

from __future__ import annotations

import io

import numpy as np
from numpy.typing import NDArray
from PIL import Image, UnidentifiedImageError

from tagserve.ml.errors import InvalidImageError

INPUT_SIZE: int = 224
INPUT_SHAPE: tuple[int, int, int, int] = (1, INPUT_SIZE, INPUT_SIZE, 3)
RESIZE_FILTER = Image.Resampling.BILINEAR
PIXEL_SCALE: float = 255.0

# Pillow clips these to 255 on convert("RGB") instead of rescaling.
WIDE_GRAYSCALE_MODES = frozenset({"I", "I;16", "I;16B", "I;16L", "I;16N"})


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes, detecting the format from content.

    The image is fully loaded before returning so truncated data fails here
    rather than during resizing.

    Raises:
        InvalidImageError: If the bytes are empty, undecodable, truncated,
            or the image has more than ``max_pixels`` pixels.
    """
    if not image_bytes:
        raise InvalidImageError("Could not create image from raw data: empty body")

    try:
        image = Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError, EOFError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise InvalidImageError(f"Could not create image from raw data: {exc}") from exc

    # Header-only check before the pixel data is decoded.
    if max_pixels is not None and image.width * image.height > max_pixels:
        raise InvalidImageError(f"Image too large: {image.width}x{image.height} exceeds {max_pixels} pixels")

    try:
        image.load()
    except (OSError, EOFError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise InvalidImageError(f"Could not create image from raw data: {exc}") from exc

    return image


def to_input_tensor(image: Image.Image) -> NDArray[np.float32]:
    """Convert an image to the model's NHWC float32 input.

    Returns:
        C-contiguous array of shape ``(1, 224, 224, 3)`` with values in [0, 1].
    """
    rgb = _to_rgb(image)
    resized = rgb.resize((INPUT_SIZE, INPUT_SIZE), resample=RESIZE_FILTER)
    pixels = np.asarray(resized, dtype=np.uint8)
    tensor = pixels.astype(np.float32) / np.float32(PIXEL_SCALE)
    return np.ascontiguousarray(tensor.reshape(INPUT_SHAPE))


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in WIDE_GRAYSCALE_MODES:
        wide = np.clip(np.asarray(image).astype(np.int64), 0, 0xFFFF)
        image = Image.fromarray((wide >> 8).astype(np.uint8))
    return image.convert("RGB")
