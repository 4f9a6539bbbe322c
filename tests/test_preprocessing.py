"""Tests for image decoding and input tensor construction."""

from __future__ import annotations

import io

import numpy as np
import pytest
from conftest import encode_image
from PIL import Image

from tagserve.ml.errors import InvalidImageError
from tagserve.ml.preprocessing import INPUT_SHAPE, decode_image, to_input_tensor


class TestDecodeImage:
    def test_decodes_jpeg(self, jpeg_bytes: bytes) -> None:
        image = decode_image(jpeg_bytes)
        assert image.size == (64, 48)
        assert image.format == "JPEG"

    def test_decodes_png(self, png_bytes: bytes) -> None:
        image = decode_image(png_bytes)
        assert image.size == (300, 200)
        assert image.format == "PNG"

    def test_empty_bytes_rejected(self) -> None:
        with pytest.raises(InvalidImageError, match="empty"):
            decode_image(b"")

    def test_garbage_rejected(self) -> None:
        with pytest.raises(InvalidImageError):
            decode_image(b"definitely not an image")

    def test_truncated_jpeg_rejected(self) -> None:
        data = encode_image("JPEG", size=(256, 256))
        with pytest.raises(InvalidImageError):
            decode_image(data[: len(data) // 2])

    def test_truncated_png_rejected(self) -> None:
        data = encode_image("PNG", size=(256, 256))
        with pytest.raises(InvalidImageError):
            decode_image(data[: len(data) // 2])

    def test_pixel_limit(self, png_bytes: bytes) -> None:
        with pytest.raises(InvalidImageError, match="too large"):
            decode_image(png_bytes, max_pixels=1000)


class TestToInputTensor:
    def test_shape_and_dtype(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (640, 480), (10, 20, 30)))
        assert tensor.shape == INPUT_SHAPE == (1, 224, 224, 3)
        assert tensor.dtype == np.float32
        assert tensor.flags["C_CONTIGUOUS"]

    def test_values_scaled_by_255(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (50, 50), (255, 0, 51)))
        np.testing.assert_allclose(tensor[0, 0, 0], [1.0, 0.0, 0.2], rtol=1e-6)
        assert tensor.min() >= 0.0
        assert tensor.max() <= 1.0

    def test_channel_last_order(self) -> None:
        tensor = to_input_tensor(Image.new("RGB", (224, 224), (0, 0, 255)))
        assert np.all(tensor[..., 2] == 1.0)
        assert np.all(tensor[..., :2] == 0.0)

    def test_grayscale_converted_to_three_channels(self) -> None:
        tensor = to_input_tensor(Image.new("L", (100, 100), 128))
        np.testing.assert_allclose(tensor[0, 50, 50], [128 / 255] * 3, rtol=1e-6)

    def test_rgba_converted(self) -> None:
        tensor = to_input_tensor(Image.new("RGBA", (30, 30), (255, 255, 255, 0)))
        assert tensor.shape == (1, 224, 224, 3)

    def test_uses_bilinear_resize(self) -> None:
        image = Image.radial_gradient("L").convert("RGB")
        expected = np.asarray(image.resize((224, 224), Image.Resampling.BILINEAR), dtype=np.float32) / 255.0
        np.testing.assert_array_equal(to_input_tensor(image)[0], expected.astype(np.float32))

    def test_sixteen_bit_grayscale_scaled_to_eight_bits(self) -> None:
        buf = io.BytesIO()
        Image.fromarray(np.full((20, 20), 40000, dtype=np.uint16)).save(buf, format="PNG")
        image = decode_image(buf.getvalue())
        assert image.mode.startswith("I")

        tensor = to_input_tensor(image)

        np.testing.assert_allclose(tensor, (40000 >> 8) / 255, rtol=1e-6)
        assert tensor.max() < 0.62

    def test_sixteen_bit_extremes(self) -> None:
        pixels = np.zeros((20, 20), dtype=np.uint16)
        pixels[:, 10:] = 65535
        image = Image.fromarray(pixels)
        tensor = to_input_tensor(image)
        assert tensor.min() == 0.0
        assert tensor.max() == 1.0
