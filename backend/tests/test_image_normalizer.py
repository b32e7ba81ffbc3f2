"""
EcoDex Backend - Image Normalizer Tests
=========================================

Real Pillow images, generated in memory by the make_image fixture.
"""

import base64
import io

import pytest
from PIL import Image

from ecodex.exceptions import ImageDecodeError
from ecodex.services.image_normalizer import ImageNormalizer


def _decode(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class TestNormalize:

    def setup_method(self):
        self.normalizer = ImageNormalizer(max_size=(800, 600), quality=85)

    def test_small_image_is_not_enlarged(self, make_image):
        result = self.normalizer.normalize(make_image(400, 300))
        assert (result.width, result.height) == (400, 300)
        assert _decode(result.normalized_bytes).size == (400, 300)

    def test_large_image_fits_box_and_keeps_aspect_ratio(self, make_image):
        result = self.normalizer.normalize(make_image(1600, 1200))
        assert (result.width, result.height) == (800, 600)

    def test_portrait_image_bounded_by_height(self, make_image):
        result = self.normalizer.normalize(make_image(1200, 1600))
        assert result.height <= 600
        assert result.width <= 800
        assert result.width / result.height == pytest.approx(1200 / 1600, rel=0.01)

    def test_output_is_rgb_jpeg(self, make_image):
        result = self.normalizer.normalize(make_image(300, 300, fmt="PNG", mode="RGBA"))
        img = _decode(result.normalized_bytes)
        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert result.mime_type == "image/jpeg"

    def test_original_bytes_kept_untouched(self, make_image):
        original = make_image(1000, 500, fmt="PNG")
        result = self.normalizer.normalize(original)
        assert result.original_bytes == original
        assert base64.b64decode(result.original_base64) == original
        assert base64.b64decode(result.normalized_base64) == result.normalized_bytes

    def test_garbage_bytes_raise_decode_error(self):
        with pytest.raises(ImageDecodeError) as exc_info:
            self.normalizer.normalize(b"definitely not an image")
        assert exc_info.value.retryable is False

    def test_truncated_image_raises_decode_error(self, make_image):
        data = make_image(400, 300, fmt="JPEG")
        with pytest.raises(ImageDecodeError):
            self.normalizer.normalize(data[: len(data) // 3])

    def test_empty_bytes_raise_decode_error(self):
        with pytest.raises(ImageDecodeError):
            self.normalizer.normalize(b"")


class TestNormalizeAsync:

    @pytest.mark.asyncio
    async def test_runs_in_threadpool(self, make_image):
        normalizer = ImageNormalizer(max_size=(800, 600))
        result = await normalizer.normalize_async(make_image(1600, 1200))
        assert (result.width, result.height) == (800, 600)
