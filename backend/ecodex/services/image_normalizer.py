"""
EcoDex Backend - Image Normalizer
===================================

What:  Decodes an uploaded photo and produces a bounded-size JPEG copy.
Why:   The oracle gets a predictable payload (at most 800x600, quality 85)
       and the stored entry gets a display-ready image next to the original.
How:   Pillow decodes the upload, thumbnail() shrinks it inside the bounding
       box keeping the aspect ratio (it never enlarges), then the result is
       re-encoded as JPEG. Both byte strings are exposed as base64.
Who:   Called by DiscoveryPipeline for identify and chat runs.
When:  First step of every run that carries an image.

Concurrency:
    Decoding and re-encoding are CPU bound. normalize() is synchronous;
    normalize_async() runs it in Starlette's thread pool so the event loop
    keeps serving other requests while a large photo is being resized.
"""

import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from ecodex.config import settings
from ecodex.exceptions import ImageDecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedImage:
    """Normalized JPEG plus the untouched upload."""

    normalized_bytes: bytes
    original_bytes: bytes
    width: int
    height: int
    mime_type: str = "image/jpeg"

    @property
    def normalized_base64(self) -> str:
        return base64.b64encode(self.normalized_bytes).decode("ascii")

    @property
    def original_base64(self) -> str:
        return base64.b64encode(self.original_bytes).decode("ascii")


class ImageNormalizer:
    """
    Resizes and re-encodes uploaded images.

    Args:
        max_size: (width, height) bounding box. Defaults to settings.
        quality:  JPEG quality (1-100). Defaults to settings.
    """

    def __init__(
        self,
        max_size: Optional[Tuple[int, int]] = None,
        quality: Optional[int] = None,
    ):
        self.max_size = max_size or (settings.image_max_width, settings.image_max_height)
        self.quality = quality or settings.image_jpeg_quality

    def normalize(self, content: bytes) -> NormalizedImage:
        """
        Decode, shrink to fit and re-encode an image.

        Raises:
            ImageDecodeError: The bytes are empty, truncated, not an image,
                              or a format Pillow cannot read.
        """
        if not content:
            raise ImageDecodeError(message="The uploaded image is empty")

        start_time = time.perf_counter()
        try:
            with Image.open(io.BytesIO(content)) as img:
                img.load()
                source_size = img.size
                working = img.convert("RGB") if img.mode != "RGB" else img.copy()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logger.warning("Image decode failed (%d bytes): %s", len(content), str(e))
            raise ImageDecodeError(
                message="The uploaded file is not a valid or supported image.",
                context={"size_bytes": len(content), "error_type": type(e).__name__},
            )

        # thumbnail() keeps the aspect ratio and is a no-op for images
        # already inside the box
        working.thumbnail(self.max_size, Image.Resampling.LANCZOS)

        buf = io.BytesIO()
        working.save(buf, format="JPEG", quality=self.quality)
        normalized = buf.getvalue()

        logger.info(
            "Image normalized %dx%d -> %dx%d (%d -> %d bytes) in %.0fms",
            source_size[0],
            source_size[1],
            working.width,
            working.height,
            len(content),
            len(normalized),
            (time.perf_counter() - start_time) * 1000,
        )

        return NormalizedImage(
            normalized_bytes=normalized,
            original_bytes=content,
            width=working.width,
            height=working.height,
        )

    async def normalize_async(self, content: bytes) -> NormalizedImage:
        """normalize() on a worker thread."""
        return await run_in_threadpool(self.normalize, content)


# ── Singleton Instance ────────────────────────────────────────────────────
image_normalizer = ImageNormalizer()
