from __future__ import annotations
import base64
import logging
import os

from dotenv import load_dotenv

from ..models.image import Image
from ..repositories.image_repository import ImageRepository

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class ImageService:
    """I/O helpers.  No color logic here."""
    def __init__(self):
        self.SAMPLE_SIZE = int(os.getenv("PALETTE_SAMPLE_SIZE", "200"))
        self.image_repository = ImageRepository()

    def decode(self, data: bytes) -> Image:
        """Decode uploaded bytes into an RGBA Image."""
        img = self.image_repository.decode(data)
        logger.info(f"Decoded image: {img.width}x{img.height}")
        return img

    def encode_png(self, image: Image) -> bytes:
        return self.image_repository.encode_png(image)

    def to_data_url(self, image: Image) -> str:
        """Convert Image object to a base64 PNG data URL for JSON responses."""
        png_bytes = self.encode_png(image)
        base64_string = base64.b64encode(png_bytes).decode('utf-8')
        return f"data:image/png;base64,{base64_string}"

    def copy(self, image: Image) -> Image:
        """Freshly allocated, writable copy of the pixels."""
        return self.image_repository.copy_pixels(image)

    def freeze(self, image: Image) -> Image:
        """
        Turn an Image into the immutable source of truth for a session.
        """
        self.image_repository.freeze(image)
        return image

    @staticmethod
    def _fit_longest_edge(width: int, height: int, target: int):
        """
        Dimensions with the longest edge equal to *target*, aspect preserved.
        Never returns a zero-sized edge.
        """
        if width >= height:
            return target, max(1, round(height * target / width))
        return max(1, round(width * target / height)), target

    def downsample(self, image: Image, max_edge: int | None = None) -> Image:
        """
        Return a copy whose longest edge is at most *max_edge* px
        (PALETTE_SAMPLE_SIZE by default). Small images are copied, never upscaled.
        """
        max_edge = max_edge or self.SAMPLE_SIZE
        h, w = image.height, image.width
        if max(w, h) <= max_edge:
            return self.copy(image)

        new_w, new_h = self._fit_longest_edge(w, h, max_edge)
        logger.debug(f"Downsampling {w}x{h} → {new_w}x{new_h} for palette extraction")
        return self.image_repository.resize(image, new_w, new_h)
