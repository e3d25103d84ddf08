from __future__ import annotations
from typing import Tuple
import logging
import os

import numpy as np
from dotenv import load_dotenv

from ..models.image import Image
from ..models.palette import PaletteEntry, QUANTIZATION_FACTOR
from .image_service import ImageService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

OPAQUE_ALPHA_THRESHOLD = 128
_LEVELS = 256 >> QUANTIZATION_FACTOR          # 16 buckets per channel
_NUM_BUCKETS = _LEVELS ** 3                    # 4096


class PaletteService:
    """
    Dominant-color extraction by fixed-bucket quantization.

    *   Stateless: ``extract`` is a pure function of its input buffer.
    *   No I/O; the only collaborator is ImageService for downsampling.
    """

    def __init__(self):
        self.MAX_COLORS = int(os.getenv("PALETTE_MAX_COLORS", "15"))
        self.image_service = ImageService()

    @staticmethod
    def _count_buckets(pixels: np.ndarray) -> np.ndarray:
        """
        Histogram of quantized keys (r*256 + g*16 + b) over pixels whose
        alpha is above OPAQUE_ALPHA_THRESHOLD.

        Returns:
            np.ndarray: (4096,) int64 counts.
        """
        flat = pixels.reshape(-1, 4)
        visible = flat[flat[:, 3] > OPAQUE_ALPHA_THRESHOLD]
        if visible.size == 0:
            return np.zeros(_NUM_BUCKETS, dtype=np.int64)

        q = (visible[:, :3] >> QUANTIZATION_FACTOR).astype(np.int64)
        keys = (q[:, 0] << 8) | (q[:, 1] << 4) | q[:, 2]
        return np.bincount(keys, minlength=_NUM_BUCKETS)

    @staticmethod
    def _rank_buckets(counts: np.ndarray) -> np.ndarray:
        """
        Occupied keys ordered by count descending, ties by ascending key.
        """
        keys = np.flatnonzero(counts)
        # lexsort: last key is primary
        order = np.lexsort((keys, -counts[keys]))
        return keys[order]

    def extract(self, image: Image, max_colors: int | None = None) -> Tuple[PaletteEntry, ...]:
        """
        Rank the quantized colors of *image* (already downsampled or not).

        Args:
            image (Image): RGBA buffer; only read.
            max_colors (int): Cap on the palette length (PALETTE_MAX_COLORS by default).

        Returns:
            tuple[PaletteEntry]: Bucket-floor colors, most frequent first.
                Empty when no pixel is opaque enough.
        """
        if max_colors is None:
            max_colors = self.MAX_COLORS
        if max_colors <= 0:
            return ()

        counts = self._count_buckets(image.pixels)
        ranked = self._rank_buckets(counts)[:max_colors]
        palette = tuple(PaletteEntry.from_bucket_key(int(k)) for k in ranked)

        logger.debug(f"Palette: {len(palette)} colors from {int(counts.sum())} opaque pixels")
        return palette

    def extract_from_original(self, image: Image, max_colors: int | None = None) -> Tuple[PaletteEntry, ...]:
        """
        Downsample first (palette approximation, not an exact histogram),
        then extract.
        """
        sample = self.image_service.downsample(image)
        return self.extract(sample, max_colors)
