from __future__ import annotations
from typing import Callable, Iterable, Optional
import logging
import os

import numpy as np
from dotenv import load_dotenv

from ..models.image import Image
from ..models.errors import MaskingCancelled
from ..models.mask_settings import MaskSettings, tolerance_to_threshold
from ..models.palette import RGBColor
from .image_service import ImageService

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class MaskingService:
    """
    Business-level color masking.

    • Never touches the input Image: every call returns a **new** Image.
    • Only the alpha channel of the output differs from the input.
    • Inputs are assumed validated (see MaskSettings); no domain errors here.
    """

    def __init__(self):
        self.BAND_ROWS = max(1, int(os.getenv("MASK_BAND_ROWS", "256")))
        self.image_service = ImageService()

    @staticmethod
    def _match_band(rgb: np.ndarray, targets: np.ndarray, threshold_sq: float) -> np.ndarray:
        """
        Args
        ----
        rgb      : (h, W, 3) int32, full-precision channels
        targets  : (T, 3)    int32
        Returns
        -------
        matched  : (h, W) bool, True where any target is strictly closer
                   than sqrt(threshold_sq)
        """
        matched = np.zeros(rgb.shape[:2], dtype=bool)
        for target in targets:
            pending = ~matched
            if not pending.any():
                break
            diff = rgb[pending] - target
            dist_sq = np.einsum("ij,ij->i", diff, diff)
            matched[pending] = dist_sq < threshold_sq
        return matched

    def mask(
            self,
            original: Image,
            targets: Iterable[RGBColor],
            tolerance: int,
            cancelled: Optional[Callable[[], bool]] = None,
    ) -> Image:
        """
        Zero the alpha of every pixel whose RGB lies within tolerance of any target.

        Args:
            original (Image): Source buffer; read only.
            targets (Iterable[RGBColor]): Selected colors. Empty → unchanged copy.
            tolerance (int): Percentage in [0, 100].
            cancelled (callable, optional): Polled between row bands; a True
                answer aborts the pass with MaskingCancelled.

        Returns:
            Image: A new buffer.
        """
        result = self.image_service.copy(original)
        targets = list(targets)
        if not targets:
            return result

        threshold_sq = tolerance_to_threshold(tolerance)
        target_arr = np.array([t.as_tuple() for t in targets], dtype=np.int32)
        height = original.height

        cleared = 0
        for top in range(0, height, self.BAND_ROWS):
            if cancelled is not None and cancelled():
                raise MaskingCancelled(f"Masking pass aborted at row {top}/{height}")

            bottom = min(top + self.BAND_ROWS, height)
            rgb = original.pixels[top:bottom, :, :3].astype(np.int32)
            matched = self._match_band(rgb, target_arr, threshold_sq)

            result.pixels[top:bottom, :, 3][matched] = 0
            cleared += int(matched.sum())

        logger.debug(
            f"Masked {cleared}/{original.width * height} pixels "
            f"({len(targets)} targets, tolerance={tolerance})"
        )
        return result

    def apply(self, original: Image, settings: MaskSettings,
              cancelled: Optional[Callable[[], bool]] = None) -> Image:
        """Convenience wrapper taking a validated MaskSettings."""
        return self.mask(original, settings.targets, settings.tolerance, cancelled)
